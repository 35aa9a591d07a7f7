"""pytest configuration for Cast Switch tests."""

from __future__ import annotations

import pytest

from cast_switch.aggregator import StatusAggregator
from fakes import FakeFactory, FakeScheduler


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def aggregator(scheduler) -> StatusAggregator:
    return StatusAggregator(0, scheduler)


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()
