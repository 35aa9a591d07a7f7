"""Cast Switch entry point.

Usage:
    python -m cast_switch [--config CONFIG_PATH] [--device-name NAME]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from .accessory import CastSwitchAccessory
from .config import CastSwitchConfig, ConfigError


def main() -> None:
    parser = argparse.ArgumentParser(description="Expose a Cast device as a switch")
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to config.json (default: ~/.cast-switch/config.json if present)",
    )
    parser.add_argument(
        "--device-name",
        default=None,
        help="Friendly name of the Cast device (overrides config)",
    )
    parser.add_argument(
        "--switch-off-delay",
        type=int,
        default=None,
        help="Milliseconds the streaming sensor stays on after casting stops",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    log = logging.getLogger(__name__)

    config_path = args.config
    if config_path is None:
        candidate = Path.home() / ".cast-switch" / "config.json"
        if candidate.exists():
            config_path = str(candidate)

    if config_path:
        config = CastSwitchConfig.load(config_path)
        log.info("Loaded config from %s", config_path)
    else:
        config = CastSwitchConfig()

    if args.device_name:
        config.chromecast_device_name = args.device_name
    if args.switch_off_delay is not None:
        config.switch_off_delay = args.switch_off_delay
    config.apply_env()

    try:
        accessory = CastSwitchAccessory(config)
    except ConfigError as exc:
        log.error("Invalid configuration: %s", exc)
        sys.exit(2)

    loop = asyncio.new_event_loop()
    main_task = loop.create_task(accessory.start())

    def _shutdown(sig: int) -> None:
        log.info("Received signal %d, shutting down", sig)
        main_task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown, sig)

    try:
        loop.run_until_complete(main_task)
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        loop.run_until_complete(accessory.stop())
        loop.close()


if __name__ == "__main__":
    main()
