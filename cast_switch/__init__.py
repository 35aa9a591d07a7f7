"""Cast Switch: expose a Cast device as an on/off switch.

Finds one Cast device by friendly name via mDNS, keeps a control session to
it, and turns its receiver/media status into a single "is casting" boolean
plus a debounced "streaming detected" signal.

Quickstart::

    from cast_switch.accessory import CastSwitchAccessory
    from cast_switch.config import CastSwitchConfig

    config = CastSwitchConfig(chromecast_device_name="Living Room TV")
    await CastSwitchAccessory(config).start()
"""

__version__ = "0.1.0"
