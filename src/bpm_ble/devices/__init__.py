"""Blood pressure monitor drivers.

Each device model has its own driver class that inherits from BaseBPMDevice.
"""

from src.bpm_ble.devices.base import BaseBPMDevice, DeviceKind, DeviceProfile
from src.bpm_ble.devices.hem_9200t import HEM9200T
from src.bpm_ble.devices.registry import SUPPORTED_DEVICES, create_device, profile_for
from src.bpm_ble.devices.ua_651ble import UA651BLE

__all__ = [
    "SUPPORTED_DEVICES",
    "BaseBPMDevice",
    "DeviceKind",
    "DeviceProfile",
    "HEM9200T",
    "UA651BLE",
    "create_device",
    "profile_for",
]
