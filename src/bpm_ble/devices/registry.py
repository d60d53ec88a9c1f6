"""Registry of supported blood pressure monitors."""

from src.bpm_ble.devices.base import BaseBPMDevice, DeviceKind, DeviceProfile
from src.bpm_ble.devices.hem_9200t import HEM9200T
from src.bpm_ble.devices.ua_651ble import UA651BLE
from src.bpm_ble.transport import BLETransport

SUPPORTED_DEVICES: dict[DeviceKind, type[BaseBPMDevice]] = {
    DeviceKind.UA651BLE: UA651BLE,
    DeviceKind.HEM9200T: HEM9200T,
    # Add more devices here as they are implemented
}


def parse_device_kind(kind: DeviceKind | str) -> DeviceKind:
    """Parse a model name such as ``"HEM-9200T"`` or ``"ua651ble"``.

    Raises:
        ValueError: Unknown model
    """
    if isinstance(kind, DeviceKind):
        return kind

    normalized = kind.upper().replace("-", "").replace(" ", "")
    try:
        return DeviceKind(normalized)
    except ValueError:
        supported = ", ".join(k.value for k in SUPPORTED_DEVICES)
        raise ValueError(
            f"Unsupported device model: {kind}. Supported models: {supported}"
        ) from None


def profile_for(kind: DeviceKind | str) -> DeviceProfile:
    """Return the static profile of a monitor model."""
    return SUPPORTED_DEVICES[parse_device_kind(kind)].profile


def create_device(kind: DeviceKind | str, transport: BLETransport) -> BaseBPMDevice:
    """Instantiate the driver for a monitor model."""
    return SUPPORTED_DEVICES[parse_device_kind(kind)](transport)
