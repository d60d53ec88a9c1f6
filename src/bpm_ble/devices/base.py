"""Device profile and base driver for blood pressure monitors."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from bleak.uuids import normalize_uuid_str

from src.bpm_ble.codec import TimeEncoding
from src.bpm_ble.transport import BLETransport

logger = logging.getLogger(__name__)

# Bluetooth SIG Blood Pressure service, shared by every supported monitor
BLOOD_PRESSURE_SERVICE_UUID = "1810"
BLOOD_PRESSURE_MEASUREMENT_UUID = "2a35"


class DeviceKind(str, Enum):
    """Selectable monitor models."""

    UA651BLE = "UA651BLE"
    HEM9200T = "HEM9200T"


def same_uuid(first: str, second: str) -> bool:
    """Compare two UUIDs, expanding 16-bit forms to the Bluetooth base UUID."""
    return normalize_uuid_str(first) == normalize_uuid_str(second)


@dataclass(frozen=True)
class DeviceProfile:
    """GATT addresses and time layout of one monitor model."""

    id: DeviceKind
    name: str
    time_service: str
    time_characteristic: str
    time_encoding: TimeEncoding
    measurement_service: str = BLOOD_PRESSURE_SERVICE_UUID
    measurement_characteristic: str = BLOOD_PRESSURE_MEASUREMENT_UUID

    def is_time_characteristic(self, characteristic_id: str) -> bool:
        return same_uuid(characteristic_id, self.time_characteristic)

    def is_measurement_characteristic(self, characteristic_id: str) -> bool:
        return same_uuid(characteristic_id, self.measurement_characteristic)


class BaseBPMDevice(ABC):
    """Abstract base class for monitor drivers.

    A driver owns the vendor-specific part of the session protocol: how the
    device clock is synchronized and whether measurement notifications have
    to be enabled right after connecting.
    """

    profile: DeviceProfile

    # False when the time-sync exchange itself arms measurement delivery
    subscribes_measurement_on_connect: bool = True

    def __init__(self, transport: BLETransport):
        """Initialize device driver.

        Args:
            transport: BLE capability used for GATT operations
        """
        self.transport = transport

    @abstractmethod
    async def sync_time(self, peripheral_id: str, now: datetime) -> None:
        """Run the time-sync step of the connect-and-operate protocol.

        Args:
            peripheral_id: Connected peripheral
            now: Current local time
        """
        raise NotImplementedError

    async def handle_time_value(self, peripheral_id: str, value: bytes, now: datetime) -> None:
        """Handle a notified time value. Devices that never notify ignore it."""
        logger.debug(f"{self.profile.name} ignores time value {value.hex()}")

    async def subscribe_measurements(self, peripheral_id: str) -> None:
        """Enable Blood Pressure Measurement notifications."""
        await self.transport.subscribe(
            peripheral_id,
            self.profile.measurement_service,
            self.profile.measurement_characteristic,
        )
        logger.info(f"Waiting for measurements from {peripheral_id}")
