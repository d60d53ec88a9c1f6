"""A&D UA-651BLE device driver."""

import logging
from datetime import datetime

from src.bpm_ble.codec import TimeEncoding, bytes_to_hex, encode_time
from src.bpm_ble.devices.base import BaseBPMDevice, DeviceKind, DeviceProfile

logger = logging.getLogger(__name__)


class UA651BLE(BaseBPMDevice):
    """Driver for A&D UA-651BLE blood pressure monitor.

    The clock lives in the Date Time characteristic of the Blood Pressure
    service and is overwritten on every connection.
    """

    profile = DeviceProfile(
        id=DeviceKind.UA651BLE,
        name="A&D UA-651BLE",
        time_service="1810",
        time_characteristic="2a08",
        time_encoding=TimeEncoding.A_AND_D,
    )

    async def sync_time(self, peripheral_id: str, now: datetime) -> None:
        data = encode_time(self.profile.time_encoding, now)
        logger.debug(f"Date Time > {bytes_to_hex(data)}")
        await self.transport.write(
            peripheral_id,
            self.profile.time_service,
            self.profile.time_characteristic,
            data,
        )
        logger.info(f"Device time synced to {now:%Y-%m-%d %H:%M:%S}")
