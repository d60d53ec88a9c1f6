"""Omron HEM-9200T device driver."""

import logging
from datetime import datetime

from src.bpm_ble.codec import TimeEncoding, bytes_to_hex, decode_time, encode_time
from src.bpm_ble.devices.base import BaseBPMDevice, DeviceKind, DeviceProfile
from src.bpm_ble.errors import WriteFailedError

logger = logging.getLogger(__name__)

# Clock drift tolerated before the device time is rewritten
SAME_DAY_TOLERANCE_MINUTES = 10
OTHER_DAY_TOLERANCE_HOURS = 24


def needs_time_correction(device_time: datetime, now: datetime) -> bool:
    """Decide whether the device clock must be rewritten.

    Args:
        device_time: Time notified by the device
        now: Current local time

    Returns:
        True when the clocks are 10+ minutes apart on the same calendar date,
        or 24+ hours apart on different dates
    """
    same_date = device_time.date() == now.date()
    minutes_diff = int(abs((device_time - now).total_seconds()) // 60)
    hours_diff = minutes_diff // 60

    logger.debug(f"same_date={same_date} minutes_diff={minutes_diff} hours_diff={hours_diff}")

    if same_date:
        return minutes_diff >= SAME_DAY_TOLERANCE_MINUTES
    return hours_diff >= OTHER_DAY_TOLERANCE_HOURS


class HEM9200T(BaseBPMDevice):
    """Driver for Omron HEM-9200T blood pressure monitor.

    Time sync goes through the Current Time service: the driver subscribes to
    Current Time, the device answers with its clock, and only then is the
    clock corrected and measurement delivery enabled.
    """

    profile = DeviceProfile(
        id=DeviceKind.HEM9200T,
        name="Omron HEM-9200T",
        time_service="1805",
        time_characteristic="2a2b",
        time_encoding=TimeEncoding.OMRON,
    )
    subscribes_measurement_on_connect = False

    async def sync_time(self, peripheral_id: str, now: datetime) -> None:
        await self.transport.subscribe(
            peripheral_id,
            self.profile.time_service,
            self.profile.time_characteristic,
        )
        logger.info("Subscribed to Current Time, waiting for device clock")

    async def handle_time_value(self, peripheral_id: str, value: bytes, now: datetime) -> None:
        device_time = decode_time(value)
        logger.info(f"Device clock: {device_time:%Y-%m-%d %H:%M:%S}, local: {now:%Y-%m-%d %H:%M:%S}")

        if needs_time_correction(device_time, now):
            data = encode_time(self.profile.time_encoding, now)
            logger.debug(f"Current Time > {bytes_to_hex(data)}")
            try:
                await self.transport.write(
                    peripheral_id,
                    self.profile.time_service,
                    self.profile.time_characteristic,
                    data,
                )
                logger.info(f"Device time corrected to {now:%Y-%m-%d %H:%M:%S}")
            except WriteFailedError as e:
                logger.warning(f"Time correction failed, continuing: {e}")

        await self.subscribe_measurements(peripheral_id)
