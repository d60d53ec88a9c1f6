"""Byte codec for blood pressure monitor time and measurement payloads.

Time values use the Bluetooth Date Time layout shared by both vendors:

    [year_lo, year_hi, month, day, hour, minute, second]

Omron's Current Time characteristic appends the ISO day of week
(Monday = 1) and two more bytes, the last one with its high bit set
(adjust reason "manual time update").
"""

import logging
from datetime import datetime
from enum import Enum

from src.bpm_ble.errors import MalformedPayloadError
from src.models import Measurement

logger = logging.getLogger(__name__)

TIME_BLOCK_SIZE = 7
MEASUREMENT_TIME_OFFSET = 7
MEASUREMENT_PULSE_OFFSET = 14
MEASUREMENT_MIN_SIZE = MEASUREMENT_TIME_OFFSET + TIME_BLOCK_SIZE

OMRON_FRACTIONS = 0x00
OMRON_ADJUST_REASON = 0x80


class TimeEncoding(str, Enum):
    """Vendor-specific time payload layout."""

    A_AND_D = "AAndD"
    OMRON = "Omron"


def bytes_to_hex(array: bytes | bytearray) -> str:
    """Convert byte array to hex string."""
    return bytes(array).hex()


def encode_time(encoding: TimeEncoding, instant: datetime) -> bytes:
    """Encode a local time for writing to a device's time characteristic.

    Args:
        encoding: Vendor time layout
        instant: Time to encode (sub-second part is dropped)

    Returns:
        7 bytes for A&D, 10 bytes for Omron
    """
    data = bytearray(instant.year.to_bytes(2, "little"))
    data += bytes(
        [
            instant.month,
            instant.day,
            instant.hour,
            instant.minute,
            instant.second,
        ]
    )

    if encoding is TimeEncoding.OMRON:
        data += bytes([instant.isoweekday(), OMRON_FRACTIONS, OMRON_ADJUST_REASON])

    return bytes(data)


def decode_time(data: bytes | bytearray) -> datetime:
    """Decode the first seven bytes of a time payload.

    Trailing bytes (Omron day of week and adjust reason) are ignored.

    Raises:
        MalformedPayloadError: Payload is shorter than 7 bytes or is not a
            valid calendar date
    """
    if len(data) < TIME_BLOCK_SIZE:
        raise MalformedPayloadError(
            f"Time payload needs {TIME_BLOCK_SIZE} bytes, got {len(data)}: {bytes_to_hex(data)}"
        )

    year = int.from_bytes(data[0:2], "little")
    month, day, hour, minute, second = data[2:TIME_BLOCK_SIZE]

    try:
        return datetime(year, month, day, hour, minute, second)
    except ValueError as e:
        raise MalformedPayloadError(f"Invalid time payload {bytes_to_hex(data)}: {e}") from e


def decode_measurement(data: bytes | bytearray) -> Measurement:
    """Decode a Blood Pressure Measurement notification.

    Layout (one byte per value, the flags and high bytes are skipped):
    - Byte 1: systolic
    - Byte 3: diastolic
    - Byte 5: mean arterial pressure
    - Bytes 7-13: timestamp
    - Byte 14: pulse rate (optional)

    Raises:
        MalformedPayloadError: Payload is shorter than 14 bytes
    """
    if len(data) < MEASUREMENT_MIN_SIZE:
        raise MalformedPayloadError(
            f"Measurement payload needs at least {MEASUREMENT_MIN_SIZE} bytes, "
            f"got {len(data)}: {bytes_to_hex(data)}"
        )

    timestamp = decode_time(data[MEASUREMENT_TIME_OFFSET : MEASUREMENT_TIME_OFFSET + TIME_BLOCK_SIZE])
    pulse_rate = data[MEASUREMENT_PULSE_OFFSET] if len(data) > MEASUREMENT_PULSE_OFFSET else None

    measurement = Measurement(
        timestamp=timestamp,
        systolic=data[1],
        diastolic=data[3],
        mean_arterial_pressure=data[5],
        pulse_rate=pulse_rate,
    )
    logger.debug(f"Decoded {bytes_to_hex(data)} -> {measurement}")
    return measurement
