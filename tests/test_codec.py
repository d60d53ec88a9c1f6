"""Tests for src/bpm_ble/codec.py - time and measurement byte codec."""

from datetime import datetime

import pytest

from src.bpm_ble.codec import (
    TimeEncoding,
    decode_measurement,
    decode_time,
    encode_time,
)
from src.bpm_ble.errors import MalformedPayloadError

# ============== TEST CLASSES ==============


class TestEncodeTime:
    """Tests for encode_time."""

    def test_a_and_d_layout(self):
        """Test A&D time is year (LE) followed by month..second."""
        data = encode_time(TimeEncoding.A_AND_D, datetime(2017, 6, 15, 14, 30, 5))
        assert data == bytes([0xE1, 0x07, 6, 15, 14, 30, 5])

    def test_omron_layout(self):
        """Test Omron time appends day of week, fractions and adjust reason."""
        # 2017-06-15 is a Thursday
        data = encode_time(TimeEncoding.OMRON, datetime(2017, 6, 15, 14, 30, 5))
        assert data == bytes([0xE1, 0x07, 6, 15, 14, 30, 5, 4, 0x00, 0x80])

    def test_omron_wednesday_is_three(self):
        """Test Wednesday maps to day of week 3."""
        data = encode_time(TimeEncoding.OMRON, datetime(2017, 6, 14, 9, 0, 0))
        assert data[7] == 3

    @pytest.mark.parametrize(
        ("day", "expected"),
        [(12, 1), (18, 7)],  # Monday, Sunday
    )
    def test_omron_week_boundaries(self, day, expected):
        """Test Monday is 1 and Sunday is 7."""
        data = encode_time(TimeEncoding.OMRON, datetime(2017, 6, day, 0, 0, 0))
        assert data[7] == expected

    def test_microseconds_dropped(self):
        """Test sub-second part is not encoded."""
        data = encode_time(TimeEncoding.A_AND_D, datetime(2020, 1, 2, 3, 4, 5, 999999))
        assert decode_time(data) == datetime(2020, 1, 2, 3, 4, 5)


class TestDecodeTime:
    """Tests for decode_time."""

    def test_decode(self):
        """Test decoding a 7-byte time value."""
        assert decode_time(bytes([0xE1, 0x07, 6, 15, 14, 30, 0])) == datetime(2017, 6, 15, 14, 30)

    def test_trailing_bytes_ignored(self):
        """Test Omron trailing bytes do not affect decoding."""
        data = bytes([0xE8, 0x07, 2, 29, 23, 59, 59, 4, 0x00, 0x80])
        assert decode_time(data) == datetime(2024, 2, 29, 23, 59, 59)

    @pytest.mark.parametrize("encoding", list(TimeEncoding))
    def test_round_trip(self, encoding):
        """Test decode(encode(t)) == t for both vendors."""
        instant = datetime(2031, 12, 31, 23, 59, 58)
        assert decode_time(encode_time(encoding, instant)) == instant

    def test_too_short(self):
        """Test under-length payload raises MalformedPayloadError."""
        with pytest.raises(MalformedPayloadError, match="needs 7 bytes"):
            decode_time(bytes([0xE1, 0x07, 6, 15, 14, 30]))

    def test_invalid_date(self):
        """Test month 0 raises MalformedPayloadError."""
        with pytest.raises(MalformedPayloadError):
            decode_time(bytes([0xE1, 0x07, 0, 15, 14, 30, 0]))

    def test_malformed_is_value_error(self):
        """Test MalformedPayloadError can be caught as ValueError."""
        with pytest.raises(ValueError):
            decode_time(b"")


class TestDecodeMeasurement:
    """Tests for decode_measurement."""

    def test_full_payload(self, measurement_payload):
        """Test 15-byte payload decodes every field."""
        measurement = decode_measurement(measurement_payload)

        assert measurement.systolic == 120
        assert measurement.diastolic == 80
        assert measurement.mean_arterial_pressure == 95
        assert measurement.timestamp == datetime(2017, 6, 15, 14, 30, 0)
        assert measurement.pulse_rate == 72

    def test_without_pulse(self, measurement_payload):
        """Test pulse rate is omitted when byte 14 is missing."""
        measurement = decode_measurement(measurement_payload[:14])

        assert measurement.pulse_rate is None
        assert measurement.systolic == 120

    def test_extra_bytes_ignored(self, measurement_payload):
        """Test bytes after the pulse rate are ignored."""
        measurement = decode_measurement(measurement_payload + bytes([0, 0, 0x01]))
        assert measurement.pulse_rate == 72

    def test_too_short(self, measurement_payload):
        """Test payload shorter than 14 bytes raises."""
        with pytest.raises(MalformedPayloadError, match="at least 14 bytes"):
            decode_measurement(measurement_payload[:13])

    def test_accepts_bytearray(self, measurement_payload):
        """Test bytearray input as delivered by bleak."""
        measurement = decode_measurement(bytearray(measurement_payload))
        assert measurement.diastolic == 80
