"""Tests for src/models.py - Measurement dataclass."""

import dataclasses
from datetime import datetime

import pytest

from src.models import Measurement

# ============== FIXTURES ==============


@pytest.fixture
def sample_timestamp():
    """Standard timestamp for tests."""
    return datetime(2024, 12, 30, 10, 30, 0)


@pytest.fixture
def optimal_measurement(sample_timestamp):
    """Optimal BP measurement (< 120/80)."""
    return Measurement(
        timestamp=sample_timestamp,
        systolic=110,
        diastolic=70,
        mean_arterial_pressure=83,
        pulse_rate=65,
    )


# ============== TEST CLASSES ==============


class TestMeasurementCreation:
    """Tests for Measurement dataclass creation."""

    def test_create_without_pulse(self, sample_timestamp):
        """Test pulse rate is optional."""
        measurement = Measurement(
            timestamp=sample_timestamp,
            systolic=120,
            diastolic=80,
            mean_arterial_pressure=93,
        )
        assert measurement.pulse_rate is None

    def test_create_full_measurement(self, optimal_measurement, sample_timestamp):
        """Test creating measurement with all fields."""
        assert optimal_measurement.timestamp == sample_timestamp
        assert optimal_measurement.systolic == 110
        assert optimal_measurement.diastolic == 70
        assert optimal_measurement.mean_arterial_pressure == 83
        assert optimal_measurement.pulse_rate == 65

    def test_measurement_is_immutable(self, optimal_measurement):
        """Test fields cannot be reassigned."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            optimal_measurement.systolic = 200  # type: ignore[misc]

    def test_identical_values_compare_equal(self, sample_timestamp):
        """Test equality is value based."""
        first = Measurement(sample_timestamp, 120, 80, 93, 70)
        second = Measurement(sample_timestamp, 120, 80, 93, 70)
        assert first == second


class TestCategory:
    """Tests for WHO/ESC blood pressure classification."""

    @pytest.mark.parametrize(
        ("systolic", "diastolic", "expected"),
        [
            (110, 70, "optimal"),
            (125, 82, "normal"),
            (135, 87, "high_normal"),
            (150, 95, "grade1_hypertension"),
            (170, 105, "grade2_hypertension"),
            (190, 120, "grade3_hypertension"),
            # Diastolic alone can raise the category
            (115, 95, "grade1_hypertension"),
        ],
    )
    def test_category(self, sample_timestamp, systolic, diastolic, expected):
        """Test category boundaries."""
        measurement = Measurement(sample_timestamp, systolic, diastolic, 90)
        assert measurement.category == expected


class TestSerialization:
    """Tests for to_dict and __str__."""

    def test_to_dict(self, optimal_measurement):
        """Test dictionary conversion."""
        data = optimal_measurement.to_dict()

        assert data == {
            "timestamp": "2024-12-30T10:30:00",
            "systolic": 110,
            "diastolic": 70,
            "mean_arterial_pressure": 83,
            "pulse_rate": 65,
            "category": "optimal",
        }

    def test_to_dict_without_pulse(self, sample_timestamp):
        """Test missing pulse serializes as None."""
        measurement = Measurement(sample_timestamp, 120, 80, 93)
        assert measurement.to_dict()["pulse_rate"] is None

    def test_str(self, optimal_measurement):
        """Test human-readable representation."""
        text = str(optimal_measurement)
        assert "110/70 mmHg" in text
        assert "MAP: 83 mmHg" in text
        assert "Pulse: 65 bpm" in text
        assert "optimal" in text

    def test_str_without_pulse(self, sample_timestamp):
        """Test representation when pulse is missing."""
        measurement = Measurement(sample_timestamp, 120, 80, 93)
        assert "Pulse: n/a" in str(measurement)
