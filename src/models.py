"""Data models for BPM BLE Sync."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Measurement:
    """Blood pressure measurement notified by a monitor."""

    timestamp: datetime
    systolic: int  # mmHg - systolic pressure
    diastolic: int  # mmHg - diastolic pressure
    mean_arterial_pressure: int  # mmHg
    pulse_rate: int | None = None  # bpm, not sent by every device

    @property
    def category(self) -> str:
        """Blood pressure category according to WHO/ESC classification."""
        if self.systolic < 120 and self.diastolic < 80:
            return "optimal"
        elif self.systolic < 130 and self.diastolic < 85:
            return "normal"
        elif self.systolic < 140 and self.diastolic < 90:
            return "high_normal"
        elif self.systolic < 160 and self.diastolic < 100:
            return "grade1_hypertension"
        elif self.systolic < 180 and self.diastolic < 110:
            return "grade2_hypertension"
        else:
            return "grade3_hypertension"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "systolic": self.systolic,
            "diastolic": self.diastolic,
            "mean_arterial_pressure": self.mean_arterial_pressure,
            "pulse_rate": self.pulse_rate,
            "category": self.category,
        }

    def __str__(self) -> str:
        """Human-readable representation."""
        pulse = f"{self.pulse_rate} bpm" if self.pulse_rate is not None else "n/a"
        return (
            f"BP: {self.systolic}/{self.diastolic} mmHg, "
            f"MAP: {self.mean_arterial_pressure} mmHg, "
            f"Pulse: {pulse}, "
            f"Category: {self.category}"
        )
