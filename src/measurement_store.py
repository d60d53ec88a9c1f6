"""In-memory store of received blood pressure measurements.

Measurements are kept in arrival order for the display layer. The store is
append-only between two clears, and identical measurements re-sent by a
device are kept as separate entries.
"""

import logging
from collections.abc import Callable, Iterator

from src.models import Measurement

logger = logging.getLogger(__name__)

MeasurementListener = Callable[[Measurement], None]


class MeasurementStore:
    """Ordered, append-only collection of measurements.

    Listeners registered with ``add_listener`` are called synchronously with
    every appended measurement (e.g. to print it or publish it to MQTT).
    """

    def __init__(self) -> None:
        self._measurements: list[Measurement] = []
        self._listeners: list[MeasurementListener] = []

    def append(self, measurement: Measurement) -> None:
        """Add a measurement and notify listeners.

        Args:
            measurement: Decoded measurement
        """
        self._measurements.append(measurement)
        logger.info(f"Measurement #{len(self._measurements)}: {measurement}")

        for listener in list(self._listeners):
            try:
                listener(measurement)
            except Exception as e:
                logger.warning(f"Measurement listener {listener!r} failed: {e}")

    def clear(self) -> None:
        """Remove all measurements."""
        count = len(self._measurements)
        self._measurements.clear()
        logger.debug(f"Cleared {count} measurements")

    def all(self) -> tuple[Measurement, ...]:
        """Read-only snapshot in arrival order."""
        return tuple(self._measurements)

    @property
    def latest(self) -> Measurement | None:
        """Most recently received measurement, if any."""
        return self._measurements[-1] if self._measurements else None

    def add_listener(self, listener: MeasurementListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: MeasurementListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def __len__(self) -> int:
        return len(self._measurements)

    def __iter__(self) -> Iterator[Measurement]:
        return iter(self.all())
