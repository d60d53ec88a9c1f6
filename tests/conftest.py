"""Shared pytest fixtures for bpm-ble-sync tests."""

import asyncio
from datetime import datetime

import pytest

from src.bpm_ble.events import (
    CharacteristicValueUpdated,
    PeripheralDiscovered,
    PeripheralDisconnected,
)
from src.measurement_store import MeasurementStore
from src.models import Measurement

# 2017-06-15 14:30:00, 120/80 mmHg, MAP 95, pulse 72
MEASUREMENT_PAYLOAD = bytes(
    [0x1E, 120, 0, 80, 0, 95, 0, 0xE1, 0x07, 6, 15, 14, 30, 0, 72]
)


class FakeTransport:
    """In-memory BLETransport recording every call.

    ``fail_on`` maps an operation name to an exception raised the next time
    (or every time, when listed in ``sticky_failures``) that operation is called.
    ``delays`` maps an operation name to seconds it takes to complete.
    """

    def __init__(self):
        self.events: asyncio.Queue = asyncio.Queue()
        self.calls: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}
        self.sticky_failures: set[str] = set()
        self.delays: dict[str, float] = {}
        self.connected: set[str] = set()

    async def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        delay = self.delays.get(name)
        if delay:
            await asyncio.sleep(delay)
        error = self.fail_on.get(name)
        if error is not None:
            if name not in self.sticky_failures:
                del self.fail_on[name]
            raise error

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    @property
    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def scan(self, service_uuids, duration, allow_duplicates=True):
        await self._record("scan", tuple(service_uuids), duration, allow_duplicates)

    async def stop_scan(self):
        await self._record("stop_scan")

    async def connect(self, peripheral_id):
        await self._record("connect", peripheral_id)
        self.connected.add(peripheral_id)

    async def resolve_services(self, peripheral_id):
        await self._record("resolve_services", peripheral_id)

    async def write(self, peripheral_id, service_id, characteristic_id, data):
        await self._record("write", peripheral_id, service_id, characteristic_id, bytes(data))

    async def read(self, peripheral_id, service_id, characteristic_id):
        await self._record("read", peripheral_id, service_id, characteristic_id)
        return b""

    async def subscribe(self, peripheral_id, service_id, characteristic_id):
        await self._record("subscribe", peripheral_id, service_id, characteristic_id)

    async def disconnect(self, peripheral_id):
        await self._record("disconnect", peripheral_id)
        self.connected.discard(peripheral_id)

    def is_connected(self, peripheral_id) -> bool:
        return peripheral_id in self.connected

    def discover(self, peripheral_id: str, name: str | None = None) -> None:
        self.events.put_nowait(PeripheralDiscovered(id=peripheral_id, name=name))

    def drop(self, peripheral_id: str) -> None:
        """Simulate the platform closing the link."""
        self.connected.discard(peripheral_id)
        self.events.put_nowait(PeripheralDisconnected(id=peripheral_id))

    def notify(self, peripheral_id: str, characteristic_id: str, value: bytes) -> None:
        self.events.put_nowait(
            CharacteristicValueUpdated(
                peripheral_id=peripheral_id,
                characteristic_id=characteristic_id,
                value=value,
            )
        )


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Create a recording fake transport."""
    return FakeTransport()


@pytest.fixture
def store() -> MeasurementStore:
    """Create an empty measurement store."""
    return MeasurementStore()


@pytest.fixture
def fixed_now() -> datetime:
    """Local time used by sessions under test (a Thursday)."""
    return datetime(2017, 6, 15, 14, 30, 0)


@pytest.fixture
def sample_measurement() -> Measurement:
    """Create a sample blood pressure measurement for testing."""
    return Measurement(
        timestamp=datetime(2017, 6, 15, 14, 30, 0),
        systolic=120,
        diastolic=80,
        mean_arterial_pressure=95,
        pulse_rate=72,
    )


@pytest.fixture
def high_bp_measurement() -> Measurement:
    """Create a high blood pressure measurement."""
    return Measurement(
        timestamp=datetime(2025, 1, 15, 12, 0, 0),
        systolic=160,
        diastolic=100,
        mean_arterial_pressure=120,
        pulse_rate=85,
    )


@pytest.fixture
def multiple_measurements() -> list[Measurement]:
    """Create multiple measurements for testing."""
    return [
        Measurement(
            timestamp=datetime(2025, 1, 15, 8, 0, 0),
            systolic=118,
            diastolic=78,
            mean_arterial_pressure=91,
            pulse_rate=70,
        ),
        Measurement(
            timestamp=datetime(2025, 1, 15, 12, 0, 0),
            systolic=122,
            diastolic=82,
            mean_arterial_pressure=95,
            pulse_rate=74,
        ),
        Measurement(
            timestamp=datetime(2025, 1, 15, 20, 0, 0),
            systolic=125,
            diastolic=80,
            mean_arterial_pressure=95,
        ),
    ]


@pytest.fixture
def measurement_payload() -> bytes:
    """Blood Pressure Measurement notification with pulse rate."""
    return MEASUREMENT_PAYLOAD
