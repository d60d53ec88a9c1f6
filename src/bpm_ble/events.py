"""Events emitted by a BLE transport into the session's event stream."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PeripheralDiscovered:
    """A peripheral advertising the blood pressure service was seen."""

    id: str
    name: str | None = None
    rssi: int | None = None


@dataclass(frozen=True)
class PeripheralDisconnected:
    """The link to a peripheral was closed, by us or by the platform."""

    id: str


@dataclass(frozen=True)
class CharacteristicValueUpdated:
    """A subscribed characteristic notified a new value."""

    peripheral_id: str
    characteristic_id: str
    value: bytes
    service_id: str | None = None


BLEEvent = PeripheralDiscovered | PeripheralDisconnected | CharacteristicValueUpdated
