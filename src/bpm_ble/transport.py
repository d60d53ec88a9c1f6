"""BLE capability used by the session, and its bleak implementation.

The session only talks to the ``BLETransport`` protocol. Scan results and
characteristic notifications are pushed as events onto ``transport.events``
and consumed by a single ``EventDispatcher``.
"""

import asyncio
import logging
from functools import partial
from typing import Protocol

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError
from bleak.uuids import normalize_uuid_str

from src.bpm_ble.errors import (
    BLEOperationError,
    ConnectionFailedError,
    ReadFailedError,
    ServiceResolutionError,
    SubscribeFailedError,
    WriteFailedError,
)
from src.bpm_ble.events import (
    BLEEvent,
    CharacteristicValueUpdated,
    PeripheralDiscovered,
    PeripheralDisconnected,
)

logger = logging.getLogger(__name__)

# Errors bleak and the OS backends raise for failed GATT operations
BLE_ERRORS = (BleakError, TimeoutError, OSError)


class BLETransport(Protocol):
    """Asynchronous BLE operations the session depends on."""

    events: "asyncio.Queue[BLEEvent]"

    async def scan(
        self, service_uuids: list[str], duration: float, allow_duplicates: bool = True
    ) -> None: ...

    async def stop_scan(self) -> None: ...

    async def connect(self, peripheral_id: str) -> None: ...

    async def resolve_services(self, peripheral_id: str) -> None: ...

    async def write(
        self, peripheral_id: str, service_id: str, characteristic_id: str, data: bytes
    ) -> None: ...

    async def read(self, peripheral_id: str, service_id: str, characteristic_id: str) -> bytes: ...

    async def subscribe(self, peripheral_id: str, service_id: str, characteristic_id: str) -> None: ...

    async def disconnect(self, peripheral_id: str) -> None: ...

    def is_connected(self, peripheral_id: str) -> bool: ...


class BleakTransport:
    """``BLETransport`` backed by bleak.

    Peripheral ids are the platform addresses bleak reports (MAC address on
    Linux/Windows, UUID on macOS).
    """

    def __init__(self, events: "asyncio.Queue[BLEEvent] | None" = None):
        """Initialize transport.

        Args:
            events: Queue to publish events on (a new one is created if omitted)
        """
        self.events: asyncio.Queue[BLEEvent] = events if events is not None else asyncio.Queue()
        self._scanner: BleakScanner | None = None
        self._scan_stop_task: asyncio.Task | None = None
        self._allow_duplicates = True
        self._seen: set[str] = set()
        self._devices: dict[str, BLEDevice] = {}
        self._clients: dict[str, BleakClient] = {}

    @staticmethod
    async def discover_monitors(
        service_uuids: list[str], timeout: float = 10.0
    ) -> list[tuple[BLEDevice, AdvertisementData]]:
        """Scan once and return devices advertising any of ``service_uuids``.

        Args:
            service_uuids: Service UUIDs to filter on
            timeout: Scan timeout in seconds

        Returns:
            (device, advertisement) pairs sorted by signal strength
        """
        logger.info(f"Scanning for blood pressure monitors ({timeout}s)...")
        devices = await BleakScanner.discover(
            timeout=timeout,
            return_adv=True,
            service_uuids=[normalize_uuid_str(uuid) for uuid in service_uuids],
        )

        result = sorted(devices.values(), key=lambda x: x[1].rssi, reverse=True)
        for device, adv_data in result:
            logger.debug(f"Found: {device.address} - {device.name} (RSSI: {adv_data.rssi})")

        logger.info(f"Found {len(result)} devices")
        return result

    async def scan(
        self, service_uuids: list[str], duration: float, allow_duplicates: bool = True
    ) -> None:
        """Start a scan that stops by itself after ``duration`` seconds."""
        await self.stop_scan()

        self._allow_duplicates = allow_duplicates
        self._seen.clear()
        self._scanner = BleakScanner(
            detection_callback=self._on_detection,
            service_uuids=[normalize_uuid_str(uuid) for uuid in service_uuids],
        )

        try:
            await self._scanner.start()
        except BLE_ERRORS as e:
            self._scanner = None
            raise BLEOperationError(f"Scan failed: {e}") from e

        self._scan_stop_task = asyncio.create_task(self._stop_scan_after(duration))
        logger.debug(f"Scan started for {service_uuids} ({duration}s)")

    async def _stop_scan_after(self, duration: float) -> None:
        await asyncio.sleep(duration)
        await self.stop_scan()

    async def stop_scan(self) -> None:
        """Stop a running scan, if any."""
        if self._scan_stop_task and self._scan_stop_task is not asyncio.current_task():
            self._scan_stop_task.cancel()
        self._scan_stop_task = None

        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return

        try:
            await scanner.stop()
            logger.debug("Scan stopped")
        except BLE_ERRORS as e:
            logger.warning(f"Error stopping scan: {e}")

    def _on_detection(self, device: BLEDevice, adv_data: AdvertisementData) -> None:
        """Scanner callback, runs on the event loop."""
        if not self._allow_duplicates and device.address in self._seen:
            return
        self._seen.add(device.address)
        self._devices[device.address] = device

        self.events.put_nowait(
            PeripheralDiscovered(
                id=device.address,
                name=device.name or adv_data.local_name,
                rssi=adv_data.rssi,
            )
        )

    def _on_disconnected(self, peripheral_id: str, client: BleakClient) -> None:
        logger.info(f"Peripheral {client.address} disconnected")
        self.events.put_nowait(PeripheralDisconnected(id=peripheral_id))

    def is_connected(self, peripheral_id: str) -> bool:
        client = self._clients.get(peripheral_id)
        return client is not None and client.is_connected

    def _get_client(self, peripheral_id: str, error_cls: type[BLEOperationError]) -> BleakClient:
        client = self._clients.get(peripheral_id)
        if client is None or not client.is_connected:
            raise error_cls(f"Peripheral {peripheral_id} is not connected")
        return client

    def _get_characteristic(
        self,
        client: BleakClient,
        service_id: str,
        characteristic_id: str,
        error_cls: type[BLEOperationError],
    ) -> BleakGATTCharacteristic:
        """Look up a characteristic inside a specific service."""
        try:
            services = client.services
        except BleakError as e:
            raise error_cls(f"Services not resolved for {client.address}: {e}") from e

        service = services.get_service(normalize_uuid_str(service_id))
        characteristic = (
            service.get_characteristic(normalize_uuid_str(characteristic_id)) if service else None
        )
        if characteristic is None:
            raise error_cls(
                f"Characteristic {characteristic_id} not found in service {service_id} "
                f"on {client.address}"
            )
        return characteristic

    async def connect(self, peripheral_id: str) -> None:
        """Connect to a peripheral; a no-op when already connected."""
        client = self._clients.get(peripheral_id)
        if client is None:
            target = self._devices.get(peripheral_id, peripheral_id)
            client = BleakClient(
                target, disconnected_callback=partial(self._on_disconnected, peripheral_id)
            )
            self._clients[peripheral_id] = client

        if client.is_connected:
            logger.debug(f"Already connected to {peripheral_id}")
            return

        logger.info(f"Connecting to {peripheral_id}...")
        try:
            await client.connect()
        except BLE_ERRORS as e:
            raise ConnectionFailedError(f"Connection to {peripheral_id} failed: {e}") from e
        logger.debug("BLE connection established")

    async def resolve_services(self, peripheral_id: str) -> None:
        """Make sure the GATT service catalog of the peripheral is available."""
        client = self._get_client(peripheral_id, ServiceResolutionError)
        try:
            services = client.services
        except BleakError as e:
            raise ServiceResolutionError(f"Service discovery on {peripheral_id} failed: {e}") from e

        if not services.services:
            raise ServiceResolutionError(f"No GATT services found on {peripheral_id}")
        logger.debug(f"{len(services.services)} services resolved on {peripheral_id}")

    async def write(
        self, peripheral_id: str, service_id: str, characteristic_id: str, data: bytes
    ) -> None:
        """Write a characteristic value with response."""
        client = self._get_client(peripheral_id, WriteFailedError)
        characteristic = self._get_characteristic(
            client, service_id, characteristic_id, WriteFailedError
        )
        logger.debug(f"TX {characteristic_id} > {bytes(data).hex()}")
        try:
            await client.write_gatt_char(characteristic, data, response=True)
        except BLE_ERRORS as e:
            raise WriteFailedError(f"Write to {characteristic_id} failed: {e}") from e

    async def read(self, peripheral_id: str, service_id: str, characteristic_id: str) -> bytes:
        """Read a characteristic value."""
        client = self._get_client(peripheral_id, ReadFailedError)
        characteristic = self._get_characteristic(
            client, service_id, characteristic_id, ReadFailedError
        )
        try:
            value = await client.read_gatt_char(characteristic)
        except BLE_ERRORS as e:
            raise ReadFailedError(f"Read of {characteristic_id} failed: {e}") from e
        logger.debug(f"RX {characteristic_id} < {bytes(value).hex()}")
        return bytes(value)

    async def subscribe(self, peripheral_id: str, service_id: str, characteristic_id: str) -> None:
        """Enable notifications; values arrive as ``CharacteristicValueUpdated`` events."""
        client = self._get_client(peripheral_id, SubscribeFailedError)
        characteristic = self._get_characteristic(
            client, service_id, characteristic_id, SubscribeFailedError
        )
        try:
            await client.start_notify(characteristic, partial(self._on_notification, peripheral_id))
        except BLE_ERRORS as e:
            raise SubscribeFailedError(f"Subscribe to {characteristic_id} failed: {e}") from e
        logger.debug(f"Notifications enabled on {characteristic_id}")

    def _on_notification(
        self, peripheral_id: str, sender: BleakGATTCharacteristic, data: bytearray
    ) -> None:
        logger.debug(f"RX {sender.uuid} < {bytes(data).hex()}")
        self.events.put_nowait(
            CharacteristicValueUpdated(
                peripheral_id=peripheral_id,
                characteristic_id=sender.uuid,
                value=bytes(data),
                service_id=sender.service_uuid,
            )
        )

    async def disconnect(self, peripheral_id: str) -> None:
        """Disconnect from a peripheral; errors are logged, never raised."""
        client = self._clients.pop(peripheral_id, None)
        if client is None or not client.is_connected:
            return

        logger.info(f"Disconnecting from {peripheral_id}...")
        try:
            await client.disconnect()
        except AssertionError as e:
            # Known issue with bluezdbus adapter
            logger.warning(f"Disconnect assertion error (can be ignored): {e}")
        except BLE_ERRORS as e:
            logger.warning(f"Disconnect error: {e}")
