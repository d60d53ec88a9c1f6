"""BPM BLE Client - Main interface for pairing and receiving measurements."""

import asyncio
import logging

from src.bpm_ble.devices.base import DeviceKind
from src.bpm_ble.dispatcher import EventDispatcher
from src.bpm_ble.errors import DeviceNotFoundError
from src.bpm_ble.session import (
    DEFAULT_RESCAN_INTERVAL,
    DEFAULT_SCAN_DURATION,
    DEFAULT_SCAN_TIMEOUT,
    BPMSession,
    NoticeCallback,
    PeripheralHandle,
    SessionState,
)
from src.bpm_ble.transport import BleakTransport, BLETransport
from src.measurement_store import MeasurementListener, MeasurementStore
from src.models import Measurement

logger = logging.getLogger(__name__)


class BPMClient:
    """High-level client for blood pressure monitors.

    This class wires a transport, a session and its dispatcher together and
    provides:
    - Pairing (with clock sync)
    - Waiting for measurements after the user measured
    """

    def __init__(
        self,
        device_kind: DeviceKind | str,
        transport: BLETransport | None = None,
        store: MeasurementStore | None = None,
        *,
        scan_timeout: float = DEFAULT_SCAN_TIMEOUT,
        rescan_interval: float = DEFAULT_RESCAN_INTERVAL,
        scan_duration: float = DEFAULT_SCAN_DURATION,
        on_notice: NoticeCallback | None = None,
    ):
        """Initialize client.

        Args:
            device_kind: Monitor model (e.g., "HEM-9200T")
            transport: BLE capability (bleak when omitted)
            store: Measurement store
            scan_timeout: Seconds to wait for a device while pairing
            rescan_interval: Seconds between scans while waiting for a measurement
            scan_duration: Seconds each scan runs
            on_notice: Called with user-facing notices
        """
        self.transport = transport if transport is not None else BleakTransport()
        self.session = BPMSession(
            self.transport,
            device_kind,
            store,
            scan_timeout=scan_timeout,
            rescan_interval=rescan_interval,
            scan_duration=scan_duration,
            on_notice=on_notice,
        )
        self.dispatcher = EventDispatcher(self.session, self.transport.events)

    @property
    def store(self) -> MeasurementStore:
        return self.session.store

    async def pair(self) -> PeripheralHandle:
        """Pair with the monitor and sync its clock.

        Returns:
            The paired peripheral

        Raises:
            DeviceNotFoundError: No device discovered before the scan timeout
            BLEOperationError: A protocol step failed
        """
        self.dispatcher.start()
        await self.session.start_pairing()
        state = await self.session.wait_settled()

        if state is SessionState.PAIRED and self.session.peripheral:
            return self.session.peripheral

        error = self.session.last_error
        if error is not None:
            raise error
        raise DeviceNotFoundError(f"{self.session.profile.name} not found")

    async def wait_for_measurements(
        self,
        count: int | None = None,
        on_measurement: MeasurementListener | None = None,
        poll_interval: float = 0.5,
    ) -> list[Measurement]:
        """Wait for the monitor to deliver measurements.

        Args:
            count: Stop after this many measurements (run until cancelled if None)
            on_measurement: Called with each measurement as it arrives
            poll_interval: Seconds between session error checks

        Returns:
            Measurements received during this call, in arrival order

        Raises:
            BLEOperationError: A protocol step failed
        """
        received = asyncio.Event()
        measurements: list[Measurement] = []

        def listener(measurement: Measurement) -> None:
            measurements.append(measurement)
            if on_measurement:
                on_measurement(measurement)
            if count is not None and len(measurements) >= count:
                received.set()

        self.store.add_listener(listener)
        self.dispatcher.start()
        try:
            if self.session.state is not SessionState.AWAITING_MEASUREMENT:
                await self.session.start_notification_wait()
            while not received.is_set():
                if self.session.state is SessionState.ERROR and self.session.last_error:
                    raise self.session.last_error
                try:
                    await asyncio.wait_for(received.wait(), poll_interval)
                except asyncio.TimeoutError:
                    continue
        finally:
            self.store.remove_listener(listener)

        return measurements

    async def close(self) -> None:
        """Stop the session and release the transport."""
        peripheral = self.session.peripheral
        self.session.reset(clear_measurements=False)
        await self.dispatcher.stop()
        await self.transport.stop_scan()
        if peripheral is not None:
            await self.transport.disconnect(peripheral.id)


async def pair_device(
    device_kind: DeviceKind | str,
    transport: BLETransport | None = None,
    scan_timeout: float = DEFAULT_SCAN_TIMEOUT,
) -> PeripheralHandle:
    """Convenience function to pair with a monitor.

    Args:
        device_kind: Monitor model
        transport: BLE capability (bleak when omitted)
        scan_timeout: Seconds to wait for a device

    Returns:
        The paired peripheral
    """
    client = BPMClient(device_kind, transport, scan_timeout=scan_timeout)

    try:
        return await client.pair()
    finally:
        await client.close()
