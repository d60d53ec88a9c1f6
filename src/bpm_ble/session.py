"""Session state machine for pairing with and receiving from a monitor.

One session drives one user action at a time:

    scan -> discover -> connect -> resolve services -> time sync
         -> (pairing) disconnect
         -> (notifying) reconnect -> resolve services -> subscribe -> measurements

The first discovered peripheral is bound to the session and every later
discovery is ignored until ``reset()`` or a new action.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from src.bpm_ble.devices.base import BLOOD_PRESSURE_SERVICE_UUID, DeviceKind
from src.bpm_ble.devices.registry import create_device
from src.bpm_ble.errors import (
    BLEOperationError,
    DeviceNotFoundError,
    SessionBusyError,
)
from src.bpm_ble.events import PeripheralDiscovered, PeripheralDisconnected
from src.bpm_ble.transport import BLETransport
from src.measurement_store import MeasurementStore

logger = logging.getLogger(__name__)

DEFAULT_SCAN_TIMEOUT = 5.0  # seconds before "device not found" while pairing
DEFAULT_RESCAN_INTERVAL = 5.0  # seconds between scans while waiting for a measurement
DEFAULT_SCAN_DURATION = 5.0  # seconds each scan runs


class SessionAction(str, Enum):
    """User-initiated flow in progress."""

    NONE = "none"
    PAIRING = "pairing"
    NOTIFYING = "notifying"


class SessionState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    CONNECTING = "connecting"
    SYNCING_TIME = "syncing_time"
    RECONNECTING_AFTER_PAIRING = "reconnecting_after_pairing"
    SUBSCRIBING_NOTIFICATION = "subscribing_notification"
    AWAITING_MEASUREMENT = "awaiting_measurement"
    PAIRED = "paired"
    ERROR = "error"


class SessionNotice(str, Enum):
    """User-facing notices."""

    DEVICE_NOT_FOUND = "device_not_found"
    PAIRED = "paired"


# States from which a new action may be started
IDLE_STATES = frozenset({SessionState.IDLE, SessionState.PAIRED, SessionState.ERROR})
# States at which an attempt stops making progress on its own
SETTLED_STATES = IDLE_STATES | {SessionState.AWAITING_MEASUREMENT}

NoticeCallback = Callable[[SessionNotice, str], None]


@dataclass(frozen=True)
class PeripheralHandle:
    """Peripheral bound to the session."""

    id: str
    name: str | None = None


class BPMSession:
    """Drives one BLE session end-to-end per user action.

    All transitions happen on the event loop, either from the user-facing
    methods (``start_pairing``, ``start_notification_wait``, ``reset``) or
    from the ``EventDispatcher`` consuming the transport's event stream.
    """

    def __init__(
        self,
        transport: BLETransport,
        device_kind: DeviceKind | str,
        store: MeasurementStore | None = None,
        *,
        scan_timeout: float = DEFAULT_SCAN_TIMEOUT,
        rescan_interval: float = DEFAULT_RESCAN_INTERVAL,
        scan_duration: float = DEFAULT_SCAN_DURATION,
        on_notice: NoticeCallback | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize session.

        Args:
            transport: BLE capability
            device_kind: Selected monitor model
            store: Measurement store (a new one is created if omitted)
            scan_timeout: Seconds to wait for a discovery while pairing
            rescan_interval: Seconds between scans while waiting for a measurement
            scan_duration: Seconds each scan runs
            on_notice: Called with user-facing notices
            clock: Source of the local time written to devices
        """
        self.transport = transport
        self.device = create_device(device_kind, transport)
        self.profile = self.device.profile
        self.store = store if store is not None else MeasurementStore()
        self.scan_timeout = scan_timeout
        self.rescan_interval = rescan_interval
        self.scan_duration = scan_duration
        self._on_notice = on_notice
        self._clock = clock

        self.action = SessionAction.NONE
        self.peripheral: PeripheralHandle | None = None
        self.waiting = False
        self.connected = False
        self.last_error: Exception | None = None

        self._not_found_task: asyncio.Task | None = None
        self._rescan_task: asyncio.Task | None = None
        self._operation_task: asyncio.Task | None = None
        self._settled = asyncio.Event()
        self.state = SessionState.IDLE
        self._set_state(SessionState.IDLE)

    # ------------------------------------------------------------------
    # State helpers

    def _set_state(self, state: SessionState) -> None:
        if state is not self.state:
            logger.debug(f"Session {self.state.value} -> {state.value}")
        self.state = state
        if state in SETTLED_STATES:
            self._settled.set()
        else:
            self._settled.clear()

    def _notify(self, notice: SessionNotice, message: str) -> None:
        logger.info(message)
        if self._on_notice:
            self._on_notice(notice, message)

    @staticmethod
    def _cancel(task: asyncio.Task | None) -> None:
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _cancel_timers(self) -> None:
        self._cancel(self._not_found_task)
        self._cancel(self._rescan_task)
        self._not_found_task = None
        self._rescan_task = None

    def _clear_binding(self) -> None:
        self._cancel_timers()
        self._cancel(self._operation_task)
        self._operation_task = None
        self.peripheral = None
        self.waiting = False
        self.connected = False

    def _begin(self, action: SessionAction) -> None:
        if self.state not in IDLE_STATES:
            raise SessionBusyError(
                f"Cannot start {action.value}: session is {self.state.value}. Call reset() first."
            )
        self._clear_binding()
        self.last_error = None
        self.action = action
        self._set_state(SessionState.SCANNING)
        logger.info(f"Starting {action.value} for {self.profile.name}")

    def _fail(self, error: Exception) -> None:
        peripheral_id = self.peripheral.id if self.peripheral else None
        logger.error(f"{self.action.value} attempt on {peripheral_id} failed: {error}")
        self.last_error = error
        self._cancel_timers()
        self.waiting = False
        self.connected = False
        self._set_state(SessionState.ERROR)

    async def _scan(self) -> None:
        await self.transport.scan(
            [BLOOD_PRESSURE_SERVICE_UUID], self.scan_duration, allow_duplicates=True
        )

    # ------------------------------------------------------------------
    # User actions

    async def start_pairing(self) -> None:
        """Scan for a monitor, sync its clock and disconnect.

        Raises:
            SessionBusyError: Another action is in progress
        """
        self._begin(SessionAction.PAIRING)
        self._not_found_task = asyncio.create_task(self._report_not_found_after(self.scan_timeout))
        try:
            await self._scan()
        except BLEOperationError as e:
            self._fail(e)

    async def start_notification_wait(self) -> None:
        """Scan repeatedly until the monitor advertises after a measurement.

        Monitors stop advertising while measuring, so the scan is reissued
        every ``rescan_interval`` seconds until a peripheral is bound.

        Raises:
            SessionBusyError: Another action is in progress
        """
        self._begin(SessionAction.NOTIFYING)
        self.waiting = True
        self._rescan_task = asyncio.create_task(self._rescan_periodically(self.rescan_interval))
        try:
            await self._scan()
        except BLEOperationError as e:
            logger.warning(f"Initial scan failed, retrying in {self.rescan_interval}s: {e}")

    def reset(self, clear_measurements: bool = True) -> None:
        """Stop timers, unbind the peripheral and return to idle.

        An already connected peripheral is not disconnected. Events that
        arrive afterwards for the previous peripheral are ignored.

        Args:
            clear_measurements: Also empty the measurement store
        """
        self._clear_binding()
        self.action = SessionAction.NONE
        self.last_error = None
        if clear_measurements:
            self.store.clear()
        self._set_state(SessionState.IDLE)
        logger.info("Session reset")

    async def wait_settled(self, timeout: float | None = None) -> SessionState:
        """Wait until the current attempt stops making progress.

        Returns:
            The settled state (IDLE, PAIRED, ERROR or AWAITING_MEASUREMENT)
        """
        await asyncio.wait_for(self._settled.wait(), timeout)
        return self.state

    # ------------------------------------------------------------------
    # Timers

    async def _report_not_found_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self.peripheral is not None:
            return

        self.last_error = DeviceNotFoundError(
            f"No {self.profile.name} found within {delay}s. Press the Bluetooth button on the device."
        )
        await self.transport.stop_scan()
        self.action = SessionAction.NONE
        self._set_state(SessionState.IDLE)
        self._notify(SessionNotice.DEVICE_NOT_FOUND, f"{self.profile.name} not found")

    async def _rescan_periodically(self, interval: float) -> None:
        while self.peripheral is None:
            await asyncio.sleep(interval)
            if self.peripheral is not None:
                break
            logger.debug("No monitor bound yet, scanning again")
            try:
                await self._scan()
            except BLEOperationError as e:
                logger.warning(f"Rescan failed: {e}")

    # ------------------------------------------------------------------
    # Event handlers, called by the dispatcher

    async def on_peripheral_discovered(self, event: PeripheralDiscovered) -> None:
        """Bind the first discovered peripheral and run the protocol on it."""
        if self.peripheral is not None:
            logger.debug(f"Ignoring {event.id}: session bound to {self.peripheral.id}")
            return
        if self.state is not SessionState.SCANNING:
            logger.debug(f"Ignoring {event.id}: no scan in progress ({self.state.value})")
            return

        handle = PeripheralHandle(id=event.id, name=event.name)
        self.peripheral = handle
        self._cancel_timers()
        self.waiting = False
        logger.info(f"Discovered {handle.name or '(unknown)'} ({handle.id})")
        self._set_state(SessionState.CONNECTING)

        # Created before the first await so reset() always has a task to cancel
        task = asyncio.create_task(self._connect_and_operate(handle, self.action))
        self._operation_task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not task.cancelled():
            # Re-raise programming errors; protocol failures were handled already
            task.result()

    async def _connect_and_operate(self, handle: PeripheralHandle, action: SessionAction) -> None:
        peripheral_id = handle.id

        await self.transport.stop_scan()
        if self.peripheral is not handle:
            logger.debug(f"Binding to {peripheral_id} was cleared, not connecting")
            return

        try:
            await self.transport.connect(peripheral_id)
            self.connected = True
            await self.transport.resolve_services(peripheral_id)
            logger.info("Services resolved")

            self._set_state(SessionState.SYNCING_TIME)
            await self.device.sync_time(peripheral_id, self._clock())

            if action is SessionAction.PAIRING:
                self._notify(
                    SessionNotice.PAIRED,
                    f"Paired with {handle.name or self.profile.name} ({peripheral_id})",
                )
                await self.transport.disconnect(peripheral_id)
                self.connected = False
                self._set_state(SessionState.PAIRED)
                return

            # The first time sync on an unpaired device triggers bonding, which
            # drops the link on some platforms.
            self._set_state(SessionState.RECONNECTING_AFTER_PAIRING)
            await self.transport.connect(peripheral_id)
            self.connected = True
            await self.transport.resolve_services(peripheral_id)

            if self.device.subscribes_measurement_on_connect:
                self._set_state(SessionState.SUBSCRIBING_NOTIFICATION)
                await self.device.subscribe_measurements(peripheral_id)
                self._set_state(SessionState.AWAITING_MEASUREMENT)
            else:
                self._set_state(SessionState.SYNCING_TIME)
                logger.info("Waiting for device clock notification")

        except BLEOperationError as e:
            self._fail(e)

    def on_peripheral_disconnected(self, event: PeripheralDisconnected) -> None:
        """Refresh the link flag of the bound peripheral.

        Disconnect events are queued, so one caused by the bonding drop may be
        handled after the reconnect already succeeded. The transport is asked
        for the current link state instead of trusting the event.
        """
        if self.peripheral is None or event.id != self.peripheral.id:
            return

        self.connected = self.transport.is_connected(event.id)
        if not self.connected:
            logger.info(f"Link to {event.id} lost ({self.state.value})")

    async def on_time_value(self, value: bytes) -> None:
        """Handle a notified device clock value for the bound peripheral.

        Raises:
            MalformedPayloadError: Value is not a valid time payload
        """
        if self.peripheral is None:
            return

        try:
            await self.device.handle_time_value(self.peripheral.id, value, self._clock())
        except BLEOperationError as e:
            self._fail(e)
            return

        if self.action is SessionAction.NOTIFYING and self.state is SessionState.SYNCING_TIME:
            self._set_state(SessionState.AWAITING_MEASUREMENT)
