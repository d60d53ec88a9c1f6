"""Routes BLE transport events into the session."""

import asyncio
import contextlib
import logging

from src.bpm_ble.codec import bytes_to_hex, decode_measurement
from src.bpm_ble.errors import MalformedPayloadError
from src.bpm_ble.events import (
    BLEEvent,
    CharacteristicValueUpdated,
    PeripheralDiscovered,
    PeripheralDisconnected,
)
from src.bpm_ble.session import BPMSession

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Single consumer of a transport's event stream.

    Events are handled one at a time, so a notification that arrives while
    the connect-and-operate protocol runs is handled after it finished.
    """

    def __init__(self, session: BPMSession, events: "asyncio.Queue[BLEEvent] | None" = None):
        """Initialize dispatcher.

        Args:
            session: Session receiving the events
            events: Event queue (defaults to the session transport's queue)
        """
        self.session = session
        self.events = events if events is not None else session.transport.events
        self._task: asyncio.Task | None = None

    def start(self) -> asyncio.Task:
        """Run the dispatch loop in a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self) -> None:
        """Cancel the background dispatch loop."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def run(self) -> None:
        """Dispatch events until cancelled."""
        while True:
            event = await self.events.get()
            try:
                await self.dispatch(event)
            finally:
                self.events.task_done()

    async def dispatch(self, event: BLEEvent) -> None:
        """Route one event."""
        if isinstance(event, PeripheralDiscovered):
            await self.session.on_peripheral_discovered(event)
        elif isinstance(event, PeripheralDisconnected):
            self.session.on_peripheral_disconnected(event)
        elif isinstance(event, CharacteristicValueUpdated):
            await self._on_characteristic_value(event)
        else:
            logger.debug(f"Ignoring unknown event {event!r}")

    async def _on_characteristic_value(self, event: CharacteristicValueUpdated) -> None:
        session = self.session
        profile = session.profile
        bound = session.peripheral

        if bound is None or event.peripheral_id != bound.id:
            logger.debug(f"Dropping stale value from {event.peripheral_id} ({event.characteristic_id})")
            return

        logger.debug(f"RX {event.characteristic_id} < {bytes_to_hex(event.value)}")

        try:
            if profile.is_time_characteristic(event.characteristic_id):
                if not session.connected:
                    logger.debug("Dropping time value: peripheral no longer connected")
                    return
                await session.on_time_value(event.value)

            elif profile.is_measurement_characteristic(event.characteristic_id):
                session.store.append(decode_measurement(event.value))

            else:
                logger.debug(f"Ignoring value of characteristic {event.characteristic_id}")

        except MalformedPayloadError as e:
            logger.warning(f"Skipping malformed payload from {event.characteristic_id}: {e}")
