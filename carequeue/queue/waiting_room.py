import asyncio
import contextlib
from enum import Enum
from typing import Callable

from loguru import logger

from carequeue.domain.exceptions import BookingNotFoundError, StoreError
from carequeue.domain.models import BookingStatus, BookingUpdate, BookingWithPatient
from carequeue.store.ports import AbstractBookingStore

WAITING_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.CONFIRMED, BookingStatus.INTAKE, BookingStatus.READY_FOR_PROVIDER}
)


class WaitingRoomState(Enum):
    WAITING = "waiting"
    CALL_STARTED = "call_started"
    EXITED = "exited"


class WaitingRoomMonitor:
    """Polls one booking while its patient waits for the provider.

    ``on_call_started`` fires once when the booking reaches ``provider``.
    ``on_exit`` fires once when the booking disappears or leaves the waiting
    statuses for anything else. Either ends polling.
    """

    def __init__(
        self,
        store: AbstractBookingStore,
        booking_id: str,
        *,
        on_call_started: Callable[[BookingWithPatient], None] | None = None,
        on_exit: Callable[[BookingWithPatient | None], None] | None = None,
        interval: float = 5.0,
    ) -> None:
        self._store = store
        self._booking_id = booking_id
        self._on_call_started = on_call_started
        self._on_exit = on_exit
        self._interval = interval
        self._state = WaitingRoomState.WAITING
        self._booking: BookingWithPatient | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def state(self) -> WaitingRoomState:
        return self._state

    @property
    def booking(self) -> BookingWithPatient | None:
        return self._booking

    async def check(self) -> WaitingRoomState:
        """Fetch the booking once and fire a callback if it left the waiting room.

        Store failures other than not-found are logged and leave the state unchanged.
        """
        if self._state != WaitingRoomState.WAITING:
            return self._state

        try:
            booking = await self._store.get_booking(self._booking_id)
        except BookingNotFoundError:
            logger.info("Waiting room booking {} no longer exists", self._booking_id)
            self._finish(WaitingRoomState.EXITED, None)
            return self._state
        except StoreError as exc:
            logger.warning("Waiting room poll failed for booking {}: {}", self._booking_id, exc)
            return self._state

        self._booking = booking
        if booking.status == BookingStatus.PROVIDER:
            self._finish(WaitingRoomState.CALL_STARTED, booking)
        elif booking.status not in WAITING_STATUSES:
            logger.info(
                "Booking {} left the waiting room with status {}",
                self._booking_id,
                booking.status.value,
            )
            self._finish(WaitingRoomState.EXITED, booking)
        return self._state

    def _finish(self, state: WaitingRoomState, booking: BookingWithPatient | None) -> None:
        self._state = state
        if state == WaitingRoomState.CALL_STARTED and self._on_call_started and booking:
            logger.info("Provider joined booking {}", self._booking_id)
            self._on_call_started(booking)
        elif state == WaitingRoomState.EXITED and self._on_exit:
            self._on_exit(booking)

    async def start(self) -> WaitingRoomState:
        """Check immediately, then keep polling in the background while still waiting."""
        if self._task is not None:
            raise RuntimeError("WaitingRoomMonitor is already running")
        state = await self.check()
        if state == WaitingRoomState.WAITING:
            self._task = asyncio.create_task(
                self._poll(), name=f"waiting-room-{self._booking_id}"
            )
        return state

    async def _poll(self) -> None:
        while self._state == WaitingRoomState.WAITING:
            await asyncio.sleep(self._interval)
            await self.check()

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def leave(self) -> BookingWithPatient:
        """Patient leaves the waiting room: the booking goes back to ``confirmed``."""
        await self.stop()
        booking = await self._store.update_booking(
            self._booking_id, BookingUpdate(status=BookingStatus.CONFIRMED)
        )
        self._finish(WaitingRoomState.EXITED, booking)
        return booking
