import datetime as dt

from loguru import logger

from carequeue.config import QueueConfig
from carequeue.domain.exceptions import BookingNotFoundError
from carequeue.domain.models import (
    BookingGroup,
    BookingStatus,
    BookingUpdate,
    BookingWithPatient,
    QueueByStatus,
    QueueFilters,
    QueueStats,
    QueueTab,
)
from carequeue.queue import filters
from carequeue.queue.cache import BookingCache
from carequeue.queue.notifications import NotificationCenter
from carequeue.queue.results import Confirmed, RolledBack
from carequeue.queue.transitions import FAILURE_MESSAGES, QueueAction, resolve_transition

TransitionResult = Confirmed[BookingWithPatient] | RolledBack[BookingWithPatient]

AUTO_ADVANCE_FAILURE = "Failed to auto-advance queue"


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class QueueService:
    """Telehealth queue workflow on top of a ``BookingCache``.

    Workflow actions validate against the transition table, update the cache
    optimistically and persist through the store. A store failure rolls the
    cache back, records a user-facing error and returns ``RolledBack``;
    nothing is retried.
    """

    def __init__(
        self,
        cache: BookingCache,
        *,
        config: QueueConfig | None = None,
        notifications: NotificationCenter | None = None,
    ) -> None:
        self._cache = cache
        self._config = config or QueueConfig()
        self._notifications = notifications or NotificationCenter(
            ttl=self._config.notification_ttl_seconds
        )
        self._error: str | None = None

    @property
    def cache(self) -> BookingCache:
        return self._cache

    @property
    def notifications(self) -> NotificationCenter:
        return self._notifications

    @property
    def error(self) -> str | None:
        """The last user-facing failure message, until ``clear_error``."""
        return self._error

    def clear_error(self) -> None:
        self._error = None

    def _require(self, booking_id: str) -> BookingWithPatient:
        booking = self._cache.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    # -- workflow -----------------------------------------------------------

    async def transition(
        self, booking_id: str, action: QueueAction, *, failure_message: str | None = None
    ) -> TransitionResult:
        """Apply a workflow action.

        ``failure_message`` replaces the action's default message if the write is rolled back.

        Raises:
            BookingNotFoundError: If the booking is not in the cache.
            InvalidTransitionError: If the action is not allowed from the current status.
        """
        booking = self._require(booking_id)
        target = resolve_transition(booking_id, booking.status, action)

        logger.info(
            "Booking {}: {} ({} -> {})",
            booking_id,
            action.value,
            booking.status.value,
            target.value,
        )
        result = await self._write_status(booking_id, target)
        if isinstance(result, RolledBack):
            self._fail(failure_message or FAILURE_MESSAGES[action], booking_id, result.error)
        return result

    async def force_set_status(self, booking_id: str, status: BookingStatus) -> TransitionResult:
        """Admin override: set any status, bypassing the transition table.

        Raises:
            BookingNotFoundError: If the booking is not in the cache.
        """
        booking = self._require(booking_id)
        logger.warning(
            "Booking {}: status override {} -> {}",
            booking_id,
            booking.status.value,
            status.value,
        )
        result = await self._write_status(booking_id, status)
        if isinstance(result, RolledBack):
            self._fail("Failed to update booking status", booking_id, result.error)
        return result

    async def _write_status(self, booking_id: str, status: BookingStatus) -> TransitionResult:
        update = BookingUpdate(status=status, updated_at=_now())
        return await self._cache.apply_booking_update(booking_id, update)

    def _fail(self, message: str, booking_id: str, detail: str) -> None:
        logger.error("{} (booking {}): {}", message, booking_id, detail)
        self._error = message
        booking = self._cache.get_booking(booking_id)
        self._notifications.error(
            message,
            detail,
            booking_id=booking_id,
            patient_name=booking.patient.full_name if booking and booking.patient else None,
        )

    async def move_to_intake(self, booking_id: str) -> TransitionResult:
        return await self.transition(booking_id, QueueAction.MOVE_TO_INTAKE)

    async def move_to_ready_for_provider(self, booking_id: str) -> TransitionResult:
        return await self.transition(booking_id, QueueAction.MOVE_TO_READY_FOR_PROVIDER)

    async def start_call(self, booking_id: str) -> TransitionResult:
        return await self.transition(booking_id, QueueAction.START_CALL)

    async def complete_call(self, booking_id: str) -> TransitionResult:
        return await self.transition(booking_id, QueueAction.COMPLETE_CALL)

    async def discharge_patient(self, booking_id: str) -> TransitionResult:
        return await self.transition(booking_id, QueueAction.DISCHARGE_PATIENT)

    async def cancel_appointment(self, booking_id: str) -> TransitionResult:
        return await self.transition(booking_id, QueueAction.CANCEL_APPOINTMENT)

    async def remove_from_queue(self, booking_id: str) -> TransitionResult:
        return await self.transition(booking_id, QueueAction.REMOVE_FROM_QUEUE)

    async def auto_advance_queue(self) -> bool:
        """Move the earliest confirmed online booking to intake if intake is empty.

        Returns True only if a booking was moved and the store accepted it.
        """
        queue = self.queue_by_status()
        if queue.intake or not queue.confirmed:
            return False

        next_confirmed = min(queue.confirmed, key=lambda b: b.scheduled_at)
        logger.info("Auto-advancing booking {} to intake", next_confirmed.id)
        result = await self.transition(
            next_confirmed.id,
            QueueAction.MOVE_TO_INTAKE,
            failure_message=AUTO_ADVANCE_FAILURE,
        )
        return result.ok

    # -- queue views ---------------------------------------------------------

    def queue_by_status(self) -> QueueByStatus:
        return filters.queue_by_status(self._cache.bookings)

    def queue_stats(self) -> QueueStats:
        return filters.queue_stats(self._cache.bookings)

    def get_next_patient(self) -> BookingWithPatient | None:
        """Earliest-scheduled online booking that is ready for the provider.

        Exact ties keep cache (store) order.
        """
        ready = self.queue_by_status().ready_for_provider
        if not ready:
            return None
        return min(ready, key=lambda b: b.scheduled_at)

    def estimated_wait_time(self, booking_id: str) -> int:
        """Minutes until ``booking_id`` is likely to be seen.

        A fixed per-stage cost over the whole active queue. Zero if the booking
        is already with the provider or not found.
        """
        target = self._cache.get_booking(booking_id)
        if target is None or target.status == BookingStatus.PROVIDER:
            return 0

        queue = self.queue_by_status()
        return (
            len(queue.provider) * self._config.provider_minutes
            + len(queue.ready_for_provider) * self._config.ready_minutes
            + len(queue.intake) * self._config.intake_minutes
        )

    def tab_bookings(self, tab: QueueTab | str) -> list[BookingWithPatient]:
        return filters.get_tab_bookings(self._cache.bookings, tab)

    def filtered_bookings(self, tab: QueueTab | str, queue_filters: QueueFilters) -> list[BookingWithPatient]:
        return filters.get_filtered_bookings(self._cache.bookings, tab, queue_filters)

    def in_office_groups(self) -> list[BookingGroup]:
        return filters.group_in_office(self._cache.bookings)

    def providers(self) -> list[str]:
        return filters.list_providers(self._cache.bookings)
