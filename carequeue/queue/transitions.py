"""Booking status workflow.

Each operator action advances a booking to exactly one target status and is
only valid from the statuses listed for it. ``discharged`` and ``cancelled``
are terminal; ``cancel_appointment`` on an already cancelled booking is a
status-preserving write.
"""

from enum import Enum

from carequeue.domain.exceptions import InvalidTransitionError
from carequeue.domain.models import BookingStatus

TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.DISCHARGED, BookingStatus.CANCELLED}
)


class QueueAction(Enum):
    MOVE_TO_INTAKE = "move_to_intake"
    MOVE_TO_READY_FOR_PROVIDER = "move_to_ready_for_provider"
    START_CALL = "start_call"
    COMPLETE_CALL = "complete_call"
    DISCHARGE_PATIENT = "discharge_patient"
    CANCEL_APPOINTMENT = "cancel_appointment"
    REMOVE_FROM_QUEUE = "remove_from_queue"


# action -> (allowed source statuses, target status)
TRANSITIONS: dict[QueueAction, tuple[frozenset[BookingStatus], BookingStatus]] = {
    QueueAction.MOVE_TO_INTAKE: (
        frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.INTAKE}),
        BookingStatus.INTAKE,
    ),
    QueueAction.MOVE_TO_READY_FOR_PROVIDER: (
        frozenset({BookingStatus.INTAKE}),
        BookingStatus.READY_FOR_PROVIDER,
    ),
    QueueAction.START_CALL: (
        frozenset({BookingStatus.READY_FOR_PROVIDER}),
        BookingStatus.PROVIDER,
    ),
    QueueAction.COMPLETE_CALL: (
        frozenset({BookingStatus.PROVIDER}),
        BookingStatus.READY_FOR_DISCHARGE,
    ),
    QueueAction.DISCHARGE_PATIENT: (
        frozenset({BookingStatus.READY_FOR_DISCHARGE}),
        BookingStatus.DISCHARGED,
    ),
    QueueAction.CANCEL_APPOINTMENT: (
        frozenset(set(BookingStatus) - {BookingStatus.DISCHARGED}),
        BookingStatus.CANCELLED,
    ),
    QueueAction.REMOVE_FROM_QUEUE: (
        frozenset(
            {
                BookingStatus.CONFIRMED,
                BookingStatus.INTAKE,
                BookingStatus.READY_FOR_PROVIDER,
                BookingStatus.PROVIDER,
            }
        ),
        BookingStatus.CONFIRMED,
    ),
}

# User-facing message recorded when the write for an action fails.
FAILURE_MESSAGES: dict[QueueAction, str] = {
    QueueAction.MOVE_TO_INTAKE: "Failed to move patient to intake",
    QueueAction.MOVE_TO_READY_FOR_PROVIDER: "Failed to move patient to ready for provider",
    QueueAction.START_CALL: "Failed to start call",
    QueueAction.COMPLETE_CALL: "Failed to complete call",
    QueueAction.DISCHARGE_PATIENT: "Failed to discharge patient",
    QueueAction.CANCEL_APPOINTMENT: "Failed to cancel appointment",
    QueueAction.REMOVE_FROM_QUEUE: "Failed to remove patient from queue",
}


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_apply(status: BookingStatus, action: QueueAction) -> bool:
    sources, _ = TRANSITIONS[action]
    return status in sources


def allowed_actions(status: BookingStatus) -> list[QueueAction]:
    """Actions an operator may take on a booking in ``status``, in declaration order."""
    return [action for action in QueueAction if can_apply(status, action)]


def resolve_transition(booking_id: str, status: BookingStatus, action: QueueAction) -> BookingStatus:
    """Return the status ``action`` moves a booking to.

    Raises:
        InvalidTransitionError: If ``action`` is not allowed from ``status``.
    """
    sources, target = TRANSITIONS[action]
    if status not in sources:
        raise InvalidTransitionError(booking_id, status.value, action.value)
    return target
