"""Pure views over a booking collection: tabs, filters, grouping and counts.

Nothing here touches the store or mutates its input. Malformed input (an
unknown tab, a booking without a joined patient) degrades to an empty or
non-matching result instead of raising.
"""

from collections.abc import Iterable

from carequeue.domain.models import (
    BookingGroup,
    BookingStats,
    BookingStatus,
    BookingWithPatient,
    QueueByStatus,
    QueueFilters,
    QueueStats,
    QueueTab,
)
from carequeue.store.service import compute_booking_stats

IN_OFFICE_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.INTAKE, BookingStatus.READY_FOR_PROVIDER, BookingStatus.PROVIDER}
)
COMPLETED_STATUSES: frozenset[BookingStatus] = frozenset(
    {BookingStatus.READY_FOR_DISCHARGE, BookingStatus.DISCHARGED}
)
ACTIVE_QUEUE_STATUSES: frozenset[BookingStatus] = frozenset(
    {
        BookingStatus.CONFIRMED,
        BookingStatus.INTAKE,
        BookingStatus.READY_FOR_PROVIDER,
        BookingStatus.PROVIDER,
    }
)

IN_OFFICE_GROUPS: tuple[tuple[str, BookingStatus], ...] = (
    ("In Intake", BookingStatus.INTAKE),
    ("Ready for Provider", BookingStatus.READY_FOR_PROVIDER),
    ("In Call", BookingStatus.PROVIDER),
)


def online_bookings(bookings: Iterable[BookingWithPatient]) -> list[BookingWithPatient]:
    return [b for b in bookings if b.is_online]


def get_tab_bookings(
    bookings: Iterable[BookingWithPatient], tab: QueueTab | str
) -> list[BookingWithPatient]:
    """Return the online bookings shown on ``tab``, preserving input order.

    ``pre-booked`` holds everything not yet in the office or completed, so the
    three tabs partition the online bookings exactly. Unknown tabs are empty.
    """
    try:
        tab = QueueTab(tab)
    except (ValueError, TypeError):
        return []

    online = online_bookings(bookings)
    if tab == QueueTab.IN_OFFICE:
        return [b for b in online if b.status in IN_OFFICE_STATUSES]
    if tab == QueueTab.COMPLETED:
        return [b for b in online if b.status in COMPLETED_STATUSES]
    excluded = IN_OFFICE_STATUSES | COMPLETED_STATUSES
    return [b for b in online if b.status not in excluded]


def _matches_search(booking: BookingWithPatient, needle: str) -> bool:
    if booking.patient is None:
        return False
    return needle in booking.patient.full_name.lower() or needle in booking.patient.email.lower()


def filter_bookings(
    bookings: Iterable[BookingWithPatient], filters: QueueFilters
) -> list[BookingWithPatient]:
    """Apply status, provider and patient search filters (AND-combined)."""
    filtered = list(bookings)

    if filters.statuses:
        filtered = [b for b in filtered if b.status in filters.statuses]

    if filters.provider_name:
        filtered = [b for b in filtered if b.provider_name == filters.provider_name]

    needle = filters.patient_name_search.strip().lower()
    if needle:
        filtered = [b for b in filtered if _matches_search(b, needle)]

    return filtered


def get_filtered_bookings(
    bookings: Iterable[BookingWithPatient], tab: QueueTab | str, filters: QueueFilters
) -> list[BookingWithPatient]:
    return filter_bookings(get_tab_bookings(bookings, tab), filters)


def group_in_office(bookings: Iterable[BookingWithPatient]) -> list[BookingGroup]:
    """Split the in-office tab into ``In Intake``, ``Ready for Provider`` and ``In Call``."""
    in_office = get_tab_bookings(bookings, QueueTab.IN_OFFICE)
    return [
        BookingGroup(
            title=title,
            status=status,
            bookings=tuple(b for b in in_office if b.status == status),
        )
        for title, status in IN_OFFICE_GROUPS
    ]


def list_providers(bookings: Iterable[BookingWithPatient]) -> list[str]:
    """Distinct provider names in first-seen order."""
    seen: dict[str, None] = {}
    for booking in bookings:
        if booking.provider_name:
            seen.setdefault(booking.provider_name, None)
    return list(seen)


def booking_stats(bookings: Iterable[BookingWithPatient]) -> BookingStats:
    return compute_booking_stats(list(bookings))


def queue_stats(bookings: Iterable[BookingWithPatient]) -> QueueStats:
    """Per-status counts over online bookings."""
    online = online_bookings(bookings)
    counts = {status: 0 for status in BookingStatus}
    for booking in online:
        counts[booking.status] += 1
    return QueueStats(
        total=len(online),
        pending=counts[BookingStatus.PENDING],
        confirmed=counts[BookingStatus.CONFIRMED],
        intake=counts[BookingStatus.INTAKE],
        ready_for_provider=counts[BookingStatus.READY_FOR_PROVIDER],
        provider=counts[BookingStatus.PROVIDER],
        ready_for_discharge=counts[BookingStatus.READY_FOR_DISCHARGE],
        discharged=counts[BookingStatus.DISCHARGED],
        cancelled=counts[BookingStatus.CANCELLED],
    )


def queue_by_status(bookings: Iterable[BookingWithPatient]) -> QueueByStatus:
    """Online bookings in the active queue, bucketed by stage."""
    active = [b for b in online_bookings(bookings) if b.status in ACTIVE_QUEUE_STATUSES]
    return QueueByStatus(
        confirmed=tuple(b for b in active if b.status == BookingStatus.CONFIRMED),
        intake=tuple(b for b in active if b.status == BookingStatus.INTAKE),
        ready_for_provider=tuple(b for b in active if b.status == BookingStatus.READY_FOR_PROVIDER),
        provider=tuple(b for b in active if b.status == BookingStatus.PROVIDER),
    )
