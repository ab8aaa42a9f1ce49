"""Presentation descriptors for booking statuses and booking types.

Lookups are total: an unknown status degrades to the ``pending`` descriptor
and an unknown booking type to the ``online`` descriptor.
"""

from pydantic import BaseModel, ConfigDict

from carequeue.domain.models import BookingStatus, BookingType


class StatusConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    color: str
    icon: str
    gradient: str | None = None


class BookingTypeConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    label: str
    color: str
    icon: str


STATUS_CONFIG: dict[BookingStatus, StatusConfig] = {
    BookingStatus.PENDING: StatusConfig(
        label="Pending Confirmation",
        color="bg-amber-50 text-amber-700 border-amber-200",
        icon="alert-circle",
        gradient="from-amber-50 to-amber-100",
    ),
    BookingStatus.CONFIRMED: StatusConfig(
        label="Confirmed",
        color="bg-blue-50 text-blue-700 border-blue-200",
        icon="check-circle",
        gradient="from-blue-50 to-blue-100",
    ),
    BookingStatus.INTAKE: StatusConfig(
        label="In Intake",
        color="bg-purple-50 text-purple-700 border-purple-200",
        icon="clipboard",
        gradient="from-purple-50 to-purple-100",
    ),
    BookingStatus.READY_FOR_PROVIDER: StatusConfig(
        label="Ready for Provider",
        color="bg-green-50 text-green-700 border-green-200",
        icon="check-circle",
        gradient="from-green-50 to-green-100",
    ),
    BookingStatus.PROVIDER: StatusConfig(
        label="With Provider",
        color="bg-orange-50 text-orange-700 border-orange-200",
        icon="video",
        gradient="from-orange-50 to-orange-100",
    ),
    BookingStatus.READY_FOR_DISCHARGE: StatusConfig(
        label="Ready for Discharge",
        color="bg-indigo-50 text-indigo-700 border-indigo-200",
        icon="check-circle",
        gradient="from-indigo-50 to-indigo-100",
    ),
    BookingStatus.DISCHARGED: StatusConfig(
        label="Discharged",
        color="bg-gray-50 text-gray-700 border-gray-200",
        icon="check-circle",
        gradient="from-gray-50 to-gray-100",
    ),
    BookingStatus.CANCELLED: StatusConfig(
        label="Cancelled",
        color="bg-red-50 text-red-700 border-red-200",
        icon="x-circle",
        gradient="from-red-50 to-red-100",
    ),
}

BOOKING_TYPE_CONFIG: dict[BookingType, BookingTypeConfig] = {
    BookingType.ONLINE: BookingTypeConfig(
        label="Telehealth",
        color="bg-emerald-50 text-emerald-700 border-emerald-200",
        icon="smartphone",
    ),
    BookingType.PRE_BOOKED: BookingTypeConfig(
        label="In-Person",
        color="bg-blue-50 text-blue-700 border-blue-200",
        icon="hospital",
    ),
}


def parse_status(value: object) -> BookingStatus | None:
    """Return the matching ``BookingStatus`` or None for anything unrecognised."""
    try:
        return BookingStatus(value)
    except (ValueError, TypeError):
        return None


def get_status_config(status: object) -> StatusConfig:
    """Return the descriptor for ``status``, falling back to ``pending``."""
    parsed = parse_status(status)
    if parsed is None:
        return STATUS_CONFIG[BookingStatus.PENDING]
    return STATUS_CONFIG[parsed]


def get_status_label(status: object) -> str:
    return get_status_config(status).label


def get_status_color(status: object) -> str:
    return get_status_config(status).color


def get_status_icon(status: object) -> str:
    return get_status_config(status).icon


def get_booking_type_config(booking_type: object) -> BookingTypeConfig:
    """Return the descriptor for ``booking_type``, falling back to ``online``."""
    try:
        return BOOKING_TYPE_CONFIG[BookingType(booking_type)]
    except (ValueError, TypeError):
        return BOOKING_TYPE_CONFIG[BookingType.ONLINE]
