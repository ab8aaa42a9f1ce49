import datetime as dt
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class BookingStatus(str, Enum):
    """Telehealth workflow states a booking moves through."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    INTAKE = "intake"
    READY_FOR_PROVIDER = "ready-for-provider"
    PROVIDER = "provider"
    READY_FOR_DISCHARGE = "ready-for-discharge"
    DISCHARGED = "discharged"
    CANCELLED = "cancelled"


class BookingType(str, Enum):
    PRE_BOOKED = "pre-booked"
    ONLINE = "online"


class QueueTab(str, Enum):
    """Top-level queue views derived from booking type and status."""

    PRE_BOOKED = "pre-booked"
    IN_OFFICE = "in-office"
    COMPLETED = "completed"


class Patient(BaseModel):
    """A patient contact record."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str | None = None
    full_name: str
    email: str
    phone: str | None = None
    date_of_birth: dt.date | None = None
    address: str | None = None
    emergency_contact_name: str | None = None
    emergency_contact_phone: str | None = None
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None


class PatientDraft(BaseModel):
    """Fields for a patient that does not exist yet."""

    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    full_name: str = Field(min_length=1)
    email: str = Field(min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")
    phone: str | None = None
    date_of_birth: dt.date | None = None
    address: str | None = None
    emergency_contact_name: str | None = None
    emergency_contact_phone: str | None = None


class PatientUpdate(BaseModel):
    """Partial patient update. Only fields explicitly set are written."""

    model_config = ConfigDict(frozen=True)

    full_name: str | None = Field(default=None, min_length=1)
    email: str | None = None
    phone: str | None = None
    date_of_birth: dt.date | None = None
    address: str | None = None
    emergency_contact_name: str | None = None
    emergency_contact_phone: str | None = None
    user_id: str | None = None


class Booking(BaseModel):
    """One appointment instance."""

    model_config = ConfigDict(frozen=True)

    id: str
    patient_id: str
    appointment_date: dt.date
    appointment_time: dt.time
    booking_type: BookingType = BookingType.PRE_BOOKED
    status: BookingStatus = BookingStatus.PENDING
    notes: str | None = None
    created_by: str | None = None
    provider_name: str | None = None
    chief_complaint: str | None = None
    room_location: str | None = None
    is_adhoc: bool = False
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    @property
    def scheduled_at(self) -> dt.datetime:
        """Naive datetime used to order bookings chronologically."""
        return dt.datetime.combine(self.appointment_date, self.appointment_time)

    @property
    def is_online(self) -> bool:
        return self.booking_type == BookingType.ONLINE


class BookingWithPatient(Booking):
    """A booking joined with its patient record."""

    patient: Patient | None = None


class BookingDraft(BaseModel):
    """Fields for a booking that does not exist yet; the patient is passed separately."""

    model_config = ConfigDict(frozen=True)

    appointment_date: dt.date
    appointment_time: dt.time
    booking_type: BookingType = BookingType.PRE_BOOKED
    status: BookingStatus = BookingStatus.PENDING
    notes: str | None = None
    provider_name: str | None = None
    chief_complaint: str | None = None
    room_location: str | None = None
    is_adhoc: bool = False


class BookingUpdate(BaseModel):
    """Partial booking update. Only fields explicitly set are written."""

    model_config = ConfigDict(frozen=True)

    patient_id: str | None = None
    appointment_date: dt.date | None = None
    appointment_time: dt.time | None = None
    booking_type: BookingType | None = None
    status: BookingStatus | None = None
    notes: str | None = None
    provider_name: str | None = None
    chief_complaint: str | None = None
    room_location: str | None = None
    is_adhoc: bool | None = None
    updated_at: dt.datetime | None = None

    def changes(self) -> dict[str, object]:
        """Return only the fields the caller set, as Python values."""
        return self.model_dump(exclude_unset=True)


class QueueFilters(BaseModel):
    """Secondary filters applied on top of a tab. All are optional."""

    model_config = ConfigDict(frozen=True)

    statuses: frozenset[BookingStatus] = frozenset()
    provider_name: str | None = None
    patient_name_search: str = ""


class BookingStats(BaseModel):
    """Counts over a booking collection, keyed by raw status/type value."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)


class QueueStats(BaseModel):
    """Per-status counts over the online (telehealth) queue."""

    model_config = ConfigDict(frozen=True)

    total: int = 0
    pending: int = 0
    confirmed: int = 0
    intake: int = 0
    ready_for_provider: int = 0
    provider: int = 0
    ready_for_discharge: int = 0
    discharged: int = 0
    cancelled: int = 0


class BookingGroup(BaseModel):
    """A named, collapsible bucket of bookings sharing one status."""

    model_config = ConfigDict(frozen=True)

    title: str
    status: BookingStatus
    bookings: tuple[BookingWithPatient, ...] = ()

    @property
    def count(self) -> int:
        return len(self.bookings)


class QueueByStatus(BaseModel):
    """Active online queue split by workflow stage."""

    model_config = ConfigDict(frozen=True)

    confirmed: tuple[BookingWithPatient, ...] = ()
    intake: tuple[BookingWithPatient, ...] = ()
    ready_for_provider: tuple[BookingWithPatient, ...] = ()
    provider: tuple[BookingWithPatient, ...] = ()
