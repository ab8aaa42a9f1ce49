from abc import ABC, abstractmethod
from typing import Any, Protocol

from carequeue.domain.models import (
    BookingDraft,
    BookingStats,
    BookingStatus,
    BookingType,
    BookingUpdate,
    BookingWithPatient,
    Patient,
    PatientDraft,
    PatientUpdate,
)


class AbstractBookingStore(ABC):
    """Abstract persistence contract for patients and bookings."""

    @abstractmethod
    async def list_bookings(self) -> list[BookingWithPatient]:
        """Return every booking joined with its patient.

        Returns:
            Bookings ordered by appointment date, then time, ascending.

        Raises:
            StoreUnavailableError: If the store is unreachable.
        """

    @abstractmethod
    async def list_bookings_by_status(self, status: BookingStatus) -> list[BookingWithPatient]:
        """Return bookings in ``status``, in appointment order."""

    @abstractmethod
    async def list_bookings_by_type(self, booking_type: BookingType) -> list[BookingWithPatient]:
        """Return bookings of ``booking_type``, in appointment order."""

    @abstractmethod
    async def list_bookings_for_user(self, user_id: str) -> list[BookingWithPatient]:
        """Return bookings created by ``user_id``, in appointment order."""

    @abstractmethod
    async def get_booking(self, booking_id: str) -> BookingWithPatient:
        """Fetch one booking.

        Raises:
            BookingNotFoundError: If no booking has this id.
            StoreUnavailableError: If the store is unreachable.
        """

    @abstractmethod
    async def create_booking(
        self,
        patient_id: str,
        draft: BookingDraft,
        created_by: str | None = None,
    ) -> BookingWithPatient:
        """Create a booking for an existing patient.

        Args:
            patient_id: The patient the booking belongs to.
            draft: Appointment fields.
            created_by: The acting user's id, if known.

        Returns:
            The stored booking, with its assigned id.

        Raises:
            BookingValidationError: If required fields are missing.
            StoreWriteError: If the store rejects the insert.
            StoreUnavailableError: If the store is unreachable.
        """

    @abstractmethod
    async def update_booking(self, booking_id: str, update: BookingUpdate) -> BookingWithPatient:
        """Apply a partial update to a booking, including ``status`` or ``booking_type``.

        Raises:
            BookingNotFoundError: If no booking has this id.
            StoreWriteError: If the store rejects the update.
            StoreUnavailableError: If the store is unreachable.
        """

    @abstractmethod
    async def delete_booking(self, booking_id: str) -> None:
        """Hard-delete a booking."""

    @abstractmethod
    async def booking_stats(self) -> BookingStats:
        """Return total, per-status and per-type counts over all bookings."""

    @abstractmethod
    async def list_patients(self) -> list[Patient]:
        """Return every patient ordered by full name."""

    @abstractmethod
    async def list_patients_for_user(self, user_id: str) -> list[Patient]:
        """Return patient records owned by ``user_id``."""

    @abstractmethod
    async def search_patients(self, query: str) -> list[Patient]:
        """Case-insensitive substring search over full name and email."""

    @abstractmethod
    async def get_patient(self, patient_id: str) -> Patient:
        """Fetch one patient.

        Raises:
            PatientNotFoundError: If no patient has this id.
        """

    @abstractmethod
    async def create_patient(self, draft: PatientDraft) -> Patient:
        """Create a patient record."""

    @abstractmethod
    async def update_patient(self, patient_id: str, update: PatientUpdate) -> Patient:
        """Apply a partial update to a patient."""

    @abstractmethod
    async def delete_patient(self, patient_id: str) -> None:
        """Hard-delete a patient."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the store is reachable.

        Returns:
            True if the store is healthy, False otherwise.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release resources held by this store."""


class StoreClientProtocol(Protocol):
    """Low-level row access against a backing store.

    Clients return joined rows as plain models and raise ``StoreError``
    subclasses (or anything else, which the service wraps).
    """

    async def select_bookings(self, filters: dict[str, str] | None = None) -> list[BookingWithPatient]:
        """Select bookings matching equality ``filters``, in appointment order."""
        ...

    async def insert_booking(self, values: dict[str, Any]) -> BookingWithPatient:
        """Insert a booking row."""
        ...

    async def update_booking(self, booking_id: str, values: dict[str, Any]) -> BookingWithPatient:
        """Update a booking row."""
        ...

    async def delete_booking(self, booking_id: str) -> None:
        """Delete a booking row."""
        ...

    async def select_patients(
        self,
        filters: dict[str, str] | None = None,
        search: str | None = None,
    ) -> list[Patient]:
        """Select patients matching ``filters`` and an optional name/email ``search``."""
        ...

    async def insert_patient(self, values: dict[str, Any]) -> Patient:
        """Insert a patient row."""
        ...

    async def update_patient(self, patient_id: str, values: dict[str, Any]) -> Patient:
        """Update a patient row."""
        ...

    async def delete_patient(self, patient_id: str) -> None:
        """Delete a patient row."""
        ...

    async def health_check(self) -> bool:
        """Check if the store is reachable."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...
