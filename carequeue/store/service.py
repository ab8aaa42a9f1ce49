import datetime as dt
from collections import Counter
from typing import Any

from loguru import logger

from carequeue.domain.exceptions import (
    BookingNotFoundError,
    BookingValidationError,
    PatientNotFoundError,
    StoreError,
    StoreUnavailableError,
    StoreWriteError,
)
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
from carequeue.store.ports import AbstractBookingStore, StoreClientProtocol


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def compute_booking_stats(bookings: list[BookingWithPatient]) -> BookingStats:
    """Count bookings in total, per status and per type."""
    return BookingStats(
        total=len(bookings),
        by_status=dict(Counter(b.status.value for b in bookings)),
        by_type=dict(Counter(b.booking_type.value for b in bookings)),
    )


class BookingStore(AbstractBookingStore):
    """Booking store that delegates to a StoreClientProtocol and adds business rules."""

    def __init__(self, client: StoreClientProtocol) -> None:
        self._client = client

    async def _select_bookings(
        self, filters: dict[str, str] | None = None
    ) -> list[BookingWithPatient]:
        try:
            bookings = await self._client.select_bookings(filters)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(f"Booking query failed: {exc}") from exc
        return sorted(bookings, key=lambda b: b.scheduled_at)

    async def list_bookings(self) -> list[BookingWithPatient]:
        bookings = await self._select_bookings()
        logger.debug("Loaded {} booking(s)", len(bookings))
        return bookings

    async def list_bookings_by_status(self, status: BookingStatus) -> list[BookingWithPatient]:
        return await self._select_bookings({"status": status.value})

    async def list_bookings_by_type(self, booking_type: BookingType) -> list[BookingWithPatient]:
        return await self._select_bookings({"booking_type": booking_type.value})

    async def list_bookings_for_user(self, user_id: str) -> list[BookingWithPatient]:
        return await self._select_bookings({"created_by": user_id})

    async def get_booking(self, booking_id: str) -> BookingWithPatient:
        bookings = await self._select_bookings({"id": booking_id})
        if not bookings:
            raise BookingNotFoundError(booking_id)
        return bookings[0]

    async def create_booking(
        self,
        patient_id: str,
        draft: BookingDraft,
        created_by: str | None = None,
    ) -> BookingWithPatient:
        """Validate and insert a booking for ``patient_id``."""
        if not patient_id:
            raise BookingValidationError(["patient_id"])

        logger.info(
            "Creating booking: type={}, date={}, time={}",
            draft.booking_type.value,
            draft.appointment_date,
            draft.appointment_time,
        )

        values: dict[str, Any] = draft.model_dump(mode="json")
        values["patient_id"] = patient_id
        if created_by:
            values["created_by"] = created_by

        try:
            booking = await self._client.insert_booking(values)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreWriteError(reason=str(exc), status=draft.status.value) from exc

        logger.info("Booking created: id={}", booking.id)
        return booking

    async def update_booking(self, booking_id: str, update: BookingUpdate) -> BookingWithPatient:
        """Write the fields set on ``update``, stamping ``updated_at``."""
        values: dict[str, Any] = update.model_dump(mode="json", exclude_unset=True)
        values.setdefault("updated_at", _now().isoformat())
        attempted = update.status.value if update.status else None

        logger.info("Updating booking {}: fields={}", booking_id, sorted(values))

        try:
            booking = await self._client.update_booking(booking_id, values)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreWriteError(reason=str(exc), record_id=booking_id, status=attempted) from exc

        logger.info("Booking updated: id={}, status={}", booking.id, booking.status.value)
        return booking

    async def delete_booking(self, booking_id: str) -> None:
        logger.info("Deleting booking {}", booking_id)
        try:
            await self._client.delete_booking(booking_id)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreWriteError(reason=str(exc), record_id=booking_id) from exc

    async def booking_stats(self) -> BookingStats:
        return compute_booking_stats(await self._select_bookings())

    async def _select_patients(
        self,
        filters: dict[str, str] | None = None,
        search: str | None = None,
    ) -> list[Patient]:
        try:
            patients = await self._client.select_patients(filters, search)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(f"Patient query failed: {exc}") from exc
        return sorted(patients, key=lambda p: p.full_name.lower())

    async def list_patients(self) -> list[Patient]:
        return await self._select_patients()

    async def list_patients_for_user(self, user_id: str) -> list[Patient]:
        return await self._select_patients({"user_id": user_id})

    async def search_patients(self, query: str) -> list[Patient]:
        query = query.strip()
        if not query:
            return await self._select_patients()
        patients = await self._select_patients(search=query)
        logger.info("Found {} patient(s) matching search", len(patients))
        return patients

    async def get_patient(self, patient_id: str) -> Patient:
        patients = await self._select_patients({"id": patient_id})
        if not patients:
            raise PatientNotFoundError(patient_id)
        return patients[0]

    async def create_patient(self, draft: PatientDraft) -> Patient:
        logger.info("Creating patient record")
        try:
            patient = await self._client.insert_patient(draft.model_dump(mode="json"))
        except StoreError:
            raise
        except Exception as exc:
            raise StoreWriteError(reason=str(exc)) from exc

        logger.info("Patient created: id={}", patient.id)
        return patient

    async def update_patient(self, patient_id: str, update: PatientUpdate) -> Patient:
        values: dict[str, Any] = update.model_dump(mode="json", exclude_unset=True)
        values.setdefault("updated_at", _now().isoformat())

        logger.info("Updating patient {}: fields={}", patient_id, sorted(values))
        try:
            patient = await self._client.update_patient(patient_id, values)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreWriteError(reason=str(exc), record_id=patient_id) from exc
        return patient

    async def delete_patient(self, patient_id: str) -> None:
        logger.info("Deleting patient {}", patient_id)
        try:
            await self._client.delete_patient(patient_id)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreWriteError(reason=str(exc), record_id=patient_id) from exc

    async def health_check(self) -> bool:
        return await self._client.health_check()

    async def close(self) -> None:
        await self._client.close()
