import datetime as dt
import uuid
from typing import Any

from carequeue.domain.exceptions import BookingNotFoundError, PatientNotFoundError, StoreWriteError
from carequeue.domain.models import Booking, BookingWithPatient, Patient


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _matches(record: Booking | Patient, filters: dict[str, str] | None) -> bool:
    if not filters:
        return True
    row: dict[str, Any] = record.model_dump(mode="json")
    return all(str(row.get(key)) == value for key, value in filters.items())


class InMemoryStoreClient:
    """In-memory implementation of the StoreClientProtocol.

    Used as the ``memory`` backend and as the test double. Seed ``patients``
    and ``bookings`` directly (keyed by id) to control what is returned.
    Set ``select_error``, ``write_error`` or ``delete_error`` to make the
    corresponding calls raise.

    Every accepted write is appended to ``writes`` as ``(operation, id, values)``.
    """

    def __init__(self) -> None:
        self.patients: dict[str, Patient] = {}
        self.bookings: dict[str, Booking] = {}
        self.writes: list[tuple[str, str, dict[str, Any]]] = []
        self.closed: bool = False
        self.healthy: bool = True

        self.select_error: Exception | None = None
        self.write_error: Exception | None = None
        self.delete_error: Exception | None = None

    def add_patient(self, patient: Patient) -> Patient:
        self.patients[patient.id] = patient
        return patient

    def add_booking(self, booking: Booking) -> BookingWithPatient:
        stored = Booking.model_validate(booking.model_dump(exclude={"patient"}))
        self.bookings[stored.id] = stored
        return self._join(stored)

    def _join(self, booking: Booking) -> BookingWithPatient:
        return BookingWithPatient(
            **booking.model_dump(),
            patient=self.patients.get(booking.patient_id),
        )

    async def select_bookings(
        self, filters: dict[str, str] | None = None
    ) -> list[BookingWithPatient]:
        if self.select_error:
            raise self.select_error
        return [self._join(b) for b in self.bookings.values() if _matches(b, filters)]

    async def insert_booking(self, values: dict[str, Any]) -> BookingWithPatient:
        if self.write_error:
            raise self.write_error
        if values.get("patient_id") not in self.patients:
            raise StoreWriteError(
                reason="insert violates foreign key constraint on patient_id",
                status=values.get("status"),
            )
        now = _now()
        booking = Booking.model_validate(
            {"id": str(uuid.uuid4()), "created_at": now, "updated_at": now, **values}
        )
        self.bookings[booking.id] = booking
        self.writes.append(("insert_booking", booking.id, values))
        return self._join(booking)

    async def update_booking(self, booking_id: str, values: dict[str, Any]) -> BookingWithPatient:
        if self.write_error:
            raise self.write_error
        current = self.bookings.get(booking_id)
        if current is None:
            raise BookingNotFoundError(booking_id)
        booking = Booking.model_validate({**current.model_dump(), **values})
        self.bookings[booking_id] = booking
        self.writes.append(("update_booking", booking_id, values))
        return self._join(booking)

    async def delete_booking(self, booking_id: str) -> None:
        if self.delete_error:
            raise self.delete_error
        self.bookings.pop(booking_id, None)
        self.writes.append(("delete_booking", booking_id, {}))

    async def select_patients(
        self,
        filters: dict[str, str] | None = None,
        search: str | None = None,
    ) -> list[Patient]:
        if self.select_error:
            raise self.select_error
        patients = [p for p in self.patients.values() if _matches(p, filters)]
        if search:
            needle = search.lower()
            patients = [
                p for p in patients if needle in p.full_name.lower() or needle in p.email.lower()
            ]
        return patients

    async def insert_patient(self, values: dict[str, Any]) -> Patient:
        if self.write_error:
            raise self.write_error
        now = _now()
        patient = Patient.model_validate(
            {"id": str(uuid.uuid4()), "created_at": now, "updated_at": now, **values}
        )
        self.patients[patient.id] = patient
        self.writes.append(("insert_patient", patient.id, values))
        return patient

    async def update_patient(self, patient_id: str, values: dict[str, Any]) -> Patient:
        if self.write_error:
            raise self.write_error
        current = self.patients.get(patient_id)
        if current is None:
            raise PatientNotFoundError(patient_id)
        patient = Patient.model_validate({**current.model_dump(), **values})
        self.patients[patient_id] = patient
        self.writes.append(("update_patient", patient_id, values))
        return patient

    async def delete_patient(self, patient_id: str) -> None:
        if self.delete_error:
            raise self.delete_error
        self.patients.pop(patient_id, None)
        # Bookings cascade with their patient.
        for booking_id in [b.id for b in self.bookings.values() if b.patient_id == patient_id]:
            del self.bookings[booking_id]
        self.writes.append(("delete_patient", patient_id, {}))

    async def health_check(self) -> bool:
        return self.healthy

    async def close(self) -> None:
        self.closed = True
