import asyncio
import contextlib
import datetime as dt
import uuid
from collections import Counter
from typing import Callable, TypeVar

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from carequeue.domain.exceptions import (
    BookingNotFoundError,
    BookingValidationError,
    PatientNotFoundError,
    StoreError,
)
from carequeue.domain.models import (
    BookingDraft,
    BookingStats,
    BookingUpdate,
    BookingWithPatient,
    Patient,
    PatientDraft,
    PatientUpdate,
)
from carequeue.queue.results import Confirmed, RolledBack
from carequeue.store.ports import AbstractBookingStore
from carequeue.store.service import compute_booking_stats

R = TypeVar("R", BookingWithPatient, Patient)

TENTATIVE_PREFIX = "tentative-"


class CacheSnapshot(BaseModel):
    """Immutable view of the cached collections. Replaced whole on every mutation."""

    model_config = ConfigDict(frozen=True)

    bookings: tuple[BookingWithPatient, ...] = ()
    patients: tuple[Patient, ...] = ()
    stats: BookingStats = Field(default_factory=BookingStats)


OnUpdate = Callable[[CacheSnapshot], None]

# (collection, record id) of an optimistic write.
WriteKey = tuple[str, str]


def _index_of(items: tuple[R, ...], record_id: str) -> int | None:
    for index, item in enumerate(items):
        if item.id == record_id:
            return index
    return None


def _replace(items: tuple[R, ...], record: R) -> tuple[R, ...]:
    return tuple(record if item.id == record.id else item for item in items)


def _insert_at(items: tuple[R, ...], index: int, record: R) -> tuple[R, ...]:
    index = max(0, min(index, len(items)))
    return items[:index] + (record,) + items[index:]


class BookingCache:
    """Client-side cache of bookings and patients with optimistic writes.

    Lifecycle: ``await init(on_update)`` loads both collections and starts a
    background refresh every ``poll_interval`` seconds (only while
    ``visible``); ``await teardown()`` stops it. Results that arrive after
    teardown are discarded.

    Readers get an immutable ``CacheSnapshot``. Every mutation builds a new
    snapshot, recomputes stats and notifies ``on_update``.

    Overlapping updates to one record are settled by re-reading it from the
    store, so a failed write never undoes a later confirmed one.
    """

    def __init__(self, store: AbstractBookingStore, *, poll_interval: float = 30.0) -> None:
        self._store = store
        self._poll_interval = poll_interval
        self._snapshot = CacheSnapshot()
        self._on_update: OnUpdate | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._visible = True
        self._active = False
        # Bumped on teardown so in-flight work can tell it is stale.
        self._generation = 0
        # Writes still awaiting the store, and how many have started, per record.
        self._inflight: Counter[WriteKey] = Counter()
        self._write_seq: Counter[WriteKey] = Counter()

    @property
    def snapshot(self) -> CacheSnapshot:
        return self._snapshot

    @property
    def bookings(self) -> tuple[BookingWithPatient, ...]:
        return self._snapshot.bookings

    @property
    def patients(self) -> tuple[Patient, ...]:
        return self._snapshot.patients

    @property
    def stats(self) -> BookingStats:
        return self._snapshot.stats

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def visible(self) -> bool:
        return self._visible

    def set_visible(self, visible: bool) -> None:
        """Pause (False) or resume (True) background refreshes."""
        self._visible = visible

    def get_booking(self, booking_id: str) -> BookingWithPatient | None:
        index = _index_of(self._snapshot.bookings, booking_id)
        return None if index is None else self._snapshot.bookings[index]

    def get_patient(self, patient_id: str) -> Patient | None:
        index = _index_of(self._snapshot.patients, patient_id)
        return None if index is None else self._snapshot.patients[index]

    def bookings_for_user(self, user_id: str) -> list[BookingWithPatient]:
        return [b for b in self._snapshot.bookings if b.created_by == user_id]

    def patients_for_user(self, user_id: str) -> list[Patient]:
        return [p for p in self._snapshot.patients if p.user_id == user_id]

    # -- lifecycle ---------------------------------------------------------

    async def init(self, on_update: OnUpdate | None = None) -> CacheSnapshot:
        """Load both collections and start background refreshes."""
        if self._active:
            raise RuntimeError("BookingCache is already initialised")
        self._active = True
        self._on_update = on_update
        await self.refresh()
        if self._active and self._poll_interval > 0:
            self._poll_task = asyncio.create_task(self._poll(), name="booking-cache-poll")
            logger.info("Booking cache polling every {}s", self._poll_interval)
        return self._snapshot

    async def teardown(self) -> None:
        """Stop polling and detach the update callback."""
        self._generation += 1
        self._active = False
        self._on_update = None
        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            logger.info("Booking cache polling stopped")

    async def refresh(self) -> bool:
        """Reload bookings and patients from the store.

        Returns False if the result was discarded because teardown ran while
        the request was in flight.
        """
        generation = self._generation
        bookings, patients = await asyncio.gather(
            self._store.list_bookings(),
            self._store.list_patients(),
        )
        if generation != self._generation:
            logger.warning("Discarding refresh result that arrived after teardown")
            return False
        self._publish(bookings=tuple(bookings), patients=tuple(patients))
        logger.info("Booking cache refreshed: {} booking(s)", len(bookings))
        return True

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            if not self._visible:
                continue
            try:
                await self.refresh()
            except StoreError as exc:
                logger.warning("Background refresh failed: {}", exc)
            except Exception:
                logger.exception("Unexpected error during background refresh")

    def _publish(
        self,
        *,
        bookings: tuple[BookingWithPatient, ...] | None = None,
        patients: tuple[Patient, ...] | None = None,
    ) -> None:
        new_bookings = self._snapshot.bookings if bookings is None else bookings
        new_patients = self._snapshot.patients if patients is None else patients
        self._snapshot = CacheSnapshot(
            bookings=new_bookings,
            patients=new_patients,
            stats=compute_booking_stats(list(new_bookings)),
        )
        if self._on_update is not None:
            self._on_update(self._snapshot)

    # -- optimistic local mutations ------------------------------------------

    def add_booking_optimistic(self, booking: BookingWithPatient) -> None:
        self._publish(bookings=(booking,) + self._snapshot.bookings)

    def update_booking_optimistic(
        self, booking_id: str, changes: dict[str, object]
    ) -> BookingWithPatient | None:
        """Merge ``changes`` into the cached booking. Returns the pre-update snapshot."""
        previous = self.get_booking(booking_id)
        if previous is None:
            return None
        self._publish(bookings=_replace(self._snapshot.bookings, previous.model_copy(update=changes)))
        return previous

    def delete_booking_optimistic(self, booking_id: str) -> tuple[int, BookingWithPatient] | None:
        """Drop a cached booking. Returns ``(position, removed)`` for rollback."""
        index = _index_of(self._snapshot.bookings, booking_id)
        if index is None:
            return None
        bookings = self._snapshot.bookings
        self._publish(bookings=bookings[:index] + bookings[index + 1 :])
        return index, bookings[index]

    def restore_booking(self, previous: BookingWithPatient, index: int | None = None) -> None:
        """Put ``previous`` back, replacing any booking with the same id."""
        if _index_of(self._snapshot.bookings, previous.id) is not None:
            self._publish(bookings=_replace(self._snapshot.bookings, previous))
        else:
            position = len(self._snapshot.bookings) if index is None else index
            self._publish(bookings=_insert_at(self._snapshot.bookings, position, previous))

    def remove_booking(self, booking_id: str) -> None:
        self._publish(bookings=tuple(b for b in self._snapshot.bookings if b.id != booking_id))

    def add_patient_optimistic(self, patient: Patient) -> None:
        self._publish(patients=(patient,) + self._snapshot.patients)

    def update_patient_optimistic(
        self, patient_id: str, changes: dict[str, object]
    ) -> Patient | None:
        previous = self.get_patient(patient_id)
        if previous is None:
            return None
        self._publish(patients=_replace(self._snapshot.patients, previous.model_copy(update=changes)))
        return previous

    def delete_patient_optimistic(self, patient_id: str) -> tuple[int, Patient] | None:
        index = _index_of(self._snapshot.patients, patient_id)
        if index is None:
            return None
        patients = self._snapshot.patients
        self._publish(patients=patients[:index] + patients[index + 1 :])
        return index, patients[index]

    def restore_patient(self, previous: Patient, index: int | None = None) -> None:
        if _index_of(self._snapshot.patients, previous.id) is not None:
            self._publish(patients=_replace(self._snapshot.patients, previous))
        else:
            position = len(self._snapshot.patients) if index is None else index
            self._publish(patients=_insert_at(self._snapshot.patients, position, previous))

    def remove_patient(self, patient_id: str) -> None:
        self._publish(patients=tuple(p for p in self._snapshot.patients if p.id != patient_id))

    # -- overlapping writes ----------------------------------------------------

    def _begin_write(self, key: WriteKey) -> tuple[int, bool]:
        contended = self._inflight[key] > 0
        self._inflight[key] += 1
        self._write_seq[key] += 1
        return self._write_seq[key], contended

    def _end_write(self, key: WriteKey, ticket: tuple[int, bool]) -> bool:
        """Finish a write. Returns True if no other write on the record overlapped it.

        Only a write that ran alone may restore its ``previous`` record or publish
        its own result. Overlapping writes re-read the record instead.
        """
        seq, contended = ticket
        sole_writer = not contended and self._write_seq[key] == seq
        self._inflight[key] -= 1
        if self._inflight[key] <= 0:
            del self._inflight[key]
            del self._write_seq[key]
        return sole_writer

    async def _reconcile_booking(self, booking_id: str) -> None:
        """Replace the cached booking with the stored one once no write on it is pending."""
        if ("booking", booking_id) in self._inflight:
            return
        generation = self._generation
        try:
            fresh = await self._store.get_booking(booking_id)
        except BookingNotFoundError:
            if generation == self._generation:
                self.remove_booking(booking_id)
            return
        except StoreError as exc:
            logger.warning("Could not re-read booking {} after overlapping writes: {}", booking_id, exc)
            return
        if generation == self._generation and ("booking", booking_id) not in self._inflight:
            self.restore_booking(fresh)

    async def _reconcile_patient(self, patient_id: str) -> None:
        if ("patient", patient_id) in self._inflight:
            return
        generation = self._generation
        try:
            fresh = await self._store.get_patient(patient_id)
        except PatientNotFoundError:
            if generation == self._generation:
                self.remove_patient(patient_id)
            return
        except StoreError as exc:
            logger.warning("Could not re-read patient {} after overlapping writes: {}", patient_id, exc)
            return
        if generation == self._generation and ("patient", patient_id) not in self._inflight:
            self.restore_patient(fresh)

    # -- optimistic writes through the store -----------------------------------

    async def apply_booking_update(
        self, booking_id: str, update: BookingUpdate
    ) -> Confirmed[BookingWithPatient] | RolledBack[BookingWithPatient]:
        """Apply ``update`` locally, persist it, and roll back if the store rejects it.

        Raises:
            BookingNotFoundError: If the booking is not in the cache.
        """
        generation = self._generation
        previous = self.update_booking_optimistic(booking_id, update.changes())
        if previous is None:
            raise BookingNotFoundError(booking_id)

        key = ("booking", booking_id)
        ticket = self._begin_write(key)
        try:
            persisted = await self._store.update_booking(booking_id, update)
        except StoreError as exc:
            logger.warning(
                "Rolling back booking {} (attempted status={}): {}",
                booking_id,
                update.status.value if update.status else None,
                exc,
            )
            sole_writer = self._end_write(key, ticket)
            if generation == self._generation:
                if sole_writer:
                    self.restore_booking(previous)
                else:
                    await self._reconcile_booking(booking_id)
            return RolledBack(previous=previous, error=str(exc))

        sole_writer = self._end_write(key, ticket)
        if generation == self._generation:
            if sole_writer:
                self._publish(bookings=_replace(self._snapshot.bookings, persisted))
            else:
                await self._reconcile_booking(booking_id)
        return Confirmed(value=persisted)

    async def apply_booking_create(
        self,
        patient_id: str,
        draft: BookingDraft,
        created_by: str | None = None,
    ) -> Confirmed[BookingWithPatient] | RolledBack[BookingWithPatient]:
        """Show a tentative booking immediately and swap in the stored one on success.

        Raises:
            BookingValidationError: If ``patient_id`` is empty.
        """
        if not patient_id:
            raise BookingValidationError(["patient_id"])

        generation = self._generation
        now = dt.datetime.now(dt.timezone.utc)
        tentative = BookingWithPatient(
            id=f"{TENTATIVE_PREFIX}{uuid.uuid4()}",
            patient_id=patient_id,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            patient=self.get_patient(patient_id),
            **draft.model_dump(),
        )
        self.add_booking_optimistic(tentative)

        try:
            persisted = await self._store.create_booking(patient_id, draft, created_by)
        except StoreError as exc:
            logger.warning("Rolling back new booking for patient {}: {}", patient_id, exc)
            if generation == self._generation:
                self.remove_booking(tentative.id)
            return RolledBack(error=str(exc))

        if generation == self._generation:
            self.remove_booking(tentative.id)
            self.add_booking_optimistic(persisted)
        return Confirmed(value=persisted)

    async def apply_booking_delete(self, booking_id: str) -> Confirmed[None] | RolledBack[BookingWithPatient]:
        generation = self._generation
        removed = self.delete_booking_optimistic(booking_id)
        if removed is None:
            raise BookingNotFoundError(booking_id)
        index, previous = removed

        try:
            await self._store.delete_booking(booking_id)
        except StoreError as exc:
            logger.warning("Rolling back delete of booking {}: {}", booking_id, exc)
            if generation == self._generation:
                self.restore_booking(previous, index)
            return RolledBack(previous=previous, error=str(exc))
        return Confirmed(value=None)

    async def apply_patient_create(self, draft: PatientDraft) -> Confirmed[Patient] | RolledBack[Patient]:
        generation = self._generation
        now = dt.datetime.now(dt.timezone.utc)
        tentative = Patient(
            id=f"{TENTATIVE_PREFIX}{uuid.uuid4()}",
            created_at=now,
            updated_at=now,
            **draft.model_dump(),
        )
        self.add_patient_optimistic(tentative)

        try:
            persisted = await self._store.create_patient(draft)
        except StoreError as exc:
            logger.warning("Rolling back new patient: {}", exc)
            if generation == self._generation:
                self.remove_patient(tentative.id)
            return RolledBack(error=str(exc))

        if generation == self._generation:
            self.remove_patient(tentative.id)
            self.add_patient_optimistic(persisted)
        return Confirmed(value=persisted)

    async def apply_patient_update(
        self, patient_id: str, update: PatientUpdate
    ) -> Confirmed[Patient] | RolledBack[Patient]:
        generation = self._generation
        previous = self.update_patient_optimistic(
            patient_id, update.model_dump(exclude_unset=True)
        )
        if previous is None:
            raise PatientNotFoundError(patient_id)

        key = ("patient", patient_id)
        ticket = self._begin_write(key)
        try:
            persisted = await self._store.update_patient(patient_id, update)
        except StoreError as exc:
            logger.warning("Rolling back patient {}: {}", patient_id, exc)
            sole_writer = self._end_write(key, ticket)
            if generation == self._generation:
                if sole_writer:
                    self.restore_patient(previous)
                else:
                    await self._reconcile_patient(patient_id)
            return RolledBack(previous=previous, error=str(exc))

        sole_writer = self._end_write(key, ticket)
        if generation == self._generation:
            if sole_writer:
                self._publish(patients=_replace(self._snapshot.patients, persisted))
            else:
                await self._reconcile_patient(patient_id)
        return Confirmed(value=persisted)

    async def apply_patient_delete(self, patient_id: str) -> Confirmed[None] | RolledBack[Patient]:
        generation = self._generation
        removed = self.delete_patient_optimistic(patient_id)
        if removed is None:
            raise PatientNotFoundError(patient_id)
        index, previous = removed

        try:
            await self._store.delete_patient(patient_id)
        except StoreError as exc:
            logger.warning("Rolling back delete of patient {}: {}", patient_id, exc)
            if generation == self._generation:
                self.restore_patient(previous, index)
            return RolledBack(previous=previous, error=str(exc))

        if generation == self._generation:
            # The store cascades deletes to the patient's bookings.
            self._publish(
                bookings=tuple(b for b in self._snapshot.bookings if b.patient_id != patient_id)
            )
        return Confirmed(value=None)
