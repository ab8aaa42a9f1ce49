import asyncio
import datetime as dt

import pytest

from carequeue.config import QueueConfig
from carequeue.domain.exceptions import (
    BookingNotFoundError,
    InvalidTransitionError,
    StoreWriteError,
)
from carequeue.domain.models import BookingStatus, BookingType, QueueFilters, QueueTab
from carequeue.queue.cache import BookingCache
from carequeue.queue.notifications import NotificationCenter, NotificationType
from carequeue.queue.results import Confirmed, RolledBack
from carequeue.queue.service import QueueService
from carequeue.store.adapters.memory import InMemoryStoreClient
from tests.factories import ALEX, JANE, JOHN, make_booking

# Fixtures (memory_client, cache, notifications, queue) provided by tests/conftest.py


async def _seed(cache: BookingCache, client: InMemoryStoreClient, *bookings) -> None:  # type: ignore[no-untyped-def]
    for booking in bookings:
        client.add_booking(booking)
    await cache.refresh()


class TestTransitions:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method, start, expected",
        [
            ("move_to_intake", "confirmed", "intake"),
            ("move_to_ready_for_provider", "intake", "ready-for-provider"),
            ("start_call", "ready-for-provider", "provider"),
            ("complete_call", "provider", "ready-for-discharge"),
            ("discharge_patient", "ready-for-discharge", "discharged"),
            ("cancel_appointment", "pending", "cancelled"),
            ("remove_from_queue", "provider", "confirmed"),
        ],
    )
    async def test_action_persists_new_status(
        self,
        queue: QueueService,
        cache: BookingCache,
        memory_client: InMemoryStoreClient,
        method: str,
        start: str,
        expected: str,
    ) -> None:
        await _seed(cache, memory_client, make_booking("b1", start))

        result = await getattr(queue, method)("b1")

        assert isinstance(result, Confirmed)
        assert result.value.status == BookingStatus(expected)
        assert cache.get_booking("b1").status == BookingStatus(expected)  # type: ignore[union-attr]
        assert memory_client.bookings["b1"].status == BookingStatus(expected)
        assert queue.error is None

    @pytest.mark.asyncio
    async def test_full_visit_lifecycle(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(cache, memory_client, make_booking("b1", "confirmed"))

        for step in (
            queue.move_to_intake,
            queue.move_to_ready_for_provider,
            queue.start_call,
            queue.complete_call,
            queue.discharge_patient,
        ):
            assert (await step("b1")).ok

        assert memory_client.bookings["b1"].status == BookingStatus.DISCHARGED
        statuses = [values["status"] for op, _, values in memory_client.writes]
        assert statuses == [
            "intake",
            "ready-for-provider",
            "provider",
            "ready-for-discharge",
            "discharged",
        ]

    @pytest.mark.asyncio
    async def test_cancel_twice_is_idempotent(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(cache, memory_client, make_booking("b1", "confirmed"))

        first = await queue.cancel_appointment("b1")
        second = await queue.cancel_appointment("b1")

        assert first.ok and second.ok
        assert cache.get_booking("b1").status == BookingStatus.CANCELLED  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_invalid_transition_raises_without_writing(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(cache, memory_client, make_booking("b1", "discharged"))

        with pytest.raises(InvalidTransitionError):
            await queue.move_to_intake("b1")
        with pytest.raises(InvalidTransitionError):
            await queue.cancel_appointment("b1")

        assert memory_client.writes == []
        assert cache.get_booking("b1").status == BookingStatus.DISCHARGED  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_unknown_booking(self, queue: QueueService, cache: BookingCache) -> None:
        await cache.refresh()

        with pytest.raises(BookingNotFoundError):
            await queue.start_call("ghost")

    @pytest.mark.asyncio
    async def test_force_set_status_bypasses_table(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(cache, memory_client, make_booking("b1", "discharged"))

        result = await queue.force_set_status("b1", BookingStatus.INTAKE)

        assert result.ok
        assert memory_client.bookings["b1"].status == BookingStatus.INTAKE


class TestRollback:
    @pytest.mark.asyncio
    async def test_failed_write_restores_and_reports(
        self,
        queue: QueueService,
        cache: BookingCache,
        memory_client: InMemoryStoreClient,
        notifications: NotificationCenter,
    ) -> None:
        await _seed(cache, memory_client, make_booking("b1", "confirmed", patient=JOHN))
        before = cache.get_booking("b1")
        memory_client.write_error = StoreWriteError(reason="network timeout", record_id="b1")

        result = await queue.move_to_intake("b1")

        assert isinstance(result, RolledBack)
        assert cache.get_booking("b1") == before
        assert queue.error == "Failed to move patient to intake"

        [notice] = notifications.active
        assert notice.type == NotificationType.ERROR
        assert notice.booking_id == "b1"
        assert notice.patient_name == "John Doe"
        assert "network timeout" in notice.message

    @pytest.mark.asyncio
    async def test_clear_error(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(cache, memory_client, make_booking("b1", "provider"))
        memory_client.write_error = RuntimeError("boom")

        await queue.complete_call("b1")
        assert queue.error == "Failed to complete call"
        queue.clear_error()

        assert queue.error is None


class TestAutoAdvance:
    @pytest.mark.asyncio
    async def test_moves_earliest_confirmed(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(
            cache,
            memory_client,
            make_booking("late", "confirmed", time=dt.time(9)),
            make_booking("early", "confirmed", time=dt.time(8), patient=JOHN),
        )

        assert await queue.auto_advance_queue() is True

        assert memory_client.bookings["early"].status == BookingStatus.INTAKE
        assert memory_client.bookings["late"].status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_does_nothing_while_intake_is_occupied(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(
            cache,
            memory_client,
            make_booking("b1", "intake"),
            make_booking("b2", "confirmed", patient=JOHN),
        )

        assert await queue.auto_advance_queue() is False
        assert memory_client.writes == []

    @pytest.mark.asyncio
    async def test_nothing_confirmed(self, queue: QueueService, cache: BookingCache) -> None:
        await cache.refresh()

        assert await queue.auto_advance_queue() is False

    @pytest.mark.asyncio
    async def test_ignores_in_person_bookings(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(
            cache,
            memory_client,
            make_booking("b1", "confirmed", booking_type=BookingType.PRE_BOOKED),
        )

        assert await queue.auto_advance_queue() is False

    @pytest.mark.asyncio
    async def test_store_failure_reports_false(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(cache, memory_client, make_booking("b1", "confirmed"))
        memory_client.write_error = RuntimeError("down")

        assert await queue.auto_advance_queue() is False
        assert cache.get_booking("b1").status == BookingStatus.CONFIRMED  # type: ignore[union-attr]
        assert queue.error == "Failed to auto-advance queue"


class TestQueueViews:
    @pytest.mark.asyncio
    async def test_next_patient_is_earliest_ready(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(
            cache,
            memory_client,
            make_booking("b1", "ready-for-provider", time=dt.time(10)),
            make_booking("b2", "ready-for-provider", time=dt.time(9), patient=JOHN),
            make_booking("b3", "intake", time=dt.time(8), patient=ALEX),
        )

        assert queue.get_next_patient().id == "b2"  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_no_next_patient(self, queue: QueueService, cache: BookingCache) -> None:
        await cache.refresh()

        assert queue.get_next_patient() is None

    @pytest.mark.asyncio
    async def test_estimated_wait_time(
        self, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(
            cache,
            memory_client,
            make_booking("with-provider", "provider"),
            make_booking("ready-1", "ready-for-provider", patient=JOHN),
            make_booking("ready-2", "ready-for-provider", patient=ALEX),
            make_booking("waiting", "intake", patient=JOHN),
            make_booking("new", "confirmed", patient=JANE),
        )
        queue = QueueService(
            cache,
            config=QueueConfig(provider_minutes=15, ready_minutes=10, intake_minutes=5),
        )

        assert queue.estimated_wait_time("new") == 15 + 2 * 10 + 5
        assert queue.estimated_wait_time("with-provider") == 0
        assert queue.estimated_wait_time("ghost") == 0

    @pytest.mark.asyncio
    async def test_tabs_and_filters(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(
            cache,
            memory_client,
            make_booking("b1", "provider", provider_name="Dr. Lee"),
            make_booking("b2", "intake", patient=JOHN, provider_name="Dr. Patel"),
            make_booking("b3", "confirmed", patient=ALEX),
        )

        assert [b.id for b in queue.tab_bookings(QueueTab.IN_OFFICE)] == ["b1", "b2"]
        assert [b.id for b in queue.tab_bookings("pre-booked")] == ["b3"]
        assert queue.tab_bookings("archive") == []
        assert [
            b.id
            for b in queue.filtered_bookings(
                QueueTab.IN_OFFICE, QueueFilters(patient_name_search="jane")
            )
        ] == ["b1"]
        assert queue.providers() == ["Dr. Lee", "Dr. Patel"]
        assert [g.count for g in queue.in_office_groups()] == [1, 0, 1]

    @pytest.mark.asyncio
    async def test_queue_stats_count_online_only(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(
            cache,
            memory_client,
            make_booking("b1", "confirmed"),
            make_booking("b2", "confirmed", booking_type=BookingType.PRE_BOOKED, patient=JOHN),
        )

        stats = queue.queue_stats()

        assert stats.total == 1
        assert stats.confirmed == 1


class TestConcurrentActions:
    @pytest.mark.asyncio
    async def test_slow_failure_does_not_undo_a_later_transition(
        self, queue: QueueService, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(cache, memory_client, make_booking("b1", "confirmed"))
        gate = asyncio.Event()
        original = memory_client.update_booking
        calls = 0

        async def first_write_times_out(booking_id: str, values: dict[str, object]):  # type: ignore[no-untyped-def]
            nonlocal calls
            calls += 1
            if calls == 1:
                await gate.wait()
                raise StoreWriteError(reason="network timeout", record_id=booking_id)
            return await original(booking_id, values)

        memory_client.update_booking = first_write_times_out  # type: ignore[method-assign]

        intake = asyncio.create_task(queue.move_to_intake("b1"))
        await asyncio.sleep(0)
        ready = await queue.move_to_ready_for_provider("b1")
        gate.set()
        failed = await intake

        assert ready.ok
        assert not failed.ok
        assert memory_client.bookings["b1"].status == BookingStatus.READY_FOR_PROVIDER
        assert cache.get_booking("b1").status == BookingStatus.READY_FOR_PROVIDER  # type: ignore[union-attr]
        assert queue.error == "Failed to move patient to intake"

    @pytest.mark.asyncio
    async def test_failure_notification_stays_until_dismissed(
        self, cache: BookingCache, memory_client: InMemoryStoreClient
    ) -> None:
        await _seed(cache, memory_client, make_booking("b1", "confirmed"))
        center = NotificationCenter(ttl=0.01)
        queue = QueueService(cache, notifications=center)
        memory_client.write_error = RuntimeError("timeout")

        await queue.move_to_intake("b1")
        await asyncio.sleep(0.05)

        [notice] = center.active
        assert notice.type == NotificationType.ERROR
        assert center.dismiss(notice.id) is True
