import asyncio

import pytest

from carequeue.domain.exceptions import StoreUnavailableError
from carequeue.domain.models import BookingStatus, BookingWithPatient
from carequeue.queue.waiting_room import WaitingRoomMonitor, WaitingRoomState
from carequeue.store.adapters.memory import InMemoryStoreClient
from carequeue.store.service import BookingStore
from tests.factories import make_booking

# Fixtures (memory_client, store) provided by tests/conftest.py


class Recorder:
    def __init__(self) -> None:
        self.started: list[BookingWithPatient] = []
        self.exited: list[BookingWithPatient | None] = []

    def monitor(self, store: BookingStore, booking_id: str = "b1", interval: float = 0.01) -> WaitingRoomMonitor:
        return WaitingRoomMonitor(
            store,
            booking_id,
            on_call_started=self.started.append,
            on_exit=self.exited.append,
            interval=interval,
        )


@pytest.mark.asyncio
async def test_still_waiting(store: BookingStore, memory_client: InMemoryStoreClient) -> None:
    memory_client.add_booking(make_booking("b1", "ready-for-provider"))
    recorder = Recorder()

    state = await recorder.monitor(store).check()

    assert state == WaitingRoomState.WAITING
    assert recorder.started == [] and recorder.exited == []


@pytest.mark.asyncio
async def test_call_started_fires_once(
    store: BookingStore, memory_client: InMemoryStoreClient
) -> None:
    memory_client.add_booking(make_booking("b1", "provider"))
    recorder = Recorder()
    monitor = recorder.monitor(store)

    await monitor.check()
    await monitor.check()

    assert monitor.state == WaitingRoomState.CALL_STARTED
    assert [b.id for b in recorder.started] == ["b1"]


@pytest.mark.asyncio
async def test_cancelled_booking_exits(
    store: BookingStore, memory_client: InMemoryStoreClient
) -> None:
    memory_client.add_booking(make_booking("b1", "cancelled"))
    recorder = Recorder()

    assert await recorder.monitor(store).check() == WaitingRoomState.EXITED
    assert recorder.exited[0].status == BookingStatus.CANCELLED  # type: ignore[union-attr]


@pytest.mark.asyncio
async def test_deleted_booking_exits(store: BookingStore) -> None:
    recorder = Recorder()

    assert await recorder.monitor(store).check() == WaitingRoomState.EXITED
    assert recorder.exited == [None]


@pytest.mark.asyncio
async def test_store_outage_keeps_waiting(
    store: BookingStore, memory_client: InMemoryStoreClient
) -> None:
    memory_client.add_booking(make_booking("b1", "intake"))
    memory_client.select_error = StoreUnavailableError("offline")
    recorder = Recorder()

    assert await recorder.monitor(store).check() == WaitingRoomState.WAITING
    assert recorder.exited == []


@pytest.mark.asyncio
async def test_polling_detects_provider_joining(
    store: BookingStore, memory_client: InMemoryStoreClient
) -> None:
    memory_client.add_booking(make_booking("b1", "ready-for-provider"))
    recorder = Recorder()
    monitor = recorder.monitor(store)

    assert await monitor.start() == WaitingRoomState.WAITING
    memory_client.add_booking(make_booking("b1", "provider"))
    await asyncio.sleep(0.05)
    await monitor.stop()

    assert monitor.state == WaitingRoomState.CALL_STARTED
    assert len(recorder.started) == 1


@pytest.mark.asyncio
async def test_leave_returns_booking_to_confirmed(
    store: BookingStore, memory_client: InMemoryStoreClient
) -> None:
    memory_client.add_booking(make_booking("b1", "intake"))
    recorder = Recorder()
    monitor = recorder.monitor(store, interval=10)
    await monitor.start()

    booking = await monitor.leave()

    assert booking.status == BookingStatus.CONFIRMED
    assert memory_client.bookings["b1"].status == BookingStatus.CONFIRMED
    assert monitor.state == WaitingRoomState.EXITED
    assert recorder.exited == [booking]
