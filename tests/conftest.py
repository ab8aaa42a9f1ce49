import pytest

from carequeue.queue.cache import BookingCache
from carequeue.queue.notifications import NotificationCenter
from carequeue.queue.service import QueueService
from carequeue.store.adapters.memory import InMemoryStoreClient
from carequeue.store.service import BookingStore
from tests.factories import ALEX, JANE, JOHN


@pytest.fixture
def memory_client() -> InMemoryStoreClient:
    client = InMemoryStoreClient()
    for patient in (JANE, JOHN, ALEX):
        client.add_patient(patient)
    return client


@pytest.fixture
def store(memory_client: InMemoryStoreClient) -> BookingStore:
    return BookingStore(client=memory_client)


@pytest.fixture
def cache(store: BookingStore) -> BookingCache:
    """A cache with polling disabled; call ``refresh()`` after seeding."""
    return BookingCache(store, poll_interval=0)


@pytest.fixture
def notifications() -> NotificationCenter:
    return NotificationCenter(ttl=0)


@pytest.fixture
def queue(cache: BookingCache, notifications: NotificationCenter) -> QueueService:
    return QueueService(cache, notifications=notifications)
