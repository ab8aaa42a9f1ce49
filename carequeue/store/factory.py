from typing import Callable

from loguru import logger

from carequeue.config import AppConfig, StoreBackend
from carequeue.store.adapters.memory import InMemoryStoreClient
from carequeue.store.adapters.rest import PostgrestStoreClient
from carequeue.store.service import BookingStore


def _build_rest(config: AppConfig) -> BookingStore:
    client = PostgrestStoreClient(
        base_url=config.supabase.url,
        api_key=config.supabase.service_role_key or config.supabase.anon_key,
        access_token=config.supabase.access_token,
        timeout=config.supabase.timeout,
    )
    return BookingStore(client)


def _build_memory(config: AppConfig) -> BookingStore:
    return BookingStore(InMemoryStoreClient())


_BUILDERS: dict[StoreBackend, Callable[[AppConfig], BookingStore]] = {
    StoreBackend.REST: _build_rest,
    StoreBackend.MEMORY: _build_memory,
}


def build_booking_store(config: AppConfig) -> BookingStore:
    """Build the booking store selected by config."""
    backend = config.store_backend
    logger.info("Building booking store with backend: {}", backend.value)
    return _BUILDERS[backend](config)
