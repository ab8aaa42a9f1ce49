import asyncio
import sys

from loguru import logger

from carequeue.config import AppConfig
from carequeue.queue.cache import BookingCache, CacheSnapshot
from carequeue.queue.filters import queue_stats
from carequeue.queue.service import QueueService
from carequeue.store.factory import build_booking_store


def log_queue(snapshot: CacheSnapshot) -> None:
    stats = queue_stats(snapshot.bookings)
    logger.info(
        "Queue: total={} confirmed={} intake={} ready={} in-call={} discharge={}",
        stats.total,
        stats.confirmed,
        stats.intake,
        stats.ready_for_provider,
        stats.provider,
        stats.ready_for_discharge,
    )


async def run_monitor(config: AppConfig, *, auto_advance: bool = False) -> None:
    logger.info("Starting telehealth queue monitor")

    store = build_booking_store(config)
    if not await store.health_check():
        logger.error("Booking store is not reachable")
        await store.close()
        return

    cache = BookingCache(store, poll_interval=config.queue.poll_interval_seconds)
    queue = QueueService(cache, config=config.queue)

    await cache.init(log_queue)
    try:
        while True:
            if auto_advance and await queue.auto_advance_queue():
                next_up = queue.get_next_patient()
                logger.info("Next patient for provider: {}", next_up.id if next_up else "none")
            await asyncio.sleep(config.queue.poll_interval_seconds)
    finally:
        await cache.teardown()
        await store.close()


def main() -> None:
    config = AppConfig()
    logger.remove()
    logger.add(sys.stderr, level=config.log_level)
    try:
        asyncio.run(run_monitor(config, auto_advance="--auto-advance" in sys.argv))
    except KeyboardInterrupt:
        logger.info("Monitor stopped")


if __name__ == "__main__":
    main()
