import asyncio
import datetime as dt

import pytest

from carequeue.queue.notifications import Notification, NotificationCenter, NotificationType


def test_notify_and_dismiss() -> None:
    changes: list[list[Notification]] = []
    center = NotificationCenter(ttl=0, on_change=changes.append)

    notice = center.success("Patient moved", "Jane Smith is in intake", booking_id="b1")

    assert notice.type == NotificationType.SUCCESS
    assert center.active == [notice]
    assert center.dismiss(notice.id) is True
    assert center.dismiss(notice.id) is False
    assert center.active == []
    assert len(changes) == 2


def test_clear() -> None:
    center = NotificationCenter(ttl=0)
    center.info("a", "1")
    center.warning("b", "2")

    center.clear()

    assert center.active == []


def test_expire_drops_only_old_auto_hide() -> None:
    center = NotificationCenter(ttl=5)
    old = center.info("Queue refreshed", "3 bookings")
    sticky = center.info("Pinned", "kept", auto_hide=False)

    dropped = center.expire(old.timestamp + dt.timedelta(seconds=6))

    assert dropped == [old]
    assert center.active == [sticky]


def test_expire_keeps_recent() -> None:
    center = NotificationCenter(ttl=5)
    notice = center.info("Heads up", "soon")

    assert center.expire(notice.timestamp + dt.timedelta(seconds=1)) == []


@pytest.mark.asyncio
async def test_auto_hide_after_ttl() -> None:
    center = NotificationCenter(ttl=0.01)
    center.info("Queue refreshed", "3 bookings")

    await asyncio.sleep(0.05)

    assert center.active == []


@pytest.mark.parametrize(
    "kind, auto_hide",
    [
        (NotificationType.INFO, True),
        (NotificationType.SUCCESS, True),
        (NotificationType.WARNING, False),
        (NotificationType.ERROR, False),
    ],
)
def test_default_auto_hide_by_type(kind: NotificationType, auto_hide: bool) -> None:
    center = NotificationCenter(ttl=0)

    assert center.notify(kind, "t", "m").auto_hide is auto_hide


def test_errors_survive_expiry_until_dismissed() -> None:
    center = NotificationCenter(ttl=5)
    notice = center.error("Failed to start call", "network timeout")

    assert center.expire(notice.timestamp + dt.timedelta(minutes=10)) == []
    assert center.active == [notice]


@pytest.mark.asyncio
async def test_error_is_not_timed_out() -> None:
    center = NotificationCenter(ttl=0.01)
    notice = center.error("Failed to complete call", "boom")

    await asyncio.sleep(0.05)

    assert center.active == [notice]
