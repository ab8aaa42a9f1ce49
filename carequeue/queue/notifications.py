import asyncio
import datetime as dt
import uuid
from enum import Enum
from typing import Callable

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    """A short-lived message for the operator. Never persisted."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: NotificationType
    title: str
    message: str
    timestamp: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    booking_id: str | None = None
    patient_name: str | None = None
    auto_hide: bool = True


AUTO_HIDE_TYPES: frozenset[NotificationType] = frozenset(
    {NotificationType.INFO, NotificationType.SUCCESS}
)


class NotificationCenter:
    """Holds active notifications. ``auto_hide`` ones are dismissed after ``ttl`` seconds.

    Expiry timers need a running event loop. Without one, notifications stay
    until dismissed or ``expire()`` is called.
    """

    def __init__(
        self,
        ttl: float = 5.0,
        on_change: Callable[[list[Notification]], None] | None = None,
    ) -> None:
        self._ttl = ttl
        self._on_change = on_change
        self._items: dict[str, Notification] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    @property
    def active(self) -> list[Notification]:
        return list(self._items.values())

    def notify(
        self,
        type: NotificationType,
        title: str,
        message: str,
        *,
        booking_id: str | None = None,
        patient_name: str | None = None,
        auto_hide: bool | None = None,
    ) -> Notification:
        """Add a notification. Info and success hide themselves by default, warnings and errors stay."""
        if auto_hide is None:
            auto_hide = type in AUTO_HIDE_TYPES
        notification = Notification(
            type=type,
            title=title,
            message=message,
            booking_id=booking_id,
            patient_name=patient_name,
            auto_hide=auto_hide,
        )
        self._items[notification.id] = notification
        if auto_hide and self._ttl > 0:
            self._schedule_expiry(notification.id)
        self._changed()
        return notification

    def info(self, title: str, message: str, **kwargs: object) -> Notification:
        return self.notify(NotificationType.INFO, title, message, **kwargs)  # type: ignore[arg-type]

    def success(self, title: str, message: str, **kwargs: object) -> Notification:
        return self.notify(NotificationType.SUCCESS, title, message, **kwargs)  # type: ignore[arg-type]

    def warning(self, title: str, message: str, **kwargs: object) -> Notification:
        return self.notify(NotificationType.WARNING, title, message, **kwargs)  # type: ignore[arg-type]

    def error(self, title: str, message: str, **kwargs: object) -> Notification:
        return self.notify(NotificationType.ERROR, title, message, **kwargs)  # type: ignore[arg-type]

    def dismiss(self, notification_id: str) -> bool:
        timer = self._timers.pop(notification_id, None)
        if timer is not None:
            timer.cancel()
        if self._items.pop(notification_id, None) is None:
            return False
        self._changed()
        return True

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._items.clear()
        self._changed()

    def expire(self, now: dt.datetime | None = None) -> list[Notification]:
        """Drop auto-hide notifications older than the TTL. Returns what was dropped."""
        now = now or dt.datetime.now(dt.timezone.utc)
        cutoff = now - dt.timedelta(seconds=self._ttl)
        expired = [n for n in self._items.values() if n.auto_hide and n.timestamp <= cutoff]
        for notification in expired:
            self.dismiss(notification.id)
        return expired

    def _schedule_expiry(self, notification_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop; notification {} will not auto-expire", notification_id)
            return
        self._timers[notification_id] = loop.call_later(self._ttl, self.dismiss, notification_id)

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.active)
