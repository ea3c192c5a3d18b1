"""
Notification sink

The engine only needs a fire-and-forget ``notify(...)``. Delivery is somebody
else's problem; a failing sink must never fail the operation that triggered
it, so callers go through ``dispatch_notification`` which isolates errors.
"""

from typing import Optional, Protocol
from sqlalchemy.ext.asyncio import async_sessionmaker
from .config import settings
from ..models.notification import Notification
import logging

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    async def notify(
        self,
        recipient_id: int,
        title: str,
        message: str,
        category: str,
        related_id: Optional[int] = None,
    ) -> None:
        ...


class LoggingNotificationSink:
    """Sink that only writes notifications to the log"""

    async def notify(self, recipient_id, title, message, category, related_id=None):
        logger.info(f"Notification for user {recipient_id} [{category}]: {title} - {message}")


class DatabaseNotificationSink:
    """Stores notifications as rows, using its own session"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def notify(self, recipient_id, title, message, category, related_id=None):
        async with self.session_factory() as session:
            session.add(Notification(
                user_id=recipient_id,
                title=title,
                message=message,
                category=category,
                related_id=related_id,
            ))
            await session.commit()


async def dispatch_notification(
    sink: Optional[NotificationSink],
    recipient_id: int,
    title: str,
    message: str,
    category: str,
    related_id: Optional[int] = None,
) -> bool:
    """Best-effort delivery. Returns False when the sink failed."""
    if sink is None:
        return False
    try:
        await sink.notify(recipient_id, title, message, category, related_id)
        return True
    except Exception as e:
        logger.warning(f"Notification to user {recipient_id} ({category}) failed: {e}")
        return False


def build_notification_sink(session_factory: async_sessionmaker = None) -> NotificationSink:
    if settings.notification_backend == "log" or session_factory is None:
        return LoggingNotificationSink()
    return DatabaseNotificationSink(session_factory)


_default_sink: Optional[NotificationSink] = None


def get_notifier() -> NotificationSink:
    """FastAPI dependency returning the configured sink"""
    global _default_sink
    if _default_sink is None:
        from .database import AsyncSessionLocal
        _default_sink = build_notification_sink(AsyncSessionLocal)
    return _default_sink
