"""Notification Dispatcher — fire-and-forget side effects of state changes.

The engines call `notify()` only after their database transaction has
committed. Delivery (email/SMS) is done by a separate worker that consumes
the Redis stream; this module never raises into the caller.
"""

import asyncio
import json
import logging
from typing import Any, Protocol

from config.settings import settings
from src.esc_common.datetime_utils import utc_now
from src.esc_common.enums import NotificationEvent
from src.esc_common.redis_client import get_redis

logger = logging.getLogger(__name__)


class NotificationDispatcherProtocol(Protocol):
    async def dispatch(self, event: NotificationEvent, payload: dict[str, Any]) -> None: ...


class LoggingNotificationDispatcher:
    """Used when NOTIFICATIONS_ENABLED is false; events only reach the log."""

    async def dispatch(self, event: NotificationEvent, payload: dict[str, Any]) -> None:
        logger.info("notification %s %s", event.value, payload)


class RedisNotificationDispatcher:
    """Appends events to a Redis stream (XADD) for the delivery worker."""

    def __init__(self, stream: str | None = None, maxlen: int = 100_000) -> None:
        self._stream = stream or settings.NOTIFICATION_STREAM
        self._maxlen = maxlen

    async def dispatch(self, event: NotificationEvent, payload: dict[str, Any]) -> None:
        redis = await get_redis()
        await redis.xadd(
            self._stream,
            {
                "event": event.value,
                "payload": json.dumps(payload, default=str),
                "emitted_at": utc_now().isoformat(),
            },
            maxlen=self._maxlen,
            approximate=True,
        )


async def notify(
    dispatcher: NotificationDispatcherProtocol,
    event: NotificationEvent,
    payload: dict[str, Any],
    timeout: float | None = None,
) -> None:
    """Dispatch one event; failures and timeouts are logged, never raised."""
    limit = settings.NOTIFICATION_TIMEOUT_SECONDS if timeout is None else timeout
    try:
        await asyncio.wait_for(dispatcher.dispatch(event, payload), timeout=limit)
    except asyncio.TimeoutError:
        logger.warning("notification %s timed out after %.1fs", event.value, limit)
    except Exception:
        logger.exception("notification %s failed", event.value)


_dispatcher: NotificationDispatcherProtocol | None = None


def get_dispatcher() -> NotificationDispatcherProtocol:
    global _dispatcher  # noqa: PLW0603
    if _dispatcher is None:
        _dispatcher = (
            RedisNotificationDispatcher()
            if settings.NOTIFICATIONS_ENABLED
            else LoggingNotificationDispatcher()
        )
    return _dispatcher
