"""
Notification sinks and the fire-and-forget dispatcher.

Cascades hand their events to the dispatcher only after their transaction
has committed. Each event is delivered on its own asyncio task; a failing
sink is retried a bounded number of times, then logged and counted, and
never reaches the request that triggered the cascade.
"""

import asyncio
import json
from typing import Iterable, Optional

from carpool.core.config import get_settings
from carpool.core.logging import get_logger
from carpool.core.metrics import record_notification
from carpool.infrastructure.redis_client import get_redis
from carpool.services.interfaces.notification_sink import CarpoolEvent, NotificationSink

logger = get_logger(__name__)


class LoggingNotificationSink(NotificationSink):
    """Default sink: records the event in the structured log."""

    async def publish(self, event: CarpoolEvent) -> None:
        logger.info("carpool_notification", **event.to_dict())


class RedisNotificationSink(NotificationSink):
    """
    Pushes events onto a Redis list consumed by the email/SMS worker.

    Delivery is at-least-once from the worker's point of view; consumers
    dedupe on (event_type, passenger_id, trip_offer_id).
    """

    def __init__(self, queue_key: str):
        self.queue_key = queue_key

    async def publish(self, event: CarpoolEvent) -> None:
        client = await get_redis()
        if client is None:
            raise RuntimeError("Redis is not available for notifications")
        await client.lpush(self.queue_key, json.dumps(event.to_dict()))


class NotificationDispatcher:
    """
    Delivers each event on its own task, retrying a failing sink
    `max_attempts` times with exponential backoff before giving up.
    """

    def __init__(
        self,
        sink: NotificationSink,
        max_attempts: Optional[int] = None,
        retry_backoff: Optional[float] = None,
    ):
        settings = get_settings()
        self.sink = sink
        self.max_attempts = max(1, max_attempts or settings.NOTIFICATION_MAX_ATTEMPTS)
        self.retry_backoff = (
            settings.NOTIFICATION_RETRY_BACKOFF if retry_backoff is None else retry_backoff
        )
        self._pending: set[asyncio.Task] = set()

    def emit(self, events: Iterable[CarpoolEvent]) -> int:
        """Schedule delivery of each event and return immediately."""
        count = 0
        for event in events:
            task = asyncio.create_task(self._deliver(event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            count += 1
        return count

    async def _deliver(self, event: CarpoolEvent) -> None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.sink.publish(event)
            except Exception as e:
                if attempt < self.max_attempts:
                    logger.warning(
                        "notification_retry",
                        event_type=event.event_type,
                        passenger_id=event.passenger_id,
                        attempt=attempt,
                        error=str(e),
                    )
                    await asyncio.sleep(self.retry_backoff * 2 ** (attempt - 1))
                    continue
                logger.error(
                    "notification_failed",
                    event_type=event.event_type,
                    passenger_id=event.passenger_id,
                    trip_offer_id=event.trip_offer_id,
                    attempts=attempt,
                    error=str(e),
                )
                record_notification(event.event_type, delivered=False)
                return
            record_notification(event.event_type, delivered=True)
            return

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending))


def build_notification_sink() -> NotificationSink:
    """
    Sink selection via NOTIFICATION_SINK:
    - "log" (default): LoggingNotificationSink
    - "redis": RedisNotificationSink on NOTIFICATION_QUEUE_KEY
    """
    settings = get_settings()
    if settings.NOTIFICATION_SINK == "redis":
        return RedisNotificationSink(settings.NOTIFICATION_QUEUE_KEY)
    return LoggingNotificationSink()


_dispatcher: Optional[NotificationDispatcher] = None


def get_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(build_notification_sink())
    return _dispatcher


def set_dispatcher(dispatcher: Optional[NotificationDispatcher]) -> None:
    """Replace the process-wide dispatcher; None rebuilds it from settings."""
    global _dispatcher
    _dispatcher = dispatcher
