"""
Tests for the notification dispatcher and sinks.
"""

import json

import pytest

from carpool.models.trip_offer import TripOffer, OfferStatus
from carpool.services import booking_service, cascade_service
from carpool.services.interfaces.notification_sink import CarpoolEvent, CarpoolEventType
from carpool.services.notification_service import (
    LoggingNotificationSink,
    NotificationDispatcher,
    RedisNotificationSink,
    build_notification_sink,
    set_dispatcher,
)
from conftest import FailingSink, RecordingSink, load


def _event(passenger_id: int = 10) -> CarpoolEvent:
    return CarpoolEvent(
        event_type=CarpoolEventType.TRIP_WITHDRAWN,
        passenger_id=passenger_id,
        trip_offer_id=1,
        outing_id=1,
    )


@pytest.mark.asyncio
async def test_dispatcher_delivers_each_event():
    sink = RecordingSink()
    dispatcher = NotificationDispatcher(sink)

    assert dispatcher.emit([_event(10), _event(11)]) == 2
    await dispatcher.drain()

    assert [e.passenger_id for e in sink.events] == [10, 11]


@pytest.mark.asyncio
async def test_dispatcher_swallows_sink_failures():
    dispatcher = NotificationDispatcher(FailingSink(), retry_backoff=0)

    dispatcher.emit([_event()])
    # Must not raise
    await dispatcher.drain()


class FlakySink(RecordingSink):
    """Fails the first `failures` publishes, then records."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def publish(self, event: CarpoolEvent) -> None:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("smtp relay unreachable")
        await super().publish(event)


@pytest.mark.asyncio
async def test_dispatcher_retries_transient_failure():
    """A sink that recovers within the attempt budget still gets the event, once."""
    sink = FlakySink(failures=2)
    dispatcher = NotificationDispatcher(sink, max_attempts=3, retry_backoff=0)

    dispatcher.emit([_event(10)])
    await dispatcher.drain()

    assert sink.attempts == 3
    assert [e.passenger_id for e in sink.events] == [10]


@pytest.mark.asyncio
async def test_dispatcher_gives_up_after_max_attempts():
    sink = FlakySink(failures=100)
    dispatcher = NotificationDispatcher(sink, max_attempts=4, retry_backoff=0)

    dispatcher.emit([_event()])
    await dispatcher.drain()

    assert sink.attempts == 4
    assert sink.events == []


@pytest.mark.asyncio
async def test_dispatcher_retry_defaults_from_settings():
    dispatcher = NotificationDispatcher(RecordingSink())
    assert dispatcher.max_attempts == 3
    assert dispatcher.retry_backoff == 0.5


@pytest.mark.asyncio
async def test_failing_sink_does_not_undo_cascade(session_factory, trip_offer):
    """The withdrawal stays committed when every notification fails."""
    dispatcher = NotificationDispatcher(FailingSink(), retry_backoff=0)
    set_dispatcher(dispatcher)

    async with session_factory() as db:
        await booking_service.book_seat(db, trip_offer.id, 10)
    async with session_factory() as db:
        result = await cascade_service.on_offer_withdrawn(db, trip_offer.id)

    await dispatcher.drain()

    assert len(result.cancelled_bookings) == 1
    offer = await load(session_factory, TripOffer, trip_offer.id)
    assert offer.status == OfferStatus.WITHDRAWN


@pytest.mark.asyncio
async def test_event_to_dict():
    data = _event().to_dict()
    assert data["event_type"] == "trip_withdrawn"
    assert data["passenger_id"] == 10
    # Serialisable as-is for the Redis queue
    assert json.loads(json.dumps(data))["occurred_at"] == data["occurred_at"]


@pytest.mark.asyncio
async def test_logging_sink_publishes():
    await LoggingNotificationSink().publish(_event())


@pytest.mark.asyncio
async def test_redis_sink_without_redis_fails():
    """REDIS_ENABLED is off in tests, so the sink reports the outage to the dispatcher."""
    with pytest.raises(RuntimeError):
        await RedisNotificationSink("carpool:notifications").publish(_event())


@pytest.mark.asyncio
async def test_default_sink_is_logging():
    assert isinstance(build_notification_sink(), LoggingNotificationSink)
