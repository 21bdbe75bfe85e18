"""
Tests for withdrawal and outing-cancellation cascades.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import inspect, select

from carpool.core.exceptions import AlreadyCancelled, NotOwner, OfferNotActive, OutingNotFound
from carpool.models.booking import Booking, BookingStatus, CancellationReason
from carpool.models.outing import Outing, OutingStatus
from carpool.models.trip_offer import TripOffer, OfferStatus
from carpool.services import booking_service, cascade_service, outing_service
from carpool.services.interfaces.notification_sink import CarpoolEventType
from carpool.services.notification_service import get_dispatcher
from conftest import DRIVER_ID, ORGANIZER_ID, auth_headers_for, load


async def _book(session_factory, offer_id: int, passenger_id: int) -> Booking:
    async with session_factory() as db:
        return await booking_service.book_seat(db, offer_id, passenger_id)


async def _bookings_of(session_factory, offer_id: int) -> list[Booking]:
    async with session_factory() as db:
        result = await db.execute(
            select(Booking).where(Booking.trip_offer_id == offer_id).order_by(Booking.id)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_withdraw_cancels_every_booking(session_factory, trip_offer, notification_sink):
    for passenger_id in (10, 11, 12):
        await _book(session_factory, trip_offer.id, passenger_id)

    async with session_factory() as db:
        result = await cascade_service.on_offer_withdrawn(db, trip_offer.id)

    assert result.offer_ids == [trip_offer.id]
    assert sorted(b.passenger_id for b in result.cancelled_bookings) == [10, 11, 12]

    offer = await load(session_factory, TripOffer, trip_offer.id)
    assert offer.status == OfferStatus.WITHDRAWN
    assert offer.withdrawn_at is not None
    assert offer.confirmed_count == 0

    for booking in await _bookings_of(session_factory, trip_offer.id):
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancellation_reason == CancellationReason.TRIP_WITHDRAWN
        assert booking.cancelled_at is not None

    await get_dispatcher().drain()
    assert sorted(e.passenger_id for e in notification_sink.events) == [10, 11, 12]
    assert {e.event_type for e in notification_sink.events} == {CarpoolEventType.TRIP_WITHDRAWN}
    assert {e.trip_offer_id for e in notification_sink.events} == {trip_offer.id}


@pytest.mark.asyncio
async def test_withdraw_skips_already_cancelled_bookings(session_factory, trip_offer, notification_sink):
    kept = await _book(session_factory, trip_offer.id, 10)
    left = await _book(session_factory, trip_offer.id, 11)
    async with session_factory() as db:
        await booking_service.cancel_booking(db, left.id, 11)

    async with session_factory() as db:
        result = await cascade_service.on_offer_withdrawn(db, trip_offer.id)

    assert [b.id for b in result.cancelled_bookings] == [kept.id]
    untouched = await load(session_factory, Booking, left.id)
    assert untouched.cancellation_reason == CancellationReason.PASSENGER_CANCELLED

    await get_dispatcher().drain()
    assert [e.passenger_id for e in notification_sink.events] == [10]


@pytest.mark.asyncio
async def test_withdraw_without_bookings(session_factory, trip_offer, notification_sink):
    async with session_factory() as db:
        result = await cascade_service.on_offer_withdrawn(db, trip_offer.id)

    assert result.cancelled_bookings == []
    await get_dispatcher().drain()
    assert notification_sink.events == []


@pytest.mark.asyncio
async def test_withdraw_already_withdrawn(session_factory, trip_offer):
    async with session_factory() as db:
        await cascade_service.on_offer_withdrawn(db, trip_offer.id)
    async with session_factory() as db:
        with pytest.raises(OfferNotActive):
            await cascade_service.on_offer_withdrawn(db, trip_offer.id)


@pytest.mark.asyncio
async def test_cancel_after_withdraw_is_already_cancelled(session_factory, trip_offer):
    """A passenger cancelling after the cascade sees already_cancelled, counts stay at 0."""
    booking = await _book(session_factory, trip_offer.id, 10)
    async with session_factory() as db:
        await cascade_service.on_offer_withdrawn(db, trip_offer.id)

    async with session_factory() as db:
        with pytest.raises(AlreadyCancelled):
            await booking_service.cancel_booking(db, booking.id, 10)

    offer = await load(session_factory, TripOffer, trip_offer.id)
    assert offer.confirmed_count == 0


@pytest.mark.asyncio
async def test_outing_cancel_withdraws_all_offers(
    session_factory, outing, trip_offer, second_offer, notification_sink
):
    await _book(session_factory, trip_offer.id, 10)
    await _book(session_factory, second_offer.id, 11)
    await _book(session_factory, second_offer.id, 12)

    async with session_factory() as db:
        result = await outing_service.cancel_outing(db, outing.id, ORGANIZER_ID)

    assert sorted(result.offer_ids) == sorted([trip_offer.id, second_offer.id])
    assert len(result.cancelled_bookings) == 3

    stored_outing = await load(session_factory, Outing, outing.id)
    assert stored_outing.status == OutingStatus.CANCELLED
    assert stored_outing.cancelled_at is not None

    for offer_id in (trip_offer.id, second_offer.id):
        offer = await load(session_factory, TripOffer, offer_id)
        assert offer.status == OfferStatus.WITHDRAWN
        assert offer.confirmed_count == 0
        for booking in await _bookings_of(session_factory, offer_id):
            assert booking.status == BookingStatus.CANCELLED
            assert booking.cancellation_reason == CancellationReason.OUTING_CANCELLED

    await get_dispatcher().drain()
    assert sorted(e.passenger_id for e in notification_sink.events) == [10, 11, 12]
    assert {e.event_type for e in notification_sink.events} == {CarpoolEventType.OUTING_CANCELLED}
    assert {e.outing_id for e in notification_sink.events} == {outing.id}


@pytest.mark.asyncio
async def test_outing_cancel_is_idempotent(session_factory, outing, trip_offer, notification_sink):
    await _book(session_factory, trip_offer.id, 10)

    async with session_factory() as db:
        first = await cascade_service.on_outing_cancelled(db, outing.id)
    async with session_factory() as db:
        second = await cascade_service.on_outing_cancelled(db, outing.id)

    assert first.offer_ids == [trip_offer.id]
    assert len(first.cancelled_bookings) == 1
    assert second.offer_ids == []
    assert second.cancelled_bookings == []

    await get_dispatcher().drain()
    assert len(notification_sink.events) == 1


@pytest.mark.asyncio
async def test_outing_cancel_without_offers(session_factory, outing):
    async with session_factory() as db:
        result = await cascade_service.on_outing_cancelled(db, outing.id)

    assert result.offer_ids == []
    stored = await load(session_factory, Outing, outing.id)
    assert stored.status == OutingStatus.CANCELLED


@pytest.mark.asyncio
async def test_outing_cancel_leaves_withdrawn_offers_alone(session_factory, outing, trip_offer, second_offer):
    async with session_factory() as db:
        await cascade_service.on_offer_withdrawn(db, trip_offer.id)
    withdrawn_before = await load(session_factory, TripOffer, trip_offer.id)

    async with session_factory() as db:
        result = await cascade_service.on_outing_cancelled(db, outing.id)

    assert result.offer_ids == [second_offer.id]
    withdrawn_after = await load(session_factory, TripOffer, trip_offer.id)
    assert withdrawn_after.version == withdrawn_before.version


@pytest.mark.asyncio
async def test_outing_cancel_unknown(db_session):
    with pytest.raises(OutingNotFound):
        await cascade_service.on_outing_cancelled(db_session, 99999)


@pytest.mark.asyncio
async def test_outing_cancel_requires_organizer(session_factory, outing, trip_offer):
    async with session_factory() as db:
        with pytest.raises(NotOwner):
            await outing_service.cancel_outing(db, outing.id, DRIVER_ID)

    offer = await load(session_factory, TripOffer, trip_offer.id)
    assert offer.status == OfferStatus.ACTIVE


@pytest.mark.asyncio
async def test_outing_cancel_http(client: AsyncClient, outing, trip_offer):
    booked = await client.post(
        "/api/v1/bookings/", json={"trip_offer_id": trip_offer.id}, headers=auth_headers_for(10)
    )
    organizer = auth_headers_for(ORGANIZER_ID)

    response = await client.post(f"/api/v1/outings/{outing.id}/cancel", headers=organizer)
    assert response.status_code == 200
    assert response.json() == {
        "outing_id": outing.id,
        "status": "cancelled",
        "withdrawn_offer_ids": [trip_offer.id],
        "cancelled_booking_ids": [booked.json()["id"]],
    }

    again = await client.post(f"/api/v1/outings/{outing.id}/cancel", headers=organizer)
    assert again.status_code == 200
    assert again.json()["withdrawn_offer_ids"] == []

    rebook = await client.post(
        "/api/v1/bookings/", json={"trip_offer_id": trip_offer.id}, headers=auth_headers_for(11)
    )
    assert rebook.status_code == 409
    assert rebook.json()["error"] == "offer_not_active"


@pytest.mark.asyncio
async def test_models_have_no_orm_relationships():
    """Cascades load bookings and offers by query; nothing is lazy-loaded behind them."""
    for model in (Outing, TripOffer, Booking):
        assert not inspect(model).relationships
