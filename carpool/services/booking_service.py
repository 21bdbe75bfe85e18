"""
Booking coordinator: the only place seats are claimed and released.

CONCURRENCY STRATEGY: Conditional increment under a per-offer lock
==================================================================

Problem:
  Two passengers try to book the last seat of a trip simultaneously.
  Both read confirmed_count = seats_total - 1, both insert a booking.
  Result: an overfull car.

Solution:
  The seat is claimed with one conditional UPDATE:

    UPDATE trip_offers
       SET confirmed_count = confirmed_count + 1, version = version + 1
     WHERE id = :offer_id
       AND status = 'active'
       AND confirmed_count < seats_total

  and the booking row is inserted in the same transaction. If rowcount is 0
  the seat was not available (or the trip was withdrawn meanwhile) and the
  request fails with TripFull / OfferNotActive. The UPDATE takes the row
  lock, so in PostgreSQL a second writer waits and re-evaluates the WHERE
  clause against the committed count: exactly one caller gets the last seat.

  On top of that:
  - A per-offer asyncio lock serialises the whole step inside one worker,
    so same-process contenders queue instead of piling onto the row lock.
    Unrelated offers never contend.
  - The partial unique index on bookings (outing_id, passenger_id) WHERE
    status = 'confirmed' backs the one-seat-per-outing rule; an
    IntegrityError on insert rolls the seat claim back and is reported as
    AlreadyBooked.
  - CHECK (confirmed_count <= seats_total) is the final safety net.

Conflicts are reported, not retried: losing the race for the last seat is
an answer the passenger has to act on.
"""

import time
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.core.exceptions import (
    AlreadyBooked,
    AlreadyCancelled,
    BookingNotFound,
    CarpoolError,
    NotOwner,
    OfferNotActive,
    OfferNotFound,
    OutingCancelled,
    OutingStarted,
    SelfBooking,
    TripFull,
)
from carpool.core.logging import get_logger
from carpool.core.metrics import booking_latency, record_booking_attempt, record_cancellations
from carpool.db.base import utcnow
from carpool.models.booking import Booking, BookingStatus, CancellationReason
from carpool.models.trip_offer import TripOffer, OfferStatus
from carpool.services.cache_service import invalidate_outing_summary
from carpool.services.interfaces.notification_sink import CarpoolEvent, CarpoolEventType
from carpool.services.interfaces.outing_registry import OutingRegistry
from carpool.services.notification_service import get_dispatcher
from carpool.services.offer_locks import get_offer_lock
from carpool.services.outing_service import SqlOutingRegistry

logger = get_logger(__name__)


async def _load_offer(db: AsyncSession, offer_id: int) -> Optional[TripOffer]:
    result = await db.execute(
        select(TripOffer)
        .where(TripOffer.id == offer_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _load_booking(db: AsyncSession, booking_id: int) -> Booking:
    result = await db.execute(
        select(Booking)
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    booking = result.scalar_one_or_none()
    if booking is None:
        raise BookingNotFound()
    return booking


async def _claim_seat(
    db: AsyncSession,
    trip_offer_id: int,
    passenger_id: int,
    outings: OutingRegistry,
) -> Booking:
    offer = await _load_offer(db, trip_offer_id)
    if offer is None:
        raise OfferNotFound()
    if offer.driver_id == passenger_id:
        raise SelfBooking()
    if offer.status != OfferStatus.ACTIVE:
        raise OfferNotActive()
    if await outings.is_cancelled(offer.outing_id):
        raise OutingCancelled()
    if await outings.is_started(offer.outing_id):
        raise OutingStarted()

    existing = await db.execute(
        select(Booking).where(
            Booking.outing_id == offer.outing_id,
            Booking.passenger_id == passenger_id,
            Booking.status == BookingStatus.CONFIRMED,
        )
    )
    held = existing.scalars().first()
    if held is not None:
        raise AlreadyBooked(trip_offer_id=held.trip_offer_id)

    claim = await db.execute(
        update(TripOffer)
        .where(
            TripOffer.id == trip_offer_id,
            TripOffer.status == OfferStatus.ACTIVE,
            TripOffer.confirmed_count < TripOffer.seats_total,
        )
        .values(
            confirmed_count=TripOffer.confirmed_count + 1,
            version=TripOffer.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if claim.rowcount == 0:
        # Classify the miss against the committed state
        offer = await _load_offer(db, trip_offer_id)
        if offer is None or offer.status != OfferStatus.ACTIVE:
            raise OfferNotActive()
        raise TripFull(seats_total=offer.seats_total)

    booking = Booking(
        trip_offer_id=trip_offer_id,
        outing_id=offer.outing_id,
        passenger_id=passenger_id,
        status=BookingStatus.CONFIRMED,
    )
    db.add(booking)
    try:
        await db.flush()
    except IntegrityError:
        # A concurrent request for another trip of the same outing won
        raise AlreadyBooked()
    return booking


async def book_seat(
    db: AsyncSession,
    trip_offer_id: int,
    passenger_id: int,
    outings: Optional[OutingRegistry] = None,
) -> Booking:
    """
    Reserve one seat on a trip offer for a passenger.

    Raises OfferNotFound, SelfBooking, OfferNotActive, OutingCancelled,
    OutingStarted, AlreadyBooked or TripFull; nothing is written on failure.
    """
    outings = outings or SqlOutingRegistry(db)
    start = time.perf_counter()

    async with get_offer_lock(trip_offer_id):
        try:
            booking = await _claim_seat(db, trip_offer_id, passenger_id, outings)
            await db.commit()
        except CarpoolError as e:
            await db.rollback()
            record_booking_attempt(e.code)
            logger.info(
                "booking_rejected",
                trip_offer_id=trip_offer_id,
                passenger_id=passenger_id,
                reason=e.code,
            )
            raise
        except Exception:
            await db.rollback()
            record_booking_attempt("error")
            raise

    booking_latency.observe(time.perf_counter() - start)
    record_booking_attempt("success")
    logger.info(
        "booking_created",
        booking_id=booking.id,
        trip_offer_id=trip_offer_id,
        outing_id=booking.outing_id,
        passenger_id=passenger_id,
    )
    await invalidate_outing_summary(booking.outing_id)
    return booking


async def _release_seat(db: AsyncSession, booking: Booking, reason: str) -> Booking:
    async with get_offer_lock(booking.trip_offer_id):
        try:
            now = utcnow()
            released = await db.execute(
                update(Booking)
                .where(
                    Booking.id == booking.id,
                    Booking.status == BookingStatus.CONFIRMED,
                )
                .values(
                    status=BookingStatus.CANCELLED,
                    cancelled_at=now,
                    cancellation_reason=reason,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if released.rowcount == 0:
                raise AlreadyCancelled()

            # A withdrawn offer already had its count reset by the cascade
            await db.execute(
                update(TripOffer)
                .where(
                    TripOffer.id == booking.trip_offer_id,
                    TripOffer.status == OfferStatus.ACTIVE,
                    TripOffer.confirmed_count > 0,
                )
                .values(
                    confirmed_count=TripOffer.confirmed_count - 1,
                    version=TripOffer.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    booking = await _load_booking(db, booking.id)
    record_cancellations(reason)
    await invalidate_outing_summary(booking.outing_id)
    return booking


async def cancel_booking(
    db: AsyncSession,
    booking_id: int,
    requester_id: int,
) -> Booking:
    """Cancel a booking on behalf of its passenger and release the seat."""
    booking = await _load_booking(db, booking_id)

    if booking.passenger_id != requester_id:
        raise NotOwner("Only the passenger can cancel this booking")
    if booking.status == BookingStatus.CANCELLED:
        raise AlreadyCancelled()

    booking = await _release_seat(db, booking, CancellationReason.PASSENGER_CANCELLED)

    logger.info(
        "booking_cancelled",
        booking_id=booking.id,
        trip_offer_id=booking.trip_offer_id,
        passenger_id=requester_id,
    )
    return booking


async def remove_passenger(
    db: AsyncSession,
    booking_id: int,
    driver_id: int,
) -> Booking:
    """
    Cancel a booking on behalf of the trip's driver.

    Lets a driver shrink the passenger list before lowering seats_total; the
    passenger is notified with a passenger_removed event.
    """
    booking = await _load_booking(db, booking_id)
    offer = await _load_offer(db, booking.trip_offer_id)

    if offer is None or offer.driver_id != driver_id:
        raise NotOwner("Only the driver can remove passengers from this trip")
    if booking.status == BookingStatus.CANCELLED:
        raise AlreadyCancelled()

    booking = await _release_seat(db, booking, CancellationReason.DRIVER_REMOVED)

    logger.info(
        "passenger_removed",
        booking_id=booking.id,
        trip_offer_id=booking.trip_offer_id,
        passenger_id=booking.passenger_id,
        driver_id=driver_id,
    )
    get_dispatcher().emit([
        CarpoolEvent(
            event_type=CarpoolEventType.PASSENGER_REMOVED,
            passenger_id=booking.passenger_id,
            trip_offer_id=booking.trip_offer_id,
            outing_id=booking.outing_id,
        )
    ])
    return booking


async def list_bookings(
    db: AsyncSession,
    trip_offer_id: int,
    include_cancelled: bool = False,
) -> list[Booking]:
    """Bookings of one offer in first-come order."""
    if await _load_offer(db, trip_offer_id) is None:
        raise OfferNotFound()

    query = select(Booking).where(Booking.trip_offer_id == trip_offer_id)
    if not include_cancelled:
        query = query.where(Booking.status == BookingStatus.CONFIRMED)

    result = await db.execute(query.order_by(Booking.created_at.asc(), Booking.id.asc()))
    return list(result.scalars().all())


async def get_passenger_booking(
    db: AsyncSession,
    outing_id: int,
    passenger_id: int,
) -> Optional[Booking]:
    """The passenger's confirmed booking for an outing, if any."""
    result = await db.execute(
        select(Booking).where(
            Booking.outing_id == outing_id,
            Booking.passenger_id == passenger_id,
            Booking.status == BookingStatus.CONFIRMED,
        )
    )
    return result.scalars().first()


async def get_passenger_bookings(db: AsyncSession, passenger_id: int) -> list[Booking]:
    """All bookings of a passenger, newest first."""
    result = await db.execute(
        select(Booking)
        .where(Booking.passenger_id == passenger_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
    )
    return list(result.scalars().all())
