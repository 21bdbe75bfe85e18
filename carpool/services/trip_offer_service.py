"""
Trip offer store: driver-side create, update and withdraw of car trips.

Driver edits use optimistic locking on the `version` column:

  UPDATE trip_offers SET ..., version = version + 1
   WHERE id = :id AND version = :seen_version AND status = 'active'
     [AND confirmed_count <= :new_seats_total]

A version miss (a booking or cancellation touched the row in between) is
retried with fresh state; a status or capacity miss is reported. The seat
reduction check lives in the same WHERE clause as the write, so a booking
cannot land between "check" and "shrink".

The live confirmed_count is never written here; only the booking
coordinator and the cascade change it.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.core.exceptions import (
    CapacityBelowBooked,
    DuplicateOffer,
    InvalidOfferField,
    InvalidSeatsTotal,
    NotOwner,
    OfferChanged,
    OfferNotActive,
    OfferNotFound,
    OutingCancelled,
    OutingNotFound,
    OutingStarted,
)
from carpool.core.logging import get_logger
from carpool.models.booking import Booking, BookingStatus
from carpool.models.outing import Outing, OutingStatus
from carpool.models.trip_offer import (
    MAX_SEATS_PER_OFFER,
    MIN_SEATS_PER_OFFER,
    TripOffer,
    OfferStatus,
)
from carpool.services import cascade_service
from carpool.services.cache_service import (
    get_cached_summaries,
    invalidate_outing_summary,
    set_cached_summaries,
)
from carpool.services.interfaces.outing_registry import OutingRegistry
from carpool.services.outing_service import SqlOutingRegistry

logger = get_logger(__name__)

MAX_RETRY_ATTEMPTS = 3

UPDATABLE_FIELDS = {"seats_total", "meeting_point", "departure_time", "maps_link", "notes"}
REQUIRED_FIELDS = {"seats_total", "meeting_point", "departure_time"}


def _validate_seats_total(seats_total: Any) -> None:
    if (
        not isinstance(seats_total, int)
        or isinstance(seats_total, bool)
        or not MIN_SEATS_PER_OFFER <= seats_total <= MAX_SEATS_PER_OFFER
    ):
        raise InvalidSeatsTotal(
            f"Seat count must be between {MIN_SEATS_PER_OFFER} and {MAX_SEATS_PER_OFFER}"
        )


def _validate_meeting_point(meeting_point: Any) -> None:
    if not isinstance(meeting_point, str) or not meeting_point.strip():
        raise InvalidOfferField("Meeting point is required", field="meeting_point")


def _validate_departure_time(departure_time: Any) -> None:
    if not isinstance(departure_time, datetime):
        raise InvalidOfferField("Departure time is required", field="departure_time")


async def _lock_open_outing(db: AsyncSession, outing_id: int) -> None:
    """
    Re-check the outing under its row lock inside the insert transaction.
    on_outing_cancelled takes the same lock, so an offer is either created
    before the cascade (and withdrawn by it) or refused after it.
    """
    result = await db.execute(
        select(Outing)
        .where(Outing.id == outing_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    outing = result.scalar_one_or_none()
    if outing is None:
        raise OutingNotFound(f"Outing {outing_id} not found")
    if outing.status == OutingStatus.CANCELLED:
        raise OutingCancelled()


async def _ensure_outing_open(outings: OutingRegistry, outing_id: int) -> None:
    if not await outings.exists(outing_id):
        raise OutingNotFound(f"Outing {outing_id} not found")
    if await outings.is_cancelled(outing_id):
        raise OutingCancelled()
    if await outings.is_started(outing_id):
        raise OutingStarted()


async def _find_active_offer(
    db: AsyncSession,
    outing_id: int,
    driver_id: int,
) -> Optional[TripOffer]:
    result = await db.execute(
        select(TripOffer).where(
            TripOffer.outing_id == outing_id,
            TripOffer.driver_id == driver_id,
            TripOffer.status == OfferStatus.ACTIVE,
        )
    )
    return result.scalar_one_or_none()


async def create_offer(
    db: AsyncSession,
    driver_id: int,
    outing_id: int,
    seats_total: int,
    meeting_point: str,
    departure_time: datetime,
    maps_link: Optional[str] = None,
    notes: Optional[str] = None,
    outings: Optional[OutingRegistry] = None,
) -> TripOffer:
    """Publish a trip for an outing. One active offer per driver per outing."""
    _validate_seats_total(seats_total)
    _validate_meeting_point(meeting_point)
    _validate_departure_time(departure_time)
    outings = outings or SqlOutingRegistry(db)
    await _ensure_outing_open(outings, outing_id)

    if await _find_active_offer(db, outing_id, driver_id) is not None:
        raise DuplicateOffer()

    try:
        await _lock_open_outing(db, outing_id)
    except (OutingNotFound, OutingCancelled):
        await db.rollback()
        raise

    offer = TripOffer(
        outing_id=outing_id,
        driver_id=driver_id,
        seats_total=seats_total,
        confirmed_count=0,
        meeting_point=meeting_point,
        departure_time=departure_time,
        maps_link=maps_link,
        notes=notes,
        status=OfferStatus.ACTIVE,
    )
    db.add(offer)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        # Lost a race against the same driver's other request
        if await _find_active_offer(db, outing_id, driver_id) is not None:
            raise DuplicateOffer()
        raise
    await db.refresh(offer)

    logger.info(
        "offer_created",
        trip_offer_id=offer.id,
        outing_id=outing_id,
        driver_id=driver_id,
        seats_total=seats_total,
    )
    await invalidate_outing_summary(outing_id)
    return offer


async def get_offer(db: AsyncSession, offer_id: int) -> TripOffer:
    result = await db.execute(
        select(TripOffer)
        .where(TripOffer.id == offer_id)
        .execution_options(populate_existing=True)
    )
    offer = result.scalar_one_or_none()

    if not offer:
        raise OfferNotFound(f"Trip offer {offer_id} not found")
    return offer


async def update_offer(
    db: AsyncSession,
    offer_id: int,
    driver_id: int,
    fields: dict[str, Any],
    outings: Optional[OutingRegistry] = None,
) -> TripOffer:
    """
    Change seats, time, meeting point, maps link or notes of an active offer.
    Retries up to MAX_RETRY_ATTEMPTS on version conflicts.
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise InvalidOfferField(
            f"Fields cannot be updated: {', '.join(sorted(unknown))}",
            fields=sorted(unknown),
        )

    changes = {
        key: value
        for key, value in fields.items()
        if value is not None or key not in REQUIRED_FIELDS
    }
    if "seats_total" in changes:
        _validate_seats_total(changes["seats_total"])
    if "meeting_point" in changes:
        _validate_meeting_point(changes["meeting_point"])
    if "departure_time" in changes:
        _validate_departure_time(changes["departure_time"])

    outings = outings or SqlOutingRegistry(db)

    for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
        offer = await get_offer(db, offer_id)
        if offer.driver_id != driver_id:
            raise NotOwner("Only the driver can change this trip")
        if offer.status != OfferStatus.ACTIVE:
            raise OfferNotActive()
        if await outings.is_started(offer.outing_id):
            raise OutingStarted()

        if not changes:
            return offer

        new_seats = changes.get("seats_total")
        if new_seats is not None and new_seats < offer.confirmed_count:
            raise CapacityBelowBooked(
                confirmed_count=offer.confirmed_count,
                seats_total=new_seats,
            )

        current_version = offer.version
        stmt = (
            update(TripOffer)
            .where(
                TripOffer.id == offer_id,
                TripOffer.version == current_version,
                TripOffer.status == OfferStatus.ACTIVE,
            )
            .values(**changes, version=TripOffer.version + 1)
            .execution_options(synchronize_session=False)
        )
        if new_seats is not None:
            stmt = stmt.where(TripOffer.confirmed_count <= new_seats)

        result = await db.execute(stmt)
        if result.rowcount == 1:
            await db.commit()
            offer = await get_offer(db, offer_id)
            logger.info(
                "offer_updated",
                trip_offer_id=offer_id,
                fields=sorted(changes),
                attempt=attempt,
            )
            await invalidate_outing_summary(offer.outing_id)
            return offer

        # Someone touched the row; the next pass re-reads and reclassifies
        await db.rollback()
        logger.info(
            "offer_update_retry",
            trip_offer_id=offer_id,
            attempt=attempt,
            reason="version_conflict",
        )

    offer = await get_offer(db, offer_id)
    if offer.status != OfferStatus.ACTIVE:
        raise OfferNotActive()
    if "seats_total" in changes and changes["seats_total"] < offer.confirmed_count:
        raise CapacityBelowBooked()
    raise OfferChanged()


async def withdraw_offer(
    db: AsyncSession,
    offer_id: int,
    driver_id: int,
) -> cascade_service.CascadeResult:
    """
    Withdraw a trip on behalf of its driver.

    Returns only after every dependent booking is cancelled and the offer is
    withdrawn, both committed together.
    """
    offer = await get_offer(db, offer_id)
    if offer.driver_id != driver_id:
        raise NotOwner("Only the driver can withdraw this trip")
    if offer.status != OfferStatus.ACTIVE:
        raise OfferNotActive()

    return await cascade_service.on_offer_withdrawn(db, offer_id)


async def get_capacity_snapshot(db: AsyncSession, offer_id: int) -> dict:
    """
    Read-only view of an offer's capacity.

    For display only: the booking step never decides on this value, it
    claims seats with its own conditional update.
    """
    offer = await get_offer(db, offer_id)
    return {
        "trip_offer_id": offer.id,
        "seats_total": offer.seats_total,
        "confirmed_count": offer.confirmed_count,
        "seats_remaining": offer.seats_remaining,
    }


async def list_offers_for_outing(
    db: AsyncSession,
    outing_id: int,
    include_withdrawn: bool = False,
) -> list[tuple[TripOffer, list[Booking]]]:
    """Offers of an outing by departure time, each with its confirmed passengers."""
    query = select(TripOffer).where(TripOffer.outing_id == outing_id)
    if not include_withdrawn:
        query = query.where(TripOffer.status == OfferStatus.ACTIVE)

    result = await db.execute(
        query.order_by(TripOffer.departure_time.asc(), TripOffer.id.asc())
    )
    offers = list(result.scalars().all())
    if not offers:
        return []

    bookings_result = await db.execute(
        select(Booking)
        .where(
            Booking.trip_offer_id.in_([o.id for o in offers]),
            Booking.status == BookingStatus.CONFIRMED,
        )
        .order_by(Booking.created_at.asc(), Booking.id.asc())
    )
    passengers: dict[int, list[Booking]] = {o.id: [] for o in offers}
    for booking in bookings_result.scalars().all():
        passengers[booking.trip_offer_id].append(booking)

    return [(offer, passengers[offer.id]) for offer in offers]


async def get_driver_offer(
    db: AsyncSession,
    outing_id: int,
    driver_id: int,
) -> Optional[TripOffer]:
    """The driver's active offer for an outing, if any."""
    return await _find_active_offer(db, outing_id, driver_id)


async def outing_carpool_summary(db: AsyncSession, outing_ids: list[int]) -> list[dict]:
    """
    Active offer count and remaining seats per outing.
    Served from Redis where possible; outings without offers report zeros.
    """
    ids = list(dict.fromkeys(outing_ids))
    cached = await get_cached_summaries(ids)
    missing = [i for i in ids if i not in cached]

    fresh = {}
    if missing:
        result = await db.execute(
            select(
                TripOffer.outing_id,
                func.count(TripOffer.id),
                func.coalesce(func.sum(TripOffer.seats_total - TripOffer.confirmed_count), 0),
            )
            .where(
                TripOffer.outing_id.in_(missing),
                TripOffer.status == OfferStatus.ACTIVE,
            )
            .group_by(TripOffer.outing_id)
        )
        rows = {row[0]: (row[1], row[2]) for row in result.all()}
        for outing_id in missing:
            offer_count, seats_remaining = rows.get(outing_id, (0, 0))
            fresh[outing_id] = {
                "outing_id": outing_id,
                "offer_count": int(offer_count),
                "seats_remaining": int(seats_remaining),
            }
        await set_cached_summaries(fresh.values())

    return [cached.get(i) or fresh[i] for i in ids]
