"""
Cascades from trip withdrawal and outing cancellation to bookings.

Invariant maintained: no confirmed booking references a withdrawn trip offer
or a cancelled outing. A cascade runs inside one transaction together with
the status change that triggers it:

  1. take the per-offer lock(s) and lock the offer row(s) (SELECT ... FOR UPDATE)
  2. cancel every confirmed booking of each offer
  3. set confirmed_count = 0 and status = 'withdrawn' on each offer
  4. commit
  5. hand one event per affected passenger to the notification dispatcher

Nothing is emitted before the commit, and a failure in steps 1-4 rolls the
whole thing back and propagates: a caller either sees every booking
cancelled and the offer withdrawn, or nothing changed.
"""

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.core.exceptions import OfferNotActive, OfferNotFound, OutingNotFound
from carpool.core.logging import get_logger
from carpool.core.metrics import record_cancellations, record_cascade
from carpool.db.base import utcnow
from carpool.models.booking import Booking, BookingStatus, CancellationReason
from carpool.models.outing import Outing, OutingStatus
from carpool.models.trip_offer import TripOffer, OfferStatus
from carpool.services.cache_service import invalidate_outing_summary
from carpool.services.interfaces.notification_sink import CarpoolEvent, CarpoolEventType
from carpool.services.notification_service import get_dispatcher
from carpool.services.offer_locks import get_offer_lock, offer_locks

logger = get_logger(__name__)


@dataclass
class CascadeResult:
    offer_ids: list[int] = field(default_factory=list)
    cancelled_bookings: list[Booking] = field(default_factory=list)


async def _withdraw_locked_offer(
    db: AsyncSession,
    offer: TripOffer,
    reason: str,
    event_type: str,
    now: datetime,
) -> tuple[list[Booking], list[CarpoolEvent]]:
    result = await db.execute(
        select(Booking)
        .where(
            Booking.trip_offer_id == offer.id,
            Booking.status == BookingStatus.CONFIRMED,
        )
        .order_by(Booking.created_at.asc(), Booking.id.asc())
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    bookings = list(result.scalars().all())

    events = []
    for booking in bookings:
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = now
        booking.cancellation_reason = reason
        events.append(
            CarpoolEvent(
                event_type=event_type,
                passenger_id=booking.passenger_id,
                trip_offer_id=offer.id,
                outing_id=offer.outing_id,
                occurred_at=now,
            )
        )

    offer.status = OfferStatus.WITHDRAWN
    offer.withdrawn_at = now
    offer.confirmed_count = 0
    offer.version = offer.version + 1

    # Flush per offer so a constraint failure surfaces before the next one runs
    await db.flush()
    return bookings, events


async def on_offer_withdrawn(
    db: AsyncSession,
    offer_id: int,
    reason: str = CancellationReason.TRIP_WITHDRAWN,
) -> CascadeResult:
    """
    Cancel every confirmed booking of an offer and withdraw it, atomically.

    Raises OfferNotFound if the offer does not exist and OfferNotActive if it
    was already withdrawn by the time the lock was acquired.
    """
    async with get_offer_lock(offer_id):
        try:
            result = await db.execute(
                select(TripOffer)
                .where(TripOffer.id == offer_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            offer = result.scalar_one_or_none()
            if offer is None:
                raise OfferNotFound(f"Trip offer {offer_id} not found")
            if offer.status != OfferStatus.ACTIVE:
                raise OfferNotActive()

            bookings, events = await _withdraw_locked_offer(
                db, offer, reason, CarpoolEventType.TRIP_WITHDRAWN, utcnow()
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    record_cascade(CarpoolEventType.TRIP_WITHDRAWN)
    record_cancellations(reason, len(bookings))
    logger.info(
        "offer_withdrawn",
        trip_offer_id=offer_id,
        outing_id=offer.outing_id,
        bookings_cancelled=len(bookings),
    )

    get_dispatcher().emit(events)
    await invalidate_outing_summary(offer.outing_id)
    return CascadeResult(offer_ids=[offer_id], cancelled_bookings=bookings)


async def on_outing_cancelled(db: AsyncSession, outing_id: int) -> CascadeResult:
    """
    Mark the outing cancelled and withdraw every active offer for it.

    Idempotent: on an outing that is already cancelled and has no active
    offers it changes nothing and returns an empty result.
    """
    candidates = await db.execute(
        select(TripOffer.id).where(
            TripOffer.outing_id == outing_id,
            TripOffer.status == OfferStatus.ACTIVE,
        )
    )
    offer_ids = list(candidates.scalars().all())

    async with offer_locks(*offer_ids):
        try:
            outing_result = await db.execute(
                select(Outing)
                .where(Outing.id == outing_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            outing = outing_result.scalar_one_or_none()
            if outing is None:
                raise OutingNotFound(f"Outing {outing_id} not found")

            now = utcnow()
            if outing.status != OutingStatus.CANCELLED:
                outing.status = OutingStatus.CANCELLED
                outing.cancelled_at = now

            # Re-read under lock: offers may have been withdrawn meanwhile
            offers_result = await db.execute(
                select(TripOffer)
                .where(
                    TripOffer.outing_id == outing_id,
                    TripOffer.status == OfferStatus.ACTIVE,
                )
                .order_by(TripOffer.id.asc())
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            offers = list(offers_result.scalars().all())

            cascade = CascadeResult()
            events = []
            for offer in offers:
                bookings, offer_events = await _withdraw_locked_offer(
                    db,
                    offer,
                    CancellationReason.OUTING_CANCELLED,
                    CarpoolEventType.OUTING_CANCELLED,
                    now,
                )
                cascade.offer_ids.append(offer.id)
                cascade.cancelled_bookings.extend(bookings)
                events.extend(offer_events)

            await db.commit()
        except Exception:
            await db.rollback()
            raise

    record_cascade(CarpoolEventType.OUTING_CANCELLED)
    record_cancellations(CancellationReason.OUTING_CANCELLED, len(cascade.cancelled_bookings))
    logger.info(
        "outing_cancelled",
        outing_id=outing_id,
        offers_withdrawn=len(cascade.offer_ids),
        bookings_cancelled=len(cascade.cancelled_bookings),
    )

    get_dispatcher().emit(events)
    await invalidate_outing_summary(outing_id)
    return cascade
