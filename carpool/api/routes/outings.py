"""
Outing endpoints: the registry mirror plus per-outing carpool views.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.db.session import get_db
from carpool.schemas.booking import BookingResponse
from carpool.schemas.outing import OutingCarpoolSummary, OutingCreate, OutingResponse
from carpool.schemas.trip_offer import TripOfferDetail, TripOfferResponse
from carpool.services import booking_service, outing_service, trip_offer_service
from carpool.core.security import get_current_user_id

router = APIRouter(prefix="/outings", tags=["Outings"])


class OutingCancelResponse(BaseModel):
    outing_id: int
    status: str
    withdrawn_offer_ids: list[int]
    cancelled_booking_ids: list[int]


@router.post("/", response_model=OutingResponse, status_code=status.HTTP_201_CREATED)
async def create_outing_endpoint(
    outing_data: OutingCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await outing_service.create_outing(db, outing_data, user_id)


@router.get("/carpool-summary", response_model=list[OutingCarpoolSummary])
async def carpool_summary_endpoint(
    outing_ids: list[int] = Query(...),
    db: AsyncSession = Depends(get_db),
):
    """
    Offer count and remaining seats for several outings at once.
    Cached in Redis; invalidated whenever an offer or booking changes.
    """
    return await trip_offer_service.outing_carpool_summary(db, outing_ids)


@router.get("/{outing_id}", response_model=OutingResponse)
async def get_outing_endpoint(
    outing_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await outing_service.get_outing(db, outing_id)


@router.post("/{outing_id}/cancel", response_model=OutingCancelResponse)
async def cancel_outing_endpoint(
    outing_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Cancel an outing. Every active trip is withdrawn and every booking
    cancelled before this returns. Calling it again is a no-op.
    """
    result = await outing_service.cancel_outing(db, outing_id, user_id)
    return OutingCancelResponse(
        outing_id=outing_id,
        status="cancelled",
        withdrawn_offer_ids=result.offer_ids,
        cancelled_booking_ids=[b.id for b in result.cancelled_bookings],
    )


@router.get("/{outing_id}/trip-offers", response_model=list[TripOfferDetail])
async def list_outing_trip_offers(
    outing_id: int,
    include_withdrawn: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Trips for an outing by departure time, each with its passenger list."""
    offers = await trip_offer_service.list_offers_for_outing(db, outing_id, include_withdrawn)
    return [
        TripOfferDetail(
            **TripOfferResponse.model_validate(offer).model_dump(),
            passengers=[BookingResponse.model_validate(b) for b in passengers],
        )
        for offer, passengers in offers
    ]


@router.get("/{outing_id}/my-trip-offer", response_model=Optional[TripOfferResponse])
async def my_trip_offer(
    outing_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await trip_offer_service.get_driver_offer(db, outing_id, user_id)


@router.get("/{outing_id}/my-booking", response_model=Optional[BookingResponse])
async def my_booking(
    outing_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.get_passenger_booking(db, outing_id, user_id)
