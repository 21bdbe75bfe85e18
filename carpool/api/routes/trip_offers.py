"""
Driver-facing trip offer endpoints.
"""

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.db.session import get_db
from carpool.schemas.booking import BookingResponse
from carpool.schemas.trip_offer import (
    CapacitySnapshot,
    TripOfferCreate,
    TripOfferResponse,
    TripOfferUpdate,
)
from carpool.services import booking_service, trip_offer_service
from carpool.core.security import get_current_user_id

router = APIRouter(prefix="/trip-offers", tags=["Trip offers"])


class WithdrawResponse(BaseModel):
    trip_offer_id: int
    status: str
    cancelled_booking_ids: list[int]


@router.post("/", response_model=TripOfferResponse, status_code=status.HTTP_201_CREATED)
async def create_trip_offer(
    offer_data: TripOfferCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Offer a car trip for an outing you attend."""
    return await trip_offer_service.create_offer(db, user_id, **offer_data.model_dump())


@router.get("/{offer_id}", response_model=TripOfferResponse)
async def get_trip_offer(
    offer_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await trip_offer_service.get_offer(db, offer_id)


@router.patch("/{offer_id}", response_model=TripOfferResponse)
async def update_trip_offer(
    offer_id: int,
    offer_data: TripOfferUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Edit your trip. Lowering the seat count below the number of confirmed
    passengers fails with `capacity_below_booked`.
    """
    return await trip_offer_service.update_offer(
        db, offer_id, user_id, offer_data.model_dump(exclude_unset=True)
    )


@router.delete("/{offer_id}", response_model=WithdrawResponse)
async def withdraw_trip_offer(
    offer_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Withdraw your trip; every passenger's booking is cancelled with it."""
    result = await trip_offer_service.withdraw_offer(db, offer_id, user_id)
    return WithdrawResponse(
        trip_offer_id=offer_id,
        status="withdrawn",
        cancelled_booking_ids=[b.id for b in result.cancelled_bookings],
    )


@router.get("/{offer_id}/capacity", response_model=CapacitySnapshot)
async def get_trip_offer_capacity(
    offer_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await trip_offer_service.get_capacity_snapshot(db, offer_id)


@router.get("/{offer_id}/bookings", response_model=list[BookingResponse])
async def list_trip_offer_bookings(
    offer_id: int,
    include_cancelled: bool = Query(False),
    db: AsyncSession = Depends(get_db),
):
    """Passenger list in first-come order."""
    return await booking_service.list_bookings(db, offer_id, include_cancelled)
