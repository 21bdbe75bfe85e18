"""
Passenger-facing booking endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.db.session import get_db
from carpool.schemas.booking import BookingCreate, BookingResponse, BookingCancelResponse
from carpool.schemas.error import ErrorResponse
from carpool.services.booking_service import (
    book_seat,
    cancel_booking,
    get_passenger_bookings,
    remove_passenger,
)
from carpool.core.security import get_current_user_id

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post(
    "/",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def create_booking(
    booking_data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Book one seat on a trip offer.

    Fails with `trip_full` when the last seat was taken, `already_booked` when
    the passenger already holds a seat for this outing, and
    `offer_not_found` / `offer_not_active` when the trip is gone.
    """
    return await book_seat(db, booking_data.trip_offer_id, user_id)


@router.delete("/{booking_id}", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Cancel your own booking and release the seat."""
    booking = await cancel_booking(db, booking_id, user_id)
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        status=booking.status,
    )


@router.post("/{booking_id}/remove", response_model=BookingCancelResponse)
async def remove_passenger_endpoint(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Driver removes a passenger from their trip."""
    booking = await remove_passenger(db, booking_id, user_id)
    return BookingCancelResponse(
        message="Passenger removed from trip",
        booking_id=booking.id,
        status=booking.status,
    )


@router.get("/", response_model=list[BookingResponse])
async def list_my_bookings(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """All bookings of the authenticated member, newest first."""
    return await get_passenger_bookings(db, user_id)
