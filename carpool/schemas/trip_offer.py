"""
Pydantic schemas for trip offers.

Seat bounds are validated here for HTTP callers; the service layer checks
them again for direct callers.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from carpool.models.trip_offer import MIN_SEATS_PER_OFFER, MAX_SEATS_PER_OFFER
from carpool.schemas.booking import BookingResponse


class TripOfferCreate(BaseModel):
    outing_id: int
    seats_total: int = Field(..., ge=MIN_SEATS_PER_OFFER, le=MAX_SEATS_PER_OFFER)
    meeting_point: str = Field(..., min_length=1, max_length=255)
    departure_time: datetime
    maps_link: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=1000)


class TripOfferUpdate(BaseModel):
    seats_total: Optional[int] = Field(None, ge=MIN_SEATS_PER_OFFER, le=MAX_SEATS_PER_OFFER)
    meeting_point: Optional[str] = Field(None, min_length=1, max_length=255)
    departure_time: Optional[datetime] = None
    maps_link: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=1000)


class TripOfferResponse(BaseModel):
    id: int
    outing_id: int
    driver_id: int
    seats_total: int
    confirmed_count: int
    seats_remaining: int
    meeting_point: str
    departure_time: datetime
    maps_link: Optional[str]
    notes: Optional[str]
    status: str
    created_at: datetime
    withdrawn_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TripOfferDetail(TripOfferResponse):
    passengers: list[BookingResponse] = []


class CapacitySnapshot(BaseModel):
    trip_offer_id: int
    seats_total: int
    confirmed_count: int
    seats_remaining: int
