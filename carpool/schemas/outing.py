"""
Pydantic schemas for the outing mirror.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class OutingCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    starts_at: datetime


class OutingResponse(BaseModel):
    id: int
    title: str
    location: Optional[str]
    starts_at: datetime
    organizer_id: int
    status: str
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class OutingCarpoolSummary(BaseModel):
    outing_id: int
    offer_count: int
    seats_remaining: int
