"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from carpool.api.routes import outings, trip_offers, bookings

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(outings.router)
api_router.include_router(trip_offers.router)
api_router.include_router(bookings.router)
