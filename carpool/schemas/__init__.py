from carpool.schemas.outing import OutingCreate, OutingResponse, OutingCarpoolSummary
from carpool.schemas.trip_offer import (
    TripOfferCreate, TripOfferUpdate, TripOfferResponse, TripOfferDetail, CapacitySnapshot,
)
from carpool.schemas.booking import BookingCreate, BookingResponse, BookingCancelResponse
from carpool.schemas.error import ErrorResponse

__all__ = [
    "OutingCreate", "OutingResponse", "OutingCarpoolSummary",
    "TripOfferCreate", "TripOfferUpdate", "TripOfferResponse", "TripOfferDetail", "CapacitySnapshot",
    "BookingCreate", "BookingResponse", "BookingCancelResponse",
    "ErrorResponse",
]
