from carpool.models.outing import Outing, OutingStatus
from carpool.models.trip_offer import TripOffer, OfferStatus
from carpool.models.booking import Booking, BookingStatus, CancellationReason

__all__ = [
    "Outing", "OutingStatus",
    "TripOffer", "OfferStatus",
    "Booking", "BookingStatus", "CancellationReason",
]
