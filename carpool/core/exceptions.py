"""
Domain errors for the carpool core.

Services raise these; a single exception handler in `carpool.main` turns
them into `{"error": <code>, "detail": <message>}` responses, so callers can
tell "trip is full" from "you already have a seat" from "this trip is gone"
by the code alone.
"""

from fastapi import status


class CarpoolError(Exception):
    code = "carpool_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Carpool request failed"

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


# Validation

class InvalidSeatsTotal(CarpoolError):
    code = "invalid_seats_total"
    status_code = 422
    default_message = "Seat count must be between 1 and 8"


class InvalidOfferField(CarpoolError):
    code = "invalid_offer_field"
    status_code = 422
    default_message = "Trip offer field is missing or invalid"


# Not found

class OfferNotFound(CarpoolError):
    code = "offer_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "This trip no longer exists"


class BookingNotFound(CarpoolError):
    code = "booking_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Booking not found"


class OutingNotFound(CarpoolError):
    code = "outing_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Outing not found"


# Conflict

class TripFull(CarpoolError):
    code = "trip_full"
    status_code = status.HTTP_409_CONFLICT
    default_message = "No seats left on this trip"


class AlreadyBooked(CarpoolError):
    code = "already_booked"
    status_code = status.HTTP_409_CONFLICT
    default_message = "You already have a seat for this outing"


class DuplicateOffer(CarpoolError):
    code = "duplicate_offer"
    status_code = status.HTTP_409_CONFLICT
    default_message = "You already offer a trip for this outing"


class CapacityBelowBooked(CarpoolError):
    code = "capacity_below_booked"
    status_code = status.HTTP_409_CONFLICT
    default_message = "More passengers are booked than the new seat count; cancel bookings first"


class SelfBooking(CarpoolError):
    code = "self_booking"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Drivers cannot book a seat on their own trip"


# Authorization

class NotOwner(CarpoolError):
    code = "not_owner"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Only the owner can perform this action"


# State

class OfferNotActive(CarpoolError):
    code = "offer_not_active"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This trip has been withdrawn"


class OutingStarted(CarpoolError):
    code = "outing_started"
    status_code = status.HTTP_409_CONFLICT
    default_message = "The outing has already started"


class OutingCancelled(CarpoolError):
    code = "outing_cancelled"
    status_code = status.HTTP_409_CONFLICT
    default_message = "The outing has been cancelled"


class AlreadyCancelled(CarpoolError):
    code = "already_cancelled"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Booking is already cancelled"


class OfferChanged(CarpoolError):
    code = "offer_changed"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Trip changed while it was being edited; reload and try again"
