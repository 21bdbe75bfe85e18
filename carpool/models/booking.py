"""
Booking model representing a passenger's seat on a trip offer.

Key design decisions:
- `outing_id` is copied from the trip offer so the partial unique index on
  (outing_id, passenger_id) WHERE status = 'confirmed' can back the
  one-seat-per-outing rule at the storage layer
- Status field allows cancellation without deleting records
- `cancellation_reason` records which actor ended the booking
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint, text

from carpool.db.base import Base, TimestampMixin


class BookingStatus:
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class CancellationReason:
    PASSENGER_CANCELLED = "passenger_cancelled"
    DRIVER_REMOVED = "driver_removed"
    TRIP_WITHDRAWN = "trip_withdrawn"
    OUTING_CANCELLED = "outing_cancelled"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    trip_offer_id = Column(Integer, ForeignKey("trip_offers.id"), nullable=False, index=True)
    outing_id = Column(Integer, ForeignKey("outings.id"), nullable=False, index=True)
    passenger_id = Column(Integer, nullable=False, index=True)
    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(30), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('confirmed', 'cancelled')", name="check_booking_status"),
        # One confirmed seat per passenger per outing
        Index(
            "uq_bookings_confirmed_outing_passenger",
            "outing_id",
            "passenger_id",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
        Index("ix_bookings_offer_created", "trip_offer_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, offer={self.trip_offer_id}, "
            f"passenger={self.passenger_id}, status={self.status})>"
        )
