"""
Trip offer: one driver's proposed car trip for one outing.

Key design decisions:
- `confirmed_count` is the live number of confirmed bookings. It is only
  changed by conditional UPDATEs in the booking and cascade services, never
  read-modify-written.
- CHECK constraints keep 0 <= confirmed_count <= seats_total at the DB level.
- Partial unique index allows one *active* offer per (driver, outing); a
  withdrawn offer stays on record and does not block a new one.
- `version` gives driver edits optimistic concurrency against withdrawal.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint, text

from carpool.db.base import Base, TimestampMixin


MIN_SEATS_PER_OFFER = 1
MAX_SEATS_PER_OFFER = 8


class OfferStatus:
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"


class TripOffer(Base, TimestampMixin):
    __tablename__ = "trip_offers"

    id = Column(Integer, primary_key=True, index=True)
    outing_id = Column(Integer, ForeignKey("outings.id"), nullable=False, index=True)
    driver_id = Column(Integer, nullable=False, index=True)
    seats_total = Column(Integer, nullable=False)
    confirmed_count = Column(Integer, nullable=False, default=0)
    meeting_point = Column(String(255), nullable=False)
    departure_time = Column(DateTime(timezone=True), nullable=False)
    maps_link = Column(String(1000), nullable=True)
    notes = Column(String(1000), nullable=True)
    status = Column(String(20), nullable=False, default=OfferStatus.ACTIVE)
    withdrawn_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("seats_total BETWEEN 1 AND 8", name="check_offer_seats_total_range"),
        CheckConstraint("confirmed_count >= 0", name="check_offer_confirmed_non_negative"),
        CheckConstraint("confirmed_count <= seats_total", name="check_offer_confirmed_lte_total"),
        CheckConstraint("status IN ('active', 'withdrawn')", name="check_offer_status"),
        Index(
            "uq_trip_offers_active_driver_outing",
            "driver_id",
            "outing_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
        Index("ix_trip_offers_outing_departure", "outing_id", "departure_time"),
    )

    @property
    def seats_remaining(self) -> int:
        return max(0, self.seats_total - self.confirmed_count)

    def __repr__(self) -> str:
        return (
            f"<TripOffer(id={self.id}, outing={self.outing_id}, driver={self.driver_id}, "
            f"seats={self.confirmed_count}/{self.seats_total}, status={self.status})>"
        )
