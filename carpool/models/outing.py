"""
Minimal mirror of the club's outings.

The wider application owns outings; the carpool core only needs to know
when one starts and whether it was cancelled.
"""

from sqlalchemy import Column, Integer, String, DateTime, Index, CheckConstraint

from carpool.db.base import Base, TimestampMixin


class OutingStatus:
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


class Outing(Base, TimestampMixin):
    __tablename__ = "outings"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    location = Column(String(255), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    organizer_id = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=OutingStatus.SCHEDULED)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('scheduled', 'cancelled')", name="check_outing_status"),
        Index("ix_outings_starts_at", "starts_at"),
    )

    def __repr__(self) -> str:
        return f"<Outing(id={self.id}, title={self.title}, status={self.status})>"
