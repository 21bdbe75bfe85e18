"""Carpool schema: outings, trip offers and bookings with capacity constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "outings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("organizer_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'scheduled'")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('scheduled', 'cancelled')", name="check_outing_status"),
    )
    op.create_index("ix_outings_id", "outings", ["id"])
    op.create_index("ix_outings_starts_at", "outings", ["starts_at"])

    op.create_table(
        "trip_offers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("outing_id", sa.Integer(), sa.ForeignKey("outings.id"), nullable=False),
        sa.Column("driver_id", sa.Integer(), nullable=False),
        sa.Column("seats_total", sa.Integer(), nullable=False),
        sa.Column("confirmed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("meeting_point", sa.String(255), nullable=False),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("maps_link", sa.String(1000), nullable=True),
        sa.Column("notes", sa.String(1000), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'active'")),
        sa.Column("withdrawn_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("seats_total BETWEEN 1 AND 8", name="check_offer_seats_total_range"),
        sa.CheckConstraint("confirmed_count >= 0", name="check_offer_confirmed_non_negative"),
        # Last line of defence against overbooking
        sa.CheckConstraint("confirmed_count <= seats_total", name="check_offer_confirmed_lte_total"),
        sa.CheckConstraint("status IN ('active', 'withdrawn')", name="check_offer_status"),
    )
    op.create_index("ix_trip_offers_id", "trip_offers", ["id"])
    op.create_index("ix_trip_offers_outing_id", "trip_offers", ["outing_id"])
    op.create_index("ix_trip_offers_driver_id", "trip_offers", ["driver_id"])
    # Trip lists are always per outing, ordered by departure
    op.create_index("ix_trip_offers_outing_departure", "trip_offers", ["outing_id", "departure_time"])
    # One active offer per driver per outing; withdrawn offers stay for history
    op.create_index(
        "uq_trip_offers_active_driver_outing",
        "trip_offers",
        ["driver_id", "outing_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("trip_offer_id", sa.Integer(), sa.ForeignKey("trip_offers.id"), nullable=False),
        sa.Column("outing_id", sa.Integer(), sa.ForeignKey("outings.id"), nullable=False),
        sa.Column("passenger_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'confirmed'")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(30), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('confirmed', 'cancelled')", name="check_booking_status"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_trip_offer_id", "bookings", ["trip_offer_id"])
    op.create_index("ix_bookings_outing_id", "bookings", ["outing_id"])
    op.create_index("ix_bookings_passenger_id", "bookings", ["passenger_id"])
    # Passenger list order
    op.create_index("ix_bookings_offer_created", "bookings", ["trip_offer_id", "created_at"])
    # One confirmed seat per passenger per outing, across all trips of the outing
    op.create_index(
        "uq_bookings_confirmed_outing_passenger",
        "bookings",
        ["outing_id", "passenger_id"],
        unique=True,
        postgresql_where=sa.text("status = 'confirmed'"),
    )


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("trip_offers")
    op.drop_table("outings")
