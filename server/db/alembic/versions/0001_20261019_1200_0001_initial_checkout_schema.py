"""Initial checkout schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Holds: short-lived, deleted on finalization or expiry
    op.create_table('holds',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('trip_id', sa.String(length=64), nullable=False),
        sa.Column('pickup_stop_id', sa.String(length=64), nullable=False),
        sa.Column('dropoff_stop_id', sa.String(length=64), nullable=False),
        sa.Column('passenger_name', sa.String(length=255), nullable=False),
        sa.Column('passenger_email', sa.String(length=255), nullable=False),
        sa.Column('passenger_phone', sa.String(length=64), nullable=False),
        sa.Column('seats', sa.JSON(), nullable=False),
        sa.Column('bag_count', sa.Integer(), nullable=False),
        sa.Column('segment_price', sa.Integer(), nullable=False),
        sa.Column('luggage_fee', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Integer(), nullable=False),
        sa.Column('booking_reference', sa.String(length=32), nullable=False),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('bag_count >= 0', name='ck_hold_bag_count_non_negative'),
        sa.CheckConstraint('segment_price >= 0', name='ck_hold_segment_price_non_negative'),
        sa.CheckConstraint('luggage_fee >= 0', name='ck_hold_luggage_fee_non_negative'),
        sa.CheckConstraint('total_price = segment_price + luggage_fee', name='ck_hold_total_price_sum'),
        sa.CheckConstraint('length(booking_reference) > 0', name='ck_hold_booking_reference_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_holds_trip_id'), 'holds', ['trip_id'], unique=False)
    op.create_index(op.f('ix_holds_booking_reference'), 'holds', ['booking_reference'], unique=False)
    op.create_index(op.f('ix_holds_payment_intent_id'), 'holds', ['payment_intent_id'], unique=False)
    op.create_index(op.f('ix_holds_expires_at'), 'holds', ['expires_at'], unique=False)

    # Reservations: committed once per hold
    op.create_table('reservations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('hold_id', sa.Uuid(), nullable=False),
        sa.Column('trip_id', sa.String(length=64), nullable=False),
        sa.Column('pickup_stop_id', sa.String(length=64), nullable=False),
        sa.Column('dropoff_stop_id', sa.String(length=64), nullable=False),
        sa.Column('bag_count', sa.Integer(), nullable=False),
        sa.Column('segment_price', sa.Integer(), nullable=False),
        sa.Column('luggage_fee', sa.Integer(), nullable=False),
        sa.Column('total_price', sa.Integer(), nullable=False),
        sa.Column('passenger_name', sa.String(length=255), nullable=False),
        sa.Column('passenger_email', sa.String(length=255), nullable=False),
        sa.Column('passenger_phone', sa.String(length=64), nullable=False),
        sa.Column('booking_reference', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint('bag_count >= 0', name='ck_reservation_bag_count_non_negative'),
        sa.CheckConstraint('total_price = segment_price + luggage_fee', name='ck_reservation_total_price_sum'),
        sa.CheckConstraint('length(booking_reference) > 0', name='ck_reservation_booking_reference_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_reservations_hold_id'), 'reservations', ['hold_id'], unique=True)
    op.create_index(op.f('ix_reservations_booking_reference'), 'reservations', ['booking_reference'], unique=True)
    op.create_index(op.f('ix_reservations_trip_id'), 'reservations', ['trip_id'], unique=False)
    op.create_index(op.f('ix_reservations_status'), 'reservations', ['status'], unique=False)

    # Booked seats: a seat number appears at most once per trip
    op.create_table('booked_seats',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('reservation_id', sa.Uuid(), nullable=False),
        sa.Column('trip_id', sa.String(length=64), nullable=False),
        sa.Column('seat_number', sa.String(length=16), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.CheckConstraint('length(seat_number) > 0', name='ck_booked_seat_number_not_empty'),
        sa.ForeignKeyConstraint(['reservation_id'], ['reservations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('trip_id', 'seat_number', name='uq_booked_seat_trip_seat')
    )
    op.create_index(op.f('ix_booked_seats_reservation_id'), 'booked_seats', ['reservation_id'], unique=False)

    # Payment records: one receipt per reservation
    op.create_table('payment_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('reservation_id', sa.Uuid(), nullable=False),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('amount >= 0', name='ck_payment_amount_non_negative'),
        sa.CheckConstraint('length(currency) = 3', name='ck_payment_currency_length'),
        sa.ForeignKeyConstraint(['reservation_id'], ['reservations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('reservation_id')
    )
    op.create_index(op.f('ix_payment_records_payment_intent_id'), 'payment_records', ['payment_intent_id'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(op.f('ix_payment_records_payment_intent_id'), table_name='payment_records')
    op.drop_table('payment_records')
    op.drop_index(op.f('ix_booked_seats_reservation_id'), table_name='booked_seats')
    op.drop_table('booked_seats')
    op.drop_index(op.f('ix_reservations_status'), table_name='reservations')
    op.drop_index(op.f('ix_reservations_trip_id'), table_name='reservations')
    op.drop_index(op.f('ix_reservations_booking_reference'), table_name='reservations')
    op.drop_index(op.f('ix_reservations_hold_id'), table_name='reservations')
    op.drop_table('reservations')
    op.drop_index(op.f('ix_holds_expires_at'), table_name='holds')
    op.drop_index(op.f('ix_holds_payment_intent_id'), table_name='holds')
    op.drop_index(op.f('ix_holds_booking_reference'), table_name='holds')
    op.drop_index(op.f('ix_holds_trip_id'), table_name='holds')
    op.drop_table('holds')
