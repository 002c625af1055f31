"""Reservation, booked seat and payment record model definitions."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship


from ..core.database import Base


class ReservationStatus(str, Enum):
    """Reservation status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    """Payment record status enumeration."""
    SUCCEEDED = "succeeded"


class Reservation(Base):
    """Reservation entity created when a paid hold is finalized."""

    __tablename__ = "reservations"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Originating hold; the idempotency key for finalization
    hold_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True, index=True)

    # Trip references
    trip_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    pickup_stop_id: Mapped[str] = mapped_column(String(64), nullable=False)
    dropoff_stop_id: Mapped[str] = mapped_column(String(64), nullable=False)
    bag_count: Mapped[int] = mapped_column(Integer, nullable=False)

    # Price breakdown in minor units
    segment_price: Mapped[int] = mapped_column(Integer, nullable=False)
    luggage_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)

    # Passenger snapshot copied from the hold
    passenger_name: Mapped[str] = mapped_column(String(255), nullable=False)
    passenger_email: Mapped[str] = mapped_column(String(255), nullable=False)
    passenger_phone: Mapped[str] = mapped_column(String(64), nullable=False)

    booking_reference: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)

    # Round trips: both legs share a group id and point at each other
    booking_group_id: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    linked_reservation_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    status: Mapped[ReservationStatus] = mapped_column(
        String(20),
        nullable=False,
        default=ReservationStatus.CONFIRMED,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("bag_count >= 0", name="ck_reservation_bag_count_non_negative"),
        CheckConstraint("total_price = segment_price + luggage_fee", name="ck_reservation_total_price_sum"),
        CheckConstraint("length(booking_reference) > 0", name="ck_reservation_booking_reference_not_empty"),
    )

    # Relationships
    booked_seats: Mapped[list["BookedSeat"]] = relationship(
        "BookedSeat",
        back_populates="reservation",
        cascade="all, delete-orphan",
        order_by="BookedSeat.position"
    )
    payment: Mapped["PaymentRecord | None"] = relationship(
        "PaymentRecord",
        back_populates="reservation",
        cascade="all, delete-orphan",
        uselist=False
    )

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, reference='{self.booking_reference}', "
            f"hold_id={self.hold_id}, status={self.status})>"
        )


class BookedSeat(Base):
    """One seat of a reservation; a seat number is booked at most once per trip."""

    __tablename__ = "booked_seats"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    reservation_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Denormalized so the unique constraint can span reservations
    trip_id: Mapped[str] = mapped_column(String(64), nullable=False)
    seat_number: Mapped[str] = mapped_column(String(16), nullable=False)

    # Order of the seat within the original request
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("trip_id", "seat_number", name="uq_booked_seat_trip_seat"),
        CheckConstraint("length(seat_number) > 0", name="ck_booked_seat_number_not_empty"),
    )

    reservation: Mapped["Reservation"] = relationship("Reservation", back_populates="booked_seats")

    def __repr__(self) -> str:
        return f"<BookedSeat(reservation_id={self.reservation_id}, trip_id={self.trip_id}, seat={self.seat_number})>"


class PaymentRecord(Base):
    """Receipt for the payment that finalized a reservation."""

    __tablename__ = "payment_records"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    reservation_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("reservations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )

    payment_intent_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.SUCCEEDED
    )
    paid_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_payment_amount_non_negative"),
        CheckConstraint("length(currency) = 3", name="ck_payment_currency_length"),
    )

    reservation: Mapped["Reservation"] = relationship("Reservation", back_populates="payment")

    def __repr__(self) -> str:
        return (
            f"<PaymentRecord(reservation_id={self.reservation_id}, "
            f"intent='{self.payment_intent_id}', amount={self.amount} {self.currency})>"
        )
