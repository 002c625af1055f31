"""Hold model definition."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class HoldStatus(str, Enum):
    """Hold status enumeration.

    Holds are hard-deleted on finalization or expiry, so ``pending`` is the
    only persisted state.
    """
    PENDING = "pending"


class Hold(Base):
    """Time-boxed, uncommitted booking attempt awaiting payment."""

    __tablename__ = "holds"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Trip references (owned by the trip catalogue)
    trip_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    pickup_stop_id: Mapped[str] = mapped_column(String(64), nullable=False)
    dropoff_stop_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Passenger details
    passenger_name: Mapped[str] = mapped_column(String(255), nullable=False)
    passenger_email: Mapped[str] = mapped_column(String(255), nullable=False)
    passenger_phone: Mapped[str] = mapped_column(String(64), nullable=False)

    # Requested seats, in request order
    seats: Mapped[list[str]] = mapped_column(JSON, nullable=False)
    bag_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Price in minor units
    segment_price: Mapped[int] = mapped_column(Integer, nullable=False)
    luggage_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)

    booking_reference: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    payment_intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    # Shared by the outbound and return holds of a round trip
    booking_group_id: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)

    status: Mapped[HoldStatus] = mapped_column(
        String(20),
        nullable=False,
        default=HoldStatus.PENDING
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("bag_count >= 0", name="ck_hold_bag_count_non_negative"),
        CheckConstraint("segment_price >= 0", name="ck_hold_segment_price_non_negative"),
        CheckConstraint("luggage_fee >= 0", name="ck_hold_luggage_fee_non_negative"),
        CheckConstraint("total_price = segment_price + luggage_fee", name="ck_hold_total_price_sum"),
        CheckConstraint("length(booking_reference) > 0", name="ck_hold_booking_reference_not_empty"),
    )

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def __repr__(self) -> str:
        return (
            f"<Hold(id={self.id}, trip_id={self.trip_id}, seats={self.seats}, "
            f"reference='{self.booking_reference}', expires_at={self.expires_at})>"
        )
