"""Reservation-related Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .common import Money


class ReservationStatus(str, Enum):
    """Reservation status enumeration."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Passenger(BaseModel):
    """Passenger snapshot stored on the reservation."""

    full_name: str
    email: str
    phone: str


class PriceBreakdown(BaseModel):
    """Segment price plus luggage fee."""

    segment_price: Money
    luggage_fee: Money
    total: Money


class Payment(BaseModel):
    """Payment receipt."""

    payment_intent_id: str
    amount: Money
    status: str
    paid_at: datetime


class Reservation(BaseModel):
    """Reservation response schema."""

    id: str = Field(..., description="Unique reservation ID")
    hold_id: str = Field(..., description="Originating hold ID")
    booking_reference: str = Field(..., description="Booking reference")
    booking_group_id: Optional[str] = Field(None, description="Round trip group, if any")
    linked_reservation_id: Optional[str] = Field(None, description="Reservation for the other leg of a round trip")
    trip_id: str = Field(..., description="Trip ID")
    pickup_stop_id: str
    dropoff_stop_id: str
    seats: list[str] = Field(..., description="Booked seat numbers")
    bag_count: int = Field(..., ge=0)
    price: PriceBreakdown
    passenger: Passenger
    status: ReservationStatus
    payment: Optional[Payment] = None
    created_at: datetime
