"""Hold and checkout Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PassengerInfo(BaseModel):
    """Passenger contact details supplied at checkout."""

    full_name: str = Field(..., min_length=1, max_length=255, description="Passenger full name")
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$", description="Passenger email")
    phone: str = Field(..., min_length=1, max_length=64, description="Passenger phone number")


class CreateHoldRequest(BaseModel):
    """Request schema for creating a hold and its payment intent."""

    trip_id: str = Field(..., min_length=1, max_length=64, description="Trip to reserve seats on")
    pickup_stop_id: str = Field(..., min_length=1, max_length=64, description="Pickup stop")
    dropoff_stop_id: str = Field(..., min_length=1, max_length=64, description="Dropoff stop")
    passenger: PassengerInfo
    seats: list[str] = Field(..., min_length=1, description="Seat identifiers, in order")
    bag_count: int = Field(0, ge=0, description="Number of checked bags")
    segment_price: int = Field(..., ge=0, description="Segment price in minor units")
    luggage_fee: int = Field(0, ge=0, description="Luggage fee in minor units")

    @field_validator("seats")
    @classmethod
    def validate_seats(cls, v: list[str]) -> list[str]:
        """Seats form an ordered set of non-empty identifiers."""
        seats = [seat.strip() for seat in v]
        if any(not seat for seat in seats):
            raise ValueError("Seat identifiers must not be empty")
        if len(set(seats)) != len(seats):
            raise ValueError("Seat identifiers must be unique within a hold")
        return seats

    @property
    def total_price(self) -> int:
        return self.segment_price + self.luggage_fee


class HoldStatus(str, Enum):
    """Hold status enumeration."""
    PENDING = "pending"


class Hold(BaseModel):
    """Hold response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique hold ID")
    trip_id: str = Field(..., description="Trip ID")
    pickup_stop_id: str = Field(..., description="Pickup stop")
    dropoff_stop_id: str = Field(..., description="Dropoff stop")
    seats: list[str] = Field(..., description="Held seats")
    bag_count: int = Field(..., ge=0, description="Number of checked bags")
    total_price: int = Field(..., ge=0, description="Total price in minor units")
    booking_reference: str = Field(..., description="Human-facing booking reference")
    payment_intent_id: Optional[str] = Field(None, description="Attached payment intent")
    booking_group_id: Optional[str] = Field(None, description="Round trip group shared with the other leg")
    status: HoldStatus = Field(..., description="Hold status")
    expires_at: datetime = Field(..., description="Hold expiration time (ISO 8601, UTC)")


class CheckoutResponse(BaseModel):
    """Response for a successful checkout: the hold plus the client payment secret."""

    hold: Hold
    payment_intent_id: str = Field(..., description="Gateway payment intent ID")
    client_secret: str = Field(..., description="Secret the client uses to complete payment")


class RoundTripCheckoutRequest(BaseModel):
    """Request schema for holding both legs of a round trip under one payment."""

    outbound: CreateHoldRequest
    return_leg: CreateHoldRequest

    @model_validator(mode="after")
    def validate_distinct_trips(self) -> "RoundTripCheckoutRequest":
        if self.outbound.trip_id == self.return_leg.trip_id:
            raise ValueError("The return leg must be on a different trip than the outbound leg")
        return self

    @property
    def total_price(self) -> int:
        return self.outbound.total_price + self.return_leg.total_price


class RoundTripCheckoutResponse(BaseModel):
    """Response for a round trip checkout: both holds and one client payment secret."""

    booking_group_id: str = Field(..., description="Group shared by both holds")
    outbound: Hold
    return_leg: Hold
    total_amount: int = Field(..., ge=0, description="Amount charged for both legs in minor units")
    payment_intent_id: str = Field(..., description="Gateway payment intent ID")
    client_secret: str = Field(..., description="Secret the client uses to complete payment")


class CheckoutState(str, Enum):
    """Outcome of a checkout as seen by a polling client."""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CheckoutStatus(BaseModel):
    """Polling response for a checkout started from a hold."""

    hold_id: str
    status: CheckoutState
    reservation_id: Optional[str] = None
    booking_reference: Optional[str] = None
    error: Optional[str] = None
