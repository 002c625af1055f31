"""Webhook acknowledgement schemas."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class FinalizationOutcome(str, Enum):
    """What the finalizer did with a delivered event."""
    FINALIZED = "finalized"
    ALREADY_FINALIZED = "already_finalized"
    PAYMENT_FAILED = "payment_failed"
    IGNORED = "ignored"


class WebhookAck(BaseModel):
    """Body returned to the gateway for accepted deliveries."""

    received: bool = Field(True, description="The event was accepted")
    event_id: str = Field(..., description="Gateway event ID")
    event_type: str = Field(..., description="Normalized event type")
    outcome: FinalizationOutcome = Field(..., description="Processing outcome")
    reservation_id: Optional[str] = Field(None, description="Reservation created or found for the hold")
    linked_reservation_id: Optional[str] = Field(None, description="Return leg reservation for a round trip")
