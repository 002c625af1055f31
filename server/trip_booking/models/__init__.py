"""Models module exporting all database models."""

from .hold import Hold, HoldStatus
from .reservation import BookedSeat, PaymentRecord, PaymentStatus, Reservation, ReservationStatus

__all__ = [
    # In-flight booking attempts
    "Hold",
    "HoldStatus",

    # Committed reservations
    "Reservation",
    "ReservationStatus",
    "BookedSeat",
    "PaymentRecord",
    "PaymentStatus",
]
