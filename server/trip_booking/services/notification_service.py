"""Reservation confirmation notifications."""

import logging
from dataclasses import asdict, dataclass, field
from typing import List, Protocol
from uuid import uuid4

from ..core.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationSummary:
    """Plain-data snapshot of a committed reservation, safe to hand to a detached task."""

    reservation_id: str
    booking_reference: str
    trip_id: str
    pickup_stop_id: str
    dropoff_stop_id: str
    passenger_name: str
    passenger_email: str
    seats: List[str] = field(default_factory=list)
    bag_count: int = 0
    total_price: int = 0
    currency: str = "CAD"


class NotificationDispatcher(Protocol):
    """Sends a confirmation for a committed reservation."""

    async def send(self, summary: ReservationSummary) -> str:  # pragma: no cover - interface
        ...


class LoggingNotificationDispatcher:
    """Dispatcher that logs confirmations instead of sending real email."""

    def __init__(self):
        self.sent: List[dict] = []

    def _render(self, summary: ReservationSummary) -> str:
        return (
            f"Your booking {summary.booking_reference} on trip {summary.trip_id} is confirmed.\n"
            f"From {summary.pickup_stop_id} to {summary.dropoff_stop_id}, "
            f"seats {', '.join(summary.seats)}, {summary.bag_count} bag(s).\n"
            f"Total paid: {summary.total_price / 100:.2f} {summary.currency}"
        )

    async def send(self, summary: ReservationSummary) -> str:
        message_id = f"msg_{uuid4().hex}"
        message = {
            "message_id": message_id,
            "to": summary.passenger_email,
            "subject": f"Booking confirmed - {summary.booking_reference}",
            "body": self._render(summary),
            "sent_at": utcnow(),
            "summary": asdict(summary),
        }
        self.sent.append(message)

        logger.info(
            "Confirmation notification sent",
            extra={
                "message_id": message_id,
                "reservation_id": summary.reservation_id,
                "booking_reference": summary.booking_reference,
                "to": summary.passenger_email,
            }
        )
        return message_id

