"""Checkout status lookup for polling clients."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..schemas.hold import CheckoutState, CheckoutStatus
from .hold_store import HoldStore
from .reservation_ledger import ReservationLedger

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Booking not found or expired"
EXPIRED_MESSAGE = "Booking has expired"


class CheckoutStatusService:
    """Reports where a checkout stands, using the reservation table as ground truth."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.holds = HoldStore(db)
        self.ledger = ReservationLedger(db)

    async def get_status(self, hold_id: UUID, now: Optional[datetime] = None) -> CheckoutStatus:
        reservation = await self.ledger.find_by_hold_id(hold_id)
        if reservation is not None:
            return CheckoutStatus(
                hold_id=str(hold_id),
                status=CheckoutState.SUCCEEDED,
                reservation_id=str(reservation.id),
                booking_reference=reservation.booking_reference,
            )

        hold = await self.holds.get_hold(hold_id)
        if hold is None:
            return CheckoutStatus(hold_id=str(hold_id), status=CheckoutState.FAILED, error=NOT_FOUND_MESSAGE)

        if hold.is_expired(now or utcnow()):
            return CheckoutStatus(hold_id=str(hold_id), status=CheckoutState.FAILED, error=EXPIRED_MESSAGE)

        return CheckoutStatus(
            hold_id=str(hold_id),
            status=CheckoutState.PENDING,
            booking_reference=hold.booking_reference,
        )
