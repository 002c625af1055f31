"""Hold store: short-lived seat holds awaiting payment."""

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import utcnow
from ..core.config import settings
from ..core.observability import metrics_collector
from ..models.hold import Hold, HoldStatus
from ..models.reservation import Reservation
from ..schemas.hold import CreateHoldRequest

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
MAX_REFERENCE_ATTEMPTS = 10
BOOKING_GROUP_PREFIX = "GRP-"


def new_booking_group_id() -> str:
    """Generate the id shared by the holds of one round trip."""
    return f"{BOOKING_GROUP_PREFIX}{secrets.token_hex(8).upper()}"


class HoldStore:
    """Service for hold persistence operations."""

    def __init__(
        self,
        db: AsyncSession,
        ttl_minutes: Optional[int] = None,
        reference_length: Optional[int] = None,
    ):
        self.db = db
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else settings.hold_ttl_minutes)
        self.reference_length = reference_length or settings.booking_reference_length

    def _generate_booking_reference(self) -> str:
        """Generate a random booking reference."""
        return ''.join(secrets.choice(REFERENCE_ALPHABET) for _ in range(self.reference_length))

    async def _reference_in_use(self, reference: str) -> bool:
        held = await self.db.execute(
            select(Hold.id).where(Hold.booking_reference == reference).limit(1)
        )
        if held.scalar_one_or_none() is not None:
            return True
        reserved = await self.db.execute(
            select(Reservation.id).where(Reservation.booking_reference == reference).limit(1)
        )
        return reserved.scalar_one_or_none() is not None

    async def _allocate_booking_reference(self) -> str:
        for _ in range(MAX_REFERENCE_ATTEMPTS):
            reference = self._generate_booking_reference()
            if not await self._reference_in_use(reference):
                return reference
            logger.info("Booking reference collision, redrawing", extra={"reference": reference})
        raise RuntimeError(
            f"Could not allocate a unique booking reference after {MAX_REFERENCE_ATTEMPTS} attempts"
        )

    async def create_hold(
        self,
        request: CreateHoldRequest,
        now: Optional[datetime] = None,
        booking_group_id: Optional[str] = None,
    ) -> Hold:
        """
        Persist a pending hold for the requested seats.

        Args:
            request: Validated hold request
            now: Creation time, defaults to the current UTC time
            booking_group_id: Round trip group the hold belongs to, if any

        Returns:
            The persisted hold with its booking reference and expiry
        """
        now = now or utcnow()
        reference = await self._allocate_booking_reference()

        hold = Hold(
            trip_id=request.trip_id,
            pickup_stop_id=request.pickup_stop_id,
            dropoff_stop_id=request.dropoff_stop_id,
            passenger_name=request.passenger.full_name,
            passenger_email=request.passenger.email,
            passenger_phone=request.passenger.phone,
            seats=list(request.seats),
            bag_count=request.bag_count,
            segment_price=request.segment_price,
            luggage_fee=request.luggage_fee,
            total_price=request.total_price,
            booking_reference=reference,
            booking_group_id=booking_group_id,
            status=HoldStatus.PENDING,
            expires_at=now + self.ttl,
            created_at=now,
        )

        self.db.add(hold)
        await self.db.commit()
        await self.db.refresh(hold)

        metrics_collector.record_hold_created(request.trip_id)
        logger.info(
            "Hold created",
            extra={
                "hold_id": str(hold.id),
                "trip_id": hold.trip_id,
                "seats": hold.seats,
                "booking_reference": reference,
                "booking_group_id": booking_group_id,
                "total_price": hold.total_price,
                "expires_at": hold.expires_at.isoformat(),
            }
        )
        return hold

    async def attach_payment_intent(self, hold_id: UUID, intent_id: str) -> bool:
        """Record the payment intent on a hold. Returns False if the hold is gone."""
        result = await self.db.execute(
            update(Hold)
            .where(Hold.id == hold_id)
            .values(payment_intent_id=intent_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        attached = result.rowcount > 0
        if not attached:
            logger.warning(
                "Payment intent not attached, hold missing",
                extra={"hold_id": str(hold_id), "payment_intent_id": intent_id}
            )
        return attached

    async def get_hold(self, hold_id: UUID) -> Optional[Hold]:
        """Get a hold by ID. None means it was finalized or expired."""
        result = await self.db.execute(select(Hold).where(Hold.id == hold_id))
        return result.scalar_one_or_none()

    async def get_active_hold(self, hold_id: UUID, now: Optional[datetime] = None) -> Optional[Hold]:
        """Get a hold by ID, hiding holds whose TTL has passed."""
        hold = await self.get_hold(hold_id)
        if hold is None or hold.is_expired(now or utcnow()):
            return None
        return hold

    async def delete_hold(self, hold_id: UUID) -> bool:
        """Delete a hold. Deleting a missing hold is a no-op."""
        result = await self.db.execute(
            delete(Hold)
            .where(Hold.id == hold_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount > 0

    async def list_expired(self, now: Optional[datetime] = None, limit: int = 100) -> list[Hold]:
        """List holds whose expiry lies strictly before ``now``, oldest first."""
        result = await self.db.execute(
            select(Hold)
            .where(Hold.expires_at < (now or utcnow()))
            .order_by(Hold.expires_at)
            .limit(limit)
        )
        return list(result.scalars().all())
