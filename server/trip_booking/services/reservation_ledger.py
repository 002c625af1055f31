"""Reservation ledger: durable reservations committed from paid holds."""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.clock import utcnow
from ..core.config import settings
from ..core.exceptions import ReconciliationError, SeatConflictError
from ..core.observability import metrics_collector
from ..models.hold import Hold
from ..models.reservation import (
    BookedSeat,
    PaymentRecord,
    PaymentStatus,
    Reservation,
    ReservationStatus,
)

logger = logging.getLogger(__name__)


class ReservationLedger:
    """Service for reservation persistence operations."""

    def __init__(self, db: AsyncSession, currency: Optional[str] = None):
        self.db = db
        self.currency = currency or settings.payment_currency

    def _reservation_query(self):
        return select(Reservation).options(
            selectinload(Reservation.booked_seats),
            selectinload(Reservation.payment),
        )

    async def find_by_hold_id(self, hold_id: UUID) -> Optional[Reservation]:
        """Get the reservation that was committed from a hold, if any."""
        result = await self.db.execute(
            self._reservation_query().where(Reservation.hold_id == hold_id)
        )
        return result.scalar_one_or_none()

    async def find_by_booking_reference(self, booking_reference: str) -> Optional[Reservation]:
        result = await self.db.execute(
            self._reservation_query().where(Reservation.booking_reference == booking_reference)
        )
        return result.scalar_one_or_none()

    async def get_seats(self, reservation_id: UUID) -> List[str]:
        """Get the seat numbers of a reservation in request order."""
        result = await self.db.execute(
            select(BookedSeat.seat_number)
            .where(BookedSeat.reservation_id == reservation_id)
            .order_by(BookedSeat.position)
        )
        return list(result.scalars().all())

    async def get_payment(self, reservation_id: UUID) -> Optional[PaymentRecord]:
        result = await self.db.execute(
            select(PaymentRecord).where(PaymentRecord.reservation_id == reservation_id)
        )
        return result.scalar_one_or_none()

    async def _booked_seats(self, trip_id: str, seats: List[str]) -> List[str]:
        result = await self.db.execute(
            select(BookedSeat.seat_number).where(
                BookedSeat.trip_id == trip_id,
                BookedSeat.seat_number.in_(seats),
            )
        )
        return sorted(result.scalars().all())

    async def find_by_hold_ids(self, hold_ids: Sequence[UUID]) -> List[Reservation]:
        """Get the reservations committed from any of the holds, in the order given."""
        result = await self.db.execute(
            self._reservation_query().where(Reservation.hold_id.in_(list(hold_ids)))
        )
        by_hold = {reservation.hold_id: reservation for reservation in result.scalars().all()}
        return [by_hold[hold_id] for hold_id in hold_ids if hold_id in by_hold]

    async def create_from_hold(
        self,
        hold: Hold,
        payment_intent_id: str,
        now: Optional[datetime] = None,
    ) -> Tuple[Reservation, bool]:
        """
        Commit a reservation, its seats and its payment record from a paid hold.

        Finalizing the same hold twice returns the first reservation. The hold
        is re-read inside the transaction; if it has already been deleted the
        caller's snapshot is used, since the payment has been taken.

        Args:
            hold: The hold the payment was made for
            payment_intent_id: Gateway payment intent that succeeded
            now: Payment time, defaults to the current UTC time

        Returns:
            The reservation, and True if this call committed it or False if
            an earlier finalization already had

        Raises:
            SeatConflictError: If any held seat is already booked on the trip
        """
        reservations, created = await self._commit([hold], payment_intent_id, now)
        return reservations[0], created

    async def create_from_group(
        self,
        holds: Sequence[Hold],
        payment_intent_id: str,
        now: Optional[datetime] = None,
    ) -> Tuple[List[Reservation], bool]:
        """
        Commit both legs of a round trip in one transaction and link them.

        Either both reservations are written or neither is. A seat conflict on
        either leg aborts the whole group.
        """
        if len(holds) != 2:
            raise ValueError(f"A round trip finalizes exactly two holds, got {len(holds)}")
        return await self._commit(holds, payment_intent_id, now)

    async def _commit(
        self,
        holds: Sequence[Hold],
        payment_intent_id: str,
        now: Optional[datetime],
    ) -> Tuple[List[Reservation], bool]:
        # Plain copies survive the rollback that expires the session's objects
        snapshots = [(hold.id, hold.trip_id, list(hold.seats), hold) for hold in holds]
        hold_ids = [hold_id for hold_id, _, _, _ in snapshots]

        existing = await self.find_by_hold_ids(hold_ids)
        if existing:
            self._ensure_complete(existing, hold_ids, payment_intent_id)
            logger.info(
                "Reservation already exists for hold",
                extra={
                    "hold_ids": [str(hold_id) for hold_id in hold_ids],
                    "reservation_ids": [str(reservation.id) for reservation in existing],
                }
            )
            return existing, False

        current = await self.db.execute(
            select(Hold).where(Hold.id.in_(hold_ids)).execution_options(populate_existing=True)
        )
        current_by_id = {row.id: row for row in current.scalars().all()}

        legs = []
        for hold_id, trip_id, seats, snapshot in snapshots:
            source = current_by_id.get(hold_id)
            if source is None:
                logger.warning(
                    "Hold deleted before finalization, committing from snapshot",
                    extra={"hold_id": str(hold_id), "payment_intent_id": payment_intent_id}
                )
                source = snapshot
            else:
                seats = list(source.seats)
            legs.append((hold_id, trip_id, seats, source))

        claimed = set()
        for hold_id, trip_id, seats, _ in legs:
            conflicting = set(await self._booked_seats(trip_id, seats))
            conflicting.update(seat for seat in seats if (trip_id, seat) in claimed)
            if conflicting:
                await self._raise_seat_conflict(trip_id, sorted(conflicting), hold_id, payment_intent_id)
            claimed.update((trip_id, seat) for seat in seats)

        now = now or utcnow()
        reservations = [
            self._build_reservation(hold_id, source, seats, payment_intent_id, now)
            for hold_id, _, seats, source in legs
        ]
        if len(reservations) == 2:
            outbound, inbound = reservations
            outbound.linked_reservation_id = inbound.id
            inbound.linked_reservation_id = outbound.id

        self.db.add_all(reservations)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            # A concurrent finalization won the race: same hold, or same seats
            existing = await self.find_by_hold_ids(hold_ids)
            if existing:
                self._ensure_complete(existing, hold_ids, payment_intent_id)
                logger.info(
                    "Concurrent finalization already committed hold",
                    extra={
                        "hold_ids": [str(hold_id) for hold_id in hold_ids],
                        "reservation_ids": [str(reservation.id) for reservation in existing],
                    }
                )
                return existing, False
            for hold_id, trip_id, seats, _ in legs:
                conflicting = await self._booked_seats(trip_id, seats)
                if conflicting:
                    await self._raise_seat_conflict(trip_id, conflicting, hold_id, payment_intent_id)
            raise

        for reservation, (hold_id, trip_id, seats, _) in zip(reservations, legs):
            metrics_collector.record_reservation_finalized(trip_id)
            logger.info(
                "Reservation committed",
                extra={
                    "reservation_id": str(reservation.id),
                    "hold_id": str(hold_id),
                    "booking_reference": reservation.booking_reference,
                    "booking_group_id": reservation.booking_group_id,
                    "trip_id": trip_id,
                    "seats": seats,
                    "payment_intent_id": payment_intent_id,
                }
            )
        return reservations, True

    def _build_reservation(
        self, hold_id: UUID, source: Hold, seats: List[str], payment_intent_id: str, now: datetime
    ) -> Reservation:
        reservation = Reservation(
            id=uuid4(),
            hold_id=hold_id,
            trip_id=source.trip_id,
            pickup_stop_id=source.pickup_stop_id,
            dropoff_stop_id=source.dropoff_stop_id,
            bag_count=source.bag_count,
            segment_price=source.segment_price,
            luggage_fee=source.luggage_fee,
            total_price=source.total_price,
            passenger_name=source.passenger_name,
            passenger_email=source.passenger_email,
            passenger_phone=source.passenger_phone,
            booking_reference=source.booking_reference,
            booking_group_id=source.booking_group_id,
            status=ReservationStatus.CONFIRMED,
            created_at=now,
            updated_at=now,
        )
        reservation.booked_seats = [
            BookedSeat(trip_id=source.trip_id, seat_number=seat, position=position)
            for position, seat in enumerate(seats)
        ]
        reservation.payment = PaymentRecord(
            payment_intent_id=payment_intent_id,
            amount=source.total_price,
            currency=self.currency,
            status=PaymentStatus.SUCCEEDED,
            paid_at=now,
        )
        return reservation

    def _ensure_complete(
        self, existing: List[Reservation], hold_ids: List[UUID], payment_intent_id: str
    ) -> None:
        if len(existing) == len(hold_ids):
            return
        found = {reservation.hold_id for reservation in existing}
        missing = next(hold_id for hold_id in hold_ids if hold_id not in found)
        logger.error(
            "Booking group only partially finalized",
            extra={"hold_id": str(missing), "payment_intent_id": payment_intent_id}
        )
        raise ReconciliationError(hold_id=str(missing), payment_intent_id=payment_intent_id)

    async def _raise_seat_conflict(
        self, trip_id: str, conflicting: List[str], hold_id: UUID, payment_intent_id: str
    ) -> None:
        metrics_collector.record_seat_conflict(trip_id)
        logger.error(
            "Seat conflict while finalizing paid hold",
            extra={
                "trip_id": trip_id,
                "seats": conflicting,
                "hold_id": str(hold_id),
                "payment_intent_id": payment_intent_id,
            }
        )
        raise SeatConflictError(trip_id=trip_id, seats=conflicting, hold_id=str(hold_id))
