"""Reservation router."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.database import get_db
from ..core.exceptions import NotFoundError
from ..schemas.common import Money, Problem
from ..models.reservation import PaymentStatus
from ..schemas.reservation import Passenger, Payment, PriceBreakdown, Reservation, ReservationStatus
from ..services.reservation_ledger import ReservationLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/reservations", tags=["reservations"])

DB_DEPENDENCY = Depends(get_db)


def _convert_reservation_to_schema(reservation_model) -> Reservation:
    """Convert reservation model, seats and payment to schema."""
    payment = reservation_model.payment
    currency = payment.currency if payment else settings.payment_currency

    def money(amount: int) -> Money:
        return Money(amount=amount, currency=currency)

    return Reservation(
        id=str(reservation_model.id),
        hold_id=str(reservation_model.hold_id),
        booking_reference=reservation_model.booking_reference,
        booking_group_id=reservation_model.booking_group_id,
        linked_reservation_id=(
            str(reservation_model.linked_reservation_id) if reservation_model.linked_reservation_id else None
        ),
        trip_id=reservation_model.trip_id,
        pickup_stop_id=reservation_model.pickup_stop_id,
        dropoff_stop_id=reservation_model.dropoff_stop_id,
        seats=[seat.seat_number for seat in reservation_model.booked_seats],
        bag_count=reservation_model.bag_count,
        price=PriceBreakdown(
            segment_price=money(reservation_model.segment_price),
            luggage_fee=money(reservation_model.luggage_fee),
            total=money(reservation_model.total_price),
        ),
        passenger=Passenger(
            full_name=reservation_model.passenger_name,
            email=reservation_model.passenger_email,
            phone=reservation_model.passenger_phone,
        ),
        status=ReservationStatus(reservation_model.status),
        payment=Payment(
            payment_intent_id=payment.payment_intent_id,
            amount=money(payment.amount),
            status=PaymentStatus(payment.status).value,
            paid_at=payment.paid_at,
        ) if payment else None,
        created_at=reservation_model.created_at,
    )


@router.get(
    "/{booking_reference}",
    response_model=Reservation,
    responses={404: {"model": Problem, "description": "No reservation with this booking reference"}},
)
async def get_reservation(booking_reference: str, db: AsyncSession = DB_DEPENDENCY) -> Reservation:
    """Get a committed reservation by its booking reference."""
    reservation = await ReservationLedger(db).find_by_booking_reference(booking_reference.upper())
    if reservation is None:
        raise NotFoundError(resource_type="reservation", resource_id=booking_reference)

    logger.debug("Reservation retrieved", extra={"booking_reference": reservation.booking_reference})
    return _convert_reservation_to_schema(reservation)
