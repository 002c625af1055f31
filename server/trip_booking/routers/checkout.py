"""Checkout router: hold creation and checkout status."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_payment_gateway
from ..core.exceptions import InternalServerError, NotFoundError, ProblemDetailsException
from ..schemas.common import Problem
from ..schemas.hold import (
    CheckoutResponse,
    CheckoutStatus,
    CreateHoldRequest,
    Hold,
    HoldStatus,
    RoundTripCheckoutRequest,
    RoundTripCheckoutResponse,
)
from ..services.checkout_saga import CheckoutSaga
from ..services.checkout_status import CheckoutStatusService
from ..services.hold_store import HoldStore
from ..services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/checkout", tags=["checkout"])

# Define dependencies to avoid B008 linting errors
DB_DEPENDENCY = Depends(get_db)
GATEWAY_DEPENDENCY = Depends(get_payment_gateway)

CHECKOUT_RESPONSES = {
    422: {"model": Problem, "description": "Invalid checkout request"},
    502: {"model": Problem, "description": "Payment gateway rejected the intent; no hold was kept"},
}
NOT_FOUND_RESPONSES = {404: {"model": Problem, "description": "Hold not found or expired"}}


def _convert_hold_to_schema(hold_model) -> Hold:
    """Convert hold model to schema."""
    return Hold(
        id=str(hold_model.id),
        trip_id=hold_model.trip_id,
        pickup_stop_id=hold_model.pickup_stop_id,
        dropoff_stop_id=hold_model.dropoff_stop_id,
        seats=list(hold_model.seats),
        bag_count=hold_model.bag_count,
        total_price=hold_model.total_price,
        booking_reference=hold_model.booking_reference,
        payment_intent_id=hold_model.payment_intent_id,
        booking_group_id=hold_model.booking_group_id,
        status=HoldStatus(hold_model.status),
        expires_at=hold_model.expires_at,
    )


@router.post("/hold", response_model=CheckoutResponse, status_code=201, responses=CHECKOUT_RESPONSES)
async def create_hold(
    request: CreateHoldRequest,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: PaymentGateway = GATEWAY_DEPENDENCY,
) -> CheckoutResponse:
    """
    Hold seats and open a payment intent for them.

    If the payment gateway rejects the intent, the hold is removed and the
    request fails with 502.
    """
    try:
        result = await CheckoutSaga(db, gateway).run(request)
        return CheckoutResponse(
            hold=_convert_hold_to_schema(result.hold),
            payment_intent_id=result.payment_intent_id,
            client_secret=result.client_secret,
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in checkout",
            extra={"trip_id": request.trip_id, "seats": request.seats, "error": str(e)},
            exc_info=True
        )
        raise InternalServerError() from e


@router.post(
    "/round-trip",
    response_model=RoundTripCheckoutResponse,
    status_code=201,
    responses=CHECKOUT_RESPONSES,
)
async def create_round_trip(
    request: RoundTripCheckoutRequest,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: PaymentGateway = GATEWAY_DEPENDENCY,
) -> RoundTripCheckoutResponse:
    """
    Hold seats on an outbound and a return trip under one payment intent.

    Both holds share a booking group and are finalized together by a single
    payment webhook. A gateway failure removes both holds.
    """
    try:
        result = await CheckoutSaga(db, gateway).run_round_trip(request.outbound, request.return_leg)
        return RoundTripCheckoutResponse(
            booking_group_id=result.booking_group_id,
            outbound=_convert_hold_to_schema(result.hold),
            return_leg=_convert_hold_to_schema(result.return_hold),
            total_amount=result.total_amount,
            payment_intent_id=result.payment_intent_id,
            client_secret=result.client_secret,
        )

    except ProblemDetailsException:
        raise

    except Exception as e:
        logger.error(
            "Unexpected error in round trip checkout",
            extra={
                "outbound_trip_id": request.outbound.trip_id,
                "return_trip_id": request.return_leg.trip_id,
                "error": str(e),
            },
            exc_info=True
        )
        raise InternalServerError() from e


@router.get("/hold/{hold_id}", response_model=Hold, responses=NOT_FOUND_RESPONSES)
async def get_hold(hold_id: UUID, db: AsyncSession = DB_DEPENDENCY) -> Hold:
    """Get an active hold. Expired and already finalized holds are both 404."""
    hold = await HoldStore(db).get_active_hold(hold_id)
    if hold is None:
        raise NotFoundError(resource_type="hold", resource_id=str(hold_id))
    return _convert_hold_to_schema(hold)


@router.get("/hold/{hold_id}/status", response_model=CheckoutStatus)
async def get_checkout_status(hold_id: UUID, db: AsyncSession = DB_DEPENDENCY) -> CheckoutStatus:
    """Poll the outcome of a checkout: pending, succeeded or failed."""
    return await CheckoutStatusService(db).get_status(hold_id)
