"""Payment webhook router."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..core.dependencies import get_notification_dispatcher, get_payment_gateway, get_task_scheduler
from ..core.exceptions import InternalServerError, ProblemDetailsException
from ..schemas.common import Problem
from ..schemas.webhook import WebhookAck
from ..services.notification_service import NotificationDispatcher
from ..services.payment_gateway import PaymentGateway
from ..services.scheduler import TaskScheduler
from ..services.webhook_finalizer import WebhookFinalizer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/payments", tags=["payments"])

DB_DEPENDENCY = Depends(get_db)
GATEWAY_DEPENDENCY = Depends(get_payment_gateway)
DISPATCHER_DEPENDENCY = Depends(get_notification_dispatcher)
SCHEDULER_DEPENDENCY = Depends(get_task_scheduler)
SIGNATURE_HEADER = Header(None, alias="Stripe-Signature")

WEBHOOK_RESPONSES = {
    400: {"model": Problem, "description": "Missing or invalid signature, or a malformed event"},
    409: {"model": Problem, "description": "Paid seats were already booked; not retried"},
    500: {"model": Problem, "description": "Processing failed; the gateway should retry"},
}


@router.post("/webhook", response_model=WebhookAck, responses=WEBHOOK_RESPONSES)
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = SIGNATURE_HEADER,
    db: AsyncSession = DB_DEPENDENCY,
    gateway: PaymentGateway = GATEWAY_DEPENDENCY,
    dispatcher: NotificationDispatcher = DISPATCHER_DEPENDENCY,
    scheduler: TaskScheduler = SCHEDULER_DEPENDENCY,
) -> WebhookAck:
    """
    Receive a payment gateway webhook.

    The body is read raw so the signature can be verified over the exact
    bytes that were signed. Returns 200 for processed, replayed and ignored
    events; 5xx tells the gateway to retry.
    """
    raw_body = await request.body()
    finalizer = WebhookFinalizer(db, gateway, dispatcher, scheduler)

    try:
        result = await finalizer.handle(raw_body, stripe_signature)
    except ProblemDetailsException:
        raise
    except Exception as e:
        logger.error(
            "Unexpected error processing payment webhook",
            extra={"error": str(e)},
            exc_info=True
        )
        raise InternalServerError("Webhook processing failed; the delivery can be retried") from e

    return WebhookAck(
        event_id=result.event.event_id,
        event_type=result.event.event_type.value,
        outcome=result.outcome,
        reservation_id=result.reservation_id,
        linked_reservation_id=result.linked_reservation_id,
    )
