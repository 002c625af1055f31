"""Payment gateway adapter: payment intents and webhook verification."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Protocol

import stripe
from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..core.exceptions import GatewayError, MalformedEventError, WebhookSignatureError

logger = logging.getLogger(__name__)

# Metadata keys carrying hold ids through the gateway
HOLD_ID_METADATA_KEY = "hold_id"
RETURN_HOLD_ID_METADATA_KEY = "return_hold_id"
BOOKING_GROUP_METADATA_KEY = "booking_group_id"


class PaymentEventType(str, Enum):
    """Gateway-independent payment event types."""
    SUCCEEDED = "payment.succeeded"
    FAILED = "payment.failed"
    CANCELED = "payment.canceled"
    UNHANDLED = "unhandled"


@dataclass(frozen=True)
class PaymentIntent:
    """Result of creating a payment intent."""

    intent_id: str
    client_secret: str


@dataclass(frozen=True)
class PaymentEvent:
    """A verified webhook event, normalized away from gateway specifics."""

    event_id: str
    event_type: PaymentEventType
    gateway_event_type: str
    intent_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    failure_reason: Optional[str] = None

    @property
    def hold_id(self) -> Optional[str]:
        return self.metadata.get(HOLD_ID_METADATA_KEY) or None

    @property
    def return_hold_id(self) -> Optional[str]:
        """Hold id of the return leg, set only for round trips."""
        return self.metadata.get(RETURN_HOLD_ID_METADATA_KEY) or None

    @property
    def booking_group_id(self) -> Optional[str]:
        return self.metadata.get(BOOKING_GROUP_METADATA_KEY) or None


class PaymentGateway(Protocol):
    """Interface the checkout and webhook paths need from a payment gateway."""

    async def create_intent(
        self, amount_minor_units: int, currency: str, metadata: Dict[str, str]
    ) -> PaymentIntent:  # pragma: no cover - interface
        ...

    def verify_webhook(
        self, raw_body: bytes, signature_header: Optional[str], secret: str
    ) -> PaymentEvent:  # pragma: no cover - interface
        ...


# Stripe event envelope, only the fields this service reads

class _StripeLastPaymentError(BaseModel):
    message: Optional[str] = None


class _StripePaymentIntentObject(BaseModel):
    id: str
    amount: Optional[int] = None
    currency: Optional[str] = None
    metadata: Dict[str, str] = {}
    last_payment_error: Optional[_StripeLastPaymentError] = None
    cancellation_reason: Optional[str] = None


class _StripeEventData(BaseModel):
    object: Dict[str, Any]


class _StripeEvent(BaseModel):
    id: str
    type: str
    data: _StripeEventData


_STRIPE_EVENT_TYPES = {
    "payment_intent.succeeded": PaymentEventType.SUCCEEDED,
    "payment_intent.payment_failed": PaymentEventType.FAILED,
    "payment_intent.canceled": PaymentEventType.CANCELED,
}


class StripePaymentGateway:
    """PaymentGateway backed by the Stripe API."""

    name = "stripe"

    def __init__(self, api_key: str, tolerance_seconds: int = 300):
        self.api_key = api_key
        self.tolerance_seconds = tolerance_seconds

    async def create_intent(
        self, amount_minor_units: int, currency: str, metadata: Dict[str, str]
    ) -> PaymentIntent:
        """
        Create a Stripe PaymentIntent.

        Args:
            amount_minor_units: Amount to charge in the currency's minor unit
            currency: ISO 4217 currency code
            metadata: Correlation data echoed back on webhook events; must include the hold id

        Returns:
            PaymentIntent with the intent id and the client secret

        Raises:
            GatewayError: If Stripe rejects the request or cannot be reached
        """
        if HOLD_ID_METADATA_KEY not in metadata:
            raise ValueError("Payment intent metadata must carry the hold id")

        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self.api_key,
                amount=amount_minor_units,
                currency=currency.lower(),
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
            )
        except stripe.StripeError as e:
            logger.warning(
                "Stripe payment intent creation failed",
                extra={
                    "hold_id": metadata.get(HOLD_ID_METADATA_KEY),
                    "amount": amount_minor_units,
                    "currency": currency,
                    "error": str(e),
                }
            )
            raise GatewayError(f"Failed to create payment intent: {e.user_message or e}") from e

        return PaymentIntent(intent_id=intent.id, client_secret=intent.client_secret or "")

    def verify_webhook(
        self, raw_body: bytes, signature_header: Optional[str], secret: str
    ) -> PaymentEvent:
        """
        Verify a Stripe webhook delivery and normalize it to a PaymentEvent.

        The signature is checked against the raw body before it is parsed.

        Raises:
            WebhookSignatureError: Missing header, unset secret or bad signature
            MalformedEventError: Body verified but is not a usable event
        """
        if not signature_header:
            raise WebhookSignatureError("Missing Stripe-Signature header")
        if not secret:
            raise WebhookSignatureError("Webhook signing secret is not configured")

        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise WebhookSignatureError("Webhook body is not valid UTF-8") from e

        try:
            stripe.WebhookSignature.verify_header(
                payload, signature_header, secret, tolerance=self.tolerance_seconds
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Webhook signature verification failed: {e}") from e

        return self.parse_event(payload)

    def parse_event(self, payload: str) -> PaymentEvent:
        """Parse a verified Stripe event body."""
        try:
            envelope = _StripeEvent.model_validate(json.loads(payload))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise MalformedEventError(f"Webhook body is not a valid event: {e}") from e

        event_type = _STRIPE_EVENT_TYPES.get(envelope.type, PaymentEventType.UNHANDLED)
        if event_type is PaymentEventType.UNHANDLED:
            return PaymentEvent(
                event_id=envelope.id,
                event_type=event_type,
                gateway_event_type=envelope.type,
            )

        try:
            intent = _StripePaymentIntentObject.model_validate(envelope.data.object)
        except PydanticValidationError as e:
            raise MalformedEventError(
                f"Event {envelope.id} does not carry a payment intent: {e}",
                event_id=envelope.id,
            ) from e

        failure_reason = None
        if intent.last_payment_error:
            failure_reason = intent.last_payment_error.message
        elif intent.cancellation_reason:
            failure_reason = intent.cancellation_reason

        return PaymentEvent(
            event_id=envelope.id,
            event_type=event_type,
            gateway_event_type=envelope.type,
            intent_id=intent.id,
            amount=intent.amount,
            currency=intent.currency.upper() if intent.currency else None,
            metadata=intent.metadata,
            failure_reason=failure_reason,
        )
