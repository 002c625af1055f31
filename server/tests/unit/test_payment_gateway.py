"""Unit tests for the Stripe gateway adapter."""

import time
from unittest.mock import MagicMock

import pytest
import stripe

from conftest import WEBHOOK_SECRET, make_event, sign_payload
from trip_booking.core.exceptions import GatewayError, MalformedEventError, WebhookSignatureError
from trip_booking.services.payment_gateway import PaymentEventType, StripePaymentGateway


@pytest.fixture
def stripe_gateway():
    return StripePaymentGateway(api_key="sk_test_dummy", tolerance_seconds=300)


def _verify(gateway, body: str, header=None):
    header = sign_payload(body) if header is None else header
    return gateway.verify_webhook(body.encode("utf-8"), header, WEBHOOK_SECRET)


@pytest.mark.parametrize(
    "stripe_type,expected",
    [
        ("payment_intent.succeeded", PaymentEventType.SUCCEEDED),
        ("payment_intent.payment_failed", PaymentEventType.FAILED),
        ("payment_intent.canceled", PaymentEventType.CANCELED),
        ("customer.created", PaymentEventType.UNHANDLED),
    ],
)
def test_event_types_are_normalized(stripe_gateway, stripe_type, expected):
    event = _verify(stripe_gateway, make_event(stripe_type, "pi_1", "hold-1"))

    assert event.event_type == expected
    assert event.gateway_event_type == stripe_type


def test_succeeded_event_carries_intent_and_hold(stripe_gateway):
    event = _verify(stripe_gateway, make_event("payment_intent.succeeded", "pi_abc", "hold-42", amount=12345))

    assert event.intent_id == "pi_abc"
    assert event.hold_id == "hold-42"
    assert event.amount == 12345
    assert event.currency == "CAD"


def test_stale_timestamp_rejected(stripe_gateway):
    body = make_event("payment_intent.succeeded", "pi_abc", "hold-1")
    header = sign_payload(body, timestamp=int(time.time()) - 3600)

    with pytest.raises(WebhookSignatureError):
        _verify(stripe_gateway, body, header)


def test_unconfigured_secret_rejected(stripe_gateway):
    body = make_event("payment_intent.succeeded", "pi_abc", "hold-1")

    with pytest.raises(WebhookSignatureError):
        stripe_gateway.verify_webhook(body.encode("utf-8"), sign_payload(body), "")


def test_signed_garbage_is_malformed(stripe_gateway):
    """Signature checks pass but the body is not an event."""
    body = "this is not json"

    with pytest.raises(MalformedEventError):
        _verify(stripe_gateway, body)


@pytest.mark.asyncio
async def test_create_intent_calls_stripe(stripe_gateway, monkeypatch):
    create = MagicMock(return_value=MagicMock(id="pi_live", client_secret="pi_live_secret"))
    monkeypatch.setattr(stripe.PaymentIntent, "create", create)

    intent = await stripe_gateway.create_intent(5000, "CAD", {"hold_id": "hold-1"})

    assert intent.intent_id == "pi_live"
    assert intent.client_secret == "pi_live_secret"
    kwargs = create.call_args.kwargs
    assert kwargs["amount"] == 5000
    assert kwargs["currency"] == "cad"
    assert kwargs["metadata"] == {"hold_id": "hold-1"}
    assert kwargs["api_key"] == "sk_test_dummy"


@pytest.mark.asyncio
async def test_create_intent_maps_stripe_errors(stripe_gateway, monkeypatch):
    def decline(**kwargs):
        raise stripe.APIConnectionError("network down")

    monkeypatch.setattr(stripe.PaymentIntent, "create", decline)

    with pytest.raises(GatewayError) as exc_info:
        await stripe_gateway.create_intent(5000, "CAD", {"hold_id": "hold-1"})

    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_create_intent_requires_hold_id(stripe_gateway):
    with pytest.raises(ValueError):
        await stripe_gateway.create_intent(5000, "CAD", {})
