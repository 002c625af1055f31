"""Integration tests for the checkout, webhook and reservation endpoints."""

import copy
from uuid import uuid4

import pytest

from conftest import make_event, sign_payload


async def _checkout(test_client, data):
    response = await test_client.post("/v1/checkout/hold", json=data)
    assert response.status_code == 201, response.text
    return response.json()


async def _post_webhook(test_client, body: str, signature=None):
    headers = {"Content-Type": "application/json"}
    if signature is not False:
        headers["Stripe-Signature"] = signature or sign_payload(body)
    return await test_client.post("/v1/payments/webhook", content=body.encode("utf-8"), headers=headers)


@pytest.mark.asyncio
async def test_checkout_returns_hold_and_client_secret(test_client, sample_hold_data):
    data = await _checkout(test_client, sample_hold_data)

    assert data["hold"]["seats"] == ["A1", "A2"]
    assert data["hold"]["total_price"] == 5000
    assert data["hold"]["status"] == "pending"
    assert data["hold"]["payment_intent_id"] == data["payment_intent_id"]
    assert len(data["hold"]["booking_reference"]) == 8
    assert data["client_secret"]


@pytest.mark.asyncio
async def test_checkout_gateway_failure_returns_502(test_client, gateway, sample_hold_data):
    gateway.fail_next = True

    response = await test_client.post("/v1/checkout/hold", json=sample_hold_data)

    assert response.status_code == 502
    data = response.json()
    assert data["code"] == "GATEWAY_ERROR"
    assert response.headers["content-type"].startswith("application/problem+json")


@pytest.mark.asyncio
async def test_checkout_rejects_invalid_request(test_client, sample_hold_data):
    sample_hold_data["seats"] = ["A1", "A1"]

    response = await test_client.post("/v1/checkout/hold", json=sample_hold_data)

    assert response.status_code == 422
    data = response.json()
    assert data["status"] == 422
    assert any("seats" in violation["path"] for violation in data["violations"])


@pytest.mark.asyncio
async def test_checkout_rejects_missing_passenger(test_client, sample_hold_data):
    del sample_hold_data["passenger"]

    response = await test_client.post("/v1/checkout/hold", json=sample_hold_data)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_hold(test_client, sample_hold_data):
    checkout = await _checkout(test_client, sample_hold_data)

    response = await test_client.get(f"/v1/checkout/hold/{checkout['hold']['id']}")

    assert response.status_code == 200
    assert response.json()["booking_reference"] == checkout["hold"]["booking_reference"]


@pytest.mark.asyncio
async def test_get_unknown_hold_returns_404(test_client):
    response = await test_client.get(f"/v1/checkout/hold/{uuid4()}")

    assert response.status_code == 404
    assert response.json()["resource_type"] == "hold"


@pytest.mark.asyncio
async def test_full_checkout_flow(test_client, dispatcher, scheduler, sample_hold_data):
    """Hold, pay, poll, and fetch the reservation by its booking reference."""
    checkout = await _checkout(test_client, sample_hold_data)
    hold_id = checkout["hold"]["id"]

    status = await test_client.get(f"/v1/checkout/hold/{hold_id}/status")
    assert status.json()["status"] == "pending"

    body = make_event("payment_intent.succeeded", checkout["payment_intent_id"], hold_id)
    response = await _post_webhook(test_client, body)
    assert response.status_code == 200
    ack = response.json()
    assert ack["outcome"] == "finalized"
    assert ack["event_type"] == "payment.succeeded"

    status = await test_client.get(f"/v1/checkout/hold/{hold_id}/status")
    assert status.json()["status"] == "succeeded"
    assert status.json()["reservation_id"] == ack["reservation_id"]

    # The hold itself is gone once finalized
    assert (await test_client.get(f"/v1/checkout/hold/{hold_id}")).status_code == 404

    reference = checkout["hold"]["booking_reference"]
    response = await test_client.get(f"/v1/reservations/{reference}")
    assert response.status_code == 200
    reservation = response.json()
    assert reservation["id"] == ack["reservation_id"]
    assert reservation["seats"] == ["A1", "A2"]
    assert reservation["status"] == "confirmed"
    assert reservation["price"]["total"] == {"amount": 5000, "currency": "CAD"}
    assert reservation["payment"]["payment_intent_id"] == checkout["payment_intent_id"]

    await scheduler.drain()
    assert len(dispatcher.sent) == 1


@pytest.mark.asyncio
async def test_webhook_replay_returns_200(test_client, sample_hold_data):
    checkout = await _checkout(test_client, sample_hold_data)
    body = make_event("payment_intent.succeeded", checkout["payment_intent_id"], checkout["hold"]["id"])

    first = await _post_webhook(test_client, body)
    second = await _post_webhook(test_client, body)

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["outcome"] == "already_finalized"
    assert second.json()["reservation_id"] == first.json()["reservation_id"]


@pytest.mark.asyncio
async def test_webhook_without_signature_returns_400(test_client):
    body = make_event("payment_intent.succeeded", "pi_x", str(uuid4()))

    response = await _post_webhook(test_client, body, signature=False)

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_SIGNATURE"


@pytest.mark.asyncio
async def test_webhook_with_bad_signature_returns_400(test_client):
    body = make_event("payment_intent.succeeded", "pi_x", str(uuid4()))

    response = await _post_webhook(test_client, body, signature=sign_payload(body, secret="whsec_other"))

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_without_hold_id_returns_400(test_client):
    body = make_event("payment_intent.succeeded", "pi_x")

    response = await _post_webhook(test_client, body)

    assert response.status_code == 400
    assert response.json()["code"] == "MALFORMED_EVENT"


@pytest.mark.asyncio
async def test_webhook_for_lost_hold_returns_500(test_client):
    body = make_event("payment_intent.succeeded", "pi_lost", str(uuid4()))

    response = await _post_webhook(test_client, body)

    assert response.status_code == 500
    assert response.json()["code"] == "RECONCILIATION_REQUIRED"


@pytest.mark.asyncio
async def test_webhook_ignores_unrelated_events(test_client):
    body = make_event("charge.succeeded", "ch_123")

    response = await _post_webhook(test_client, body)

    assert response.status_code == 200
    assert response.json()["outcome"] == "ignored"


@pytest.mark.asyncio
async def test_unknown_reservation_returns_404(test_client):
    response = await test_client.get("/v1/reservations/ZZZZZZZZ")

    assert response.status_code == 404


def _round_trip_data(sample_hold_data, return_trip_id="T2"):
    return_leg = copy.deepcopy(sample_hold_data)
    return_leg.update({
        "trip_id": return_trip_id,
        "pickup_stop_id": sample_hold_data["dropoff_stop_id"],
        "dropoff_stop_id": sample_hold_data["pickup_stop_id"],
        "seats": ["C1"],
    })
    return {"outbound": sample_hold_data, "return_leg": return_leg}


@pytest.mark.asyncio
async def test_round_trip_flow_links_both_reservations(test_client, dispatcher, scheduler, sample_hold_data):
    response = await test_client.post("/v1/checkout/round-trip", json=_round_trip_data(sample_hold_data))
    assert response.status_code == 201, response.text
    checkout = response.json()
    assert checkout["outbound"]["booking_group_id"] == checkout["booking_group_id"]
    assert checkout["return_leg"]["booking_group_id"] == checkout["booking_group_id"]
    assert checkout["total_amount"] == checkout["outbound"]["total_price"] + checkout["return_leg"]["total_price"]

    body = make_event(
        "payment_intent.succeeded",
        checkout["payment_intent_id"],
        amount=checkout["total_amount"],
        metadata={
            "hold_id": checkout["outbound"]["id"],
            "return_hold_id": checkout["return_leg"]["id"],
            "booking_group_id": checkout["booking_group_id"],
        },
    )
    response = await _post_webhook(test_client, body)
    assert response.status_code == 200
    ack = response.json()
    assert ack["outcome"] == "finalized"
    assert ack["linked_reservation_id"]

    outbound = (await test_client.get(f"/v1/reservations/{checkout['outbound']['booking_reference']}")).json()
    inbound = (await test_client.get(f"/v1/reservations/{checkout['return_leg']['booking_reference']}")).json()
    assert outbound["booking_group_id"] == inbound["booking_group_id"] == checkout["booking_group_id"]
    assert outbound["linked_reservation_id"] == inbound["id"] == ack["linked_reservation_id"]
    assert inbound["linked_reservation_id"] == outbound["id"] == ack["reservation_id"]
    assert inbound["seats"] == ["C1"]

    await scheduler.drain()
    assert len(dispatcher.sent) == 2


@pytest.mark.asyncio
async def test_round_trip_on_one_trip_returns_422(test_client, sample_hold_data):
    data = _round_trip_data(sample_hold_data, return_trip_id=sample_hold_data["trip_id"])

    response = await test_client.post("/v1/checkout/round-trip", json=data)

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_FAILED"


@pytest.mark.asyncio
async def test_round_trip_gateway_failure_returns_502(test_client, gateway, sample_hold_data):
    gateway.fail_next = True

    response = await test_client.post("/v1/checkout/round-trip", json=_round_trip_data(sample_hold_data))

    assert response.status_code == 502
    assert response.json()["code"] == "GATEWAY_ERROR"


@pytest.mark.asyncio
async def test_error_responses_are_documented_as_problems(test_client):
    schema = (await test_client.get("/openapi.json")).json()

    assert {"Problem", "Violation"} <= set(schema["components"]["schemas"])
    responses = schema["paths"]["/v1/checkout/round-trip"]["post"]["responses"]
    assert responses["502"]["content"]["application/json"]["schema"]["$ref"].endswith("/Problem")


@pytest.mark.asyncio
async def test_webhook_seat_conflict_returns_non_retryable_409(test_client, sample_hold_data):
    """Two holds paid for the same seat: the second payment is refused with 409, not 500."""
    sample_hold_data["seats"] = ["B1"]
    first = await _checkout(test_client, sample_hold_data)
    second = await _checkout(test_client, sample_hold_data)

    paid = await _post_webhook(
        test_client,
        make_event("payment_intent.succeeded", first["payment_intent_id"], first["hold"]["id"]),
    )
    assert paid.status_code == 200

    body = make_event("payment_intent.succeeded", second["payment_intent_id"], second["hold"]["id"])
    response = await _post_webhook(test_client, body)
    retried = await _post_webhook(test_client, body)

    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "SEAT_CONFLICT"
    assert data["retryable"] is False
    assert data["seats"] == ["B1"]
    assert retried.status_code == 409
