"""Unit tests for the checkout saga."""

import pytest
from sqlalchemy import func, select

from conftest import make_hold_request
from trip_booking.core.exceptions import GatewayError
from trip_booking.models.hold import Hold
from trip_booking.models.reservation import Reservation
from trip_booking.services.checkout_saga import CheckoutSaga
from trip_booking.services.hold_store import HoldStore


async def _count(session, model) -> int:
    result = await session.execute(select(func.count()).select_from(model))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_checkout_creates_hold_and_intent(test_session, gateway):
    saga = CheckoutSaga(test_session, gateway, currency="CAD")

    result = await saga.run(make_hold_request())

    assert result.completed_steps == ["create_hold", "create_intent", "attach_intent"]
    assert result.hold.payment_intent_id == result.payment_intent_id
    assert result.client_secret.startswith(result.payment_intent_id)

    created = gateway.created[0]
    assert created["amount"] == 5000
    assert created["currency"] == "CAD"
    assert created["metadata"]["hold_id"] == str(result.hold.id)

    stored = await HoldStore(test_session).get_hold(result.hold.id)
    assert stored.payment_intent_id == result.payment_intent_id


@pytest.mark.asyncio
async def test_gateway_failure_leaves_no_hold(test_session, gateway):
    """A failed payment intent compensates the hold away and creates no reservation."""
    gateway.fail_next = True
    saga = CheckoutSaga(test_session, gateway)

    with pytest.raises(GatewayError):
        await saga.run(make_hold_request())

    assert await _count(test_session, Hold) == 0
    assert await _count(test_session, Reservation) == 0


@pytest.mark.asyncio
async def test_compensation_failure_still_surfaces_gateway_error(test_session, gateway, monkeypatch):
    """If the compensating delete fails the original error still reaches the caller."""
    gateway.fail_next = True
    store = HoldStore(test_session)

    async def broken_delete(hold_id):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(store, "delete_hold", broken_delete)
    saga = CheckoutSaga(test_session, gateway, hold_store=store)

    with pytest.raises(GatewayError):
        await saga.run(make_hold_request())

    # Left behind for the expiration sweeper
    assert await _count(test_session, Hold) == 1


@pytest.mark.asyncio
async def test_round_trip_checkout_pays_both_legs_with_one_intent(test_session, gateway):
    saga = CheckoutSaga(test_session, gateway)

    result = await saga.run_round_trip(
        make_hold_request(trip_id="T1", seats=["A1"], segment_price=3000),
        make_hold_request(trip_id="T2", seats=["C4"], segment_price=2500),
    )

    assert result.completed_steps == ["create_hold", "create_return_hold", "create_intent", "attach_intent"]
    assert result.booking_group_id
    assert result.total_amount == result.hold.total_price + result.return_hold.total_price

    assert len(gateway.created) == 1
    created = gateway.created[0]
    assert created["amount"] == result.total_amount
    assert created["metadata"]["hold_id"] == str(result.hold.id)
    assert created["metadata"]["return_hold_id"] == str(result.return_hold.id)
    assert created["metadata"]["booking_group_id"] == result.booking_group_id

    store = HoldStore(test_session)
    for hold_id in (result.hold.id, result.return_hold.id):
        stored = await store.get_hold(hold_id)
        assert stored.payment_intent_id == result.payment_intent_id
        assert stored.booking_group_id == result.booking_group_id


@pytest.mark.asyncio
async def test_round_trip_gateway_failure_removes_both_holds(test_session, gateway):
    gateway.fail_next = True
    saga = CheckoutSaga(test_session, gateway)

    with pytest.raises(GatewayError):
        await saga.run_round_trip(
            make_hold_request(trip_id="T1"),
            make_hold_request(trip_id="T2"),
        )

    assert await _count(test_session, Hold) == 0
