"""Unit tests for the reservation ledger."""

import pytest
from sqlalchemy import func, select

from conftest import make_hold_request
from trip_booking.core.exceptions import SeatConflictError
from trip_booking.models.reservation import BookedSeat, PaymentStatus, Reservation, ReservationStatus
from trip_booking.services.hold_store import HoldStore, new_booking_group_id
from trip_booking.services.reservation_ledger import ReservationLedger


@pytest.mark.asyncio
async def test_create_from_hold_commits_reservation_seats_and_payment(test_session):
    hold = await HoldStore(test_session).create_hold(make_hold_request())
    ledger = ReservationLedger(test_session, currency="CAD")

    reservation, created = await ledger.create_from_hold(hold, "pi_123")

    assert created is True
    assert reservation.status == ReservationStatus.CONFIRMED
    assert reservation.hold_id == hold.id
    assert reservation.booking_reference == hold.booking_reference
    assert reservation.total_price == hold.segment_price + hold.luggage_fee
    assert await ledger.get_seats(reservation.id) == ["A1", "A2"]

    payment = await ledger.get_payment(reservation.id)
    assert payment.payment_intent_id == "pi_123"
    assert payment.amount == 5000
    assert payment.currency == "CAD"
    assert payment.status == PaymentStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_duplicate_finalization_returns_existing(test_session):
    """Finalizing the same hold twice yields one reservation with one seat row per seat."""
    hold = await HoldStore(test_session).create_hold(make_hold_request(seats=["A1", "A2", "A3"]))
    ledger = ReservationLedger(test_session)

    first, first_created = await ledger.create_from_hold(hold, "pi_dup")
    second, second_created = await ledger.create_from_hold(hold, "pi_dup")

    assert first.id == second.id
    assert first_created is True
    assert second_created is False
    reservations = await test_session.execute(select(func.count()).select_from(Reservation))
    assert reservations.scalar_one() == 1
    seats = await test_session.execute(select(func.count()).select_from(BookedSeat))
    assert seats.scalar_one() == 3


@pytest.mark.asyncio
async def test_seat_conflict_aborts_second_commit(test_session):
    """Two holds on T1 both claim B1: the second finalization fails and writes nothing."""
    store = HoldStore(test_session)
    first_hold = await store.create_hold(make_hold_request(trip_id="T1", seats=["B1"]))
    second_hold = await store.create_hold(make_hold_request(trip_id="T1", seats=["B1", "B2"]))
    ledger = ReservationLedger(test_session)

    await ledger.create_from_hold(first_hold, "pi_first")

    with pytest.raises(SeatConflictError) as exc_info:
        await ledger.create_from_hold(second_hold, "pi_second")

    assert exc_info.value.status_code == 409
    assert exc_info.value.seats == ["B1"]
    assert await ledger.find_by_hold_id(second_hold.id) is None

    holders = await test_session.execute(
        select(BookedSeat.reservation_id).where(BookedSeat.trip_id == "T1", BookedSeat.seat_number == "B1")
    )
    assert len(holders.scalars().all()) == 1
    b2 = await test_session.execute(select(BookedSeat).where(BookedSeat.seat_number == "B2"))
    assert b2.scalar_one_or_none() is None


@pytest.mark.asyncio
async def test_same_seat_on_different_trips_is_not_a_conflict(test_session):
    store = HoldStore(test_session)
    ledger = ReservationLedger(test_session)

    await ledger.create_from_hold(await store.create_hold(make_hold_request(trip_id="T1", seats=["B1"])), "pi_a")
    other, _ = await ledger.create_from_hold(
        await store.create_hold(make_hold_request(trip_id="T2", seats=["B1"])), "pi_b"
    )

    assert other.trip_id == "T2"


@pytest.mark.asyncio
async def test_commit_from_snapshot_when_hold_already_deleted(test_session):
    """A paid hold reaped by the sweeper mid-flight still becomes a reservation."""
    store = HoldStore(test_session)
    hold = await store.create_hold(make_hold_request(seats=["C7"]))
    await store.delete_hold(hold.id)

    reservation, created = await ReservationLedger(test_session).create_from_hold(hold, "pi_late")

    assert created is True

    assert reservation.hold_id == hold.id
    assert [seat.seat_number for seat in reservation.booked_seats] == ["C7"]


@pytest.mark.asyncio
async def test_find_by_booking_reference(test_session):
    hold = await HoldStore(test_session).create_hold(make_hold_request())
    ledger = ReservationLedger(test_session)
    committed, _ = await ledger.create_from_hold(hold, "pi_ref")

    found = await ledger.find_by_booking_reference(hold.booking_reference)

    assert found.id == committed.id
    assert [seat.seat_number for seat in found.booked_seats] == ["A1", "A2"]
    assert await ledger.find_by_booking_reference("NOPE0000") is None


async def _round_trip_holds(store, outbound_seats=None, return_seats=None):
    group_id = new_booking_group_id()
    outbound = await store.create_hold(
        make_hold_request(trip_id="T1", seats=outbound_seats or ["A1"]), booking_group_id=group_id
    )
    inbound = await store.create_hold(
        make_hold_request(trip_id="T2", seats=return_seats or ["C3"]), booking_group_id=group_id
    )
    return group_id, outbound, inbound


@pytest.mark.asyncio
async def test_create_from_group_commits_and_links_both_legs(test_session):
    group_id, outbound, inbound = await _round_trip_holds(HoldStore(test_session))
    ledger = ReservationLedger(test_session)

    (first, second), created = await ledger.create_from_group([outbound, inbound], "pi_round")

    assert created is True
    assert first.hold_id == outbound.id
    assert second.hold_id == inbound.id
    assert first.booking_group_id == second.booking_group_id == group_id
    assert first.linked_reservation_id == second.id
    assert second.linked_reservation_id == first.id
    assert await ledger.get_seats(first.id) == ["A1"]
    assert await ledger.get_seats(second.id) == ["C3"]
    assert (await ledger.get_payment(second.id)).payment_intent_id == "pi_round"


@pytest.mark.asyncio
async def test_create_from_group_is_idempotent(test_session):
    _, outbound, inbound = await _round_trip_holds(HoldStore(test_session))
    ledger = ReservationLedger(test_session)

    first_pair, first_created = await ledger.create_from_group([outbound, inbound], "pi_round")
    second_pair, second_created = await ledger.create_from_group([outbound, inbound], "pi_round")

    assert first_created is True
    assert second_created is False
    assert [r.id for r in second_pair] == [r.id for r in first_pair]
    count = await test_session.execute(select(func.count()).select_from(Reservation))
    assert count.scalar_one() == 2


@pytest.mark.asyncio
async def test_seat_conflict_on_one_leg_aborts_the_group(test_session):
    """The return seat is taken, so neither leg is booked."""
    store = HoldStore(test_session)
    ledger = ReservationLedger(test_session)
    await ledger.create_from_hold(await store.create_hold(make_hold_request(trip_id="T2", seats=["C3"])), "pi_other")
    _, outbound, inbound = await _round_trip_holds(store, outbound_seats=["A1"], return_seats=["C3"])

    with pytest.raises(SeatConflictError) as exc_info:
        await ledger.create_from_group([outbound, inbound], "pi_round")

    assert exc_info.value.trip_id == "T2"
    assert await ledger.find_by_hold_ids([outbound.id, inbound.id]) == []
    a1 = await test_session.execute(select(BookedSeat).where(BookedSeat.trip_id == "T1"))
    assert a1.scalar_one_or_none() is None


@pytest.mark.asyncio
async def test_create_from_group_requires_two_holds(test_session):
    hold = await HoldStore(test_session).create_hold(make_hold_request())

    with pytest.raises(ValueError):
        await ReservationLedger(test_session).create_from_group([hold], "pi_single")
