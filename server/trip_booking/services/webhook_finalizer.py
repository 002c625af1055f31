"""Webhook finalizer: turns verified payment events into reservations."""

from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import MalformedEventError, ReconciliationError
from ..core.observability import get_logger, get_tracer, metrics_collector
from ..models.reservation import Reservation
from ..schemas.webhook import FinalizationOutcome
from .hold_store import HoldStore
from .notification_service import NotificationDispatcher, ReservationSummary
from .payment_gateway import (
    HOLD_ID_METADATA_KEY,
    RETURN_HOLD_ID_METADATA_KEY,
    PaymentEvent,
    PaymentEventType,
    PaymentGateway,
)
from .reservation_ledger import ReservationLedger
from .scheduler import TaskScheduler

logger = get_logger(__name__)
tracer = get_tracer(__name__)


@dataclass(frozen=True)
class FinalizationResult:
    event: PaymentEvent
    outcome: FinalizationOutcome
    reservation_id: Optional[str] = None
    booking_reference: Optional[str] = None
    linked_reservation_id: Optional[str] = None


def summarize(reservation: Reservation) -> ReservationSummary:
    """Copy a reservation into plain data for the detached notification task."""
    return ReservationSummary(
        reservation_id=str(reservation.id),
        booking_reference=reservation.booking_reference,
        trip_id=reservation.trip_id,
        pickup_stop_id=reservation.pickup_stop_id,
        dropoff_stop_id=reservation.dropoff_stop_id,
        passenger_name=reservation.passenger_name,
        passenger_email=reservation.passenger_email,
        seats=[seat.seat_number for seat in reservation.booked_seats],
        bag_count=reservation.bag_count,
        total_price=reservation.total_price,
        currency=reservation.payment.currency if reservation.payment else settings.payment_currency,
    )


class WebhookFinalizer:
    """
    Processes payment gateway webhook deliveries.

    Deliveries are at-least-once and may arrive out of order, so every path
    is idempotent: once a reservation exists for a hold id, later deliveries
    for that hold are acknowledged without side effects.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        dispatcher: NotificationDispatcher,
        scheduler: TaskScheduler,
        webhook_secret: Optional[str] = None,
        release_hold_on_payment_failure: Optional[bool] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.scheduler = scheduler
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        self.release_hold_on_payment_failure = (
            release_hold_on_payment_failure
            if release_hold_on_payment_failure is not None
            else settings.release_hold_on_payment_failure
        )
        self.holds = HoldStore(db)
        self.ledger = ReservationLedger(db)

    async def handle(self, raw_body: bytes, signature_header: Optional[str]) -> FinalizationResult:
        """
        Verify and process one webhook delivery.

        Args:
            raw_body: Request body exactly as received
            signature_header: Value of the gateway signature header

        Returns:
            FinalizationResult describing what the delivery did

        Raises:
            WebhookSignatureError: Signature missing or invalid; nothing was changed
            MalformedEventError: A success event without a usable hold id
            SeatConflictError: The paid seats were booked by another reservation
            ReconciliationError: The hold is gone and no reservation references it
        """
        with tracer.start_as_current_span("webhook.finalize") as span:
            event = self.gateway.verify_webhook(raw_body, signature_header, self.webhook_secret)
            span.set_attribute("payment.event_id", event.event_id)
            span.set_attribute("payment.event_type", event.event_type.value)

            log = logger.bind(
                event_id=event.event_id,
                event_type=event.gateway_event_type,
                payment_intent_id=event.intent_id,
            )

            try:
                if event.event_type is PaymentEventType.SUCCEEDED:
                    result = await self._handle_succeeded(event, log)
                elif event.event_type in (PaymentEventType.FAILED, PaymentEventType.CANCELED):
                    result = await self._handle_failed(event, log)
                else:
                    log.info("webhook_event_ignored")
                    result = FinalizationResult(event=event, outcome=FinalizationOutcome.IGNORED)
            except Exception as e:
                metrics_collector.record_webhook_event(event.event_type.value, type(e).__name__)
                span.record_exception(e)
                raise

            span.set_attribute("finalization.outcome", result.outcome.value)
            metrics_collector.record_webhook_event(event.event_type.value, result.outcome.value)
            return result

    def _parse_uuid(self, event: PaymentEvent, value: Optional[str], key: str) -> UUID:
        if not value:
            raise MalformedEventError(
                f"Payment event {event.event_id} carries no {key} in metadata",
                event_id=event.event_id,
            )
        try:
            return UUID(value)
        except ValueError as e:
            raise MalformedEventError(
                f"Payment event {event.event_id} carries an invalid {key}: {value}",
                event_id=event.event_id,
            ) from e

    def _parse_hold_ids(self, event: PaymentEvent) -> List[UUID]:
        """Hold ids paid for by the event: one hold, or outbound then return for a round trip."""
        hold_ids = [self._parse_uuid(event, event.hold_id, HOLD_ID_METADATA_KEY)]
        if event.return_hold_id is not None:
            hold_ids.append(self._parse_uuid(event, event.return_hold_id, RETURN_HOLD_ID_METADATA_KEY))
        return hold_ids

    async def _release_holds(self, hold_ids: List[UUID]) -> None:
        for hold_id in hold_ids:
            await self.holds.delete_hold(hold_id)

    def _result(
        self, event: PaymentEvent, outcome: FinalizationOutcome, reservations: List[Reservation]
    ) -> FinalizationResult:
        first = reservations[0]
        return FinalizationResult(
            event=event,
            outcome=outcome,
            reservation_id=str(first.id),
            booking_reference=first.booking_reference,
            linked_reservation_id=str(first.linked_reservation_id) if first.linked_reservation_id else None,
        )

    async def _handle_succeeded(self, event: PaymentEvent, log) -> FinalizationResult:
        hold_ids = self._parse_hold_ids(event)
        if not event.intent_id:
            raise MalformedEventError(
                f"Payment event {event.event_id} carries no payment intent id",
                event_id=event.event_id,
            )
        log = log.bind(hold_id=str(hold_ids[0]), booking_group_id=event.booking_group_id)

        holds = [await self.holds.get_hold(hold_id) for hold_id in hold_ids]
        if any(hold is None for hold in holds):
            existing = await self.ledger.find_by_hold_ids(hold_ids)
            if len(existing) == len(hold_ids):
                # Committed earlier; clear any hold the earlier delivery left behind
                await self._release_holds(hold_ids)
                log.info("webhook_replay_already_finalized", reservation_id=str(existing[0].id))
                return self._result(event, FinalizationOutcome.ALREADY_FINALIZED, existing)
            missing = next(hold_id for hold_id, hold in zip(hold_ids, holds) if hold is None)
            log.error("webhook_paid_hold_missing", missing_hold_id=str(missing))
            raise ReconciliationError(hold_id=str(missing), payment_intent_id=event.intent_id)

        for hold in holds:
            if hold.payment_intent_id and hold.payment_intent_id != event.intent_id:
                log.warning(
                    "webhook_intent_mismatch",
                    mismatched_hold_id=str(hold.id),
                    hold_payment_intent_id=hold.payment_intent_id,
                )

        if len(holds) == 1:
            reservation, created = await self.ledger.create_from_hold(holds[0], event.intent_id)
            reservations = [reservation]
        else:
            reservations, created = await self.ledger.create_from_group(holds, event.intent_id)
        summaries = [summarize(reservation) for reservation in reservations]

        await self._release_holds(hold_ids)

        if not created:
            # Another delivery committed first and owns the confirmation
            log.info("webhook_duplicate_already_finalized", reservation_id=summaries[0].reservation_id)
            return self._result(event, FinalizationOutcome.ALREADY_FINALIZED, reservations)

        for summary in summaries:
            self.scheduler.run_after(
                0,
                self.dispatcher.send,
                summary,
                name=f"notify-{summary.booking_reference}",
            )

        log.info(
            "reservation_finalized",
            reservation_ids=[summary.reservation_id for summary in summaries],
            booking_references=[summary.booking_reference for summary in summaries],
            seats=[seat for summary in summaries for seat in summary.seats],
        )
        return self._result(event, FinalizationOutcome.FINALIZED, reservations)

    async def _handle_failed(self, event: PaymentEvent, log) -> FinalizationResult:
        log.warning("payment_not_completed", hold_id=event.hold_id, failure_reason=event.failure_reason)

        if self.release_hold_on_payment_failure and event.hold_id:
            try:
                hold_ids = self._parse_hold_ids(event)
            except MalformedEventError:
                log.warning("payment_failure_invalid_hold_id", hold_id=event.hold_id)
            else:
                for hold_id in hold_ids:
                    released = await self.holds.delete_hold(hold_id)
                    log.info("hold_released_after_payment_failure", hold_id=str(hold_id), released=released)

        return FinalizationResult(event=event, outcome=FinalizationOutcome.PAYMENT_FAILED)
