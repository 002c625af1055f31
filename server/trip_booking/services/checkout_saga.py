"""Checkout saga: create hold(s), create payment intent, attach intent."""

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from ..core.config import settings
from ..core.exceptions import GatewayError
from ..core.observability import metrics_collector
from ..models.hold import Hold
from ..schemas.hold import CreateHoldRequest
from .hold_store import HoldStore, new_booking_group_id
from .payment_gateway import (
    BOOKING_GROUP_METADATA_KEY,
    HOLD_ID_METADATA_KEY,
    RETURN_HOLD_ID_METADATA_KEY,
    PaymentGateway,
    PaymentIntent,
)

logger = logging.getLogger(__name__)


@dataclass
class CheckoutContext:
    """State threaded through the saga steps."""

    request: CreateHoldRequest
    return_request: Optional[CreateHoldRequest] = None
    booking_group_id: Optional[str] = None
    holds: List[Hold] = field(default_factory=list)
    hold_ids: List[UUID] = field(default_factory=list)
    intent: Optional[PaymentIntent] = None

    @property
    def hold(self) -> Optional[Hold]:
        return self.holds[0] if self.holds else None

    @property
    def hold_id(self) -> Optional[UUID]:
        return self.hold_ids[0] if self.hold_ids else None

    @property
    def total_price(self) -> int:
        return sum(hold.total_price for hold in self.holds)


@dataclass
class SagaStep:
    """One forward action and the action that undoes it."""

    name: str
    action: Callable[[CheckoutContext], Awaitable[None]]
    compensate: Optional[Callable[[CheckoutContext], Awaitable[None]]] = None


@dataclass
class CheckoutResult:
    hold: Hold
    payment_intent_id: str
    client_secret: str
    completed_steps: List[str] = field(default_factory=list)
    return_hold: Optional[Hold] = None
    booking_group_id: Optional[str] = None

    @property
    def total_amount(self) -> int:
        total = self.hold.total_price
        if self.return_hold is not None:
            total += self.return_hold.total_price
        return total


class CheckoutSaga:
    """
    Runs checkout as an ordered list of steps.

    When a step fails, the compensations of the steps that already completed
    run in reverse order, so a failed checkout leaves no hold behind. A round
    trip holds both legs under one booking group and pays for them with a
    single payment intent.
    """

    def __init__(
        self,
        db: AsyncSession,
        gateway: PaymentGateway,
        currency: Optional[str] = None,
        hold_store: Optional[HoldStore] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.currency = currency or settings.payment_currency
        self.hold_store = hold_store or HoldStore(db)
        self.steps: List[SagaStep] = [
            SagaStep("create_hold", self._create_hold, self._delete_hold),
            SagaStep("create_intent", self._create_intent),
            SagaStep("attach_intent", self._attach_intent),
        ]
        self.round_trip_steps: List[SagaStep] = [
            SagaStep("create_hold", self._create_hold, self._delete_hold),
            SagaStep("create_return_hold", self._create_return_hold, self._delete_return_hold),
            SagaStep("create_intent", self._create_intent),
            SagaStep("attach_intent", self._attach_intent),
        ]

    async def _add_hold(self, ctx: CheckoutContext, request: CreateHoldRequest) -> None:
        hold = await self.hold_store.create_hold(request, booking_group_id=ctx.booking_group_id)
        ctx.holds.append(hold)
        ctx.hold_ids.append(hold.id)

    async def _create_hold(self, ctx: CheckoutContext) -> None:
        await self._add_hold(ctx, ctx.request)

    async def _create_return_hold(self, ctx: CheckoutContext) -> None:
        await self._add_hold(ctx, ctx.return_request)

    async def _delete_hold(self, ctx: CheckoutContext) -> None:
        if ctx.hold_ids:
            await self.hold_store.delete_hold(ctx.hold_ids[0])

    async def _delete_return_hold(self, ctx: CheckoutContext) -> None:
        if len(ctx.hold_ids) > 1:
            await self.hold_store.delete_hold(ctx.hold_ids[1])

    async def _create_intent(self, ctx: CheckoutContext) -> None:
        metadata: Dict[str, str] = {
            HOLD_ID_METADATA_KEY: str(ctx.hold_id),
            "booking_reference": ctx.hold.booking_reference,
            "trip_id": ctx.hold.trip_id,
        }
        if ctx.booking_group_id:
            return_hold = ctx.holds[1]
            metadata.update({
                RETURN_HOLD_ID_METADATA_KEY: str(ctx.hold_ids[1]),
                BOOKING_GROUP_METADATA_KEY: ctx.booking_group_id,
                "return_booking_reference": return_hold.booking_reference,
                "return_trip_id": return_hold.trip_id,
            })
        ctx.intent = await self.gateway.create_intent(ctx.total_price, self.currency, metadata)

    async def _attach_intent(self, ctx: CheckoutContext) -> None:
        for hold, hold_id in zip(ctx.holds, ctx.hold_ids):
            attached = await self.hold_store.attach_payment_intent(hold_id, ctx.intent.intent_id)
            if not attached:
                raise GatewayError(f"Hold {hold_id} disappeared before the payment intent was attached")
            set_committed_value(hold, "payment_intent_id", ctx.intent.intent_id)

    async def _compensate(self, ctx: CheckoutContext, completed: List[SagaStep], failed_step: str) -> None:
        for step in reversed(completed):
            if step.compensate is None:
                continue
            try:
                await step.compensate(ctx)
                metrics_collector.record_hold_compensated(failed_step)
            except Exception as e:
                # Compensation failures leave the hold to the expiration sweeper
                logger.error(
                    f"Compensation for step {step.name} failed: {str(e)}",
                    exc_info=True,
                    extra={"step": step.name, "hold_ids": [str(hold_id) for hold_id in ctx.hold_ids]}
                )

    async def _execute(self, ctx: CheckoutContext, steps: List[SagaStep]) -> CheckoutResult:
        completed: List[SagaStep] = []

        for step in steps:
            try:
                await step.action(ctx)
            except Exception as e:
                logger.warning(
                    f"Checkout step {step.name} failed, compensating",
                    extra={
                        "step": step.name,
                        "trip_id": ctx.request.trip_id,
                        "hold_ids": [str(hold_id) for hold_id in ctx.hold_ids],
                        "booking_group_id": ctx.booking_group_id,
                        "error": str(e),
                    }
                )
                if step.name == "create_intent":
                    metrics_collector.record_gateway_failure()
                await self.db.rollback()
                await self._compensate(ctx, completed, step.name)
                raise
            completed.append(step)

        logger.info(
            "Checkout started",
            extra={
                "hold_ids": [str(hold_id) for hold_id in ctx.hold_ids],
                "payment_intent_id": ctx.intent.intent_id,
                "booking_reference": ctx.hold.booking_reference,
                "booking_group_id": ctx.booking_group_id,
            }
        )
        return CheckoutResult(
            hold=ctx.hold,
            payment_intent_id=ctx.intent.intent_id,
            client_secret=ctx.intent.client_secret,
            completed_steps=[step.name for step in completed],
            return_hold=ctx.holds[1] if len(ctx.holds) > 1 else None,
            booking_group_id=ctx.booking_group_id,
        )

    async def run(self, request: CreateHoldRequest) -> CheckoutResult:
        """
        Execute a one-way checkout.

        Args:
            request: Validated hold request

        Returns:
            CheckoutResult with the hold and the client payment secret

        Raises:
            GatewayError: If payment intent creation fails; the hold has been removed
        """
        return await self._execute(CheckoutContext(request=request), self.steps)

    async def run_round_trip(
        self, outbound: CreateHoldRequest, return_leg: CreateHoldRequest
    ) -> CheckoutResult:
        """
        Execute a round trip checkout: two holds, one payment intent.

        The intent is for the sum of both holds and its metadata carries both
        hold ids and the booking group, so one webhook finalizes both legs.

        Raises:
            GatewayError: If payment intent creation fails; both holds have been removed
        """
        ctx = CheckoutContext(
            request=outbound,
            return_request=return_leg,
            booking_group_id=new_booking_group_id(),
        )
        return await self._execute(ctx, self.round_trip_steps)
