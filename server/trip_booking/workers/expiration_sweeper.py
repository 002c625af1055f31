"""Expiration sweep: deletes holds whose TTL passed without payment."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import utcnow
from ..core.config import settings
from ..core.database import async_session_factory
from ..core.observability import get_logger, metrics_collector
from ..services.hold_store import HoldStore
from ..services.reservation_ledger import ReservationLedger
from .base import BaseWorker

logger = get_logger(__name__)


@dataclass
class SweepResult:
    """Counts from one sweep."""

    expired: int = 0
    reconciled: int = 0
    failed: int = 0

    @property
    def deleted(self) -> int:
        return self.expired + self.reconciled


class ExpirationSweeper:
    """
    Deletes expired holds in batches.

    A hold that already has a reservation was finalized by a webhook that
    stopped before deleting it; such holds are removed and counted as
    reconciled. Failures on one hold are logged and do not stop the sweep.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        batch_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.batch_size = batch_size or settings.sweep_batch_size

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or utcnow()
        result = SweepResult()

        async with self.session_factory() as db:
            holds = HoldStore(db)
            ledger = ReservationLedger(db)

            expired = await holds.list_expired(now, limit=self.batch_size)
            hold_ids = [hold.id for hold in expired]

            for hold_id in hold_ids:
                try:
                    reservation = await ledger.find_by_hold_id(hold_id)
                    await holds.delete_hold(hold_id)
                except Exception as e:
                    await db.rollback()
                    result.failed += 1
                    logger.error("hold_sweep_failed", hold_id=str(hold_id), error=str(e), exc_info=True)
                    continue

                if reservation is not None:
                    result.reconciled += 1
                    logger.info(
                        "finalized_hold_swept",
                        hold_id=str(hold_id),
                        reservation_id=str(reservation.id),
                    )
                else:
                    result.expired += 1

        metrics_collector.record_holds_swept("expired", result.expired)
        metrics_collector.record_holds_swept("reconciled", result.reconciled)
        metrics_collector.set_last_sweep_deleted(result.deleted)

        if hold_ids:
            logger.info(
                "expired_holds_swept",
                expired=result.expired,
                reconciled=result.reconciled,
                failed=result.failed,
                swept_at=now.isoformat(),
            )
        return result


class HoldSweepWorker(BaseWorker):
    """Background worker that runs the expiration sweep periodically."""

    def __init__(self, interval_seconds: Optional[float] = None, sweeper: Optional[ExpirationSweeper] = None):
        super().__init__(
            name="HoldSweep",
            interval_seconds=interval_seconds or settings.sweep_interval_seconds,
        )
        self.sweeper = sweeper or ExpirationSweeper()
        self.last_result: Optional[SweepResult] = None

    async def process(self) -> None:
        self.last_result = await self.sweeper.sweep()
