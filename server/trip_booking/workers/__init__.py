"""Background workers for the trip booking service."""

from .base import BaseWorker
from .expiration_sweeper import ExpirationSweeper, HoldSweepWorker, SweepResult

__all__ = ["BaseWorker", "ExpirationSweeper", "HoldSweepWorker", "SweepResult"]
