"""FastAPI dependencies for the payment gateway, notifications, and scheduling."""

from functools import lru_cache

from ..services.notification_service import LoggingNotificationDispatcher, NotificationDispatcher
from ..services.payment_gateway import PaymentGateway, StripePaymentGateway
from ..services.scheduler import TaskScheduler
from .config import settings


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    """Payment gateway configured from settings."""
    return StripePaymentGateway(
        api_key=settings.stripe_secret_key,
        tolerance_seconds=settings.webhook_tolerance_seconds,
    )


@lru_cache
def get_notification_dispatcher() -> NotificationDispatcher:
    return LoggingNotificationDispatcher()


@lru_cache
def get_task_scheduler() -> TaskScheduler:
    """Process-wide scheduler for detached tasks; drained on shutdown."""
    return TaskScheduler()
