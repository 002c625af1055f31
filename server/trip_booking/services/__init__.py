"""Service layer package."""

from .checkout_saga import CheckoutSaga
from .checkout_status import CheckoutStatusService
from .hold_store import HoldStore
from .notification_service import LoggingNotificationDispatcher, NotificationDispatcher, ReservationSummary
from .payment_gateway import PaymentEvent, PaymentEventType, PaymentGateway, PaymentIntent, StripePaymentGateway
from .reservation_ledger import ReservationLedger
from .scheduler import TaskScheduler
from .webhook_finalizer import FinalizationResult, WebhookFinalizer

__all__ = [
    "CheckoutSaga",
    "CheckoutStatusService",
    "FinalizationResult",
    "HoldStore",
    "LoggingNotificationDispatcher",
    "NotificationDispatcher",
    "PaymentEvent",
    "PaymentEventType",
    "PaymentGateway",
    "PaymentIntent",
    "ReservationLedger",
    "ReservationSummary",
    "StripePaymentGateway",
    "TaskScheduler",
    "WebhookFinalizer",
]
