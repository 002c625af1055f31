"""FastAPI routers package."""

from .checkout import router as checkout_router
from .health import router as health_router
from .metrics import router as metrics_router
from .reservation import router as reservation_router
from .webhook import router as webhook_router

__all__ = [
    "checkout_router",
    "health_router",
    "metrics_router",
    "reservation_router",
    "webhook_router",
]
