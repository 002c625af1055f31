"""Test configuration and fixtures."""

import hashlib
import hmac
import json
import os
import time
from typing import Dict, Optional
from uuid import uuid4

WEBHOOK_SECRET = "whsec_test_secret"

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["STRIPE_WEBHOOK_SECRET"] = WEBHOOK_SECRET
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from trip_booking.core.database import Base, get_db  # noqa: E402
from trip_booking.core.exceptions import GatewayError  # noqa: E402
from trip_booking.models import *  # noqa: E402,F403 - Import all models
from trip_booking.schemas.hold import CreateHoldRequest, PassengerInfo  # noqa: E402
from trip_booking.services.notification_service import LoggingNotificationDispatcher  # noqa: E402
from trip_booking.services.payment_gateway import PaymentIntent, StripePaymentGateway  # noqa: E402
from trip_booking.services.scheduler import TaskScheduler  # noqa: E402

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakePaymentGateway(StripePaymentGateway):
    """Stripe gateway with intent creation stubbed out; webhook verification is real."""

    def __init__(self):
        super().__init__(api_key="sk_test_dummy", tolerance_seconds=300)
        self.fail_next = False
        self.created: list[dict] = []

    async def create_intent(self, amount_minor_units: int, currency: str, metadata: Dict[str, str]) -> PaymentIntent:
        if self.fail_next:
            self.fail_next = False
            raise GatewayError("Failed to create payment intent: card processor unavailable")

        intent_id = f"pi_{uuid4().hex[:24]}"
        self.created.append({
            "intent_id": intent_id,
            "amount": amount_minor_units,
            "currency": currency,
            "metadata": dict(metadata),
        })
        return PaymentIntent(intent_id=intent_id, client_secret=f"{intent_id}_secret_test")


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(
    event_type: str,
    intent_id: str,
    hold_id: Optional[str] = None,
    amount: int = 5000,
    event_id: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None,
) -> str:
    """Build a Stripe payment_intent event body."""
    metadata = dict(metadata or {})
    if hold_id is not None:
        metadata["hold_id"] = hold_id
    return json.dumps({
        "id": event_id or f"evt_{uuid4().hex[:24]}",
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": intent_id,
                "object": "payment_intent",
                "amount": amount,
                "currency": "cad",
                "metadata": metadata,
            }
        },
    })


def make_hold_request(trip_id: str = "T1", seats: Optional[list] = None, **overrides) -> CreateHoldRequest:
    data = {
        "trip_id": trip_id,
        "pickup_stop_id": "stop_toronto",
        "dropoff_stop_id": "stop_ottawa",
        "passenger": PassengerInfo(full_name="Alex Rider", email="alex@example.com", phone="+1-416-555-0100"),
        "seats": seats or ["A1", "A2"],
        "bag_count": 1,
        "segment_price": 4500,
        "luggage_fee": 500,
    }
    data.update(overrides)
    return CreateHoldRequest(**data)


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def dispatcher():
    return LoggingNotificationDispatcher()


@pytest_asyncio.fixture
async def scheduler():
    scheduler = TaskScheduler()
    yield scheduler
    await scheduler.drain(timeout=5)


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, gateway, dispatcher, scheduler):
    """Create a test FastAPI application."""
    from fastapi import FastAPI

    from trip_booking.core.dependencies import (
        get_notification_dispatcher,
        get_payment_gateway,
        get_task_scheduler,
    )
    from trip_booking.core.exceptions import register_exception_handlers
    from trip_booking.routers import checkout, health, metrics, reservation, webhook

    # Simplified test app without lifespan
    app = FastAPI(title="Trip Booking API (Test)", version="1.0.0-test")

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(checkout.router)
    app.include_router(webhook.router)
    app.include_router(reservation.router)
    app.include_router(metrics.router)

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_task_scheduler] = lambda: scheduler

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_hold_data():
    """Sample checkout request body."""
    return {
        "trip_id": "T1",
        "pickup_stop_id": "stop_toronto",
        "dropoff_stop_id": "stop_ottawa",
        "passenger": {
            "full_name": "Alex Rider",
            "email": "alex@example.com",
            "phone": "+1-416-555-0100",
        },
        "seats": ["A1", "A2"],
        "bag_count": 1,
        "segment_price": 4500,
        "luggage_fee": 500,
    }
