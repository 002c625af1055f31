"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

from .config import settings

SERVICE_NAME = "trip-booking-api"

# Prometheus metrics
REGISTRY = CollectorRegistry()

HOLDS_CREATED = Counter(
    'checkout_holds_created_total',
    'Total holds created',
    ['trip_id'],
    registry=REGISTRY
)

HOLDS_COMPENSATED = Counter(
    'checkout_holds_compensated_total',
    'Holds deleted because a later checkout step failed',
    ['step'],
    registry=REGISTRY
)

HOLDS_SWEPT = Counter(
    'checkout_holds_swept_total',
    'Holds deleted by the expiration sweeper',
    ['reason'],
    registry=REGISTRY
)

GATEWAY_FAILURES = Counter(
    'payment_gateway_failures_total',
    'Payment intent creation failures',
    registry=REGISTRY
)

WEBHOOK_EVENTS = Counter(
    'payment_webhook_events_total',
    'Webhook deliveries by event type and outcome',
    ['event_type', 'outcome'],
    registry=REGISTRY
)

RESERVATIONS_FINALIZED = Counter(
    'reservations_finalized_total',
    'Reservations committed from paid holds',
    ['trip_id'],
    registry=REGISTRY
)

SEAT_CONFLICTS = Counter(
    'reservation_seat_conflicts_total',
    'Finalizations aborted because a seat was already booked',
    ['trip_id'],
    registry=REGISTRY
)

NOTIFICATION_FAILURES = Counter(
    'notification_failures_total',
    'Confirmation notifications that failed to send',
    registry=REGISTRY
)

LAST_SWEEP_DELETED = Gauge(
    'checkout_last_sweep_deleted',
    'Holds deleted by the most recent sweep',
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())

    if settings.otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )

    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy():
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument()


def get_tracer(name: str):
    return trace.get_tracer(name)


class MetricsCollector:
    """Collector for checkout and finalization metrics."""

    @staticmethod
    def record_hold_created(trip_id: str):
        HOLDS_CREATED.labels(trip_id=trip_id).inc()

    @staticmethod
    def record_hold_compensated(step: str):
        HOLDS_COMPENSATED.labels(step=step).inc()

    @staticmethod
    def record_holds_swept(reason: str, count: int = 1):
        if count:
            HOLDS_SWEPT.labels(reason=reason).inc(count)

    @staticmethod
    def set_last_sweep_deleted(count: int):
        LAST_SWEEP_DELETED.set(count)

    @staticmethod
    def record_gateway_failure():
        GATEWAY_FAILURES.inc()

    @staticmethod
    def record_webhook_event(event_type: str, outcome: str):
        WEBHOOK_EVENTS.labels(event_type=event_type, outcome=outcome).inc()

    @staticmethod
    def record_reservation_finalized(trip_id: str):
        RESERVATIONS_FINALIZED.labels(trip_id=trip_id).inc()

    @staticmethod
    def record_seat_conflict(trip_id: str):
        SEAT_CONFLICTS.labels(trip_id=trip_id).inc()

    @staticmethod
    def record_notification_failure():
        NOTIFICATION_FAILURES.inc()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


def get_logger(name: str):
    """Get a structlog logger bound to a component name."""
    return structlog.get_logger(component=name)
