"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging
from typing import Any, Optional

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
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

from .config import settings

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Availability metrics
AVAILABILITY_CHECKS = Counter(
    'availability_checks_total',
    'Availability checks by item type and outcome code',
    ['item_type', 'outcome'],
    registry=REGISTRY
)

TEMPORARY_HOLDS_CREATED = Counter(
    'temporary_holds_created_total',
    'Temporary holds created',
    ['item_type'],
    registry=REGISTRY
)

TEMPORARY_HOLDS_EXPIRED = Counter(
    'temporary_holds_expired_total',
    'Expired temporary holds removed by cleanup',
    registry=REGISTRY
)

# Workflow metrics
BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Bookings created',
    ['item_type'],
    registry=REGISTRY
)

STATUS_TRANSITIONS = Counter(
    'booking_status_transitions_total',
    'Booking status transitions',
    ['from_status', 'to_status', 'trigger'],
    registry=REGISTRY
)

STATUS_ACTION_FAILURES = Counter(
    'booking_status_action_failures_total',
    'Status side-effect actions that failed',
    ['action'],
    registry=REGISTRY
)

INTEGRATION_FAILURES = Counter(
    'integration_failures_total',
    'Failed calls to external collaborators',
    ['integration'],
    registry=REGISTRY
)

INVENTORY_RELEASES = Counter(
    'inventory_releases_total',
    'Inventory holds released after cancellation',
    ['item_type'],
    registry=REGISTRY
)

REMINDERS_SENT = Counter(
    'booking_reminders_sent_total',
    'Booking reminders sent by hours before start',
    ['hours_before'],
    registry=REGISTRY
)

SCHEDULER_SWEEP_DURATION = Histogram(
    'status_scheduler_sweep_duration_seconds',
    'Duration of automatic status sweeps',
    registry=REGISTRY
)

PENDING_ACTIONS = Gauge(
    'booking_status_actions_pending',
    'Status action batches dispatched but not yet finished',
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


def _resource(app_name: str) -> Resource:
    return Resource.create({
        "service.name": app_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing(app_name: Optional[str] = None):
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource(app_name or settings.service_name))

    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))

    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics(app_name: Optional[str] = None):
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(
            MeterProvider(resource=_resource(app_name or settings.service_name), metric_readers=[reader])
        )

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine=None):
    """Instrument SQLAlchemy with OpenTelemetry."""
    instrumentor = SQLAlchemyInstrumentor()
    if instrumentor.is_instrumented_by_opentelemetry:
        return
    if engine is not None:
        instrumentor.instrument(engine=engine.sync_engine)
    else:
        instrumentor.instrument()


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_availability_check(item_type: str, outcome: str):
        """Record an availability check and its outcome code."""
        AVAILABILITY_CHECKS.labels(item_type=item_type, outcome=outcome).inc()

    @staticmethod
    def record_temporary_hold_created(item_type: str):
        """Record a temporary hold creation."""
        TEMPORARY_HOLDS_CREATED.labels(item_type=item_type).inc()

    @staticmethod
    def record_temporary_holds_expired(count: int):
        """Record removal of expired temporary holds."""
        if count > 0:
            TEMPORARY_HOLDS_EXPIRED.inc(count)

    @staticmethod
    def record_booking_created(item_type: str):
        """Record a booking creation."""
        BOOKINGS_CREATED.labels(item_type=item_type).inc()

    @staticmethod
    def record_status_transition(from_status: str, to_status: str, trigger: str):
        """Record a committed status transition."""
        STATUS_TRANSITIONS.labels(from_status=from_status, to_status=to_status, trigger=trigger).inc()

    @staticmethod
    def record_action_failure(action: str):
        """Record a failed status side-effect action."""
        STATUS_ACTION_FAILURES.labels(action=action).inc()

    @staticmethod
    def record_integration_failure(integration: str):
        """Record a failed call to an external collaborator."""
        INTEGRATION_FAILURES.labels(integration=integration).inc()

    @staticmethod
    def record_inventory_release(item_type: str):
        """Record an inventory hold release."""
        INVENTORY_RELEASES.labels(item_type=item_type).inc()

    @staticmethod
    def record_reminder_sent(hours_before: int):
        """Record a booking reminder."""
        REMINDERS_SENT.labels(hours_before=str(hours_before)).inc()

    @staticmethod
    def observe_sweep_duration(seconds: float):
        """Record how long an automatic status sweep took."""
        SCHEDULER_SWEEP_DURATION.observe(seconds)

    @staticmethod
    def set_pending_actions(count: int):
        """Set the number of in-flight action batches."""
        PENDING_ACTIONS.set(count)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


class StructuredLogger:
    """Structured logger with business context."""

    def __init__(self, name: str, logger: Any = None):
        self.name = name
        self.logger = logger if logger is not None else structlog.get_logger(name)

    def info(self, message: str, **kwargs):
        """Log info message with context."""
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with context."""
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with context."""
        self.logger.error(message, **kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug message with context."""
        self.logger.debug(message, **kwargs)

    def with_context(self, **kwargs) -> "StructuredLogger":
        """Return a logger with additional bound context."""
        return StructuredLogger(self.name, self.logger.bind(**kwargs))


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
