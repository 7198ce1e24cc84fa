"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics for feed assembly, suggestions and interaction ingest

Both are initialised once at startup and injected into FastAPI via middleware.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import Counter, Histogram

from feedrank.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
FEED_LATENCY = Histogram(
    "feed_latency_seconds",
    "End-to-end latency of feed assembly",
    ["feed_type"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

FEED_CANDIDATES_TOTAL = Counter(
    "feed_candidates_total",
    "Candidate items considered per feed request",
    ["feed_type"],
)

SUGGESTION_LATENCY = Histogram(
    "suggestion_latency_seconds",
    "End-to-end latency of friend suggestion ranking",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0],
)

SUGGESTION_CANDIDATES_TOTAL = Counter(
    "suggestion_candidates_total",
    "Candidate users sourced per suggestion request",
    ["pool"],  # 'mutual' or 'popular'
)

INTERACTION_EVENTS_TOTAL = Counter(
    "interaction_events_total",
    "Interaction events accepted for the interaction store",
    ["kind"],
)

INTERACTION_WRITE_ERRORS_TOTAL = Counter(
    "interaction_write_errors_total",
    "Interaction-history writes or publishes that failed and were dropped",
)

RANKING_UNAVAILABLE_TOTAL = Counter(
    "ranking_unavailable_total",
    "Feed / suggestion requests failed because a backing store was unavailable",
    ["operation"],
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing() -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    resource = Resource.create(
        {
            "service.name": settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s — traces disabled", exc)

    trace.set_tracer_provider(provider)

    # Auto-instrument the storage clients so their spans appear in traces
    RedisInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    FastAPIInstrumentor.instrument_app(app)
