"""
Feed ranking API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Initialise DB connection pool (TiDB) and create tables if not present
  3. Start Kafka producer (interaction events)
  4. Connect to Redis (viewed-stories + preferences caches)
  5. Expose Prometheus /metrics endpoint
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from feedrank.config import settings
from feedrank.database import init_db
from feedrank.errors import RankingUnavailable, UserNotFound
from feedrank.telemetry import setup_tracing, instrument_app
from feedrank.clients.kafka_producer import init_kafka, stop_kafka
from feedrank.clients.redis_client import close_redis, init_redis
from feedrank.routers import feed, interactions, stories, suggestions

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting feedrank API (env=%s)", settings.environment)

    await init_db()
    await init_kafka()
    await init_redis()

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await stop_kafka()
    await close_redis()


app = FastAPI(
    title="Feedrank API",
    description=(
        "Content ranking for post/reel feeds, rich-get-richer friend "
        "suggestions and per-viewer interaction affinity."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(feed.router, prefix="/feed", tags=["Feed"])
app.include_router(suggestions.router, prefix="/suggestions", tags=["Suggestions"])
app.include_router(interactions.router, prefix="/interactions", tags=["Interactions"])
app.include_router(stories.router, prefix="/stories", tags=["Stories"])


# ── Error mapping ──────────────────────────────────────────────────────────
@app.exception_handler(UserNotFound)
async def user_not_found_handler(request: Request, exc: UserNotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(RankingUnavailable)
async def ranking_unavailable_handler(request: Request, exc: RankingUnavailable):
    logger.error("%s %s → 503: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": f"{exc.operation} temporarily unavailable"},
    )


# ── Prometheus metrics endpoint ────────────────────────────────────────────
# Mounted at /metrics — scraped by Prometheus
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
