"""
Interaction Worker — Kafka consumer.

For every 'interactions' event:
  1. Upsert the (viewer, author) counters in TiDB via InteractionStore.
  2. Commit, then clear the viewer's cached preferences in Redis so the next
     suggestion request recomputes them.

Key design decisions:
  • Events are keyed viewer:author, so one partition (and one consumer)
    owns each pair; the upserts are atomic anyway.
  • Best effort — a failed write is logged and counted, the offset still
    advances, and the user action that produced the event is unaffected.

Run with:  python -m feedrank.worker
"""
import asyncio
import json
import logging

import redis.asyncio as aioredis
from aiokafka import AIOKafkaConsumer
from opentelemetry import trace
from sqlalchemy.ext.asyncio import async_sessionmaker

from feedrank.clients.redis_client import PreferencesCache
from feedrank.config import settings
from feedrank.database import AsyncSessionLocal, init_db
from feedrank.enums import InteractionKind, coerce
from feedrank.ranking.interactions import InteractionStore, record_interaction_safely
from feedrank.telemetry import INTERACTION_WRITE_ERRORS_TOTAL, setup_tracing
from feedrank.time_utils import parse_timestamp

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


# ─────────────────────────── Message Handler ─────────────────────────────

async def process_message(
    msg: dict,
    session_factory: async_sessionmaker,
    preferences_cache: PreferencesCache,
) -> bool:
    viewer_id = msg.get("viewer_id")
    author_id = msg.get("author_id")
    kind = coerce(InteractionKind, msg.get("kind"))

    if not viewer_id or not author_id or kind is None:
        logger.warning("Malformed interaction event: %s", msg)
        return False

    with tracer.start_as_current_span("record_interaction") as span:
        span.set_attribute("user.id", viewer_id)
        span.set_attribute("interaction.author_id", author_id)
        span.set_attribute("interaction.kind", kind.value)

        async with session_factory() as session:
            stored = await record_interaction_safely(
                InteractionStore(session),
                viewer_id=viewer_id,
                author_id=author_id,
                kind=kind,
                content_type=msg.get("content_type"),
                language=msg.get("language"),
                tags=msg.get("tags") or [],
                occurred_at=parse_timestamp(msg.get("occurred_at")),
            )
            if not stored:
                await session.rollback()
                return False
            try:
                await session.commit()
            except Exception as exc:
                await session.rollback()
                INTERACTION_WRITE_ERRORS_TOTAL.inc()
                logger.warning(
                    "Interaction commit failed for %s → %s: %s", viewer_id, author_id, exc
                )
                return False

        await preferences_cache.clear(viewer_id)
        span.set_attribute("interaction.stored", True)
    return True


# ─────────────────────────── Main Loop ───────────────────────────────────

async def main() -> None:
    setup_tracing()
    await init_db()

    redis = aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,
    )
    await redis.ping()
    preferences_cache = PreferencesCache(redis)

    consumer = AIOKafkaConsumer(
        settings.kafka_topic_interactions,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group,
        auto_offset_reset="earliest",
        value_deserializer=lambda v: json.loads(v.decode("utf-8")),
    )
    await consumer.start()
    logger.info(
        "Interaction worker listening on topic '%s'", settings.kafka_topic_interactions
    )

    try:
        async for msg in consumer:
            try:
                await process_message(msg.value, AsyncSessionLocal, preferences_cache)
            except Exception as exc:
                logger.error("Interaction worker error for %s: %s", msg.value, exc)
    finally:
        await consumer.stop()
        await redis.aclose()


if __name__ == "__main__":
    asyncio.run(main())
