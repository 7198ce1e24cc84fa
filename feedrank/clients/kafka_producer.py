"""
Async Kafka producer.

Publishes one event type:
  interactions — emitted by POST /interactions when a viewer likes, comments
                 on, shares, saves or views a piece of content.
                 Consumed by: feedrank.worker → InteractionStore.

Messages are keyed "{viewer_id}:{author_id}" so every event for a pair lands
on the same partition and is applied by one consumer in order.
"""
import json
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer

from feedrank.config import settings

logger = logging.getLogger(__name__)

_producer: Optional[AIOKafkaProducer] = None


async def init_kafka() -> None:
    global _producer
    _producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        key_serializer=lambda k: k.encode("utf-8"),
        value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        acks="all",          # wait for all in-sync replicas
        enable_idempotence=True,
    )
    await _producer.start()
    logger.info(
        "Kafka producer started → %s", settings.kafka_bootstrap_servers
    )


async def stop_kafka() -> None:
    global _producer
    if _producer:
        await _producer.stop()
        _producer = None


def get_producer() -> AIOKafkaProducer:
    if _producer is None:
        raise RuntimeError("Kafka producer not initialised")
    return _producer


def interaction_key(viewer_id: str, author_id: str) -> str:
    return f"{viewer_id}:{author_id}"


async def publish_interaction(event: dict) -> None:
    """
    Emit an interaction event to the 'interactions' topic.

    Schema:
      { viewer_id, author_id, kind, content_type?, language?, tags[], occurred_at }
    """
    producer = get_producer()
    await producer.send_and_wait(
        settings.kafka_topic_interactions,
        event,
        key=interaction_key(event["viewer_id"], event["author_id"]),
    )
    logger.debug(
        "Published %s interaction %s → %s",
        event.get("kind"), event["viewer_id"], event["author_id"],
    )
