"""
Interaction ingest endpoints:
  POST /interactions                       — accept an event, publish to Kafka
  GET  /interactions/{viewer_id}/preferences — aggregated preference profile

Ingest is fire-and-forget: the event is published after the 202 response is
sent, and a failed publish is logged and counted but never surfaced to the
caller. The interaction worker applies the event to the InteractionStore.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.clients.kafka_producer import publish_interaction
from feedrank.clients.redis_client import PreferencesCache, get_preferences_cache
from feedrank.database import get_db
from feedrank.models import User
from feedrank.ranking.interactions import InteractionStore
from feedrank.schemas import (
    InteractionAccepted,
    InteractionEvent,
    PreferencesResponse,
    TagCountResponse,
)
from feedrank.telemetry import INTERACTION_EVENTS_TOTAL, INTERACTION_WRITE_ERRORS_TOTAL
from feedrank.time_utils import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


def _event_payload(body: InteractionEvent) -> dict:
    occurred_at = body.occurred_at or utcnow()
    return {
        "viewer_id": body.viewer_id,
        "author_id": body.author_id,
        "kind": body.kind.value,
        "content_type": body.content_type.value if body.content_type else None,
        "language": body.language.value if body.language else None,
        "tags": body.tags,
        "occurred_at": occurred_at.isoformat(),
    }


async def publish_safely(payload: dict) -> None:
    try:
        await publish_interaction(payload)
    except Exception as exc:
        INTERACTION_WRITE_ERRORS_TOTAL.inc()
        logger.warning(
            "Interaction publish failed for %s → %s: %s",
            payload["viewer_id"], payload["author_id"], exc,
        )


@router.post("/", response_model=InteractionAccepted, status_code=status.HTTP_202_ACCEPTED)
async def record_interaction(body: InteractionEvent, background_tasks: BackgroundTasks):
    INTERACTION_EVENTS_TOTAL.labels(kind=body.kind.value).inc()
    background_tasks.add_task(publish_safely, _event_payload(body))
    return InteractionAccepted(kind=body.kind)


@router.get("/{viewer_id}/preferences", response_model=PreferencesResponse)
async def get_preferences(
    viewer_id: str,
    db: AsyncSession = Depends(get_db),
    preferences_cache: PreferencesCache = Depends(get_preferences_cache),
):
    user = await db.get(User, viewer_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    prefs = await preferences_cache.preferences(viewer_id, InteractionStore(db).get_preferences)
    return PreferencesResponse(
        viewer_id=viewer_id,
        content_type={k.value: v for k, v in prefs.content_type.items()},
        language={k.value: v for k, v in prefs.language.items()},
        tags=[TagCountResponse(tag=t.tag, count=t.count) for t in prefs.tags],
        total_interactions=prefs.total_interactions,
    )
