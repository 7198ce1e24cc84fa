"""
Feed retrieval endpoints.

  GET /feed?viewer_id=<id>&feed_type=<type>&kind=<post|reel>&page=&page_size=
      One ranked page. feed_type is one of following / fyp / explore /
      nearby / trending; anything else yields an empty page.

  GET /feed/items/{item_id}/comments
      Flattened comment total for an item plus per-thread reply counts.
"""
import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Query
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.config import settings
from feedrank.database import get_db
from feedrank.enums import ContentKind
from feedrank.models import ContentItem
from feedrank.ranking.comments import count_item_comments, load_comment_index
from feedrank.ranking.feed import FeedAssembler, RankedItem
from feedrank.schemas import (
    CommentSummaryResponse,
    CommentThreadSummary,
    FeedItem,
    FeedResponse,
    ItemScores,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def _build_feed_item(ranked: RankedItem) -> FeedItem:
    item = ranked.item
    scores = None
    if ranked.scores is not None:
        scores = ItemScores(
            engagement=ranked.scores.engagement,
            locality=ranked.scores.locality,
            language=ranked.scores.language,
            relationship=ranked.scores.relationship,
            final=ranked.scores.final,
        )
    return FeedItem(
        item_id=item.item_id,
        kind=item.kind,
        author_id=item.author_id,
        content=item.content,
        media_type=item.media_type,
        language=item.language,
        city=item.city,
        tags=item.tags or [],
        like_count=item.like_count,
        comment_count=item.comment_count,
        share_count=item.share_count,
        save_count=item.save_count,
        view_count=item.view_count,
        created_at=item.created_at,
        scores=scores,
    )


@router.get("/", response_model=FeedResponse)
async def get_feed(
    viewer_id: str = Query(..., description="ID of the requesting user"),
    feed_type: str = Query("fyp", description="following | fyp | explore | nearby | trending"),
    kind: ContentKind = Query(ContentKind.POST),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.feed_page_size, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    start_time = time.perf_counter()

    page_result = await FeedAssembler(db).assemble(
        viewer_id, feed_type, page=page, page_size=page_size, kind=kind
    )

    latency_ms = (time.perf_counter() - start_time) * 1000
    logger.info(
        "Feed served: viewer=%s type=%s kind=%s page=%d items=%d candidates=%d latency=%.1fms",
        viewer_id, page_result.feed_type, kind.value, page,
        len(page_result.items), page_result.candidates, latency_ms,
    )

    return FeedResponse(
        viewer_id=viewer_id,
        feed_type=page_result.feed_type,
        kind=page_result.kind.value,
        page=page_result.page,
        page_size=page_result.page_size,
        items=[_build_feed_item(r) for r in page_result.items],
        candidates_considered=page_result.candidates,
        latency_ms=round(latency_ms, 2),
    )


@router.get("/items/{item_id}/comments", response_model=CommentSummaryResponse)
async def get_comment_summary(item_id: str, db: AsyncSession = Depends(get_db)):
    item = await db.get(ContentItem, item_id)
    if not item or item.is_deleted:
        raise HTTPException(status_code=404, detail="Item not found")

    with tracer.start_as_current_span("comment_summary") as span:
        span.set_attribute("item.id", item_id)
        index = await load_comment_index(db, item_id)
        total = await count_item_comments(db, item_id)

    return CommentSummaryResponse(
        item_id=item_id,
        total_comments=total,
        threads=[
            CommentThreadSummary(
                comment_id=root.comment_id,
                author_id=root.author_id,
                replies=index.count_descendants(root.comment_id),
            )
            for root in index.roots()
        ],
    )
