"""
Feed assembly — one ranked, paginated page of posts or reels for a viewer.

  following │ viewer + one-hop follows                   │ recency
  fyp       │ last `feed_window_days`, viewer's own      │ ContentScorer final score,
  explore   │ items prepended at maximum rank            │ stable, descending
  nearby    │ exact city match with the viewer           │ recency
  trending  │ last `trending_window_days`                │ likes, then recency

Unknown feed types produce an empty page rather than an error.

Pagination is offset/limit over the ranked list. The scored feeds rank one
fixed window per page size (feed_max_pages · page_size ·
feed_overfetch_factor, capped at feed_max_candidates) whatever page is
requested, so every page is a slice of the same ranking; pages past the
window are empty.
Recency-ordered feeds push offset/limit down to the database, which yields the
same page.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.config import settings
from feedrank.enums import ContentKind, ContentType, FeedType, Language, LanguagePreference, coerce
from feedrank.errors import RankingUnavailable, UserNotFound
from feedrank.models import ContentItem, User
from feedrank.ranking.graph import RelationshipGraph
from feedrank.ranking.scoring import (
    ContentScorer,
    ContentScores,
    ContentSnapshot,
    Location,
    ViewerContext,
)
from feedrank.telemetry import FEED_CANDIDATES_TOTAL, FEED_LATENCY, RANKING_UNAVAILABLE_TOTAL
from feedrank.time_utils import utcnow

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class RankedItem:
    item: ContentItem
    scores: Optional[ContentScores] = None


@dataclass
class FeedPage:
    viewer_id: str
    feed_type: str
    kind: ContentKind
    page: int
    page_size: int
    items: list[RankedItem] = field(default_factory=list)
    candidates: int = 0


def snapshot_of(item: ContentItem) -> ContentSnapshot:
    """Detach the scoring inputs from a persisted row."""
    return ContentSnapshot(
        item_id=item.item_id,
        author_id=item.author_id,
        kind=coerce(ContentKind, item.kind) or ContentKind.POST,
        created_at=item.created_at,
        content_type=coerce(ContentType, item.media_type) or ContentType.TEXT,
        language=coerce(Language, item.language),
        location=Location.from_parts(item.city, item.district, item.province),
        likes=item.like_count or 0,
        comments=item.comment_count or 0,
        shares=item.share_count or 0,
        saves=item.save_count or 0,
        views=item.view_count or 0,
    )


def viewer_context(user: User, following: set[str]) -> ViewerContext:
    return ViewerContext(
        viewer_id=user.user_id,
        location=Location.from_parts(user.city, user.district, user.province),
        language_preference=coerce(LanguagePreference, user.language_preference),
        following=frozenset(following),
    )


def write_back(item: ContentItem, scores: ContentScores) -> None:
    """Copy a computed score snapshot onto the row (cache only)."""
    item.engagement_score = scores.engagement
    item.local_score = scores.locality
    item.language_score = scores.language
    item.relationship_score = scores.relationship
    item.final_score = scores.final


class FeedAssembler:
    def __init__(
        self,
        session: AsyncSession,
        scorer: Optional[ContentScorer] = None,
        graph: Optional[RelationshipGraph] = None,
    ) -> None:
        self._session = session
        self._scorer = scorer or ContentScorer()
        self._graph = graph or RelationshipGraph(session)
        self._handlers = {
            FeedType.FOLLOWING: self._following,
            FeedType.FYP: self._scored,
            FeedType.EXPLORE: self._scored,
            FeedType.NEARBY: self._nearby,
            FeedType.TRENDING: self._trending,
        }

    async def assemble(
        self,
        viewer_id: str,
        feed_type: FeedType | str,
        page: int = 1,
        page_size: Optional[int] = None,
        kind: ContentKind | str = ContentKind.POST,
        now: Optional[datetime] = None,
    ) -> FeedPage:
        page = max(1, page)
        page_size = page_size or settings.feed_page_size
        kind = ContentKind(kind)
        feed_name = feed_type.value if isinstance(feed_type, FeedType) else str(feed_type)
        result = FeedPage(viewer_id, feed_name, kind, page, page_size)

        selected = coerce(FeedType, feed_type)
        if selected is None:
            logger.info("Unknown feed type %r requested by %s — empty page", feed_type, viewer_id)
            return result

        start = time.perf_counter()
        with tracer.start_as_current_span("assemble_feed") as span:
            span.set_attribute("user.id", viewer_id)
            span.set_attribute("feed.type", selected.value)
            span.set_attribute("feed.kind", kind.value)
            span.set_attribute("feed.page", page)
            try:
                viewer = await self._session.get(User, viewer_id)
                if viewer is None:
                    raise UserNotFound(viewer_id)
                items, candidates = await self._handlers[selected](
                    viewer, kind, page, page_size, now or utcnow()
                )
            except SQLAlchemyError as exc:
                RANKING_UNAVAILABLE_TOTAL.labels(operation="feed").inc()
                logger.error("Feed assembly failed for %s (%s): %s", viewer_id, selected.value, exc)
                raise RankingUnavailable("feed", str(exc)) from exc

            result.items = items
            result.candidates = candidates
            FEED_CANDIDATES_TOTAL.labels(feed_type=selected.value).inc(candidates)
            span.set_attribute("feed.candidates", candidates)
            span.set_attribute("feed.items_returned", len(items))

        FEED_LATENCY.labels(feed_type=selected.value).observe(time.perf_counter() - start)
        return result

    # ── Candidate selection ───────────────────────────────────────────────

    @staticmethod
    def _base_query(kind: ContentKind):
        return select(ContentItem).where(
            ContentItem.kind == kind.value,
            ContentItem.is_deleted.is_(False),
            ContentItem.is_archived.is_(False),
        )

    @staticmethod
    def _offset(page: int, page_size: int) -> int:
        return (page - 1) * page_size

    async def _fetch(self, stmt) -> list[ContentItem]:
        return list((await self._session.execute(stmt)).scalars().all())

    async def _following(self, viewer: User, kind, page, page_size, now):
        author_ids = (await self._graph.one_hop(viewer.user_id)) | {viewer.user_id}
        stmt = (
            self._base_query(kind)
            .where(ContentItem.author_id.in_(sorted(author_ids)))
            .order_by(ContentItem.created_at.desc(), ContentItem.item_id.desc())
            .offset(self._offset(page, page_size))
            .limit(page_size)
        )
        items = await self._fetch(stmt)
        return [RankedItem(i) for i in items], len(items)

    async def _nearby(self, viewer: User, kind, page, page_size, now):
        if not viewer.city:
            return [], 0
        stmt = (
            self._base_query(kind)
            .where(ContentItem.city == viewer.city)
            .order_by(ContentItem.created_at.desc(), ContentItem.item_id.desc())
            .offset(self._offset(page, page_size))
            .limit(page_size)
        )
        items = await self._fetch(stmt)
        return [RankedItem(i) for i in items], len(items)

    async def _trending(self, viewer: User, kind, page, page_size, now):
        since = now - timedelta(days=settings.trending_window_days)
        stmt = (
            self._base_query(kind)
            .where(ContentItem.created_at >= since)
            .order_by(
                ContentItem.like_count.desc(),
                ContentItem.created_at.desc(),
                ContentItem.item_id.desc(),
            )
            .offset(self._offset(page, page_size))
            .limit(page_size)
        )
        items = await self._fetch(stmt)
        return [RankedItem(i) for i in items], len(items)

    async def _scored(self, viewer: User, kind, page, page_size, now):
        since = now - timedelta(days=settings.feed_window_days)
        window = min(
            settings.feed_max_candidates,
            settings.feed_max_pages * page_size * settings.feed_overfetch_factor,
        )
        with tracer.start_as_current_span("feed_candidates"):
            candidates = await self._fetch(
                self._base_query(kind)
                .where(ContentItem.created_at >= since)
                .order_by(ContentItem.created_at.desc(), ContentItem.item_id.desc())
                .limit(window)
            )
            following = await self._graph.one_hop(viewer.user_id)

        context = viewer_context(viewer, following)
        with tracer.start_as_current_span("feed_scoring"):
            own: list[RankedItem] = []
            others: list[RankedItem] = []
            for item in candidates:
                ranked = RankedItem(item, self._scorer.score(snapshot_of(item), context))
                if settings.feed_score_write_back:
                    write_back(item, ranked.scores)
                (own if item.author_id == viewer.user_id else others).append(ranked)
            # Stable: equal scores keep recency order
            others.sort(key=lambda r: r.scores.final, reverse=True)

        ranked_all = own + others
        offset = self._offset(page, page_size)
        return ranked_all[offset:offset + page_size], len(candidates)
