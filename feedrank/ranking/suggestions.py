"""
"People you may know" — rich-get-richer friend suggestions.

Candidate sourcing (two disjoint pools, concatenated in this order):
  A. mutual   — two-hop follow-graph candidates, most mutuals first (≤ 100)
  B. popular  — recently active users outside A, most followers first (≤ 200)

Per-candidate score (score-bearing weights sum to 1.0):

  0.30 · min(10, mutual · 2)
  0.30 · min(cap, ln(followers + 1) · 10)
  0.15 · max(0, 10 − days since last active)
  0.10 · min(10, followers / following · 2)     (0 when following = 0)
  0.10 · shared interests · 2
  0.05 · 5 same city │ 3 same district │ 1 same province │ 0

Ranking is a stable descending sort, so equal scores keep pool order. Scores
and the factor breakdown stay inside this module; callers only see the
profile and its mutual-connection count.
"""
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from opentelemetry import trace
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.config import settings
from feedrank.errors import RankingUnavailable, UserNotFound
from feedrank.models import User
from feedrank.ranking.graph import RelationshipGraph, chunked
from feedrank.ranking.interactions import InteractionPreferences, InteractionStore
from feedrank.ranking.scoring import Location
from feedrank.telemetry import (
    RANKING_UNAVAILABLE_TOTAL,
    SUGGESTION_CANDIDATES_TOTAL,
    SUGGESTION_LATENCY,
)
from feedrank.time_utils import days_between, utcnow

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ALGORITHM_NAME = "rich_get_richer"

WEIGHTS = {
    "mutual_connections": 0.30,
    "follower_count": 0.30,
    "recent_activity": 0.15,
    "engagement_ratio": 0.10,
    "shared_interests": 0.10,
    "geographic_proximity": 0.05,
}
FACTORS = list(WEIGHTS)

GEO_SAME_CITY = 5.0
GEO_SAME_DISTRICT = 3.0
GEO_SAME_PROVINCE = 1.0

POOL_MUTUAL = "mutual"
POOL_POPULAR = "popular"

PreferencesLoader = Callable[[str], Awaitable[InteractionPreferences]]


@dataclass
class SuggestionCandidate:
    """Scored, explainable wrapper around a profile; lives for one request."""
    user: User
    pool: str
    mutual_connections: int = 0
    sub_scores: dict = field(default_factory=dict)
    factors: list = field(default_factory=list)
    score: float = 0.0


@dataclass
class SuggestedUser:
    user: User
    mutual_connections: int


@dataclass
class SuggestionResult:
    users: list[SuggestedUser]
    algorithm: str
    factors: list[str]
    metadata: dict


# ── Factor formulas ───────────────────────────────────────────────────────

def mutual_factor(mutual_count: int) -> float:
    return min(10.0, mutual_count * 2.0)


def follower_factor(followers: int, cap: Optional[float] = None) -> float:
    value = math.log(max(0, followers) + 1) * 10
    return value if cap is None else min(cap, value)


def activity_factor(last_active: Optional[datetime], now: datetime) -> float:
    if last_active is None:
        return 0.0
    return max(0.0, 10.0 - max(0.0, days_between(last_active, now)))


def engagement_ratio_factor(followers: int, following: int) -> float:
    if not following:
        return 0.0
    return min(10.0, (followers / following) * 2.0)


def shared_interest_factor(shared_count: int) -> float:
    return shared_count * 2.0


def geo_factor(candidate: Optional[Location], viewer: Optional[Location]) -> float:
    if candidate is None or viewer is None:
        return 0.0
    if candidate.city and candidate.city == viewer.city:
        return GEO_SAME_CITY
    if candidate.district and candidate.district == viewer.district:
        return GEO_SAME_DISTRICT
    if candidate.province and candidate.province == viewer.province:
        return GEO_SAME_PROVINCE
    return 0.0


def _interest_set(values) -> set[str]:
    return {str(v).strip().lower() for v in (values or []) if v and str(v).strip()}


def _location_of(user: User) -> Optional[Location]:
    return Location.from_parts(user.city, user.district, user.province)


class SuggestionEngine:
    def __init__(
        self,
        session: AsyncSession,
        graph: Optional[RelationshipGraph] = None,
        preferences_loader: Optional[PreferencesLoader] = None,
    ) -> None:
        self._session = session
        self._graph = graph or RelationshipGraph(session)
        self._load_preferences = preferences_loader or InteractionStore(session).get_preferences

    async def suggest(
        self,
        viewer_id: str,
        limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> SuggestionResult:
        limit = limit or settings.suggestion_default_limit
        now = now or utcnow()
        start = time.perf_counter()

        with tracer.start_as_current_span("suggest_users") as span:
            span.set_attribute("user.id", viewer_id)
            try:
                candidates, pool_sizes = await self.rank_candidates(viewer_id, now)
            except (SQLAlchemyError, RedisError) as exc:
                RANKING_UNAVAILABLE_TOTAL.labels(operation="suggestions").inc()
                logger.error("Suggestion ranking failed for %s: %s", viewer_id, exc)
                raise RankingUnavailable("suggestions", str(exc)) from exc

            top = candidates[:limit]
            span.set_attribute("suggestions.candidates", len(candidates))
            span.set_attribute("suggestions.returned", len(top))

        SUGGESTION_LATENCY.observe(time.perf_counter() - start)
        return SuggestionResult(
            users=[SuggestedUser(c.user, c.mutual_connections) for c in top],
            algorithm=ALGORITHM_NAME,
            factors=FACTORS,
            metadata={
                "total_suggestions": len(top),
                "candidates_considered": len(candidates),
                "pools": pool_sizes,
                "weights": dict(WEIGHTS),
            },
        )

    async def rank_candidates(
        self, viewer_id: str, now: datetime
    ) -> tuple[list[SuggestionCandidate], dict]:
        """Every scored candidate, best first, plus pool sizes. Scores are internal."""
        viewer = await self._session.get(User, viewer_id)
        if viewer is None:
            raise UserNotFound(viewer_id)

        following = await self._graph.one_hop(viewer_id)
        with tracer.start_as_current_span("suggestion_pools"):
            frequency = await self._graph.mutual_frequency(viewer_id)
            mutual_pool = await self._mutual_pool(frequency)
            popular_pool = await self._popular_pool(
                viewer_id, following | {c.user.user_id for c in mutual_pool}, frequency, now
            )
        SUGGESTION_CANDIDATES_TOTAL.labels(pool=POOL_MUTUAL).inc(len(mutual_pool))
        SUGGESTION_CANDIDATES_TOTAL.labels(pool=POOL_POPULAR).inc(len(popular_pool))

        candidates = mutual_pool + popular_pool
        if not candidates:
            return [], {POOL_MUTUAL: 0, POOL_POPULAR: 0}

        preferences = await self._load_preferences(viewer_id)
        interests = _interest_set(viewer.interests) | _interest_set(
            preferences.top_tags(settings.suggestion_preference_tags)
        )
        viewer_location = _location_of(viewer)

        for candidate in candidates:
            self._score(candidate, interests, viewer_location, now)
        candidates.sort(key=lambda c: c.score, reverse=True)

        logger.info(
            "Suggestions for %s: %d mutual + %d popular candidates",
            viewer_id, len(mutual_pool), len(popular_pool),
        )
        return candidates, {POOL_MUTUAL: len(mutual_pool), POOL_POPULAR: len(popular_pool)}

    @staticmethod
    def _eligible():
        return select(User).where(
            User.is_active.is_(True),
            User.is_banned.is_(False),
            User.is_deleted.is_(False),
        )

    async def _mutual_pool(self, frequency: dict[str, int]) -> list[SuggestionCandidate]:
        if not frequency:
            return []
        by_id: dict[str, User] = {}
        for chunk in chunked(list(frequency)):
            rows = await self._session.execute(self._eligible().where(User.user_id.in_(chunk)))
            by_id.update((u.user_id, u) for u in rows.scalars().all())
        pool: list[SuggestionCandidate] = []
        # `frequency` is already most-mutuals-first
        for user_id, count in frequency.items():
            user = by_id.get(user_id)
            if user is None:
                continue
            pool.append(SuggestionCandidate(user, POOL_MUTUAL, mutual_connections=count))
            if len(pool) >= settings.suggestion_mutual_pool_cap:
                break
        return pool

    async def _popular_pool(
        self,
        viewer_id: str,
        excluded: set[str],
        frequency: dict[str, int],
        now: datetime,
    ) -> list[SuggestionCandidate]:
        active_since = now - timedelta(days=settings.suggestion_active_window_days)
        stmt = (
            self._eligible()
            .where(
                User.user_id != viewer_id,
                User.last_active >= active_since,
                *[User.user_id.not_in(chunk) for chunk in chunked(sorted(excluded))],
            )
            .order_by(User.followers_count.desc(), User.user_id)
            .limit(settings.suggestion_popular_pool_cap)
        )
        rows = await self._session.execute(stmt)
        # Two-hop users cut by the mutual cap keep their mutual count here
        return [
            SuggestionCandidate(u, POOL_POPULAR, mutual_connections=frequency.get(u.user_id, 0))
            for u in rows.scalars().all()
        ]

    @staticmethod
    def _score(
        candidate: SuggestionCandidate,
        viewer_interests: set[str],
        viewer_location: Optional[Location],
        now: datetime,
    ) -> None:
        user = candidate.user
        followers = user.followers_count or 0
        following = user.following_count or 0
        shared = viewer_interests & _interest_set(user.interests)

        sub_scores = {
            "mutual_connections": mutual_factor(candidate.mutual_connections),
            "follower_count": follower_factor(followers, settings.suggestion_follower_score_cap),
            "recent_activity": activity_factor(user.last_active, now),
            "engagement_ratio": engagement_ratio_factor(followers, following),
            "shared_interests": shared_interest_factor(len(shared)),
            "geographic_proximity": geo_factor(_location_of(user), viewer_location),
        }
        candidate.sub_scores = sub_scores
        candidate.score = sum(WEIGHTS[name] * value for name, value in sub_scores.items())

        factors = []
        if candidate.mutual_connections:
            factors.append(f"{candidate.mutual_connections} mutual connection(s)")
        if shared:
            factors.append("shared interests: " + ", ".join(sorted(shared)))
        if sub_scores["geographic_proximity"] == GEO_SAME_CITY:
            factors.append("lives in your city")
        elif sub_scores["geographic_proximity"] > 0:
            factors.append("lives nearby")
        if sub_scores["recent_activity"] > 0:
            factors.append("recently active")
        if followers:
            factors.append(f"{followers} followers")
        candidate.factors = factors
