"""
Interaction store — per (viewer, author) affinity counters with decay.

Every qualifying event (like / comment / share / save / view) increments:
  • the counter for that interaction kind  (+ its last-seen timestamp)
  • the content-type counter, if known    (image / video / text)
  • the language counter, if known        (nepali / english / mixed)
  • one interaction_tags row per tag
  • total_interactions / last_interaction

Writes are single-statement upserts (INSERT … ON CONFLICT / ON DUPLICATE KEY
UPDATE col = col + 1), so concurrent events for the same pair never lose an
increment. Timestamps only move forward. There is no deduplication here:
callers that must not double-count (e.g. like → unlike → like) filter first.

Reads:
  decayed score = count · 0.5 ^ (days since that kind's last event / half-life)
  preferences   = full recompute over every record the viewer owns
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import case, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.config import settings
from feedrank.enums import ContentType, InteractionKind, Language, coerce
from feedrank.models import InteractionTag, UserInteraction
from feedrank.telemetry import INTERACTION_WRITE_ERRORS_TOTAL
from feedrank.time_utils import days_between, utcnow

logger = logging.getLogger(__name__)


@dataclass
class TagCount:
    tag: str
    count: int


@dataclass
class InteractionPreferences:
    content_type: dict = field(default_factory=lambda: {t: 0 for t in ContentType})
    language: dict = field(default_factory=lambda: {lang: 0 for lang in Language})
    tags: list = field(default_factory=list)
    total_interactions: int = 0

    def top_tags(self, n: int) -> list[str]:
        return [t.tag for t in self.tags[:n]]

    def to_dict(self) -> dict:
        return {
            "content_type": {k.value: v for k, v in self.content_type.items()},
            "language": {k.value: v for k, v in self.language.items()},
            "tags": [{"tag": t.tag, "count": t.count} for t in self.tags],
            "total_interactions": self.total_interactions,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "InteractionPreferences":
        prefs = cls()
        for key, value in data.get("content_type", {}).items():
            if coerce(ContentType, key) is not None:
                prefs.content_type[ContentType(key)] = int(value)
        for key, value in data.get("language", {}).items():
            if coerce(Language, key) is not None:
                prefs.language[Language(key)] = int(value)
        prefs.tags = [TagCount(t["tag"], int(t["count"])) for t in data.get("tags", [])]
        prefs.total_interactions = int(data.get("total_interactions", 0))
        return prefs


def decayed_score(
    count: int,
    last_interaction: Optional[datetime],
    half_life_days: float = 7.0,
    now: Optional[datetime] = None,
) -> float:
    """Exponential half-life decay of `count` since `last_interaction`."""
    if not count or last_interaction is None:
        return 0.0
    now = now or utcnow()
    days_since = max(0.0, days_between(last_interaction, now))
    return count * 0.5 ** (days_since / half_life_days)


def _normalise_tags(tags: Optional[Iterable[str]]) -> list[str]:
    return [t.strip().lower() for t in (tags or []) if t and t.strip()]


def _forward(column, ts: datetime):
    """SQL expression: `ts` if it is newer than the stored value, else the stored value."""
    return case((column.is_(None), ts), (column < ts, ts), else_=column)


class InteractionStore:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ── Writes ────────────────────────────────────────────────────────────

    def _upsert(self, table, index_elements: list[str], row: dict, updates: dict):
        dialect = self._session.bind.dialect.name
        if dialect == "sqlite":
            return sqlite.insert(table).values(**row).on_conflict_do_update(
                index_elements=index_elements, set_=updates
            )
        if dialect == "postgresql":
            return postgresql.insert(table).values(**row).on_conflict_do_update(
                index_elements=index_elements, set_=updates
            )
        # TiDB / MySQL
        return mysql.insert(table).values(**row).on_duplicate_key_update(**updates)

    async def record_interaction(
        self,
        viewer_id: str,
        author_id: str,
        kind: InteractionKind | str,
        content_type: ContentType | str | None = None,
        language: Language | str | None = None,
        tags: Optional[Iterable[str]] = None,
        occurred_at: Optional[datetime] = None,
    ) -> None:
        """
        Record one interaction event from `viewer_id` towards content by `author_id`.

        Raises ValueError for an unknown interaction kind. Unknown content
        types / languages are ignored rather than rejected.
        """
        kind = InteractionKind(kind)
        content_type = coerce(ContentType, content_type)
        language = coerce(Language, language)
        ts = occurred_at or utcnow()

        table = UserInteraction.__table__
        row = {
            "viewer_id": viewer_id,
            "author_id": author_id,
            "total_interactions": 1,
            "last_interaction": ts,
            "created_at": ts,
        }
        updates = {
            "total_interactions": table.c.total_interactions + 1,
            "last_interaction": _forward(table.c.last_interaction, ts),
        }
        for key in (kind, content_type, language):
            if key is None:
                continue
            count_col, last_col = f"{key.value}_count", f"{key.value}_last_at"
            row[count_col] = 1
            row[last_col] = ts
            updates[count_col] = table.c[count_col] + 1
            updates[last_col] = _forward(table.c[last_col], ts)

        await self._session.execute(
            self._upsert(table, ["viewer_id", "author_id"], row, updates)
        )

        tag_table = InteractionTag.__table__
        for tag in _normalise_tags(tags):
            await self._session.execute(
                self._upsert(
                    tag_table,
                    ["viewer_id", "author_id", "tag"],
                    {
                        "viewer_id": viewer_id,
                        "author_id": author_id,
                        "tag": tag,
                        "count": 1,
                        "last_interaction": ts,
                    },
                    {
                        "count": tag_table.c["count"] + 1,
                        "last_interaction": _forward(tag_table.c.last_interaction, ts),
                    },
                )
            )

        logger.debug(
            "Recorded %s interaction %s → %s (type=%s, lang=%s)",
            kind.value, viewer_id, author_id,
            content_type.value if content_type else None,
            language.value if language else None,
        )

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_record(self, viewer_id: str, author_id: str) -> Optional[UserInteraction]:
        stmt = (
            select(UserInteraction)
            .where(
                UserInteraction.viewer_id == viewer_id,
                UserInteraction.author_id == author_id,
            )
            .execution_options(populate_existing=True)
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()

    async def get_decayed_score(
        self,
        viewer_id: str,
        author_id: str,
        kind: InteractionKind | str,
        half_life_days: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> float:
        kind = InteractionKind(kind)
        record = await self.get_record(viewer_id, author_id)
        if record is None:
            return 0.0
        return decayed_score(
            record.count_for(kind),
            record.last_for(kind),
            half_life_days or settings.interaction_half_life_days,
            now,
        )

    async def get_preferences(self, viewer_id: str) -> InteractionPreferences:
        """Aggregate every record owned by `viewer_id` into one preference profile."""
        prefs = InteractionPreferences()

        records = (
            await self._session.execute(
                select(UserInteraction)
                .where(UserInteraction.viewer_id == viewer_id)
                .execution_options(populate_existing=True)
            )
        ).scalars().all()
        for record in records:
            for content_type in ContentType:
                prefs.content_type[content_type] += record.count_for(content_type)
            for language in Language:
                prefs.language[language] += record.count_for(language)
            prefs.total_interactions += record.total_interactions or 0

        tag_rows = (
            await self._session.execute(
                select(InteractionTag.tag, InteractionTag.count)
                .where(InteractionTag.viewer_id == viewer_id)
                .order_by(InteractionTag.author_id, InteractionTag.tag)
            )
        ).all()
        merged: dict[str, int] = {}
        for tag, count in tag_rows:
            merged[tag] = merged.get(tag, 0) + (count or 0)
        prefs.tags = sorted(
            (TagCount(tag, count) for tag, count in merged.items()),
            key=lambda t: t.count,
            reverse=True,
        )
        return prefs


async def record_interaction_safely(store: InteractionStore, **event) -> bool:
    """
    Best-effort write used by event consumers: a failed interaction-history
    update is logged and counted, never propagated to the primary action.
    """
    try:
        await store.record_interaction(**event)
        return True
    except Exception as exc:
        INTERACTION_WRITE_ERRORS_TOTAL.inc()
        logger.warning(
            "Interaction history update failed for %s → %s: %s",
            event.get("viewer_id"), event.get("author_id"), exc,
        )
        return False
