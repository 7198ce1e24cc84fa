"""
Story tray — active stories from the viewer and the accounts they follow,
grouped per author, with seen/unseen status from the viewed-stories cache.

Ordering:
  • within a group, stories oldest-first (playback order)
  • groups with anything unseen before fully-seen groups
  • then by each group's newest story, newest first
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.clients.redis_client import ViewedStoriesCache
from feedrank.models import Story, StoryView
from feedrank.ranking.graph import RelationshipGraph
from feedrank.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class StoryEntry:
    story: Story
    seen: bool


@dataclass
class StoryGroup:
    author_id: str
    stories: list[StoryEntry] = field(default_factory=list)

    @property
    def has_unseen(self) -> bool:
        return any(not s.seen for s in self.stories)

    @property
    def unseen_count(self) -> int:
        return sum(1 for s in self.stories if not s.seen)

    @property
    def latest_at(self) -> datetime:
        return self.stories[-1].story.created_at


@dataclass
class StoryTray:
    viewer_id: str
    groups: list[StoryGroup] = field(default_factory=list)

    @property
    def unseen_count(self) -> int:
        return sum(g.unseen_count for g in self.groups)


async def viewed_story_ids(session: AsyncSession, viewer_id: str) -> list[str]:
    rows = await session.execute(
        select(StoryView.story_id).where(StoryView.viewer_id == viewer_id)
    )
    return list(rows.scalars().all())


async def organize_stories(
    session: AsyncSession,
    viewer_id: str,
    cache: ViewedStoriesCache,
    now: Optional[datetime] = None,
) -> StoryTray:
    now = now or utcnow()
    authors = (await RelationshipGraph(session).one_hop(viewer_id)) | {viewer_id}

    rows = await session.execute(
        select(Story)
        .where(
            Story.author_id.in_(sorted(authors)),
            Story.is_deleted.is_(False),
            Story.expires_at > now,
        )
        .order_by(Story.created_at, Story.story_id)
    )
    stories = rows.scalars().all()
    if not stories:
        return StoryTray(viewer_id)

    viewed = await cache.viewed(viewer_id, lambda: viewed_story_ids(session, viewer_id))

    groups: dict[str, StoryGroup] = {}
    for story in stories:
        group = groups.setdefault(story.author_id, StoryGroup(story.author_id))
        group.stories.append(StoryEntry(story, story.story_id in viewed))

    ordered = sorted(groups.values(), key=lambda g: g.latest_at, reverse=True)
    ordered.sort(key=lambda g: not g.has_unseen)
    return StoryTray(viewer_id, ordered)


def _insert_ignore(session: AsyncSession, table, row: dict):
    dialect = session.bind.dialect.name
    if dialect == "sqlite":
        return sqlite.insert(table).values(**row).on_conflict_do_nothing()
    if dialect == "postgresql":
        return postgresql.insert(table).values(**row).on_conflict_do_nothing()
    return mysql.insert(table).values(**row).prefix_with("IGNORE")


async def mark_story_viewed(
    session: AsyncSession,
    viewer_id: str,
    story_id: str,
    cache: ViewedStoriesCache,
) -> bool:
    """
    Record that `viewer_id` opened `story_id`. Returns False when the view was
    already recorded. Commits the session, then clears the viewer's cached
    viewed set either way so the next tray read reloads it.
    """
    result = await session.execute(
        _insert_ignore(
            session,
            StoryView.__table__,
            {"story_id": story_id, "viewer_id": viewer_id, "viewed_at": utcnow()},
        )
    )
    created = bool(result.rowcount)
    # The view must be durable before the cached set is cleared
    await session.commit()
    if not created:
        logger.debug("Story view %s/%s already recorded", story_id, viewer_id)

    await cache.clear(viewer_id)
    return created
