"""
Story tray endpoints:
  GET  /stories?viewer_id=<id>       — active stories grouped by author, unseen first
  POST /stories/{story_id}/view      — mark a story as viewed by a user
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.clients.redis_client import ViewedStoriesCache, get_viewed_stories_cache
from feedrank.database import get_db
from feedrank.models import Story, User
from feedrank.ranking.stories import StoryGroup, mark_story_viewed, organize_stories
from feedrank.schemas import (
    StoryGroupResponse,
    StoryResponse,
    StoryTrayResponse,
    StoryViewRequest,
    StoryViewResponse,
)
from feedrank.time_utils import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


def _build_group(group: StoryGroup) -> StoryGroupResponse:
    return StoryGroupResponse(
        author_id=group.author_id,
        has_unseen=group.has_unseen,
        unseen_count=group.unseen_count,
        stories=[
            StoryResponse(
                story_id=entry.story.story_id,
                media_url=entry.story.media_url,
                created_at=entry.story.created_at,
                expires_at=entry.story.expires_at,
                seen=entry.seen,
            )
            for entry in group.stories
        ],
    )


@router.get("/", response_model=StoryTrayResponse)
async def get_story_tray(
    viewer_id: str = Query(..., description="ID of the requesting user"),
    db: AsyncSession = Depends(get_db),
    cache: ViewedStoriesCache = Depends(get_viewed_stories_cache),
):
    user = await db.get(User, viewer_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    tray = await organize_stories(db, viewer_id, cache)
    return StoryTrayResponse(
        viewer_id=viewer_id,
        unseen_count=tray.unseen_count,
        groups=[_build_group(g) for g in tray.groups],
    )


@router.post("/{story_id}/view", response_model=StoryViewResponse)
async def view_story(
    story_id: str,
    body: StoryViewRequest,
    db: AsyncSession = Depends(get_db),
    cache: ViewedStoriesCache = Depends(get_viewed_stories_cache),
):
    story = await db.get(Story, story_id)
    if not story or story.is_deleted or story.expires_at <= utcnow():
        raise HTTPException(status_code=404, detail="Story not found")
    if not await db.get(User, body.viewer_id):
        raise HTTPException(status_code=404, detail="User not found")

    created = await mark_story_viewed(db, body.viewer_id, story_id, cache)
    logger.info("Story %s viewed by %s (new=%s)", story_id, body.viewer_id, created)
    return StoryViewResponse(story_id=story_id, viewer_id=body.viewer_id, newly_viewed=created)
