"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from feedrank.enums import ContentType, InteractionKind, Language


# ──────────────────────────── Users ───────────────────────────────────────

class UserSummary(BaseModel):
    user_id: str
    username: str
    full_name: Optional[str] = None
    profile_picture: Optional[str] = None
    is_verified: bool = False

    class Config:
        from_attributes = True


class SuggestedUserResponse(UserSummary):
    bio: Optional[str] = None
    city: Optional[str] = None
    followers_count: int = 0
    mutual_connections: int = 0


class SuggestionResponse(BaseModel):
    users: list[SuggestedUserResponse]
    algorithm: str
    factors: list[str]
    metadata: dict


# ──────────────────────────── Feed ────────────────────────────────────────

class ItemScores(BaseModel):
    engagement: float
    locality: float
    language: float
    relationship: float
    final: float


class FeedItem(BaseModel):
    item_id: str
    kind: str
    author_id: str
    content: Optional[str]
    media_type: str
    language: Optional[str]
    city: Optional[str]
    tags: list[str] = []
    like_count: int
    comment_count: int
    share_count: int
    save_count: int
    view_count: int
    created_at: datetime
    # Only present for scored feeds (fyp / explore)
    scores: Optional[ItemScores] = None


class FeedResponse(BaseModel):
    viewer_id: str
    feed_type: str
    kind: str
    page: int
    page_size: int
    items: list[FeedItem]
    candidates_considered: int
    latency_ms: float


class CommentThreadSummary(BaseModel):
    comment_id: str
    author_id: str
    replies: int


class CommentSummaryResponse(BaseModel):
    item_id: str
    total_comments: int
    threads: list[CommentThreadSummary]


# ──────────────────────────── Interactions ────────────────────────────────

class InteractionEvent(BaseModel):
    viewer_id: str
    author_id: str
    kind: InteractionKind
    content_type: Optional[ContentType] = None
    language: Optional[Language] = None
    tags: list[str] = Field(default_factory=list, max_length=50)
    occurred_at: Optional[datetime] = None


class InteractionAccepted(BaseModel):
    accepted: bool = True
    kind: InteractionKind


class TagCountResponse(BaseModel):
    tag: str
    count: int


class PreferencesResponse(BaseModel):
    viewer_id: str
    content_type: dict[str, int]
    language: dict[str, int]
    tags: list[TagCountResponse]
    total_interactions: int


# ──────────────────────────── Stories ─────────────────────────────────────

class StoryResponse(BaseModel):
    story_id: str
    media_url: Optional[str]
    created_at: datetime
    expires_at: datetime
    seen: bool


class StoryGroupResponse(BaseModel):
    author_id: str
    has_unseen: bool
    unseen_count: int
    stories: list[StoryResponse]


class StoryTrayResponse(BaseModel):
    viewer_id: str
    unseen_count: int
    groups: list[StoryGroupResponse]


class StoryViewRequest(BaseModel):
    viewer_id: str


class StoryViewResponse(BaseModel):
    story_id: str
    viewer_id: str
    newly_viewed: bool
