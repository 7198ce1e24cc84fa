"""
SQLAlchemy ORM models for TiDB.

Tables:
  users             — profiles read by feed + suggestion ranking
  follows           — social graph edges (follower → followee)
  content_items     — posts and reels with engagement counters and the
                      cached score snapshot (never authoritative)
  comments          — flat comment table; replies point at parent_id
  user_interactions — per (viewer, author) decayed-affinity counters
  interaction_tags  — per (viewer, author, tag) counters
  stories           — expiring stories
  story_views       — viewer × story "seen" markers

Rows in users / follows / content_items / comments / stories are owned by the
CRUD layer; this service only reads them (and writes back score snapshots).
user_interactions and interaction_tags are owned here.
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from feedrank.database import Base
from feedrank.enums import ContentType, InteractionKind, Language
from feedrank.time_utils import utcnow


def _uuid() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    profile_picture: Mapped[Optional[str]] = mapped_column(String(500))
    bio: Mapped[Optional[str]] = mapped_column(String(500))
    city: Mapped[Optional[str]] = mapped_column(String(100))
    district: Mapped[Optional[str]] = mapped_column(String(100))
    province: Mapped[Optional[str]] = mapped_column(String(100))
    # 'nepali' | 'english' | 'both'
    language_preference: Mapped[Optional[str]] = mapped_column(String(20), default="both")
    interests: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    # Denormalised counters maintained by the follow endpoints
    followers_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    following_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_banned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_active: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_users_followers", "followers_count"),
        Index("idx_users_last_active", "last_active"),
    )


class Follow(Base):
    __tablename__ = "follows"

    follower_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    followee_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        # Fast lookup "who follows user X?"
        Index("idx_followee", "followee_id"),
    )


class ContentItem(Base):
    __tablename__ = "content_items"

    item_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    # 'post' | 'reel'
    kind: Mapped[str] = mapped_column(String(10), default="post", nullable=False)
    author_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), nullable=False
    )
    content: Mapped[Optional[str]] = mapped_column(Text)
    # 'image' | 'video' | 'text'
    media_type: Mapped[str] = mapped_column(String(10), default="text", nullable=False)
    # 'nepali' | 'english' | 'mixed'
    language: Mapped[Optional[str]] = mapped_column(String(20), default="english")
    city: Mapped[Optional[str]] = mapped_column(String(100))
    district: Mapped[Optional[str]] = mapped_column(String(100))
    province: Mapped[Optional[str]] = mapped_column(String(100))
    tags: Mapped[Optional[list]] = mapped_column(JSON, default=list)

    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Flattened total: top-level comments plus every nested reply
    comment_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    share_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    save_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    # Score snapshot from the last ranking pass
    engagement_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    local_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    language_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    relationship_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    final_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    __table_args__ = (
        Index("idx_items_author", "author_id"),
        Index("idx_items_kind_created", "kind", "created_at"),
        Index("idx_items_city", "city"),
    )


class Comment(Base):
    __tablename__ = "comments"

    comment_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("content_items.item_id"), nullable=False
    )
    # NULL for top-level comments
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("comments.comment_id")
    )
    author_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), nullable=False
    )
    content: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_comments_item", "item_id"),)


class UserInteraction(Base):
    __tablename__ = "user_interactions"

    viewer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    author_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )

    # Per interaction kind: count + last occurrence (decay is keyed per kind)
    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    like_last_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    comment_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    comment_last_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    share_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    share_last_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    save_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    save_last_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    view_last_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Content-type affinity
    image_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    image_last_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    video_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    video_last_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    text_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    text_last_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Language affinity
    nepali_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    nepali_last_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    english_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    english_last_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    mixed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    mixed_last_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    total_interactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_interaction: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_interactions_viewer_last", "viewer_id", "last_interaction"),
    )

    def count_for(self, key: InteractionKind | ContentType | Language) -> int:
        return getattr(self, f"{key.value}_count") or 0

    def last_for(self, key: InteractionKind | ContentType | Language) -> Optional[datetime]:
        return getattr(self, f"{key.value}_last_at")


class InteractionTag(Base):
    __tablename__ = "interaction_tags"

    viewer_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    author_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tag: Mapped[str] = mapped_column(String(100), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_interaction: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        ForeignKeyConstraint(
            ["viewer_id", "author_id"],
            ["user_interactions.viewer_id", "user_interactions.author_id"],
        ),
        Index("idx_interaction_tags_tag", "tag"),
    )


class Story(Base):
    __tablename__ = "stories"

    story_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    author_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), nullable=False
    )
    media_url: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (Index("idx_stories_author_expiry", "author_id", "expires_at"),)


class StoryView(Base):
    __tablename__ = "story_views"

    story_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("stories.story_id"), primary_key=True
    )
    viewer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    viewed_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_story_views_viewer", "viewer_id"),)
