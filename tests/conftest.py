import os

# Must be set before feedrank.config / feedrank.telemetry are imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OTEL_SDK_DISABLED", "true")

import itertools
from datetime import timedelta

import pytest
from fakeredis.aioredis import FakeRedis
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from feedrank.database import Base
from feedrank.models import Comment, ContentItem, Follow, Story, User
from feedrank.time_utils import utcnow


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def redis():
    client = FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def now():
    return utcnow().replace(microsecond=0)


class Factory:
    """
    Builds rows for a test scenario. Every helper adds to the session and
    flushes so the rows are visible to subsequent queries.
    """

    def __init__(self, session, now):
        self.session = session
        self.now = now
        self._ids = itertools.count(1)

    def _next(self, prefix):
        return f"{prefix}{next(self._ids)}"

    async def user(self, user_id=None, **fields):
        user_id = user_id or self._next("u")
        fields.setdefault("username", user_id)
        fields.setdefault("last_active", self.now)
        user = User(user_id=user_id, **fields)
        self.session.add(user)
        await self.session.flush()
        return user

    async def follow(self, follower_id, *followee_ids):
        for followee_id in followee_ids:
            self.session.add(Follow(follower_id=follower_id, followee_id=followee_id))
        await self.session.flush()

    async def item(self, author_id, age=timedelta(0), **fields):
        fields.setdefault("item_id", self._next("i"))
        fields.setdefault("kind", "post")
        item = ContentItem(author_id=author_id, created_at=self.now - age, **fields)
        self.session.add(item)
        await self.session.flush()
        return item

    async def comment(self, item_id, parent_id=None, comment_id=None, author_id="author"):
        comment = Comment(
            comment_id=comment_id or self._next("c"),
            item_id=item_id,
            parent_id=parent_id,
            author_id=author_id,
            content="nice",
            created_at=self.now,
        )
        self.session.add(comment)
        await self.session.flush()
        return comment

    async def story(self, author_id, age=timedelta(0), ttl=timedelta(hours=24), **fields):
        created_at = self.now - age
        story = Story(
            story_id=fields.pop("story_id", None) or self._next("s"),
            author_id=author_id,
            created_at=created_at,
            expires_at=created_at + ttl,
            **fields,
        )
        self.session.add(story)
        await self.session.flush()
        return story


@pytest.fixture
def factory(session, now):
    return Factory(session, now)
