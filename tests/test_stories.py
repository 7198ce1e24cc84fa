from datetime import timedelta

import pytest

from feedrank.clients.redis_client import ViewedStoriesCache
from feedrank.ranking.stories import mark_story_viewed, organize_stories


@pytest.fixture
def cache(redis):
    return ViewedStoriesCache(redis, ttl_seconds=300)


@pytest.fixture
async def circle(factory):
    await factory.user("me")
    await factory.user("ana")
    await factory.user("bo")
    await factory.user("outsider")
    await factory.follow("me", "ana", "bo")


async def test_tray_groups_followed_authors(session, factory, circle, cache, now):
    await factory.story("ana", age=timedelta(hours=2), story_id="ana-1")
    await factory.story("ana", age=timedelta(hours=1), story_id="ana-2")
    await factory.story("outsider", story_id="nope")

    tray = await organize_stories(session, "me", cache, now=now)
    assert [g.author_id for g in tray.groups] == ["ana"]
    assert [e.story.story_id for e in tray.groups[0].stories] == ["ana-1", "ana-2"]
    assert tray.unseen_count == 2


async def test_expired_and_deleted_stories_are_hidden(session, factory, circle, cache, now):
    await factory.story("ana", age=timedelta(hours=30), story_id="expired")
    await factory.story("ana", story_id="deleted", is_deleted=True)
    await factory.story("me", story_id="mine")

    tray = await organize_stories(session, "me", cache, now=now)
    assert [e.story.story_id for g in tray.groups for e in g.stories] == ["mine"]


async def test_unseen_groups_come_first(session, factory, circle, cache, now):
    await factory.story("ana", age=timedelta(hours=1), story_id="ana-1")
    await factory.story("bo", age=timedelta(hours=3), story_id="bo-1")
    await mark_story_viewed(session, "me", "ana-1", cache)

    tray = await organize_stories(session, "me", cache, now=now)
    assert [g.author_id for g in tray.groups] == ["bo", "ana"]
    assert tray.groups[0].has_unseen
    assert not tray.groups[1].has_unseen
    assert tray.unseen_count == 1


async def test_seen_status_is_cached_until_cleared(session, factory, circle, cache, redis, now):
    await factory.story("ana", story_id="ana-1")

    await organize_stories(session, "me", cache, now=now)
    assert await redis.get("sv:me") == "[]"

    assert await mark_story_viewed(session, "me", "ana-1", cache) is True
    assert await redis.exists("sv:me") == 0

    tray = await organize_stories(session, "me", cache, now=now)
    assert tray.groups[0].stories[0].seen
    assert await redis.get("sv:me") == '["ana-1"]'


async def test_marking_twice_is_idempotent(session, factory, circle, cache, now):
    await factory.story("ana", story_id="ana-1")
    assert await mark_story_viewed(session, "me", "ana-1", cache) is True
    assert await mark_story_viewed(session, "me", "ana-1", cache) is False
