from datetime import datetime

from feedrank.clients.redis_client import PreferencesCache
from feedrank.ranking.interactions import InteractionStore
from feedrank.worker import process_message


async def test_event_is_applied_and_preferences_cleared(session_factory, redis):
    cache = PreferencesCache(redis)
    await redis.set("prefs:v", "{}")

    stored = await process_message(
        {
            "viewer_id": "v",
            "author_id": "a",
            "kind": "comment",
            "content_type": "video",
            "language": "nepali",
            "tags": ["dance"],
            "occurred_at": "2024-05-01T10:00:00+00:00",
        },
        session_factory,
        cache,
    )

    assert stored is True
    assert await redis.exists("prefs:v") == 0
    async with session_factory() as session:
        record = await InteractionStore(session).get_record("v", "a")
    assert record.comment_count == 1
    assert record.video_count == 1
    assert record.nepali_count == 1
    assert record.comment_last_at == datetime(2024, 5, 1, 10, 0, 0)


async def test_malformed_events_are_skipped(session_factory, redis):
    cache = PreferencesCache(redis)
    assert await process_message({"viewer_id": "v", "kind": "like"}, session_factory, cache) is False
    assert await process_message(
        {"viewer_id": "v", "author_id": "a", "kind": "poke"}, session_factory, cache
    ) is False


async def test_failed_write_is_dropped_without_raising(session_factory, redis, monkeypatch):
    async def broken(self, **event):
        raise RuntimeError("tidb unavailable")

    monkeypatch.setattr(InteractionStore, "record_interaction", broken)
    await redis.set("prefs:v", "{}")

    stored = await process_message(
        {"viewer_id": "v", "author_id": "a", "kind": "like"},
        session_factory,
        PreferencesCache(redis),
    )
    assert stored is False
    # Cache untouched when nothing was written
    assert await redis.exists("prefs:v") == 1
