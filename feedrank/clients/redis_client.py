"""
Redis client wrapper.

Responsibilities:
  • Viewed stories  — STRING (JSON list) keyed by sv:{user_id}
                       story_ids the user has already opened
  • Preferences     — STRING (JSON object) keyed by prefs:{user_id}
                       aggregated interaction preferences

Both are lazy, TTL-bounded caches: a miss runs the loader against TiDB and
writes the result back; writers clear the key after changing the source rows.
Concurrent misses for the same key each reload; the last SET wins.
"""
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as aioredis

from feedrank.config import settings
from feedrank.ranking.interactions import InteractionPreferences

logger = logging.getLogger(__name__)

_redis: Optional[aioredis.Redis] = None


async def init_redis() -> None:
    global _redis
    _redis = aioredis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,
    )
    await _redis.ping()
    logger.info("Redis connected at %s:%s", settings.redis_host, settings.redis_port)


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    if _redis is None:
        raise RuntimeError("Redis not initialised — call init_redis() at startup")
    return _redis


# ─────────────────────── Lazy JSON cache ──────────────────────────────────

class JsonTTLCache:
    def __init__(self, redis: aioredis.Redis, prefix: str, ttl_seconds: int) -> None:
        self._redis = redis
        self._prefix = prefix
        self._ttl = ttl_seconds

    def key_for(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        raw = await self._redis.get(self.key_for(key))
        if raw is not None:
            return json.loads(raw)
        value = await loader()
        await self._redis.set(self.key_for(key), json.dumps(value), ex=self._ttl)
        logger.debug("Cache fill %s (ttl=%ss)", self.key_for(key), self._ttl)
        return value

    async def clear(self, key: str) -> None:
        await self._redis.delete(self.key_for(key))


class ViewedStoriesCache(JsonTTLCache):
    def __init__(self, redis: aioredis.Redis, ttl_seconds: Optional[int] = None) -> None:
        super().__init__(redis, "sv", ttl_seconds or settings.viewed_stories_ttl)

    async def viewed(
        self, user_id: str, loader: Callable[[], Awaitable[list[str]]]
    ) -> set[str]:
        return set(await self.get_or_load(user_id, loader))


class PreferencesCache(JsonTTLCache):
    def __init__(self, redis: aioredis.Redis, ttl_seconds: Optional[int] = None) -> None:
        super().__init__(redis, "prefs", ttl_seconds or settings.preferences_cache_ttl)

    async def preferences(
        self, user_id: str, loader: Callable[[str], Awaitable[InteractionPreferences]]
    ) -> InteractionPreferences:
        async def load() -> dict:
            return (await loader(user_id)).to_dict()

        return InteractionPreferences.from_dict(await self.get_or_load(user_id, load))

    def loader_for(
        self, loader: Callable[[str], Awaitable[InteractionPreferences]]
    ) -> Callable[[str], Awaitable[InteractionPreferences]]:
        """Wrap an uncached preferences loader so reads go through this cache."""
        async def cached(user_id: str) -> InteractionPreferences:
            return await self.preferences(user_id, loader)

        return cached


# ─────────────────────── FastAPI dependencies ─────────────────────────────

def get_viewed_stories_cache() -> ViewedStoriesCache:
    return ViewedStoriesCache(get_redis())


def get_preferences_cache() -> PreferencesCache:
    return PreferencesCache(get_redis())
