from feedrank.clients.redis_client import JsonTTLCache, PreferencesCache, ViewedStoriesCache
from feedrank.enums import ContentType
from feedrank.ranking.interactions import InteractionPreferences, TagCount


class CountingLoader:
    def __init__(self, value):
        self.value = value
        self.calls = 0

    async def __call__(self, *args):
        self.calls += 1
        return self.value


async def test_loads_once_then_serves_from_redis(redis):
    cache = JsonTTLCache(redis, "t", 60)
    loader = CountingLoader(["s1", "s2"])

    assert await cache.get_or_load("u1", loader) == ["s1", "s2"]
    assert await cache.get_or_load("u1", loader) == ["s1", "s2"]
    assert loader.calls == 1
    assert await redis.get("t:u1") == '["s1", "s2"]'


async def test_entries_carry_ttl(redis):
    cache = JsonTTLCache(redis, "t", 120)
    await cache.get_or_load("u1", CountingLoader([]))
    ttl = await redis.ttl("t:u1")
    assert 0 < ttl <= 120


async def test_clear_forces_reload(redis):
    cache = JsonTTLCache(redis, "t", 60)
    loader = CountingLoader({"a": 1})
    await cache.get_or_load("u1", loader)
    await cache.clear("u1")
    loader.value = {"a": 2}

    assert await cache.get_or_load("u1", loader) == {"a": 2}
    assert loader.calls == 2


async def test_keys_are_isolated_per_user(redis):
    cache = ViewedStoriesCache(redis, ttl_seconds=60)
    await cache.get_or_load("u1", CountingLoader(["s1"]))
    await cache.get_or_load("u2", CountingLoader(["s9"]))
    await cache.clear("u1")

    assert await redis.exists("sv:u1") == 0
    assert await cache.viewed("u2", CountingLoader([])) == {"s9"}


async def test_preferences_cache_round_trips(redis):
    prefs = InteractionPreferences(tags=[TagCount("music", 3)], total_interactions=3)
    prefs.content_type[ContentType.VIDEO] = 3
    loader = CountingLoader(prefs)
    cache = PreferencesCache(redis)

    cached = cache.loader_for(loader)
    first = await cached("u1")
    second = await cached("u1")
    assert first == prefs
    assert second == prefs
    assert loader.calls == 1
    assert await redis.ttl("prefs:u1") > 0
