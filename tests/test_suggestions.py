import dataclasses
import math
from datetime import timedelta
from unittest import mock

import pytest
from sqlalchemy.exc import OperationalError

from feedrank.config import settings
from feedrank.errors import RankingUnavailable, UserNotFound
from feedrank.ranking import graph
from feedrank.ranking.graph import chunked
from feedrank.ranking.interactions import InteractionPreferences, TagCount
from feedrank.ranking.scoring import Location
from feedrank.ranking.suggestions import (
    ALGORITHM_NAME,
    FACTORS,
    WEIGHTS,
    SuggestedUser,
    SuggestionEngine,
    activity_factor,
    engagement_ratio_factor,
    follower_factor,
    geo_factor,
    mutual_factor,
)


def test_weights_sum_to_one():
    assert sum(WEIGHTS.values()) == pytest.approx(1.0)


def test_factor_formulas(now):
    assert mutual_factor(3) == 6.0
    assert mutual_factor(12) == 10.0
    assert follower_factor(1000) == pytest.approx(math.log(1001) * 10)
    assert follower_factor(1000, cap=10.0) == 10.0
    assert follower_factor(0, cap=10.0) == 0.0
    assert activity_factor(now - timedelta(days=4), now) == pytest.approx(6.0)
    assert activity_factor(now - timedelta(days=40), now) == 0.0
    assert activity_factor(None, now) == 0.0
    assert engagement_ratio_factor(100, 0) == 0.0
    assert engagement_ratio_factor(30, 10) == pytest.approx(6.0)
    assert engagement_ratio_factor(1000, 1) == 10.0


def test_geo_factor():
    viewer = Location("Kathmandu", "Kathmandu", "Bagmati")
    assert geo_factor(Location("Kathmandu", "Kathmandu", "Bagmati"), viewer) == 5.0
    assert geo_factor(Location("Kirtipur", "Kathmandu", "Bagmati"), viewer) == 3.0
    assert geo_factor(Location("Hetauda", "Makwanpur", "Bagmati"), viewer) == 1.0
    assert geo_factor(Location("Pokhara", "Kaski", "Gandaki"), viewer) == 0.0
    assert geo_factor(None, viewer) == 0.0


@pytest.fixture
async def network(factory, now):
    """
    B follows A, A follows X. X has 10 followers, is active today and shares
    only a province with B. Y is an unconnected stranger with 1000 followers.
    """
    await factory.user("B", city="Kathmandu", district="Kathmandu", province="Bagmati",
                       interests=["cooking"])
    await factory.user("A", interests=["hiking"])
    await factory.user("X", city="Hetauda", district="Makwanpur", province="Bagmati",
                       followers_count=10, following_count=0, interests=["chess"])
    await factory.user("Y", city="Biratnagar", district="Morang", province="Koshi",
                       followers_count=1000, following_count=0)
    await factory.follow("B", "A")
    await factory.follow("A", "X")


async def test_mutual_candidate_beats_popular_stranger(session, network, now):
    engine = SuggestionEngine(session)
    candidates, pools = await engine.rank_candidates("B", now)
    by_id = {c.user.user_id: c for c in candidates}

    x, y = by_id["X"], by_id["Y"]
    assert x.mutual_connections == 1
    assert x.sub_scores["geographic_proximity"] == 1.0
    assert x.sub_scores["shared_interests"] == 0.0
    assert y.mutual_connections == 0
    assert x.score > y.score
    assert x.score == pytest.approx(0.3 * 2 + 0.3 * math.log(11) * 10 + 0.15 * 10 + 0.05 * 1)
    assert y.score == pytest.approx(0.3 * 25 + 0.15 * 10)
    assert pools == {"mutual": 1, "popular": 1}

    result = await engine.suggest("B", now=now)
    assert [s.user.user_id for s in result.users] == ["X", "Y"]
    assert result.users[0].mutual_connections == 1


async def test_result_carries_no_scores(session, network, now):
    result = await SuggestionEngine(session).suggest("B", now=now)
    assert [f.name for f in dataclasses.fields(SuggestedUser)] == ["user", "mutual_connections"]
    assert result.algorithm == ALGORITHM_NAME
    assert result.factors == FACTORS
    assert result.metadata["total_suggestions"] == 2
    assert result.metadata["candidates_considered"] == 2
    assert result.metadata["weights"] == WEIGHTS


async def test_viewer_and_followed_users_are_never_suggested(session, factory, network, now):
    await factory.follow("A", "B")
    result = await SuggestionEngine(session).suggest("B", now=now)
    suggested = [s.user.user_id for s in result.users]
    assert "B" not in suggested
    assert "A" not in suggested


async def test_no_duplicates_across_pools(session, factory, now):
    await factory.user("me")
    await factory.user("friend")
    # Both a mutual candidate and the most-followed active user
    await factory.user("celebrity", followers_count=50000, following_count=10)
    await factory.user("other", followers_count=20)
    await factory.follow("me", "friend")
    await factory.follow("friend", "celebrity")

    result = await SuggestionEngine(session).suggest("me", now=now)
    suggested = [s.user.user_id for s in result.users]
    assert suggested.count("celebrity") == 1
    assert sorted(suggested) == ["celebrity", "other"]


async def test_limit_is_applied(session, factory, now):
    await factory.user("me")
    for n in range(8):
        await factory.user(f"p{n}", followers_count=n + 1)

    result = await SuggestionEngine(session).suggest("me", limit=3, now=now)
    assert [s.user.user_id for s in result.users] == ["p7", "p6", "p5"]
    assert result.metadata["candidates_considered"] == 8


async def test_ineligible_users_are_filtered(session, factory, now):
    await factory.user("me")
    await factory.user("banned", is_banned=True, followers_count=100)
    await factory.user("deleted", is_deleted=True, followers_count=100)
    await factory.user("inactive", is_active=False, followers_count=100)
    await factory.user("dormant", followers_count=100, last_active=now - timedelta(days=60))
    await factory.user("ok", followers_count=1)

    result = await SuggestionEngine(session).suggest("me", now=now)
    assert [s.user.user_id for s in result.users] == ["ok"]


async def test_empty_pools_give_empty_result(session, factory, now):
    await factory.user("alone")
    result = await SuggestionEngine(session).suggest("alone", now=now)
    assert result.users == []
    assert result.metadata["total_suggestions"] == 0
    assert result.metadata["pools"] == {"mutual": 0, "popular": 0}


async def test_shared_interests_include_preference_tags(session, factory, now):
    await factory.user("me", interests=["Music"])
    await factory.user("musician", interests=["music"])
    await factory.user("chef", interests=["food"])

    async def preferences(viewer_id):
        return InteractionPreferences(tags=[TagCount("food", 4)])

    engine = SuggestionEngine(session, preferences_loader=preferences)
    candidates, _ = await engine.rank_candidates("me", now)
    by_id = {c.user.user_id: c for c in candidates}
    assert by_id["musician"].sub_scores["shared_interests"] == 2.0
    assert by_id["chef"].sub_scores["shared_interests"] == 2.0
    assert "shared interests: food" in by_id["chef"].factors


async def test_unknown_viewer(session, now):
    with pytest.raises(UserNotFound):
        await SuggestionEngine(session).suggest("ghost", now=now)


async def test_storage_failure_becomes_ranking_unavailable(session, network, now):
    engine = SuggestionEngine(session)
    failure = OperationalError("SELECT", {}, Exception("connection lost"))
    with mock.patch.object(engine, "_popular_pool", side_effect=failure):
        with pytest.raises(RankingUnavailable) as excinfo:
            await engine.suggest("B", now=now)
    assert excinfo.value.operation == "suggestions"


async def test_follower_term_separates_small_and_huge_accounts(session, factory, now):
    await factory.user("me")
    await factory.user("small", followers_count=3)
    await factory.user("huge", followers_count=1_000_000)

    candidates, _ = await SuggestionEngine(session).rank_candidates("me", now)
    by_id = {c.user.user_id: c for c in candidates}
    assert by_id["small"].sub_scores["follower_count"] == pytest.approx(math.log(4) * 10)
    assert by_id["huge"].sub_scores["follower_count"] == settings.suggestion_follower_score_cap
    assert by_id["small"].sub_scores["follower_count"] < by_id["huge"].sub_scores["follower_count"]
    assert [c.user.user_id for c in candidates] == ["huge", "small"]


async def test_mutual_count_survives_mutual_pool_cap(session, factory, now, monkeypatch):
    monkeypatch.setattr(settings, "suggestion_mutual_pool_cap", 1)
    await factory.user("me")
    for user_id in ("f1", "f2", "c1", "c2"):
        await factory.user(user_id)
    await factory.follow("me", "f1", "f2")
    await factory.follow("f1", "c1", "c2")
    await factory.follow("f2", "c1")

    candidates, pools = await SuggestionEngine(session).rank_candidates("me", now)
    by_id = {c.user.user_id: c for c in candidates}
    assert pools == {"mutual": 1, "popular": 1}
    assert by_id["c1"].pool == "mutual"
    assert by_id["c1"].mutual_connections == 2
    assert by_id["c2"].pool == "popular"
    assert by_id["c2"].mutual_connections == 1
    assert by_id["c2"].sub_scores["mutual_connections"] == 2.0

    result = await SuggestionEngine(session).suggest("me", now=now)
    assert {s.user.user_id: s.mutual_connections for s in result.users} == {"c1": 2, "c2": 1}


def test_chunked_splits_in_order():
    assert list(chunked(["a", "b", "c", "d", "e"], size=2)) == [["a", "b"], ["c", "d"], ["e"]]
    assert list(chunked([])) == []


async def test_small_in_list_chunks_give_same_suggestions(session, factory, now, monkeypatch):
    await factory.user("me")
    for n in range(3):
        await factory.user(f"f{n}")
    for n in range(5):
        await factory.user(f"c{n}", followers_count=n)
    await factory.user("stranger", followers_count=100)
    await factory.follow("me", "f0", "f1", "f2")
    await factory.follow("f0", "c0", "c1", "c2", "c3", "c4")
    await factory.follow("f1", "c0", "c1")
    await factory.follow("f2", "c0")

    def snapshot(result):
        return [(s.user.user_id, s.mutual_connections) for s in result.users]

    engine = SuggestionEngine(session)
    expected = snapshot(await engine.suggest("me", now=now))

    monkeypatch.setattr(graph, "IN_CHUNK", 2)
    assert snapshot(await engine.suggest("me", now=now)) == expected
    assert sorted(uid for uid, _ in expected) == ["c0", "c1", "c2", "c3", "c4", "stranger"]
    assert dict(expected)["c0"] == 3
