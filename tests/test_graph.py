from feedrank.ranking.graph import RelationshipGraph


async def test_one_hop(session, factory):
    await factory.follow("me", "a", "b")
    await factory.follow("a", "me")
    assert await RelationshipGraph(session).one_hop("me") == {"a", "b"}
    assert await RelationshipGraph(session).one_hop("nobody") == set()


async def test_mutual_frequency_counts_distinct_paths(session, factory):
    await factory.follow("me", "a", "b", "c")
    await factory.follow("a", "x", "y")
    await factory.follow("b", "x")
    await factory.follow("c", "x", "y", "z")

    frequency = await RelationshipGraph(session).mutual_frequency("me")
    assert frequency == {"x": 3, "y": 2, "z": 1}
    assert list(frequency) == ["x", "y", "z"]


async def test_mutual_frequency_excludes_viewer_and_existing_follows(session, factory):
    await factory.follow("me", "a", "b")
    await factory.follow("a", "me", "b", "x")
    await factory.follow("b", "a", "x")

    frequency = await RelationshipGraph(session).mutual_frequency("me")
    assert frequency == {"x": 2}


async def test_mutual_frequency_stops_at_two_hops(session, factory):
    await factory.follow("me", "a")
    await factory.follow("a", "b")
    await factory.follow("b", "c")

    assert await RelationshipGraph(session).mutual_frequency("me") == {"b": 1}


async def test_following_sets(session, factory):
    await factory.follow("a", "y", "x")
    await factory.follow("b", "x")

    sets = await RelationshipGraph(session).following_sets(["b", "a", "lonely"])
    assert sets == {"a": ["x", "y"], "b": ["x"], "lonely": []}
