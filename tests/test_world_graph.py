from __future__ import annotations

from itertools import product

from clockwork.engine.world_graph import WorldGraph
from clockwork.models.core import Location


def _linear_graph() -> WorldGraph:
    graph = WorldGraph()
    graph.initialize(
        [
            Location(id="a", name="Hall A", exits={"east": "b"}),
            Location(id="b", name="Hall B", exits={"west": "a", "east": "c"}),
            Location(id="c", name="Hall C", exits={"west": "b"}),
        ]
    )
    return graph


def _manor_graph() -> WorldGraph:
    graph = WorldGraph()
    graph.initialize(
        {
            "foyer": Location(id="foyer", name="Foyer", exits={"north": "landing", "east": "dining", "west": "living"}),
            "dining": Location(id="dining", name="Dining", exits={"west": "foyer", "south": "kitchen"}),
            "kitchen": Location(id="kitchen", name="Kitchen", exits={"north": "dining", "west": "cellar"}),
            "living": Location(id="living", name="Living", exits={"east": "foyer", "south": "cellar"}),
            "cellar": Location(id="cellar", name="Cellar", exits={"north": "living", "east": "kitchen"}),
            "landing": Location(id="landing", name="Landing", exits={"south": "foyer", "east": "attic"}),
            # one-way trapdoor: nothing leads back out
            "attic": Location(id="attic", name="Attic", exits={}),
            "island": Location(id="island", name="Island", exits={}),
        }
    )
    return graph


def _all_pairs_hops(graph: WorldGraph) -> dict[tuple[str, str], int]:
    ids = [location.id for location in graph.all_locations()]
    inf = 10**6
    dist = {(a, b): (0 if a == b else inf) for a, b in product(ids, ids)}
    for a in ids:
        for target in graph.get_exits(a).values():
            dist[(a, target)] = 1
    for k, i, j in product(ids, ids, ids):
        if dist[(i, k)] + dist[(k, j)] < dist[(i, j)]:
            dist[(i, j)] = dist[(i, k)] + dist[(k, j)]
    return {pair: hops for pair, hops in dist.items() if hops < inf}


def test_find_path_matches_shortest_hop_count_for_every_pair():
    graph = _manor_graph()
    reachable = _all_pairs_hops(graph)
    ids = [location.id for location in graph.all_locations()]

    for start, target in product(ids, ids):
        path = graph.find_path(start, target)
        if start == target:
            assert path == []
        elif (start, target) in reachable:
            assert len(path) == reachable[(start, target)]
            assert path[-1] == target
            hops = [start, *path]
            assert all(graph.are_connected(a, b) for a, b in zip(hops, hops[1:]))
        else:
            assert path == []


def test_next_step_agrees_with_find_path():
    graph = _manor_graph()
    ids = [location.id for location in graph.all_locations()]
    for start, target in product(ids, ids):
        path = graph.find_path(start, target)
        expected = path[0] if path else None
        assert graph.get_next_step(start, target) == expected
    assert graph.get_next_step("foyer", "foyer") is None


def test_path_tie_break_is_stable_across_calls():
    graph = _manor_graph()
    first = graph.find_path("foyer", "cellar")
    assert len(first) == 2
    for _ in range(5):
        assert graph.find_path("foyer", "cellar") == first


def test_one_way_edges_are_not_walked_backwards():
    graph = _manor_graph()
    assert graph.find_path("foyer", "attic") == ["landing", "attic"]
    assert graph.find_path("attic", "foyer") == []
    assert graph.get_next_step("attic", "foyer") is None


def test_unknown_ids_yield_empty_results():
    graph = _linear_graph()
    assert graph.get_exits("nowhere") == {}
    assert graph.find_path("a", "nowhere") == []
    assert graph.find_path("nowhere", "a") == []
    assert graph.get_next_step(None, "a") is None
    assert graph.get_direction("nowhere", "a") is None
    assert graph.are_connected("nowhere", "a") is False
    assert graph.get_travel_time("a", "nowhere") == 0


def test_direction_connection_and_travel_time():
    graph = _linear_graph()
    assert graph.are_connected("a", "b")
    assert not graph.are_connected("a", "c")
    assert graph.get_direction("b", "c") == "east"
    assert graph.get_direction("a", "c") is None
    assert graph.get_travel_time("a", "c") == 10
    assert WorldGraph(step_minutes=3).get_travel_time("a", "c") == 0


def test_initialize_replaces_previous_graph():
    graph = _linear_graph()
    graph.initialize([Location(id="x", name="X")])
    assert "a" not in graph
    assert len(graph) == 1
    assert graph.find_path("a", "c") == []


def test_describe_exits_and_reciprocal_validation():
    graph = _manor_graph()
    exits = graph.describe_exits("foyer")
    assert [(e.direction, e.short, e.target_name) for e in exits] == [
        ("north", "N", "Landing"),
        ("east", "E", "Dining"),
        ("west", "W", "Living"),
    ]

    valid, issues = graph.validate_reciprocal()
    assert not valid
    assert "landing -> east -> attic has no reciprocal exit" in issues

    linear_valid, linear_issues = _linear_graph().validate_reciprocal()
    assert linear_valid
    assert linear_issues == []
