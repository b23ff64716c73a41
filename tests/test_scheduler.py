import random

import pytest

from nodeflow.errors import CycleDetectedError, ErrorCode, InvalidEdgeReferenceError
from nodeflow.ir import Node
from nodeflow.scheduler import compute_depths, resolve_timestamp, schedule_flat, schedule_layers


def chain(*ids):
    return [{"source": s, "target": t} for s, t in zip(ids, ids[1:])]


def nodes_of(*ids, **timestamps):
    return {nid: {"data": {"created_at": timestamps[nid]}} if nid in timestamps else {}
            for nid in ids}


def random_dag(seed, size=12, density=0.3):
    rng = random.Random(seed)
    ids = [f"n{i}" for i in range(size)]
    rng.shuffle(ids)
    edges = [
        {"source": ids[i], "target": ids[j]}
        for i in range(size) for j in range(i + 1, size)
        if rng.random() < density
    ]
    nodes = {nid: {"data": {"created_at": rng.randint(0, 5)}} for nid in sorted(ids)}
    return nodes, edges


# -- timestamps -----------------------------------------------------------

def test_timestamp_prefers_data_then_top_level_then_id():
    assert resolve_timestamp(Node(id="node_5_x", data={"created_at": 7}, created_at=9)) == 7
    assert resolve_timestamp(Node(id="node_5_x", created_at=9)) == 9
    assert resolve_timestamp(Node(id="node_5_x")) == 5
    assert resolve_timestamp(Node(id="node_42")) == 42
    assert resolve_timestamp(Node(id="custom")) == 0


def test_timestamp_ignores_non_numeric_values():
    assert resolve_timestamp(Node(id="node_3_a", data={"created_at": "yesterday"})) == 3
    assert resolve_timestamp(Node(id="x", data={"created_at": True})) == 0
    assert resolve_timestamp(Node(id="x", data={"created_at": 12.0})) == 12


# -- depths ---------------------------------------------------------------

def test_depth_is_sink_anchored():
    edges = chain("a", "b", "c") + [{"source": "a", "target": "c"}]
    assert compute_depths(nodes_of("a", "b", "c", "lonely"), edges) == {
        "a": 3, "b": 2, "c": 1, "lonely": 1,
    }


@pytest.mark.parametrize("seed", range(5))
def test_depth_recurrence_on_random_dags(seed):
    nodes, edges = random_dag(seed)
    depths = compute_depths(nodes, edges)
    for nid in nodes:
        succs = [e["target"] for e in edges if e["source"] == nid]
        assert depths[nid] == (1 + max(depths[s] for s in succs) if succs else 1)


def test_depths_report_cycle_edges():
    with pytest.raises(CycleDetectedError) as exc:
        compute_depths(nodes_of("a", "b", "c"), chain("a", "b", "c", "a"))
    assert exc.value.code == ErrorCode.CYCLE_DETECTED
    assert exc.value.details["node_ids"] == ["a", "b", "c"]
    assert len(exc.value.details["edges"]) == 3


# -- ordering scenarios ---------------------------------------------------

def test_linear_chain():
    assert schedule_flat(nodes_of("a", "b", "c"), chain("a", "b", "c")) == ["a", "b", "c"]


def test_edgeless_nodes_newest_first():
    nodes = nodes_of("node_1000_a", "node_2000_b", "node_3000_c")
    assert schedule_flat(nodes, []) == ["node_3000_c", "node_2000_b", "node_1000_a"]


def test_diamond_breaks_ties_by_timestamp():
    nodes = nodes_of("a", "b", "c", "d", b=2000, c=3000)
    edges = chain("a", "b", "d") + chain("a", "c", "d")
    assert schedule_flat(nodes, edges) == ["a", "c", "b", "d"]


def test_shallow_preview_runs_before_deeper_branch():
    nodes = nodes_of("gen", "upscale", "preview_up", "preview_gen")
    edges = chain("gen", "upscale", "preview_up") + chain("gen", "preview_gen")
    assert schedule_flat(nodes, edges) == ["gen", "preview_gen", "upscale", "preview_up"]


def test_empty_graph():
    assert schedule_flat({}, []) == []
    assert schedule_layers({}, []) == []


def test_duplicate_edges_do_not_block_scheduling():
    edges = chain("a", "b") * 3
    assert schedule_flat(nodes_of("a", "b"), edges) == ["a", "b"]


def test_equal_keys_fall_back_to_insertion_order():
    assert schedule_flat(nodes_of("z", "y", "x"), []) == ["z", "y", "x"]


# -- failures -------------------------------------------------------------

def test_self_loop_is_a_cycle():
    with pytest.raises(CycleDetectedError):
        schedule_flat(nodes_of("a"), [{"source": "a", "target": "a"}])


def test_cycle_fails_even_with_acyclic_region():
    nodes = nodes_of("a", "b", "x", "y", "z")
    edges = chain("a", "b") + chain("x", "y", "z", "x")
    with pytest.raises(CycleDetectedError) as exc:
        schedule_flat(nodes, edges)
    assert set(exc.value.details["node_ids"]) == {"x", "y", "z"}


def test_dangling_edge_reference():
    with pytest.raises(InvalidEdgeReferenceError) as exc:
        schedule_flat(nodes_of("a"), chain("a", "ghost"))
    assert exc.value.details["missing"] == ["ghost"]
    assert exc.value.code == ErrorCode.INVALID_EDGE_REFERENCE


# -- properties -----------------------------------------------------------

@pytest.mark.parametrize("seed", range(20))
def test_order_is_a_topological_permutation(seed):
    nodes, edges = random_dag(seed)
    order = schedule_flat(nodes, edges)
    assert sorted(order) == sorted(nodes)
    position = {nid: i for i, nid in enumerate(order)}
    for e in edges:
        assert position[e["source"]] < position[e["target"]]


@pytest.mark.parametrize("seed", range(20))
def test_each_pick_has_the_best_priority_among_ready_nodes(seed):
    nodes, edges = random_dag(seed)
    depths = compute_depths(nodes, edges)
    ts = {nid: n["data"]["created_at"] for nid, n in nodes.items()}
    done = set()
    for nid in schedule_flat(nodes, edges):
        ready = [
            n for n in nodes
            if n not in done and all(e["source"] in done for e in edges if e["target"] == n)
        ]
        best = min((depths[n], -ts[n]) for n in ready)
        assert (depths[nid], -ts[nid]) == best
        done.add(nid)


@pytest.mark.parametrize("seed", range(5))
def test_scheduling_is_deterministic(seed):
    nodes, edges = random_dag(seed)
    assert schedule_flat(nodes, edges) == schedule_flat(nodes, edges)


@pytest.mark.parametrize("seed", range(10))
def test_layers_are_independent_and_cover_the_graph(seed):
    nodes, edges = random_dag(seed)
    layers = schedule_layers(nodes, edges)
    assert sorted(n for layer in layers for n in layer) == sorted(nodes)
    level = {nid: i for i, layer in enumerate(layers) for nid in layer}
    for e in edges:
        assert level[e["source"]] < level[e["target"]]
