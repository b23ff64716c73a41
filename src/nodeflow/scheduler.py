"""Preview-biased topological scheduling.

Nodes are ordered with Kahn's algorithm, but among the nodes that are ready
the one with the smallest depth (closest to a sink) runs first, so preview
and save nodes fire as soon as their inputs exist instead of waiting behind
deeper branches. Equal depths go to the newest node (largest timestamp),
then to graph insertion order.
"""
from __future__ import annotations
import heapq
import math
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import networkx as nx

from .errors import CycleDetectedError, InvalidEdgeReferenceError
from .ir import Edge, Graph, Node, parse_graph

_ID_TIMESTAMP = re.compile(r"^node_(\d+)(?:_|$)")


def _as_timestamp(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return None


def resolve_timestamp(node: Node) -> int:
    """Sort key for tie-breaking: data.created_at, created_at, id-embedded, else 0."""
    ts = _as_timestamp(node.data.get("created_at"))
    if ts is None:
        ts = _as_timestamp(node.created_at)
    if ts is None:
        m = _ID_TIMESTAMP.match(node.id)
        ts = int(m.group(1)) if m else 0
    return ts


def _as_graph(nodes: Mapping[str, Any], edges: Sequence[Any]) -> Graph:
    return parse_graph({"nodes": dict(nodes), "edges": list(edges)})


def build_digraph(nodes: Mapping[str, Node], edges: Sequence[Edge]) -> nx.DiGraph:
    # DiGraph keeps one edge per (source, target), so duplicate edges
    # cannot inflate in-degrees.
    g = nx.DiGraph()
    g.add_nodes_from(nodes)
    for e in edges:
        missing = [n for n in (e.source, e.target) if n not in nodes]
        if missing:
            raise InvalidEdgeReferenceError(e.source, e.target, missing)
        g.add_edge(e.source, e.target)
    return g


def _depths(g: nx.DiGraph) -> Dict[str, int]:
    try:
        order = list(nx.topological_sort(g))
    except nx.NetworkXUnfeasible:
        cycle = nx.find_cycle(g)
        raise CycleDetectedError(
            {n for edge in cycle for n in edge[:2]},
            [edge[:2] for edge in cycle],
        ) from None
    depths: Dict[str, int] = {}
    for nid in reversed(order):
        depths[nid] = 1 + max((depths[s] for s in g.successors(nid)), default=0)
    return depths


def compute_depths(nodes: Mapping[str, Any], edges: Sequence[Any]) -> Dict[str, int]:
    """Longest forward path (in nodes) from each node to a sink; sinks are 1."""
    graph = _as_graph(nodes, edges)
    return _depths(build_digraph(graph.nodes, graph.edges))


def _priority_keys(nodes: Mapping[str, Node], depths: Dict[str, int]) -> Dict[str, Tuple[int, int, int]]:
    return {
        nid: (depths[nid], -resolve_timestamp(node), idx)
        for idx, (nid, node) in enumerate(nodes.items())
    }


def _prepare(nodes: Mapping[str, Any], edges: Sequence[Any]):
    graph = _as_graph(nodes, edges)
    g = build_digraph(graph.nodes, graph.edges)
    keys = _priority_keys(graph.nodes, _depths(g))
    return graph, g, keys


def schedule_flat(nodes: Mapping[str, Any], edges: Sequence[Any]) -> List[str]:
    """Return a valid execution order or raise CycleDetectedError."""
    graph, g, keys = _prepare(nodes, edges)
    in_degree = dict(g.in_degree())

    ready = [keys[nid] + (nid,) for nid, deg in in_degree.items() if deg == 0]
    heapq.heapify(ready)

    order: List[str] = []
    while ready:
        nid = heapq.heappop(ready)[-1]
        order.append(nid)
        for succ in g.successors(nid):
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                heapq.heappush(ready, keys[succ] + (succ,))

    if len(order) < len(graph.nodes):
        raise CycleDetectedError(set(graph.nodes) - set(order))
    return order


def schedule_layers(nodes: Mapping[str, Any], edges: Sequence[Any]) -> List[List[str]]:
    """Group nodes into Kahn waves; nodes within a wave are independent."""
    graph, g, keys = _prepare(nodes, edges)
    in_degree = dict(g.in_degree())

    layers: List[List[str]] = []
    layer = sorted((nid for nid, deg in in_degree.items() if deg == 0), key=keys.__getitem__)
    while layer:
        layers.append(layer)
        following = []
        for nid in layer:
            for succ in g.successors(nid):
                in_degree[succ] -= 1
                if in_degree[succ] == 0:
                    following.append(succ)
        layer = sorted(following, key=keys.__getitem__)

    if sum(len(l) for l in layers) < len(graph.nodes):
        scheduled = {nid for l in layers for nid in l}
        raise CycleDetectedError(set(graph.nodes) - scheduled)
    return layers


def schedule_graph(graph: Graph) -> List[str]:
    return schedule_flat(graph.nodes, graph.edges)
