from __future__ import annotations
from collections import defaultdict
from typing import Dict, Iterator, List, Optional, Tuple

import networkx as nx

from .config import get_settings
from .errors import (
    ConnectionTypeMismatchError,
    FlowError,
    InvalidEdgeReferenceError,
    InvalidHandleError,
    MultipleInputConnectionsError,
)
from .ir import Edge, Graph
from .nodes.base import VISUAL_ONLY_TYPES
from .registry import NodeRegistry


def dedupe_edges(edges: List[Edge]) -> List[Edge]:
    """Drop identical duplicate edges, keeping first-seen order."""
    seen = set()
    out: List[Edge] = []
    for e in edges:
        if e.key() in seen:
            continue
        seen.add(e.key())
        out.append(e)
    return out


def _handle_type(registry: NodeRegistry, node_type: Optional[str], handle: Optional[str],
                 output: bool) -> Optional[str]:
    entry = registry.entry(node_type) if node_type else None
    if entry is None:
        return None
    fields = entry.output_fields if output else entry.input_fields
    field = fields.get(handle) if handle is not None else None
    return field.type if field else None


def _edge_references(graph: Graph) -> Iterator[FlowError]:
    for e in graph.edges:
        missing = [n for n in (e.source, e.target) if n not in graph.nodes]
        if missing:
            yield InvalidEdgeReferenceError(e.source, e.target, missing)


def _handles(graph: Graph, registry: NodeRegistry) -> Iterator[FlowError]:
    # Types the registry does not know are reported by the runtime instead.
    for e in graph.edges:
        source_entry = registry.entry(graph.nodes[e.source].type or "")
        target_entry = registry.entry(graph.nodes[e.target].type or "")
        if source_entry is not None and e.source_handle not in source_entry.output_fields:
            yield InvalidHandleError(
                f"'{e.source_handle}' is not an output of {e.source} ({source_entry.type})",
                node_id=e.source, node_type=source_entry.type, field=e.source_handle,
                details={"source": e.source, "source_handle": e.source_handle,
                         "target": e.target, "target_handle": e.target_handle},
            )
        if target_entry is not None and e.target_handle not in target_entry.input_fields:
            yield InvalidHandleError(
                f"'{e.target_handle}' is not an input of {e.target} ({target_entry.type})",
                node_id=e.target, node_type=target_entry.type, field=e.target_handle,
                details={"source": e.source, "source_handle": e.source_handle,
                         "target": e.target, "target_handle": e.target_handle},
            )


def _single_inputs(graph: Graph, policy: str) -> Iterator[FlowError]:
    if policy == "last_writer":
        return
    by_input: Dict[Tuple[str, Optional[str]], List[Edge]] = defaultdict(list)
    for e in dedupe_edges(graph.edges):
        by_input[(e.target, e.target_handle)].append(e)
    for (target, handle), conns in by_input.items():
        if len(conns) > 1:
            yield MultipleInputConnectionsError(
                f"Input {target}.{handle} has {len(conns)} connections; only one is allowed",
                node_id=target, field=handle,
                details={"target": target, "target_handle": handle,
                         "sources": [e.source for e in conns]},
            )


def _type_matches(graph: Graph, registry: NodeRegistry) -> Iterator[FlowError]:
    for e in graph.edges:
        source_type = _handle_type(registry, graph.nodes[e.source].type, e.source_handle, output=True)
        target_type = _handle_type(registry, graph.nodes[e.target].type, e.target_handle, output=False)
        if source_type is None or target_type is None:
            continue
        if source_type != target_type and "any" not in (source_type, target_type):
            yield ConnectionTypeMismatchError(
                f"{e.source}.{e.source_handle} ({source_type}) cannot connect to "
                f"{e.target}.{e.target_handle} ({target_type})",
                node_id=e.target, field=e.target_handle,
                details={"source": e.source, "source_handle": e.source_handle, "source_type": source_type,
                         "target": e.target, "target_handle": e.target_handle, "target_type": target_type},
            )


def validate_graph(graph: Graph, registry: NodeRegistry, policy: Optional[str] = None) -> None:
    """Raise the first connection problem found, checking in a fixed order."""
    policy = policy or get_settings().input_conflict_policy
    for check in (
        _edge_references(graph),
        _handles(graph, registry),
        _single_inputs(graph, policy),
        _type_matches(graph, registry),
    ):
        error = next(check, None)
        if error is not None:
            raise error


def validation_report(graph: Graph, registry: NodeRegistry,
                      policy: Optional[str] = None) -> Tuple[bool, List[str]]:
    messages: List[str] = []
    ok = True
    policy = policy or get_settings().input_conflict_policy

    # 1) Edges refer to existing nodes
    errors = list(_edge_references(graph))
    for err in errors:
        messages.append(f"ERR: {err.message}")
    if errors:
        return False, messages
    messages.append("OK: All edges reference existing nodes.")

    # 2) Node types are registered
    unknown = [
        f"{nid} ({n.type})" for nid, n in graph.nodes.items()
        if n.type not in VISUAL_ONLY_TYPES and (not n.type or n.type not in registry)
    ]
    if unknown:
        ok = False
        messages.append(f"ERR: Unknown node type(s): {', '.join(unknown)}")
    else:
        messages.append("OK: All node types are registered.")

    # 3) Handles, single connection per input, matching types
    for check, passed in (
        (_handles(graph, registry), "OK: All edge endpoints correspond to declared inputs/outputs."),
        (_single_inputs(graph, policy), "OK: Every input has at most one connection."),
        (_type_matches(graph, registry), "OK: Connected handle types are compatible."),
    ):
        errors = list(check)
        for err in errors:
            messages.append(f"ERR: {err.message}")
        if errors:
            ok = False
        else:
            messages.append(passed)

    # 4) Acyclic check
    nxg = nx.DiGraph()
    nxg.add_nodes_from(graph.nodes)
    for e in graph.edges:
        nxg.add_edge(e.source, e.target)
    try:
        list(nx.topological_sort(nxg))
        messages.append("OK: Graph is acyclic.")
    except nx.NetworkXUnfeasible:
        ok = False
        cycle = " -> ".join(edge[0] for edge in nx.find_cycle(nxg))
        messages.append(f"ERR: Cycle detected in the graph: {cycle}")

    return ok, messages
