from typing import Dict, List

from .ir import Graph
from .scheduler import compute_depths, resolve_timestamp, schedule_graph
from .validator import dedupe_edges


def ascii_plan(graph: Graph) -> str:
    order = schedule_graph(graph)
    depths = compute_depths(graph.nodes, graph.edges)
    outgoing: Dict[str, List[str]] = {nid: [] for nid in graph.nodes}
    for e in dedupe_edges(graph.edges):
        outgoing[e.source].append(f"{e.target}  ({e.source_handle}->{e.target_handle})")

    lines = ["# ASCII Plan (preview-first order)"]
    for i, nid in enumerate(order, 1):
        node = graph.nodes[nid]
        lines.append(
            f"{i:02d}. {nid} [{node.type or '?'}]  depth={depths[nid]} ts={resolve_timestamp(node)}"
        )
        for line in outgoing[nid]:
            lines.append(f"    └─▶ {line}")
    return "\n".join(lines)
