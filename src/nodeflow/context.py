"""Per-job execution context: node outputs plus remaining-consumer counts.

Each source node's output is kept until every edge reading from it has been
consumed, then dropped, so by the end of a job only outputs nobody reads
(the sinks) are still held.
"""
from __future__ import annotations
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from .ir import Edge


class ExecutionContext:
    def __init__(self, job_id: str, edges: Iterable[Edge] = ()):
        self.job_id = job_id
        self.outputs: Dict[str, Dict[str, Any]] = {}
        self.consumer_counts: Dict[str, int] = dict(Counter(e.source for e in edges))

    def put_output(self, node_id: str, output: Dict[str, Any]) -> None:
        self.outputs[node_id] = output

    def get_output(self, node_id: str) -> Optional[Dict[str, Any]]:
        return self.outputs.get(node_id)

    def consume(self, source_id: str) -> bool:
        """Count one read of ``source_id``; returns True when its output was released."""
        remaining = self.consumer_counts.get(source_id)
        if remaining is None:
            return False
        if remaining > 1:
            self.consumer_counts[source_id] = remaining - 1
            return False
        del self.consumer_counts[source_id]
        self.outputs.pop(source_id, None)
        return True

    def live_ids(self) -> List[str]:
        return list(self.outputs)
