"""Process-wide keyed state for stateful node kinds.

Entries are keyed by ``(kind, node_id)``, e.g. ``("counter", "node_7") -> 42``,
and live for the lifetime of the process: they survive across separate job
executions and are only removed by an explicit ``reset``.

Concurrency: reads are plain dict lookups. Handlers must advance state with
``update`` rather than a ``get`` followed by ``put``. Jobs currently run one
node at a time, so a get-then-put would happen to be safe, but once nodes
run in parallel only ``update`` (which holds the store lock across the
read-modify-write) keeps two executions of the same node from reading the
same value.
"""
from __future__ import annotations
import threading
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

Key = Tuple[str, Hashable]


class KeyedStateStore:
    def __init__(self) -> None:
        self._data: Dict[Key, Any] = {}
        self._lock = threading.Lock()

    def get(self, kind: str, node_id: Hashable, default: Any = None) -> Any:
        return self._data.get((kind, node_id), default)

    def put(self, kind: str, node_id: Hashable, value: Any) -> None:
        with self._lock:
            self._data[(kind, node_id)] = value

    def update(self, kind: str, node_id: Hashable, fn: Callable[[Any], Any],
               initial: Any = None) -> Tuple[Any, Any]:
        """Atomically replace the value with ``fn(old)``; returns ``(old, new)``.

        ``fn`` receives ``initial`` when the key has never been written.
        """
        key = (kind, node_id)
        with self._lock:
            old = self._data.get(key, initial)
            new = fn(old)
            self._data[key] = new
        return old, new

    def reset(self, kind: Optional[str] = None, node_id: Optional[Hashable] = None) -> int:
        """Drop matching entries (all of them when called without filters)."""
        with self._lock:
            doomed = [
                key for key in self._data
                if (kind is None or key[0] == kind) and (node_id is None or key[1] == node_id)
            ]
            for key in doomed:
                del self._data[key]
        return len(doomed)

    def snapshot(self) -> Dict[Key, Any]:
        with self._lock:
            return dict(self._data)

    def __len__(self) -> int:
        return len(self._data)


node_state = KeyedStateStore()
