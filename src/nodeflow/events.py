"""Execution and queue events.

The queue and the runtime only emit these; forwarding them to a UI (or the
CLI) is up to whoever subscribes. Dispatch is synchronous, on the thread
that emits, and handler exceptions propagate to the emitter.
"""
from __future__ import annotations
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Type, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class QueueUpdated:
    state: Dict[str, Any]


@dataclass(frozen=True)
class ExecutionProgress:
    job_id: str
    node_id: str
    node_type: Optional[str]
    status: str  # "running" | "completed"
    current_index: int
    total_nodes: int
    percentage: float


@dataclass(frozen=True)
class NodeOutput:
    job_id: str
    node_id: str
    output: Dict[str, Any]


@dataclass(frozen=True)
class JobCompleted:
    job_id: str
    outputs: Dict[str, Any]


@dataclass(frozen=True)
class JobFailed:
    job_id: str
    node_id: Optional[str]
    error: Dict[str, Any]


@dataclass(frozen=True)
class ExecutionAborted:
    job_id: str
    node_id: Optional[str]


class EventBusProtocol(Protocol):
    def subscribe(self, event_type: Type[T], handler: Callable[[T], None]) -> None:
        ...

    def emit(self, event: Any) -> None:
        ...


class EventBus:
    """Synchronous event bus; handlers run in subscription order."""

    def __init__(self) -> None:
        self._subscribers: Dict[type, List[Callable[[Any], None]]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type[T], handler: Callable[[T], None]) -> None:
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)

    def emit(self, event: Any) -> None:
        # Events with no subscribers are dropped.
        with self._lock:
            handlers = list(self._subscribers.get(type(event), ()))
        for handler in handlers:
            handler(event)


class NullEventBus:
    """Bus for library use with nobody listening. Not an EventBus subclass."""

    def subscribe(self, event_type: Type[T], handler: Callable[[T], None]) -> None:
        pass

    def emit(self, event: Any) -> None:
        pass
