from __future__ import annotations
import math
import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import structlog
from pydantic import BaseModel

from .config import Settings, get_settings
from .context import ExecutionContext
from .errors import FlowError, NodeExecutionError, NotFoundError
from .events import EventBusProtocol, ExecutionAborted, ExecutionProgress, NodeOutput, NullEventBus
from .ir import Edge, Graph, Node, parse_graph
from .nodes.base import VISUAL_ONLY_TYPES
from .registry import NodeRegistry, RegistryEntry, default_registry
from .scheduler import schedule_graph
from .validation import validate_inputs
from .validator import dedupe_edges, validate_graph

logger = structlog.get_logger()

ProgressCallback = Callable[[str, int, int], None]


class CancelToken:
    """Cooperative cancellation flag, checked between nodes."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ExecutionStatus(str, Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class ExecutionResult:
    status: ExecutionStatus = ExecutionStatus.NOT_STARTED
    outputs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    error: Optional[FlowError] = None
    node_id: Optional[str] = None
    nodes_completed: int = 0


_DROP = object()


def _sanitize(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else _DROP
    if isinstance(value, BaseModel):
        return _sanitize(value.model_dump())
    if isinstance(value, Mapping):
        out = {}
        for k, v in value.items():
            if not isinstance(k, (str, int, float, bool)):
                continue
            v = _sanitize(v)
            if v is not _DROP:
                out[str(k)] = v
        return out
    if isinstance(value, (list, tuple)):
        return [v for v in map(_sanitize, value) if v is not _DROP]
    return _DROP


def sanitize_outputs(outputs: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of ``outputs`` with everything that cannot be JSON-encoded removed."""
    return _sanitize(outputs)


def _percentage(done: int, total: int) -> float:
    return round(done / total * 100, 1) if total else 100.0


class GraphRunner:
    """Runs one job's nodes, one at a time, in a precomputed order."""

    def __init__(self, registry: Optional[NodeRegistry] = None,
                 event_bus: Optional[EventBusProtocol] = None,
                 settings: Optional[Settings] = None):
        self.registry = registry or default_registry()
        self.event_bus = event_bus or NullEventBus()
        self.settings = settings or get_settings()

    def run(self, job_id: str, graph: Graph, order: List[str],
            cancel_token: Optional[CancelToken] = None,
            on_progress: Optional[ProgressCallback] = None) -> ExecutionResult:
        cancel_token = cancel_token or CancelToken()
        log = logger.bind(job_id=job_id)
        result = ExecutionResult()

        edges = dedupe_edges(graph.edges)
        incoming: Dict[str, List[Edge]] = defaultdict(list)
        for e in edges:
            incoming[e.target].append(e)
        ctx = ExecutionContext(job_id, edges)
        total = len(order)

        result.status = ExecutionStatus.RUNNING
        log.info("execution_started", nodes=total)

        for index, node_id in enumerate(order, 1):
            if cancel_token.cancelled:
                log.info("execution_cancelled", before_node=node_id, completed=result.nodes_completed)
                self.event_bus.emit(ExecutionAborted(job_id=job_id, node_id=node_id))
                result.status = ExecutionStatus.CANCELLED
                result.node_id = node_id
                result.outputs = sanitize_outputs(ctx.outputs)
                return result

            node = graph.nodes[node_id]
            if on_progress is not None:
                on_progress(node_id, index, total)
            self.event_bus.emit(ExecutionProgress(
                job_id=job_id, node_id=node_id, node_type=node.type, status="running",
                current_index=index, total_nodes=total, percentage=_percentage(index - 1, total),
            ))
            log.debug("node_started", node_id=node_id, node_type=node.type, index=index, total=total)

            try:
                output = self._execute_node(node, ctx, incoming[node_id], graph, job_id)
            except FlowError as e:
                e.with_context(node_id, node.type)
                log.warning("node_failed", node_id=node_id, node_type=node.type,
                            code=e.code.value, error=e.message)
                return self._failed(result, ctx, node_id, e)
            except Exception as e:
                log.exception("node_crashed", node_id=node_id, node_type=node.type)
                error = NodeExecutionError(str(e) or type(e).__name__, node_id=node_id,
                                           node_type=node.type,
                                           details={"exception": type(e).__name__})
                return self._failed(result, ctx, node_id, error)

            ctx.put_output(node_id, output)
            result.nodes_completed = index
            self.event_bus.emit(ExecutionProgress(
                job_id=job_id, node_id=node_id, node_type=node.type, status="completed",
                current_index=index, total_nodes=total, percentage=_percentage(index, total),
            ))
            shown = sanitize_outputs(output)
            if shown:
                self.event_bus.emit(NodeOutput(job_id=job_id, node_id=node_id, output=shown))

            for e in incoming[node_id]:
                if ctx.consume(e.source):
                    log.debug("output_released", node_id=e.source)

        result.status = ExecutionStatus.COMPLETED
        result.outputs = sanitize_outputs(ctx.outputs)
        log.info("execution_completed", nodes=result.nodes_completed, live_outputs=ctx.live_ids())
        return result

    @staticmethod
    def _failed(result: ExecutionResult, ctx: ExecutionContext, node_id: str,
                error: FlowError) -> ExecutionResult:
        result.status = ExecutionStatus.ERROR
        result.error = error
        result.node_id = node_id
        result.outputs = sanitize_outputs(ctx.outputs)
        return result

    def _execute_node(self, node: Node, ctx: ExecutionContext, incoming: List[Edge],
                      graph: Graph, job_id: str) -> Dict[str, Any]:
        if not node.type:
            raise NodeExecutionError("Node has no type defined")
        if node.type in VISUAL_ONLY_TYPES:
            logger.debug("visual_node_skipped", node_id=node.id, node_type=node.type)
            return {}

        if node.data.get("bypassed") is True:
            return self._bypass(self.registry.entry(node.type), node, ctx, incoming)
        try:
            entry = self.registry.entry_or_raise(node.type)
        except NotFoundError as e:
            raise NodeExecutionError(e.message, details={"cause": e.code.value}) from e

        inputs = self._resolve_inputs(entry, node, ctx, incoming)
        config = {
            **node.data,
            "job_id": job_id,
            "node_id": node.id,
            "compute_backend": graph.compute_backend or self.settings.default_compute_backend,
            "caching_strategy": graph.caching_strategy or self.settings.default_caching_strategy,
        }

        handler = entry.handler
        validate_inputs(inputs, entry.input_fields)
        custom_validate = getattr(handler, "validate", None)
        if callable(custom_validate):
            custom_validate(inputs, config)

        output = handler.process(inputs, config)
        if output is None:
            return {}
        if not isinstance(output, Mapping):
            raise NodeExecutionError(
                f"Handler returned {type(output).__name__}, expected a mapping of outputs"
            )
        return dict(output)

    def _resolve_inputs(self, entry: Optional[RegistryEntry], node: Node, ctx: ExecutionContext,
                        incoming: List[Edge]) -> Dict[str, Any]:
        # defaults < static data < connections; a later edge into the same
        # handle overwrites an earlier one
        fields = entry.input_fields if entry else {}
        inputs: Dict[str, Any] = {name: f.default for name, f in fields.items() if f.has_default}
        for name in fields:
            if node.data.get(name) is not None:
                inputs[name] = node.data[name]
        for e in incoming:
            source_output = ctx.get_output(e.source)
            if source_output is None:
                logger.warning("missing_upstream_output", node_id=node.id, source=e.source)
                continue
            value = source_output.get(e.source_handle)
            if value is not None:
                inputs[e.target_handle] = value
        return inputs

    def _bypass(self, entry: Optional[RegistryEntry], node: Node, ctx: ExecutionContext,
                incoming: List[Edge]) -> Dict[str, Any]:
        logger.debug("node_bypassed", node_id=node.id, node_type=node.type)
        if entry is None:
            return {}
        inputs = self._resolve_inputs(entry, node, ctx, incoming)
        output = {}
        for out_name, out_field in entry.output_fields.items():
            match = next(
                (name for name, f in entry.input_fields.items()
                 if f.type == out_field.type or "any" in (f.type, out_field.type)),
                None,
            )
            output[out_name] = inputs.get(match) if match else None
        return output


def new_job_id() -> str:
    return uuid.uuid4().hex


def run_graph(graph: Union[Graph, Dict[str, Any]], registry: Optional[NodeRegistry] = None,
              event_bus: Optional[EventBusProtocol] = None,
              settings: Optional[Settings] = None) -> ExecutionResult:
    """Validate, schedule and run one graph on the calling thread."""
    graph = parse_graph(graph)
    registry = registry or default_registry()
    settings = settings or get_settings()
    validate_graph(graph, registry, settings.input_conflict_policy)
    order = schedule_graph(graph)
    runner = GraphRunner(registry, event_bus, settings)
    return runner.run(new_job_id(), graph, order)
