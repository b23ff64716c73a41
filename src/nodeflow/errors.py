from __future__ import annotations
import secrets
from enum import Enum
from typing import Any, Dict, Iterable, Optional


class ErrorCode(str, Enum):
    CYCLE_DETECTED = "cycle_detected"
    INVALID_EDGE_REFERENCE = "invalid_edge_reference"
    INVALID_HANDLE = "invalid_handle"
    MULTIPLE_INPUT_CONNECTIONS = "multiple_input_connections"
    INVALID_GRAPH_FORMAT = "invalid_graph_format"
    TYPE_MISMATCH = "type_mismatch"
    REQUIRED_FIELD = "required_field"
    OUT_OF_RANGE = "out_of_range"
    INVALID_ENUM = "invalid_enum"
    INVALID_REGEX = "invalid_regex"
    VALIDATION_FAILED = "validation_failed"
    EXECUTION_FAILED = "execution_failed"
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    INVALID_HANDLER = "invalid_handler"
    HOT_RELOAD_DISABLED = "hot_reload_disabled"


def new_correlation_id() -> str:
    return secrets.token_hex(8)


class FlowError(Exception):
    """Base error for everything the scheduler, runtime and queue raise.

    Carries a stable ``code`` plus enough context (node id, field,
    correlation id) for a UI to render it without parsing ``message``.
    """

    code: ErrorCode = ErrorCode.EXECUTION_FAILED

    def __init__(self, message: str, *, code: Optional[ErrorCode] = None,
                 node_id: Optional[str] = None, node_type: Optional[str] = None,
                 field: Optional[str] = None, correlation_id: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message
        self.node_id = node_id
        self.node_type = node_type
        self.field = field
        self.correlation_id = correlation_id or new_correlation_id()
        self.details = details or {}

    def with_context(self, node_id: Optional[str], node_type: Optional[str]) -> "FlowError":
        self.node_id = self.node_id or node_id
        self.node_type = self.node_type or node_type
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "code": self.code.value,
            "message": self.message,
            "node_id": self.node_id,
            "node_type": self.node_type,
            "field": self.field,
            "correlation_id": self.correlation_id,
            "details": self.details,
        }
        return {k: v for k, v in data.items() if v is not None}

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"


# Graph-level errors: detected before any node runs, fatal for the job.

class GraphError(FlowError):
    code = ErrorCode.INVALID_GRAPH_FORMAT


class InvalidGraphFormatError(GraphError):
    code = ErrorCode.INVALID_GRAPH_FORMAT


class CycleDetectedError(GraphError):
    code = ErrorCode.CYCLE_DETECTED

    def __init__(self, node_ids: Iterable[str], edges: Iterable[tuple] = ()):
        node_ids = sorted(set(node_ids))
        edges = [list(e) for e in edges]
        super().__init__(
            f"Cycle detected among nodes: {', '.join(node_ids)}",
            details={"node_ids": node_ids, "edges": edges},
        )


class InvalidEdgeReferenceError(GraphError):
    code = ErrorCode.INVALID_EDGE_REFERENCE

    def __init__(self, source: str, target: str, missing: Iterable[str]):
        missing = sorted(set(missing))
        super().__init__(
            f"Edge {source}->{target} references non-existent node(s): {', '.join(missing)}",
            details={"source": source, "target": target, "missing": missing},
        )


class InvalidHandleError(GraphError):
    code = ErrorCode.INVALID_HANDLE


class MultipleInputConnectionsError(GraphError):
    code = ErrorCode.MULTIPLE_INPUT_CONNECTIONS


class ConnectionTypeMismatchError(GraphError):
    code = ErrorCode.TYPE_MISMATCH


# Node-level errors: abort only the job the node belongs to.

class NodeValidationError(FlowError):
    code = ErrorCode.VALIDATION_FAILED

    @classmethod
    def required(cls, field: str) -> "NodeValidationError":
        return cls(f"Field '{field}' is required", code=ErrorCode.REQUIRED_FIELD, field=field)

    @classmethod
    def type_mismatch(cls, field: str, expected: str, got: str) -> "NodeValidationError":
        return cls(
            f"Field '{field}' expected type {expected}, got {got}",
            code=ErrorCode.TYPE_MISMATCH,
            field=field,
            details={"expected": expected, "got": got},
        )

    @classmethod
    def out_of_range(cls, field: str, value: Any, minimum: Any = None,
                     maximum: Any = None) -> "NodeValidationError":
        if minimum is not None and maximum is not None:
            message = f"Field '{field}' value {value} must be between {minimum} and {maximum}"
        elif minimum is not None:
            message = f"Field '{field}' value {value} must be at least {minimum}"
        elif maximum is not None:
            message = f"Field '{field}' value {value} must be at most {maximum}"
        else:
            message = f"Field '{field}' value {value} is out of range"
        details: Dict[str, Any] = {"value": value}
        if minimum is not None:
            details["min"] = minimum
        if maximum is not None:
            details["max"] = maximum
        return cls(message, code=ErrorCode.OUT_OF_RANGE, field=field, details=details)

    @classmethod
    def invalid_enum(cls, field: str, value: Any, options: list) -> "NodeValidationError":
        joined = ", ".join(str(o) for o in options)
        return cls(
            f"Field '{field}' value {value!r} is not one of: {joined}",
            code=ErrorCode.INVALID_ENUM,
            field=field,
            details={"value": value, "valid_options": list(options)},
        )

    @classmethod
    def invalid_regex(cls, field: str, pattern: str, reason: str) -> "NodeValidationError":
        return cls(
            f"Invalid regex pattern '{pattern}': {reason}",
            code=ErrorCode.INVALID_REGEX,
            field=field,
            details={"pattern": pattern, "reason": reason},
        )


class NodeExecutionError(FlowError):
    code = ErrorCode.EXECUTION_FAILED


class NotFoundError(FlowError):
    code = ErrorCode.NOT_FOUND


class InvalidStateError(FlowError):
    code = ErrorCode.INVALID_STATE


class InvalidHandlerError(FlowError):
    code = ErrorCode.INVALID_HANDLER


class HotReloadDisabledError(FlowError):
    code = ErrorCode.HOT_RELOAD_DISABLED
