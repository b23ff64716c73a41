from .arithmetic import MathOp
from .base import FieldSpec, NodeHandler, PrimitiveNode, get_value, normalize_spec
from .dataset import RoundRobin
from .primitives import BigInt, Boolean, Float, Integer, String
from .text import Concat, RegexMatch
from .utility import Counter, Note, PreviewText, Reroute

BUILTIN_NODES = (
    # Primitives
    BigInt, Boolean, Float, Integer, String,
    # Math
    MathOp,
    # Text
    Concat, RegexMatch,
    # Utility
    Counter, Note, PreviewText, Reroute,
    # Dataset
    RoundRobin,
)


def register_builtin_nodes(registry) -> int:
    for cls in BUILTIN_NODES:
        registry.register(cls(), source="builtin")
    return len(BUILTIN_NODES)


__all__ = [
    "BUILTIN_NODES",
    "FieldSpec",
    "NodeHandler",
    "PrimitiveNode",
    "get_value",
    "normalize_spec",
    "register_builtin_nodes",
]
