__all__ = [
    "__version__",
    "Graph",
    "Node",
    "Edge",
    "FlowError",
    "NodeHandler",
    "NodeRegistry",
    "default_registry",
    "GraphRunner",
    "JobQueue",
    "run_graph",
    "schedule_flat",
]
__version__ = "0.1.0"

from .errors import FlowError
from .ir import Edge, Graph, Node
from .nodes.base import NodeHandler
from .queue import JobQueue
from .registry import NodeRegistry, default_registry
from .runner import GraphRunner, run_graph
from .scheduler import schedule_flat
