from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import InvalidGraphFormatError


class Node(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    type: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)  # static configuration
    created_at: Optional[Union[int, float]] = None


class Edge(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    source: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    target: str
    target_handle: Optional[str] = Field(default=None, alias="targetHandle")

    def key(self) -> tuple:
        return (self.source, self.source_handle, self.target, self.target_handle)


class Graph(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    nodes: Dict[str, Node] = Field(default_factory=dict)
    edges: List[Edge] = Field(default_factory=list)
    compute_backend: Optional[str] = None
    caching_strategy: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_wire_names(cls, data: Any) -> Any:
        if isinstance(data, dict) and "caching_strategy" not in data and "model_caching_strategy" in data:
            data = dict(data)
            data["caching_strategy"] = data.pop("model_caching_strategy")
        return data

    @field_validator("nodes", mode="before")
    @classmethod
    def _nodes_by_id(cls, value: Any) -> Any:
        # Accept a list of nodes, or a mapping whose entries may omit "id".
        if value is None:
            return {}
        if isinstance(value, list):
            out = {}
            for item in value:
                if isinstance(item, Node):
                    out[item.id] = item
                elif isinstance(item, dict):
                    out[item.get("id")] = item
                else:
                    return value
            return out
        if isinstance(value, dict):
            out = {}
            for key, item in value.items():
                if isinstance(item, dict) and "id" not in item:
                    item = {**item, "id": key}
                out[key] = item
            return out
        return value

    @field_validator("edges", mode="before")
    @classmethod
    def _edges_list(cls, value: Any) -> Any:
        return [] if value is None else value

    def incoming(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.target == node_id]

    def outgoing(self, node_id: str) -> List[Edge]:
        return [e for e in self.edges if e.source == node_id]


def parse_graph(data: Any) -> Graph:
    """Validate a submission (dict or Graph) into a Graph."""
    if isinstance(data, Graph):
        return data
    if not isinstance(data, dict):
        raise InvalidGraphFormatError(f"Graph submission must be a mapping, got {type(data).__name__}")
    try:
        return Graph.model_validate(data)
    except ValidationError as e:
        raise InvalidGraphFormatError(
            f"Invalid graph submission: {e.error_count()} error(s)",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def load_graph(path: Path) -> Graph:
    # safe_load reads JSON as well, JSON being a YAML subset
    try:
        data = yaml.safe_load(Path(path).read_text())
    except yaml.YAMLError as e:
        raise InvalidGraphFormatError(f"Could not parse {path}: {e}") from e
    return parse_graph(data)
