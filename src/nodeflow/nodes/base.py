"""Node handler interface.

A handler describes one node type: its metadata (``type``, ``label``,
``category``, ``description``), its input and output field specs, and the
``process(inputs, config)`` call that turns resolved inputs into an output
map. ``process`` returns a dict keyed by output name, or raises a
``FlowError`` (any other exception is reported as ``execution_failed``).

Subclasses usually only set the class attributes and implement
``input_spec``, ``output_spec`` and ``process``::

    class Concat(NodeHandler):
        node_type = "Concat"
        node_category = "Text"

        def input_spec(self):
            return {"a": {"type": "string", "default": ""},
                    "b": {"type": "string", "default": ""}}

        def output_spec(self):
            return {"result": {"type": "string", "label": "RESULT"}}

        def process(self, inputs, config):
            return {"result": f"{inputs['a']}{inputs['b']}"}

Field specs may be given as ``FieldSpec`` objects, dicts with the same keys,
or bare type strings (``{"a": "float"}``).
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

# Types a user can set through a widget; everything else arrives by connection.
PRIMITIVE_TYPES = ("string", "integer", "float", "boolean", "bigint")
CONFIGURABLE_TYPES = PRIMITIVE_TYPES + ("enum",)
# Canvas annotations; never executed.
VISUAL_ONLY_TYPES = frozenset({"Group", "Frame"})


class EnumOption(BaseModel):
    value: Any
    label: Optional[str] = None


class FieldSpec(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "any"
    label: Optional[str] = None
    default: Any = None
    min: Optional[Union[int, float]] = None
    max: Optional[Union[int, float]] = None
    step: Optional[Union[int, float]] = None
    options: Optional[List[EnumOption]] = None
    optional: bool = False
    configurable: Optional[bool] = None
    multiline: bool = False
    description: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        return normalize_type(value)

    @field_validator("options", mode="before")
    @classmethod
    def _wrap_options(cls, value: Any) -> Any:
        if value is None:
            return None
        return [
            opt if isinstance(opt, (dict, EnumOption)) else {"value": opt, "label": str(opt)}
            for opt in value
        ]

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set

    def option_values(self) -> List[Any]:
        return [opt.value for opt in self.options or []]

    def is_connection_only(self) -> bool:
        if self.configurable is False:
            return True
        return self.type not in CONFIGURABLE_TYPES


def normalize_type(value: Any) -> str:
    """``"STRING"`` -> ``"string"``, ``("list", "string")`` -> ``"list_string"``."""
    if isinstance(value, str):
        return value.lower()
    if isinstance(value, (tuple, list)) and len(value) == 2 and value[0] == "list":
        return f"list_{normalize_type(value[1])}"
    return "any"


def normalize_spec(spec: Optional[Mapping[str, Any]]) -> Dict[str, FieldSpec]:
    out: Dict[str, FieldSpec] = {}
    for name, value in (spec or {}).items():
        name = str(name)
        if isinstance(value, FieldSpec):
            field = value
        elif isinstance(value, Mapping):
            field = FieldSpec.model_validate(dict(value))
        else:
            field = FieldSpec(type=normalize_type(value))
        if field.label is None:
            field = field.model_copy(update={"label": name.capitalize()})
        out[name] = field
    return out


def normalize_category(category: Any) -> str:
    if isinstance(category, str):
        return category
    if isinstance(category, (list, tuple)):
        return "/".join(str(c) for c in category)
    return "Uncategorized"


def parse_category(category: str) -> List[str]:
    parts = [p.strip() for p in category.split("/")]
    return [p for p in parts if p] or ["Uncategorized"]


def get_value(key: str, inputs: Mapping[str, Any], config: Mapping[str, Any], default: Any = None) -> Any:
    """First non-None of ``inputs[key]``, ``config[key]``, ``default``."""
    for source in (inputs, config):
        value = source.get(key)
        if value is not None:
            return value
    return default


class NodeHandler(ABC):
    node_type: ClassVar[Optional[str]] = None
    node_label: ClassVar[Optional[str]] = None
    node_category: ClassVar[Union[str, List[str]]] = "Uncategorized"
    node_description: ClassVar[str] = ""

    def type(self) -> str:
        return self.node_type or self.__class__.__name__

    def label(self) -> str:
        return self.node_label or self.type()

    def category(self) -> str:
        return normalize_category(self.node_category)

    def description(self) -> str:
        return self.node_description

    def input_spec(self) -> Dict[str, Any]:
        return {}

    def output_spec(self) -> Dict[str, Any]:
        return {}

    def default_config(self) -> Dict[str, Any]:
        return {
            name: field.default
            for name, field in normalize_spec(self.input_spec()).items()
            if field.has_default
        }

    def validate(self, inputs: Dict[str, Any], config: Dict[str, Any]) -> None:
        """Raise a FlowError to reject the inputs before ``process`` runs."""
        return None

    @abstractmethod
    def process(self, inputs: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} type={self.type()!r}>"


class PrimitiveNode(NodeHandler):
    """Outputs one configurable constant of ``data_type``."""

    node_category = "Primitives"
    data_type: ClassVar[str] = "string"
    default_value: ClassVar[Any] = None
    input_options: ClassVar[Dict[str, Any]] = {}

    def description(self) -> str:
        return self.node_description or f"A constant {self.type().lower()} value"

    def input_spec(self):
        return {"value": {"type": self.data_type, "label": "VALUE",
                          "default": self.default_value, **self.input_options}}

    def output_spec(self):
        return {"value": {"type": self.data_type, "label": "VALUE"}}

    def process(self, inputs, config):
        return {"value": get_value("value", inputs, config, self.default_value)}
