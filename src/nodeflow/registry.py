"""Node registry - type name to handler lookup.

Lookups happen once per node execution, so reads never take a lock: the
table is an immutable mapping that writers replace wholesale while holding
the write lock. Writes only happen at startup (built-ins, custom nodes) and
on an explicit reload.

Custom nodes are plain ``.py`` files in the custom nodes directory. Every
class defined in such a file that exposes the handler capability set is
instantiated and registered with source ``custom``. Reloading re-imports
those files, which leaves the old module objects behind unless they are
dropped first; reload therefore removes the previously loaded modules from
``sys.modules`` before importing again, and is refused unless
``hot_reload`` is enabled.
"""
from __future__ import annotations
import importlib
import importlib.util
import inspect
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

import structlog

from .config import Settings, get_settings
from .errors import HotReloadDisabledError, InvalidHandlerError, NotFoundError
from .nodes.base import FieldSpec, normalize_category, normalize_spec, parse_category

logger = structlog.get_logger()

REQUIRED_CAPABILITIES = ("type", "label", "category", "input_spec", "output_spec", "process")
PLUGIN_MODULE_PREFIX = "nodeflow.custom_nodes"


def implements_capabilities(handler: Any) -> bool:
    return all(callable(getattr(handler, name, None)) for name in REQUIRED_CAPABILITIES)


@dataclass(frozen=True)
class RegistryEntry:
    type: str
    handler: Any
    source: str
    input_fields: Dict[str, FieldSpec] = field(default_factory=dict)
    output_fields: Dict[str, FieldSpec] = field(default_factory=dict)


def _optional_call(handler: Any, name: str, default: Any) -> Any:
    fn = getattr(handler, name, None)
    return fn() if callable(fn) else default


class NodeRegistry:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._entries: Mapping[str, RegistryEntry] = MappingProxyType({})
        self._write_lock = threading.RLock()
        self._custom_modules: List[str] = []

    # -- reads -------------------------------------------------------------

    def get(self, node_type: str) -> Optional[Any]:
        entry = self._entries.get(node_type)
        return entry.handler if entry else None

    def entry(self, node_type: str) -> Optional[RegistryEntry]:
        return self._entries.get(node_type)

    def entry_or_raise(self, node_type: str) -> RegistryEntry:
        entry = self._entries.get(node_type)
        if entry is None:
            raise NotFoundError(f"Unknown node type: {node_type}", node_type=node_type)
        return entry

    def list_types(self) -> List[str]:
        return sorted(self._entries)

    def metadata(self, node_type: str) -> Dict[str, Any]:
        return self._metadata(self.entry_or_raise(node_type))

    def list_all_with_metadata(self) -> List[Dict[str, Any]]:
        entries = self._entries
        return [self._metadata(entries[t]) for t in sorted(entries)]

    def stats(self) -> Dict[str, int]:
        entries = list(self._entries.values())
        return {
            "total": len(entries),
            "builtin": sum(1 for e in entries if e.source == "builtin"),
            "custom": sum(1 for e in entries if e.source == "custom"),
        }

    def __contains__(self, node_type: str) -> bool:
        return node_type in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def _metadata(entry: RegistryEntry) -> Dict[str, Any]:
        handler = entry.handler
        category = normalize_category(handler.category())
        return {
            "type": entry.type,
            "label": handler.label(),
            "category": category,
            "category_path": parse_category(category),
            "description": _optional_call(handler, "description", ""),
            "input_spec": {k: f.model_dump(exclude_none=True) for k, f in entry.input_fields.items()},
            "output_spec": {k: f.model_dump(exclude_none=True) for k, f in entry.output_fields.items()},
            "default_config": _optional_call(handler, "default_config", {}),
            "source": entry.source,
        }

    # -- writes ------------------------------------------------------------

    def register(self, handler: Any, source: str = "builtin") -> str:
        if not implements_capabilities(handler):
            missing = [n for n in REQUIRED_CAPABILITIES if not callable(getattr(handler, n, None))]
            raise InvalidHandlerError(
                f"{handler!r} does not implement the node handler interface",
                details={"missing": missing},
            )
        node_type = handler.type()
        if not isinstance(node_type, str) or not node_type:
            raise InvalidHandlerError(f"{handler!r} returned an invalid type name: {node_type!r}")

        entry = RegistryEntry(
            type=node_type,
            handler=handler,
            source=source,
            input_fields=normalize_spec(handler.input_spec()),
            output_fields=normalize_spec(handler.output_spec()),
        )
        with self._write_lock:
            entries = dict(self._entries)
            if node_type in entries:
                logger.warning("node_type_overwritten", type=node_type,
                               old=entries[node_type].source, new=source)
            entries[node_type] = entry
            self._entries = MappingProxyType(entries)
        logger.debug("node_registered", type=node_type, source=source)
        return node_type

    def load_custom_nodes(self, directory: Optional[Path] = None) -> int:
        """Import custom node files from ``directory``; returns how many types were registered."""
        directory = Path(directory or self.settings.custom_nodes_dir).expanduser()
        if not directory.is_dir():
            logger.debug("custom_nodes_dir_missing", path=str(directory))
            return 0

        count = 0
        with self._write_lock:
            for py_file in sorted(directory.glob("*.py")):
                if py_file.name.startswith("_"):
                    continue
                count += self._load_custom_file(py_file)
        if count:
            logger.info("custom_nodes_loaded", count=count, path=str(directory))
        return count

    def _load_custom_file(self, py_file: Path) -> int:
        module_name = f"{PLUGIN_MODULE_PREFIX}.{py_file.stem}"
        spec = importlib.util.spec_from_file_location(module_name, py_file)
        if spec is None or spec.loader is None:
            return 0

        module = importlib.util.module_from_spec(spec)
        # Must be in sys.modules before exec_module for dataclasses to resolve
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            logger.error("custom_node_load_failed", path=str(py_file), error=str(e))
            return 0
        self._custom_modules.append(module_name)

        count = 0
        for name, obj in inspect.getmembers(module, inspect.isclass):
            if obj.__module__ != module_name or inspect.isabstract(obj):
                continue
            if not implements_capabilities(obj):
                logger.debug("custom_class_skipped", path=str(py_file), class_name=name)
                continue
            try:
                handler = obj()
            except TypeError as e:
                logger.warning("custom_node_init_failed", path=str(py_file), class_name=name, error=str(e))
                continue
            existing = self._entries.get(handler.type())
            if existing is not None and existing.source == "builtin":
                logger.warning("custom_node_shadows_builtin", type=handler.type(), path=str(py_file))
                continue
            try:
                node_type = self.register(handler, source="custom")
            except InvalidHandlerError as e:
                logger.warning("custom_node_rejected", path=str(py_file), class_name=name, error=e.message)
                continue
            logger.info("custom_node_loaded", type=node_type, file=py_file.name)
            count += 1
        return count

    def reload_custom_nodes(self, directory: Optional[Path] = None) -> int:
        if not self.settings.hot_reload:
            logger.warning("hot_reload_disabled")
            raise HotReloadDisabledError(
                "Custom node hot-reload is disabled; set NODEFLOW_HOT_RELOAD=true to enable it"
            )
        with self._write_lock:
            self._purge_custom()
            return self.load_custom_nodes(directory)

    def _purge_custom(self) -> None:
        entries = {t: e for t, e in self._entries.items() if e.source != "custom"}
        self._entries = MappingProxyType(entries)
        for module_name in self._custom_modules:
            sys.modules.pop(module_name, None)
            logger.debug("custom_module_purged", module=module_name)
        self._custom_modules = []
        importlib.invalidate_caches()


_default_registry: Optional[NodeRegistry] = None
_default_lock = threading.Lock()


def default_registry() -> NodeRegistry:
    """Process-wide registry with the built-ins and configured custom nodes."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            from .nodes import register_builtin_nodes

            registry = NodeRegistry()
            count = register_builtin_nodes(registry)
            logger.info("builtin_nodes_registered", count=count)
            registry.load_custom_nodes()
            _default_registry = registry
        return _default_registry


def reset_default_registry() -> None:
    """Drop the process-wide registry (for testing)."""
    global _default_registry
    with _default_lock:
        _default_registry = None
