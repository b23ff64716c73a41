import textwrap

import pytest

from nodeflow.config import Settings
from nodeflow.errors import HotReloadDisabledError, InvalidHandlerError, NotFoundError
from nodeflow.nodes import BUILTIN_NODES, register_builtin_nodes
from nodeflow.registry import NodeRegistry, default_registry

PLUGIN = textwrap.dedent('''
    from nodeflow.nodes.base import NodeHandler


    class Shout(NodeHandler):
        node_type = "Shout"
        node_category = ["Text", "Fun"]

        def input_spec(self):
            return {"text": {"type": "string", "default": ""}}

        def output_spec(self):
            return {"result": "string"}

        def process(self, inputs, config):
            return {"result": inputs["text"].upper() + "{suffix}"}


    class NotAHandler:
        pass
''')


def write_plugin(directory, name="shout.py", suffix="!"):
    directory.mkdir(exist_ok=True)
    path = directory / name
    path.write_text(PLUGIN.replace("{suffix}", suffix))
    return path


def test_builtins_registered(registry):
    assert len(registry) == len(BUILTIN_NODES)
    assert registry.list_types() == sorted(registry.list_types())
    assert registry.get("MathOp") is not None
    assert registry.get("Nope") is None
    assert registry.stats() == {"total": len(BUILTIN_NODES), "builtin": len(BUILTIN_NODES), "custom": 0}


def test_metadata_shape(registry):
    meta = registry.metadata("RegexMatch")
    assert meta["type"] == "RegexMatch"
    assert meta["label"] == "Regex Match"
    assert meta["category_path"] == ["Text", "Regex"]
    assert meta["input_spec"]["pattern"]["type"] == "string"
    assert meta["output_spec"]["result"]["label"] == "BOOLEAN"
    assert meta["default_config"] == {"pattern": ""}
    assert meta["source"] == "builtin"


def test_metadata_unknown_type(registry):
    with pytest.raises(NotFoundError):
        registry.metadata("Nope")


def test_list_all_with_metadata_is_sorted(registry):
    types = [m["type"] for m in registry.list_all_with_metadata()]
    assert types == registry.list_types()


def test_rejects_objects_without_the_capability_set(registry):
    class Half:
        def type(self):
            return "Half"

    with pytest.raises(InvalidHandlerError) as exc:
        registry.register(Half())
    assert "process" in exc.value.details["missing"]


def test_accepts_duck_typed_handlers(settings):
    class Duck:
        def type(self):
            return "Duck"

        def label(self):
            return "Duck"

        def category(self):
            return "Birds"

        def input_spec(self):
            return {}

        def output_spec(self):
            return {"quack": "string"}

        def process(self, inputs, config):
            return {"quack": "quack"}

    registry = NodeRegistry(settings)
    registry.register(Duck(), source="custom")
    meta = registry.metadata("Duck")
    assert meta["description"] == ""
    assert meta["default_config"] == {}


def test_reregistering_replaces_entry(registry):
    from nodeflow.nodes.utility import Reroute

    before = registry.get("Reroute")
    registry.register(Reroute())
    assert registry.get("Reroute") is not before


def test_load_custom_nodes(settings, tmp_path):
    write_plugin(settings.custom_nodes_dir)
    (settings.custom_nodes_dir / "broken.py").write_text("raise RuntimeError('boom')\n")
    (settings.custom_nodes_dir / "_private.py").write_text("x = 1\n")

    registry = NodeRegistry(settings)
    assert registry.load_custom_nodes() == 1
    assert registry.list_types() == ["Shout"]
    assert registry.metadata("Shout")["source"] == "custom"
    assert registry.metadata("Shout")["category"] == "Text/Fun"
    assert registry.get("Shout").process({"text": "hi"}, {}) == {"result": "HI!"}


def test_custom_nodes_cannot_shadow_builtins(registry, tmp_path):
    path = tmp_path / "plugins"
    path.mkdir()
    (path / "fake_math.py").write_text(textwrap.dedent('''
        from nodeflow.nodes.arithmetic import MathOp as _Base


        class MathOp(_Base):
            pass
    '''))
    assert registry.load_custom_nodes(path) == 0
    assert registry.metadata("MathOp")["source"] == "builtin"


def test_missing_directory_loads_nothing(registry, tmp_path):
    assert registry.load_custom_nodes(tmp_path / "absent") == 0


def test_reload_refused_when_disabled(settings):
    registry = NodeRegistry(settings)
    with pytest.raises(HotReloadDisabledError):
        registry.reload_custom_nodes()


def test_reload_picks_up_changed_code(tmp_path):
    settings = Settings(custom_nodes_dir=tmp_path / "plugins", hot_reload=True)
    write_plugin(settings.custom_nodes_dir, suffix="!")
    registry = NodeRegistry(settings)
    register_builtin_nodes(registry)
    registry.load_custom_nodes()

    write_plugin(settings.custom_nodes_dir, suffix="??")
    assert registry.reload_custom_nodes() == 1
    assert registry.get("Shout").process({"text": "hi"}, {}) == {"result": "HI??"}
    assert registry.stats()["builtin"] == len(BUILTIN_NODES)

    (settings.custom_nodes_dir / "shout.py").unlink()
    assert registry.reload_custom_nodes() == 0
    assert "Shout" not in registry


def test_default_registry_is_a_singleton():
    assert default_registry() is default_registry()
    assert "Counter" in default_registry()
