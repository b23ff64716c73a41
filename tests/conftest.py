import pytest

from nodeflow.config import Settings, reset_settings
from nodeflow.nodes import register_builtin_nodes
from nodeflow.registry import NodeRegistry, reset_default_registry
from nodeflow.state import node_state


@pytest.fixture(autouse=True)
def _isolated(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NODEFLOW_CUSTOM_NODES_DIR", str(tmp_path / "custom_nodes"))
    reset_settings()
    reset_default_registry()
    node_state.reset()
    yield
    reset_settings()
    reset_default_registry()
    node_state.reset()


@pytest.fixture
def settings(tmp_path):
    return Settings(custom_nodes_dir=tmp_path / "custom_nodes")


@pytest.fixture
def registry(settings):
    reg = NodeRegistry(settings)
    register_builtin_nodes(reg)
    return reg


def float_node(value, **extra):
    return {"type": "Float", "data": {"value": value, **extra}}


def edge(source, source_handle, target, target_handle):
    return {"source": source, "sourceHandle": source_handle,
            "target": target, "targetHandle": target_handle}
