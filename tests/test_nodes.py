import pytest

from conftest import edge
from nodeflow.errors import NodeExecutionError, NodeValidationError
from nodeflow.nodes.arithmetic import MathOp
from nodeflow.nodes.base import FieldSpec, NodeHandler, get_value, normalize_spec, parse_category
from nodeflow.nodes.dataset import RoundRobin
from nodeflow.nodes.primitives import BigInt, String
from nodeflow.nodes.text import Concat, RegexMatch
from nodeflow.nodes.utility import Counter
from nodeflow.runner import run_graph
from nodeflow.state import KeyedStateStore, node_state


def test_normalize_spec_accepts_strings_dicts_and_models():
    spec = normalize_spec({
        "a": "FLOAT",
        "b": {"type": ("list", "string")},
        "c": FieldSpec(type="enum", options=["x", "y"], label="C!"),
    })
    assert spec["a"].type == "float"
    assert spec["a"].label == "A"
    assert spec["b"].type == "list_string"
    assert spec["c"].label == "C!"
    assert spec["c"].option_values() == ["x", "y"]


def test_connection_only_fields():
    assert FieldSpec(type="image").is_connection_only()
    assert FieldSpec(type="string", configurable=False).is_connection_only()
    assert not FieldSpec(type="enum").is_connection_only()


def test_handler_defaults():
    class Bare(NodeHandler):
        def process(self, inputs, config):
            return {}

    bare = Bare()
    assert bare.type() == "Bare"
    assert bare.label() == "Bare"
    assert bare.category() == "Uncategorized"
    assert bare.default_config() == {}


def test_category_parsing():
    assert parse_category("Math/Arithmetic") == ["Math", "Arithmetic"]
    assert parse_category("") == ["Uncategorized"]


def test_get_value_prefers_inputs_then_config():
    assert get_value("a", {"a": 1}, {"a": 2}) == 1
    assert get_value("a", {"a": None}, {"a": 2}) == 2
    assert get_value("a", {}, {}, 3) == 3


@pytest.mark.parametrize("operation,expected", [
    ("add", 7.0), ("subtract", 3.0), ("multiply", 10.0),
    ("divide", 2.5), ("modulo", 1.0), ("power", 25.0),
])
def test_math_op(operation, expected):
    assert MathOp().process({"a": 5.0, "b": 2.0, "operation": operation}, {}) == {"result": expected}


def test_math_op_division_by_zero_is_zero():
    assert MathOp().process({"a": 5.0, "b": 0.0, "operation": "divide"}, {}) == {"result": 0.0}


def test_primitives_and_concat():
    assert String().process({}, {"value": "hi"}) == {"value": "hi"}
    assert BigInt().default_config() == {"value": -1}
    assert Concat().process({"a": "foo"}, {"b": "bar"}) == {"result": "foobar"}


def test_regex_match():
    regex = RegexMatch()
    assert regex.process({"text": "hello world", "pattern": r"w\w+"}, {}) == {"result": True}
    assert regex.process({"text": "hello", "pattern": ""}, {}) == {"result": False}
    with pytest.raises(NodeValidationError):
        regex.validate({"pattern": "[unclosed"}, {})


def test_counter_counts_per_node_and_resets():
    store = KeyedStateStore()
    counter = Counter(store)
    values = [counter.process({}, {"node_id": "c1"})["value"] for _ in range(3)]
    assert values == [1, 2, 3]
    assert counter.process({}, {"node_id": "c2", "start": 10}) == {"value": 10}
    assert counter.process({"reset": True}, {"node_id": "c1"}) == {"value": 1}
    assert store.get("counter", "c1") == 2


def test_round_robin_cycles():
    robin = RoundRobin(KeyedStateStore())
    picks = [robin.process({"items": ["a", "b", "c"]}, {"node_id": "r"}) for _ in range(4)]
    assert [p["current"] for p in picks] == ["a", "b", "c", "a"]
    assert [p["index"] for p in picks] == [0, 1, 2, 0]


def test_round_robin_rejects_empty_list():
    with pytest.raises(NodeExecutionError):
        RoundRobin(KeyedStateStore()).process({"items": []}, {"node_id": "r"})


def test_counter_state_survives_across_jobs():
    graph = {
        "nodes": {"c": {"type": "Counter"}, "p": {"type": "Reroute"}},
        "edges": [edge("c", "value", "p", "value")],
    }
    results = [run_graph(graph).outputs["p"]["value"] for _ in range(3)]
    assert results == [1, 2, 3]
    assert node_state.get("counter", "c") == 4
