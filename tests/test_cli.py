import json
import logging
from pathlib import Path

from typer.testing import CliRunner

from conftest import edge, float_node
from nodeflow.cli import app

runner = CliRunner()


def write(path: Path, graph) -> Path:
    path.write_text(json.dumps(graph))
    return path


def good_graph():
    return {
        "nodes": {"x": float_node(2.0), "m": {"type": "MathOp", "data": {"b": 3.0}},
                  "r": {"type": "Reroute"}},
        "edges": [edge("x", "value", "m", "a"), edge("m", "result", "r", "value")],
    }


def test_init_creates_layout(tmp_path: Path):
    result = runner.invoke(app, ["init"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / "workflows").is_dir()
    assert (tmp_path / "custom_nodes").is_dir()


def test_validate_ok(tmp_path: Path):
    result = runner.invoke(app, ["validate", str(write(tmp_path / "g.json", good_graph()))])
    assert result.exit_code == 0, result.output
    assert "Graph is acyclic" in result.output


def test_validate_reports_errors(tmp_path: Path):
    graph = good_graph()
    graph["edges"].append(edge("r", "value", "x", "value"))
    result = runner.invoke(app, ["validate", str(write(tmp_path / "g.json", graph))])
    assert result.exit_code == 1
    assert "Cycle detected" in result.output


def test_explain_prints_scheduled_order(tmp_path: Path):
    result = runner.invoke(app, ["explain", str(write(tmp_path / "g.json", good_graph()))])
    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[1].startswith("01. x [Float]  depth=3")
    assert "└─▶ m  (value->a)" in result.output


def test_run_executes_each_file(tmp_path: Path):
    first = write(tmp_path / "one.json", good_graph())
    second = write(tmp_path / "two.json", {"nodes": {"k": {"type": "KSampler"}}, "edges": []})
    result = runner.invoke(app, ["run", str(first), str(second)])
    assert result.exit_code == 1
    assert "one.json" in result.output
    assert "completed" in result.output
    assert "5.0" in result.output
    assert "error" in result.output


def test_nodes_lists_builtins():
    result = runner.invoke(app, ["nodes"])
    assert result.exit_code == 0, result.output
    assert "MathOp" in result.output
    assert "RoundRobin" in result.output


def test_verbose_flag_lowers_log_level(monkeypatch):
    monkeypatch.delenv("NODEFLOW_LOG_LEVEL", raising=False)
    result = runner.invoke(app, ["-v", "nodes"])
    assert result.exit_code == 0, result.output
    assert logging.getLogger().level == logging.DEBUG
    assert len(logging.getLogger().handlers) == 1

    runner.invoke(app, ["nodes"])
    assert logging.getLogger().level == logging.INFO
