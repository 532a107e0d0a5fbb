import os

import pytest
from click.testing import CliRunner

from specgraph.cli.main import cli
from specgraph.graph.persistence import GraphStore
from specgraph.reporters.execution_recorder import ExecutionRecord, ExecutionRecorder


@pytest.fixture
def workspace(tmp_path, login_feature, login_html):
    feature = tmp_path / "login.feature"
    feature.write_text(login_feature, encoding="utf-8")
    snapshot = tmp_path / "login.html"
    snapshot.write_text(login_html, encoding="utf-8")
    return {
        "feature": str(feature),
        "snapshot": str(snapshot),
        "store": str(tmp_path / "store"),
        "out": str(tmp_path / "generated"),
        "reports": str(tmp_path / "reports"),
    }


def invoke(workspace, *args):
    return CliRunner().invoke(cli, ["--store", workspace["store"], *args])


def compile_login(workspace):
    result = invoke(workspace, "compile", workspace["feature"], "--out", workspace["out"])
    assert result.exit_code == 0, result.output
    [graph_id] = GraphStore(workspace["store"]).list_ids()
    [module] = os.listdir(workspace["out"])
    return graph_id, os.path.join(workspace["out"], module)


def test_compile_stores_graph_and_writes_steps(workspace):
    graph_id, module = compile_login(workspace)
    assert module.endswith(f"{graph_id[:12]}.py")
    with open(module, encoding="utf-8") as f:
        assert f"# graph-id: {graph_id}" in f.read()


def test_compile_is_idempotent(workspace):
    _, module = compile_login(workspace)
    mtime = os.stat(module).st_mtime_ns
    compile_login(workspace)
    assert os.stat(module).st_mtime_ns == mtime


def test_compile_reports_malformed_steps(workspace, tmp_path):
    broken = tmp_path / "broken.feature"
    broken.write_text('Feature: X\n  Scenario: Y\n    When I enter "oops into the email field\n')
    result = invoke(workspace, "compile", str(broken), "--no-generate")
    assert result.exit_code == 1
    assert "Error" in result.output


def test_check_passes_then_fails_after_edit(workspace, login_feature):
    _, module = compile_login(workspace)
    result = invoke(workspace, "check", workspace["feature"], module)
    assert result.exit_code == 0
    assert "fresh" in result.output

    with open(workspace["feature"], "w", encoding="utf-8") as f:
        f.write(login_feature.replace("Welcome back", "Welcome home"))
    result = invoke(workspace, "check", workspace["feature"], module)
    assert result.exit_code == 1
    assert "stale" in result.output


def test_show_accepts_id_prefix(workspace):
    graph_id, _ = compile_login(workspace)
    result = invoke(workspace, "show", graph_id[:10])
    assert result.exit_code == 0, result.output
    assert "Successful login" in result.output
    assert "step_4" in result.output


def test_show_unknown_graph(workspace):
    result = invoke(workspace, "show", "deadbeef")
    assert result.exit_code == 1
    assert "Graph not found" in result.output


def test_resolve_against_snapshot(workspace):
    result = invoke(workspace, "resolve", workspace["snapshot"], "--text", "email", "--role", "textbox")
    assert result.exit_code == 0, result.output
    assert "#email" in result.output
    assert "high" in result.output


def test_resolve_ambiguous_exits_nonzero(workspace):
    result = invoke(workspace, "resolve", workspace["snapshot"], "--type", "input")
    assert result.exit_code == 1
    assert "Ambiguous" in result.output


def test_drift_against_current_markup(workspace):
    graph_id, _ = compile_login(workspace)
    result = invoke(workspace, "drift", graph_id, workspace["snapshot"])
    assert result.exit_code == 0, result.output
    assert "All targeted nodes resolve" in result.output


def test_drift_detects_removed_element(workspace, tmp_path, login_html):
    graph_id, _ = compile_login(workspace)
    changed = tmp_path / "changed.html"
    changed.write_text(login_html.replace('<button type="submit">Submit</button>', ""), encoding="utf-8")
    result = invoke(workspace, "drift", graph_id, str(changed))
    assert result.exit_code == 1


def test_trace_lists_and_shows_runs(workspace):
    graph_id = "d" * 64
    recorder = ExecutionRecorder(workspace["reports"], run_id="20240101_120000")
    recorder.record(ExecutionRecord(graph_id, "step_0", "I am on the login page", "success",
                                    "2024-01-01T12:00:00.000"))

    listing = invoke(workspace, "trace", graph_id, "--report-dir", workspace["reports"])
    assert "20240101_120000" in listing.output

    run = invoke(workspace, "trace", graph_id, "20240101_120000", "--report-dir", workspace["reports"])
    assert run.exit_code == 0
    assert "success" in run.output


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "specgraph" in result.output
