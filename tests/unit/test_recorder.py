import json
import os

import pytest
from unittest.mock import MagicMock

from specgraph.reporters.execution_recorder import ExecutionRecord, ExecutionRecorder

GRAPH_ID = "b" * 64


def make_record(node_id, outcome="success", **kwargs):
    return ExecutionRecord(GRAPH_ID, node_id, f"step {node_id}", outcome, "2024-01-01T00:00:00.000", **kwargs)


def test_records_are_appended_as_json_lines(tmp_path):
    recorder = ExecutionRecorder(str(tmp_path), run_id="run1")
    path = recorder.record(make_record("step_0", locator="#email"))
    recorder.record(make_record("step_1", "resolution-failure", error="Could not resolve"))

    assert path == os.path.join(str(tmp_path), GRAPH_ID, "run1.jsonl")
    with open(path, encoding="utf-8") as f:
        lines = [json.loads(line) for line in f]
    assert [line["node_id"] for line in lines] == ["step_0", "step_1"]
    assert lines[0]["locator"] == "#email"


def test_load_run_reads_back_records(tmp_path):
    recorder = ExecutionRecorder(str(tmp_path), run_id="run1")
    entry = make_record("step_0", attempts=[{"strategy": "text", "candidate_count": 1, "skipped": False}])
    recorder.record(entry)
    assert recorder.load_run(GRAPH_ID) == [entry]
    assert ExecutionRecorder(str(tmp_path)).load_run(GRAPH_ID, "run1") == [entry]
    assert recorder.load_run(GRAPH_ID, "missing") == []


def test_unknown_outcome_is_rejected(tmp_path):
    recorder = ExecutionRecorder(str(tmp_path), run_id="run1")
    with pytest.raises(ValueError):
        recorder.record(make_record("step_0", "flaky"))


def test_summary_counts_outcomes(tmp_path):
    recorder = ExecutionRecorder(str(tmp_path), run_id="run1")
    recorder.record(make_record("step_0"))
    recorder.record(make_record("step_1"))
    recorder.record(make_record("step_2", "assertion-failure"))
    assert recorder.summary() == {
        "success": 2, "resolution-failure": 0, "assertion-failure": 1, "error": 0,
    }


def test_screenshot_failure_is_not_fatal(tmp_path):
    driver = MagicMock()
    driver.save_screenshot.side_effect = RuntimeError("no session")
    recorder = ExecutionRecorder(str(tmp_path), run_id="run1")
    assert recorder.capture_screenshot(driver, GRAPH_ID, "step_0") is None

    driver.save_screenshot.side_effect = None
    driver.save_screenshot.return_value = True
    path = recorder.capture_screenshot(driver, GRAPH_ID, "step_0")
    assert path == os.path.join(str(tmp_path), GRAPH_ID, "run1", "step_0.png")
