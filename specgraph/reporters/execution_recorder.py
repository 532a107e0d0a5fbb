"""
Execution Recorder - per-node outcome trace of a generated test run.

One JSON line per executed node is appended to
``<report_dir>/<graph_id>/<run_id>.jsonl``. Traces live beside the graph
store, never inside it: stored graphs stay immutable.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
from datetime import datetime
import json
import os
import logging

logger = logging.getLogger(__name__)

OUTCOMES = ("success", "resolution-failure", "assertion-failure", "error")


@dataclass
class ExecutionRecord:
    """Outcome of one node in one run."""
    graph_id: str
    node_id: str
    step_text: str
    outcome: str  # one of OUTCOMES
    started_at: str
    duration_ms: int = 0
    locator: Optional[str] = None
    strategy: Optional[str] = None
    confidence: Optional[str] = None
    error: Optional[str] = None
    attempts: List[Dict[str, Any]] = field(default_factory=list)
    screenshot_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionRecord":
        return cls(**data)


class ExecutionRecorder:
    """
    Appends ExecutionRecords for one run.

    Example:
        >>> recorder = ExecutionRecorder("./specgraph_reports")
        >>> recorder.record(ExecutionRecord(graph_id, "step_0", "I am on the login page",
        ...                                 "success", started_at))
        >>> recorder.load_run(graph_id)
    """

    def __init__(self, report_dir: str = "./specgraph_reports", run_id: Optional[str] = None):
        self.report_dir = report_dir
        self.run_id = run_id or datetime.now().strftime("%Y%m%d_%H%M%S")
        self.records: List[ExecutionRecord] = []

    def trace_path(self, graph_id: str) -> str:
        return os.path.join(self.report_dir, graph_id, f"{self.run_id}.jsonl")

    def record(self, entry: ExecutionRecord) -> str:
        """Append one record and return the trace file path."""
        if entry.outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome {entry.outcome!r}")
        path = self.trace_path(entry.graph_id)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
        self.records.append(entry)
        if entry.outcome != "success":
            logger.warning(f"[ExecutionRecorder] {entry.node_id} {entry.outcome}: {entry.error}")
        return path

    def capture_screenshot(self, driver, graph_id: str, node_id: str) -> Optional[str]:
        """Save a screenshot next to the trace. Returns None if the driver cannot take one."""
        directory = os.path.join(self.report_dir, graph_id, self.run_id)
        os.makedirs(directory, exist_ok=True)
        path = os.path.join(directory, f"{node_id}.png")
        try:
            if driver.save_screenshot(path):
                return path
        except Exception as e:
            logger.warning(f"[ExecutionRecorder] Screenshot failed for {node_id}: {e}")
        return None

    def load_run(self, graph_id: str, run_id: Optional[str] = None) -> List[ExecutionRecord]:
        """Read back the records of a run (this recorder's run by default)."""
        path = os.path.join(self.report_dir, graph_id, f"{run_id or self.run_id}.jsonl")
        if not os.path.exists(path):
            return []
        with open(path, "r", encoding="utf-8") as f:
            return [ExecutionRecord.from_dict(json.loads(line)) for line in f if line.strip()]

    def summary(self) -> Dict[str, int]:
        counts = {outcome: 0 for outcome in OUTCOMES}
        for entry in self.records:
            counts[entry.outcome] += 1
        return counts
