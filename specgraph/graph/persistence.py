"""
Graph Persistence - content-addressed graph store.

Layout::

    <root>/graphs/<graph_id>.json   one immutable record per graph id
    <root>/specs/<spec_hash>/<graph_id>.json   one index entry per pair

Records are written to a temporary file in the target directory and
moved into place with ``os.replace``, so readers never see a partial
record. Concurrent writers of one id write identical structure, which
makes last-writer-wins safe. Index entries are separate files, so
writers of different ids under one spec hash never overwrite each other.
"""

import json
import os
import tempfile
import time
from typing import Any, Dict, List, Optional
import logging

from specgraph.core.errors import (
    GraphIdCollisionMismatch,
    GraphNotFoundError,
    GraphValidationError,
    PersistenceIOError,
)
from specgraph.graph.model import ActionGraph, structural_payload

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"


def serialize_graph(graph: ActionGraph) -> str:
    """Canonical record text: fixed key order, two-space indent, trailing newline."""
    return json.dumps(graph.to_dict(), indent=2, ensure_ascii=False) + "\n"


def deserialize_graph(text: str) -> ActionGraph:
    return ActionGraph.from_dict(json.loads(text))


class GraphStore:
    """
    Durable store for ActionGraphs keyed by graph id.

    Example:
        >>> store = GraphStore("./specgraph_store")
        >>> location = store.save(graph)
        >>> store.save(graph) == location
        True
        >>> store.load(graph.id) == graph
        True
    """

    def __init__(self, root: str):
        self.root = root
        self.graphs_dir = os.path.join(root, "graphs")
        self.specs_dir = os.path.join(root, "specs")

    def location(self, graph_id: str) -> str:
        return os.path.join(self.graphs_dir, f"{graph_id}{RECORD_SUFFIX}")

    def exists(self, graph_id: str) -> bool:
        return os.path.isfile(self.location(graph_id))

    def save(self, graph: ActionGraph) -> str:
        """
        Persist a graph and return its location.

        Re-saving a stored id is a no-op when the stored structure matches.

        Raises:
            GraphIdCollisionMismatch: if the id already holds different structure.
            GraphValidationError: if the graph violates its invariants.
            PersistenceIOError: if the store cannot be written.
        """
        graph.validate()
        path = self.location(graph.id)

        stored = self._read(path) if os.path.exists(path) else None
        if stored is not None:
            # Same id, different content: the id hash collided.
            if structural_payload(stored.nodes, stored.edges) != structural_payload(graph.nodes, graph.edges):
                raise GraphIdCollisionMismatch(graph.id, stored.structural_digest(), graph.structural_digest())
            logger.info(f"[GraphStore] Graph {graph.id[:12]} already stored, skipping write")
        else:
            self._atomic_write(path, serialize_graph(graph))
            logger.info(f"[GraphStore] Saved graph {graph.id[:12]} to {path}")

        self._index_spec(graph.spec_hash, graph.id)
        return path

    def load(self, graph_id: str) -> Optional[ActionGraph]:
        """Return the stored graph, or None when the id is unknown."""
        path = self.location(graph_id)
        if not os.path.exists(path):
            return None
        return self._read(path)

    def load_required(self, graph_id: str) -> ActionGraph:
        graph = self.load(graph_id)
        if graph is None:
            raise GraphNotFoundError(graph_id)
        return graph

    def find_by_spec(self, spec_hash: str) -> List[str]:
        """Graph ids previously saved for a spec hash, in save order."""
        directory = os.path.join(self.specs_dir, spec_hash)
        if not os.path.isdir(directory):
            return []
        entries = []
        for name in os.listdir(directory):
            if name.endswith(RECORD_SUFFIX) and not name.startswith(".tmp-"):
                entry = self._read_json(os.path.join(directory, name))
                entries.append((entry.get("indexedAt", 0), entry["graphId"]))
        return [graph_id for _, graph_id in sorted(entries)]

    def list_ids(self) -> List[str]:
        if not os.path.isdir(self.graphs_dir):
            return []
        return sorted(
            name[: -len(RECORD_SUFFIX)]
            for name in os.listdir(self.graphs_dir)
            if name.endswith(RECORD_SUFFIX)
        )

    def _index_spec(self, spec_hash: str, graph_id: str) -> None:
        path = os.path.join(self.specs_dir, spec_hash, f"{graph_id}{RECORD_SUFFIX}")
        if os.path.exists(path):
            return
        payload = {"specHash": spec_hash, "graphId": graph_id, "indexedAt": time.time_ns()}
        self._atomic_write(path, json.dumps(payload, indent=2) + "\n")

    def _read(self, path: str) -> ActionGraph:
        data = self._read_json(path)
        try:
            graph = ActionGraph.from_dict(data)
            graph.validate()
        except (KeyError, ValueError, GraphValidationError) as e:
            raise PersistenceIOError(f"Corrupt graph record: {e}", path) from e
        return graph

    def _read_json(self, path: str) -> Dict[str, Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except OSError as e:
            raise PersistenceIOError(f"Cannot read record: {e}", path) from e
        except ValueError as e:
            raise PersistenceIOError(f"Invalid JSON record: {e}", path) from e

    def _atomic_write(self, path: str, content: str) -> None:
        directory = os.path.dirname(path)
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", suffix=RECORD_SUFFIX, dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
            tmp_path = None
        except OSError as e:
            raise PersistenceIOError(f"Cannot write record: {e}", path) from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
