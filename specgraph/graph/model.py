"""
Graph Model - canonical in-memory action graphs.

An ActionGraph is immutable once built: a changed spec produces a new
graph with a new id rather than a patched one. Every type here converts
to and from plain dictionaries with a fixed key order so that persisted
records are byte-stable.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from specgraph.core.errors import GraphValidationError
from specgraph.core.hasher import hash_content


class NodeType(str, Enum):
    NAVIGATE = "navigate"
    INPUT = "input"
    CLICK = "click"
    ASSERT_TEXT = "assert-text"
    ASSERT_URL = "assert-url"
    WAIT = "wait"
    CUSTOM = "custom"


class EdgeType(str, Enum):
    SEQUENTIAL = "sequential"
    CONDITIONAL_FALLBACK = "conditional-fallback"


class GraphAuthorship(str, Enum):
    HUMAN = "human"
    MACHINE = "machine"


# Node types that act on a UI element and therefore need a target.
TARGETED_TYPES = (NodeType.INPUT, NodeType.CLICK)


@dataclass(frozen=True)
class GherkinStepRef:
    """Back-reference to the authored step. Never used for execution."""
    keyword: str
    text: str

    def to_dict(self) -> Dict[str, Any]:
        return {"keyword": self.keyword, "text": self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GherkinStepRef":
        return cls(keyword=data["keyword"], text=data["text"])


@dataclass(frozen=True)
class SelectorRef:
    """Hint bundle consumed by the Selector Resolver at run time."""
    text_hint: Optional[str] = None
    role_hint: Optional[str] = None
    type_hint: Optional[str] = None
    structural_hint: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not any(self.hints().values())

    def hints(self) -> Dict[str, str]:
        """Non-empty hints as resolver keyword arguments."""
        pairs = [
            ("text_hint", self.text_hint),
            ("role_hint", self.role_hint),
            ("type_hint", self.type_hint),
            ("structural_hint", self.structural_hint),
        ]
        return {k: v for k, v in pairs if v}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "textHint": self.text_hint,
            "roleHint": self.role_hint,
            "typeHint": self.type_hint,
            "structuralHint": self.structural_hint,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SelectorRef":
        return cls(
            text_hint=data.get("textHint"),
            role_hint=data.get("roleHint"),
            type_hint=data.get("typeHint"),
            structural_hint=data.get("structuralHint"),
        )


@dataclass(frozen=True)
class DeterministicInstructions:
    """
    A literal action fixed at compile time.

    ``selector`` is set only when the step named a literal selector; the
    node is then fully resolved and needs no hint bundle. ``env_var``
    marks a value that is read from the environment at run time.
    """
    action: str  # navigate, fill, click, assert-text, assert-url, wait, wait-for
    selector: Optional[str] = None
    value: Optional[str] = None
    env_var: Optional[str] = None
    url: Optional[str] = None
    seconds: Optional[float] = None

    kind = "deterministic"

    @property
    def is_fully_resolved(self) -> bool:
        return self.selector is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "action": self.action,
            "selector": self.selector,
            "value": self.value,
            "envVar": self.env_var,
            "url": self.url,
            "seconds": self.seconds,
        }


@dataclass(frozen=True)
class RuntimeReference:
    """A reference that can only be resolved while the test runs."""
    action: str
    ref_kind: str  # page, manual
    key: Optional[str] = None

    kind = "runtime"

    @property
    def is_fully_resolved(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "action": self.action,
            "refKind": self.ref_kind,
            "key": self.key,
        }


NodeInstructions = Union[DeterministicInstructions, RuntimeReference]


def instructions_from_dict(data: Dict[str, Any]) -> NodeInstructions:
    kind = data.get("kind")
    if kind == "deterministic":
        seconds = data.get("seconds")
        return DeterministicInstructions(
            action=data["action"],
            selector=data.get("selector"),
            value=data.get("value"),
            env_var=data.get("envVar"),
            url=data.get("url"),
            seconds=float(seconds) if seconds is not None else None,
        )
    if kind == "runtime":
        return RuntimeReference(action=data["action"], ref_kind=data["refKind"], key=data.get("key"))
    raise ValueError(f"Unknown instruction kind: {kind!r}")


@dataclass(frozen=True)
class ActionNode:
    """One atomic step of an action graph."""
    id: str
    type: NodeType
    step: GherkinStepRef
    instructions: NodeInstructions
    selector_ref: Optional[SelectorRef] = None
    needs_review: bool = False

    def structure(self) -> Dict[str, Any]:
        """The compiled content of this node, independent of wording."""
        return {
            "type": self.type.value,
            "hints": self.selector_ref.to_dict() if self.selector_ref else None,
            "instructions": self.instructions.to_dict(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "gherkinStepRef": self.step.to_dict(),
            "selectorRef": self.selector_ref.to_dict() if self.selector_ref else None,
            "instructions": self.instructions.to_dict(),
            "needsReview": self.needs_review,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionNode":
        selector_ref = data.get("selectorRef")
        return cls(
            id=data["id"],
            type=NodeType(data["type"]),
            step=GherkinStepRef.from_dict(data["gherkinStepRef"]),
            instructions=instructions_from_dict(data["instructions"]),
            selector_ref=SelectorRef.from_dict(selector_ref) if selector_ref else None,
            needs_review=bool(data.get("needsReview", False)),
        )


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    type: EdgeType = EdgeType.SEQUENTIAL

    def to_dict(self) -> Dict[str, Any]:
        return {"source": self.source, "target": self.target, "type": self.type.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Edge":
        return cls(source=data["source"], target=data["target"], type=EdgeType(data["type"]))


@dataclass(frozen=True)
class GraphMetadata:
    created_at: str
    authorship: GraphAuthorship
    version_tag: str = ""
    scenario_name: Optional[str] = None
    feature_name: Optional[str] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "createdAt": self.created_at,
            "authorship": self.authorship.value,
            "versionTag": self.version_tag,
            "scenarioName": self.scenario_name,
            "featureName": self.feature_name,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphMetadata":
        return cls(
            created_at=data["createdAt"],
            authorship=GraphAuthorship(data["authorship"]),
            version_tag=data.get("versionTag", ""),
            scenario_name=data.get("scenarioName"),
            feature_name=data.get("featureName"),
            tags=tuple(data.get("tags") or ()),
        )


def structural_payload(nodes: Sequence[ActionNode], edges: Sequence[Edge]) -> Dict[str, Any]:
    """Everything the graph id is derived from, in execution order."""
    return {
        "nodes": [node.structure() for node in nodes],
        "edges": [[e.source, e.target, e.type.value] for e in edges],
    }


def compute_graph_id(nodes: Sequence[ActionNode], edges: Sequence[Edge]) -> str:
    return hash_content(structural_payload(nodes, edges))


@dataclass(frozen=True)
class ActionGraph:
    """
    The unit of compiled, persisted behavior.

    ``id`` is a structural hash: two specs worded differently but compiling
    to the same nodes share it. ``spec_hash`` tracks the source text.
    """
    id: str
    spec_hash: str
    nodes: Tuple[ActionNode, ...]
    edges: Tuple[Edge, ...]
    metadata: GraphMetadata

    def node(self, node_id: str) -> ActionNode:
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(node_id)

    @property
    def review_nodes(self) -> List[ActionNode]:
        """Nodes whose intent could not be inferred."""
        return [n for n in self.nodes if n.needs_review]

    def structural_digest(self) -> str:
        return compute_graph_id(self.nodes, self.edges)

    def validate(self, check_id: bool = True) -> None:
        """
        Check the graph invariants.

        Raises:
            GraphValidationError: on the first violated invariant.
        """
        if not self.nodes:
            raise GraphValidationError("Graph has no nodes")

        ids = [n.id for n in self.nodes]
        if len(set(ids)) != len(ids):
            raise GraphValidationError(f"Duplicate node ids in graph {self.id}")
        known = set(ids)

        incoming: Dict[str, int] = {i: 0 for i in ids}
        adjacency: Dict[str, List[str]] = {i: [] for i in ids}
        undirected: Dict[str, List[str]] = {i: [] for i in ids}
        for edge in self.edges:
            if edge.source not in known or edge.target not in known:
                raise GraphValidationError(
                    f"Edge {edge.source}->{edge.target} references an unknown node"
                )
            incoming[edge.target] += 1
            undirected[edge.source].append(edge.target)
            undirected[edge.target].append(edge.source)
            if edge.type == EdgeType.SEQUENTIAL:
                adjacency[edge.source].append(edge.target)

        roots = [i for i in ids if incoming[i] == 0]
        if len(roots) != 1:
            raise GraphValidationError(f"Graph must have exactly one root, found {len(roots)}")

        # Weak connectivity from the root.
        seen = {roots[0]}
        stack = [roots[0]]
        while stack:
            for nxt in undirected[stack.pop()]:
                if nxt not in seen:
                    seen.add(nxt)
                    stack.append(nxt)
        orphans = known - seen
        if orphans:
            raise GraphValidationError(f"Orphan nodes: {sorted(orphans)}")

        if _has_cycle(adjacency):
            raise GraphValidationError("Sequential edges form a cycle")

        for node in self.nodes:
            if node.type in TARGETED_TYPES and node.selector_ref is None \
                    and not node.instructions.is_fully_resolved:
                raise GraphValidationError(
                    f"Node {node.id} ({node.type.value}) has neither a selector ref nor a literal selector"
                )

        if check_id and self.id != self.structural_digest():
            raise GraphValidationError(f"Graph id {self.id} does not match its content")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "specHash": self.spec_hash,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionGraph":
        return cls(
            id=data["id"],
            spec_hash=data["specHash"],
            nodes=tuple(ActionNode.from_dict(n) for n in data["nodes"]),
            edges=tuple(Edge.from_dict(e) for e in data["edges"]),
            metadata=GraphMetadata.from_dict(data["metadata"]),
        )


def _has_cycle(adjacency: Dict[str, List[str]]) -> bool:
    visiting, done = set(), set()

    def visit(node_id: str) -> bool:
        if node_id in done:
            return False
        if node_id in visiting:
            return True
        visiting.add(node_id)
        if any(visit(n) for n in adjacency[node_id]):
            return True
        visiting.discard(node_id)
        done.add(node_id)
        return False

    return any(visit(n) for n in adjacency)
