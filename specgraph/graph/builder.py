"""
Graph Builder - compiles parsed steps into an ActionGraph.

Steps are classified in order, hints are extracted lexically, node ids
are assigned sequentially and consecutive nodes are chained with
sequential edges. No step is reordered or collapsed.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence
import logging

from specgraph.core.errors import EmptySpecification
from specgraph.core.hasher import hash_spec
from specgraph.core.step_parser import ParsedScenario, ParsedStep, RegexStepParser, read_feature
from specgraph.graph.model import (
    ActionGraph,
    ActionNode,
    Edge,
    EdgeType,
    GherkinStepRef,
    GraphAuthorship,
    GraphMetadata,
    compute_graph_id,
)

logger = logging.getLogger(__name__)


def render_steps(steps: Sequence[ParsedStep]) -> str:
    """Reconstruct spec text from steps when no source text is supplied."""
    return "\n".join(f"{s.keyword} {s.text}" for s in steps)


class GraphBuilder:
    """
    Compiles an ordered step list into an ActionGraph.

    Example:
        >>> builder = GraphBuilder()
        >>> graph = builder.build([ParsedStep("Given", "I am on the login page")])
        >>> graph.nodes[0].type
        <NodeType.NAVIGATE: 'navigate'>
    """

    def __init__(self, parser: Optional[RegexStepParser] = None):
        self.parser = parser or RegexStepParser()

    def build(
        self,
        steps: Sequence[ParsedStep],
        authorship: GraphAuthorship = GraphAuthorship.HUMAN,
        spec_text: Optional[str] = None,
        scenario_name: Optional[str] = None,
        feature_name: Optional[str] = None,
        tags: Iterable[str] = (),
        version_tag: str = "",
        created_at: Optional[str] = None,
    ) -> ActionGraph:
        """
        Compile steps into a graph.

        Args:
            steps: Parsed steps in execution order.
            authorship: Whether a human or a machine wrote the spec.
            spec_text: Source text the spec hash is taken over. Defaults to
                the steps rendered one per line.
            created_at: ISO timestamp override for reproducible builds.

        Raises:
            EmptySpecification: if ``steps`` is empty.
            MalformedStep: if any step cannot be compiled. Nothing is
                returned for the other steps.
        """
        steps = list(steps)
        if not steps:
            raise EmptySpecification()

        nodes: List[ActionNode] = []
        for index, step in enumerate(steps):
            intent = self.parser.parse(step, index)
            node = ActionNode(
                id=f"step_{index}",
                type=intent.node_type,
                step=GherkinStepRef(keyword=step.keyword, text=step.text),
                instructions=intent.instructions,
                selector_ref=intent.selector_ref,
                needs_review=intent.needs_review,
            )
            if node.needs_review:
                logger.warning(f"[GraphBuilder] Step {index} flagged for manual review: {step.text!r}")
            nodes.append(node)

        edges = [
            Edge(source=a.id, target=b.id, type=EdgeType.SEQUENTIAL)
            for a, b in zip(nodes, nodes[1:])
        ]

        graph = ActionGraph(
            id=compute_graph_id(nodes, edges),
            spec_hash=hash_spec(spec_text if spec_text is not None else render_steps(steps)),
            nodes=tuple(nodes),
            edges=tuple(edges),
            metadata=GraphMetadata(
                created_at=created_at or datetime.now(timezone.utc).isoformat(timespec="seconds"),
                authorship=GraphAuthorship(authorship),
                version_tag=version_tag,
                scenario_name=scenario_name,
                feature_name=feature_name,
                tags=tuple(dict.fromkeys(tags)),
            ),
        )
        graph.validate()
        logger.info(
            f"[GraphBuilder] Built graph {graph.id[:12]} with {len(nodes)} nodes "
            f"({len(graph.review_nodes)} flagged)"
        )
        return graph

    def build_scenario(self, scenario: ParsedScenario, spec_text: str, **kwargs) -> ActionGraph:
        return self.build(
            scenario.steps,
            spec_text=spec_text,
            scenario_name=scenario.name,
            feature_name=scenario.feature_name,
            tags=scenario.tags,
            **kwargs,
        )

    def build_feature(self, feature_text: str, **kwargs) -> List[ActionGraph]:
        """
        Compile every scenario of a feature.

        All graphs share the spec hash of the whole feature text, so editing
        any scenario marks every artifact of the file as stale.
        """
        scenarios = read_feature(feature_text)
        if not scenarios:
            raise EmptySpecification("Feature text contains no scenarios")
        return [self.build_scenario(s, feature_text, **kwargs) for s in scenarios]


def build_graph(
    steps: Sequence[ParsedStep],
    authorship: GraphAuthorship = GraphAuthorship.HUMAN,
    **kwargs,
) -> ActionGraph:
    """Compile steps with the default rule set."""
    return GraphBuilder().build(steps, authorship, **kwargs)
