"""
Stale-artifact detection for generated step modules.

Generated code is trusted only when the spec hash in its header matches
the current source text and, when a freshly built graph is supplied, the
graph id matches as well. A generator version bump also marks it stale.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence
import logging

from specgraph.codegen.generator import (
    GENERATOR_VERSION,
    HEADER_GENERATOR,
    HEADER_GRAPH_ID,
    HEADER_SPEC_HASH,
)
from specgraph.core.hasher import hash_spec
from specgraph.graph.model import ActionGraph

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TraceHeader:
    generator_version: str
    spec_hash: str
    graph_id: str


@dataclass
class StalenessReport:
    fresh: bool
    reasons: List[str] = field(default_factory=list)
    header: Optional[TraceHeader] = None


def read_trace_header(source: str) -> Optional[TraceHeader]:
    """Parse the traceability comment block at the top of a generated module."""
    values = {}
    for line in source.splitlines()[:10]:
        for prefix in (HEADER_GENERATOR, HEADER_SPEC_HASH, HEADER_GRAPH_ID):
            if line.startswith(prefix):
                values[prefix] = line[len(prefix):].strip()
    if len(values) != 3:
        return None
    return TraceHeader(
        generator_version=values[HEADER_GENERATOR],
        spec_hash=values[HEADER_SPEC_HASH],
        graph_id=values[HEADER_GRAPH_ID],
    )


def check_staleness(
    generated_source: str,
    spec_text: Optional[str] = None,
    graph: Optional[ActionGraph] = None,
) -> StalenessReport:
    """
    Decide whether previously generated code may still be used.

    Args:
        generated_source: Contents of the generated module.
        spec_text: Current source specification text.
        graph: Graph compiled from the current text, when available.
    """
    header = read_trace_header(generated_source)
    if header is None:
        return StalenessReport(fresh=False, reasons=["missing traceability header"])

    reasons: List[str] = []
    if header.generator_version != GENERATOR_VERSION:
        reasons.append(
            f"generator version {header.generator_version} != {GENERATOR_VERSION}"
        )
    if spec_text is not None:
        current = hash_spec(spec_text)
        if current != header.spec_hash:
            reasons.append(f"spec hash {header.spec_hash[:12]} != current {current[:12]}")
    if graph is not None:
        if graph.id != header.graph_id:
            reasons.append(f"graph id {header.graph_id[:12]} != current {graph.id[:12]}")
        if graph.spec_hash != header.spec_hash and spec_text is None:
            reasons.append(f"spec hash {header.spec_hash[:12]} != graph {graph.spec_hash[:12]}")

    if reasons:
        logger.warning(f"[Staleness] Generated code for {header.graph_id[:12]} is stale: {'; '.join(reasons)}")
    return StalenessReport(fresh=not reasons, reasons=reasons, header=header)


def check_against_feature(
    generated_source: str,
    spec_text: str,
    graphs: Sequence[ActionGraph],
) -> StalenessReport:
    """
    Check one generated module against every graph its feature compiles to.

    The module is fresh only if its graph id is among ``graphs``.
    """
    header = read_trace_header(generated_source)
    if header is None:
        return check_staleness(generated_source, spec_text)
    graph = next((g for g in graphs if g.id == header.graph_id), None)
    report = check_staleness(generated_source, spec_text, graph)
    if graph is None:
        report.reasons.append(f"graph id {header.graph_id[:12]} is no longer produced by the specification")
        report.fresh = False
    return report
