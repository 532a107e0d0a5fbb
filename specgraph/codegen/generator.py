"""
Step Code Generator - renders pytest-bdd step definitions from a graph.

Output depends only on the graph and GENERATOR_VERSION: no timestamps,
no environment lookups, no dictionary iteration over unordered input.
Nodes with a hint bundle call the resolver at run time; selectors are
only embedded when the step itself named one.
"""

import json
import os
from typing import Dict, List, Optional, Tuple
import logging

from specgraph.core.step_parser import slugify
from specgraph.graph.model import (
    ActionGraph,
    ActionNode,
    DeterministicInstructions,
    NodeType,
    RuntimeReference,
)

logger = logging.getLogger(__name__)

GENERATOR_VERSION = "1"
RUNTIME_FIXTURE = "specgraph_runtime"

HEADER_GENERATOR = "# specgraph-generator:"
HEADER_SPEC_HASH = "# spec-hash:"
HEADER_GRAPH_ID = "# graph-id:"

_DECORATORS = {"given": "given", "when": "when", "then": "then"}


def _lit(value) -> str:
    """Python source literal for a string or number."""
    if isinstance(value, float):
        return repr(value)
    # Non-ASCII stays literal; JSON surrogate pair escapes are not Python escapes.
    return json.dumps(value, ensure_ascii=False)


def default_output_name(graph: ActionGraph) -> str:
    scenario = slugify(graph.metadata.scenario_name or "") or "scenario"
    return f"steps_{scenario}_{graph.id[:12]}.py"


class StepCodeGenerator:
    """
    Generates one step-definition module per ActionGraph.

    Example:
        >>> source = StepCodeGenerator().generate(graph)
        >>> source == StepCodeGenerator().generate(graph)
        True
    """

    def __init__(self, fixture_name: str = RUNTIME_FIXTURE):
        self.fixture_name = fixture_name

    def generate(self, graph: ActionGraph) -> str:
        bindings: List[Tuple[str, ActionNode]] = []
        seen = set()
        uses_env = False
        previous = "given"
        for node in graph.nodes:
            keyword = self._effective_keyword(node.step.keyword, previous)
            previous = keyword
            key = (keyword, node.step.text)
            if key in seen:
                continue
            seen.add(key)
            bindings.append((keyword, node))
            if isinstance(node.instructions, DeterministicInstructions) and node.instructions.env_var:
                uses_env = True

        decorators = sorted({k for k, _ in bindings})
        lines: List[str] = [
            f"{HEADER_GENERATOR} {GENERATOR_VERSION}",
            f"{HEADER_SPEC_HASH} {graph.spec_hash}",
            f"{HEADER_GRAPH_ID} {graph.id}",
            "# Generated from an action graph. Regenerate instead of editing.",
            f'"""Step definitions for scenario {_lit(graph.metadata.scenario_name or "")}."""',
            "",
        ]
        if uses_env:
            lines += ["import os", ""]
        lines += [
            f"from pytest_bdd import {', '.join(_DECORATORS[d] for d in decorators)}",
            "",
            f"GRAPH_ID = {_lit(graph.id)}",
            f"SPEC_HASH = {_lit(graph.spec_hash)}",
        ]
        for keyword, node in bindings:
            lines += ["", ""]
            lines += self._render_binding(keyword, node)

        logger.info(f"[StepCodeGenerator] Rendered {len(bindings)} bindings for graph {graph.id[:12]}")
        return "\n".join(lines) + "\n"

    @staticmethod
    def _effective_keyword(keyword: str, previous: str) -> str:
        lowered = keyword.strip().lower()
        if lowered in _DECORATORS:
            return lowered
        return previous

    def _render_binding(self, keyword: str, node: ActionNode) -> List[str]:
        rt = self.fixture_name
        body = self._render_body(node)
        header = [
            f"@{_DECORATORS[keyword]}({_lit(node.step.text)})",
            f"def {node.id}_{node.type.value.replace('-', '_')}({rt}):",
            f"    with {rt}.node(GRAPH_ID, {_lit(node.id)}, {_lit(node.step.text)}):",
        ]
        return header + [f"        {line}" for line in body]

    def _render_body(self, node: ActionNode) -> List[str]:
        rt = self.fixture_name
        ins = node.instructions

        if node.type == NodeType.CUSTOM or (isinstance(ins, RuntimeReference) and ins.ref_kind == "manual"):
            return [f"raise NotImplementedError({_lit('Step needs a manual binding: ' + node.step.text)})"]

        if node.type == NodeType.NAVIGATE:
            if isinstance(ins, RuntimeReference):
                return [f"{rt}.navigate(page={_lit(ins.key)})"]
            return [f"{rt}.navigate(url={_lit(ins.url)})"]

        if node.type == NodeType.ASSERT_URL:
            if isinstance(ins, RuntimeReference):
                return [f"{rt}.assert_url(page={_lit(ins.key)})"]
            return [f"{rt}.assert_url({_lit(ins.value)})"]

        if node.type == NodeType.WAIT:
            if ins.seconds is not None:
                return [f"{rt}.wait({_lit(float(ins.seconds))})"]
            return [f"{rt}.wait_for({self._hint_args(node)})"]

        locate = f"target = {rt}.locate({self._hint_args(node)})"
        if node.type == NodeType.INPUT:
            return [locate, f"{rt}.fill(target, {self._value_expr(ins)})"]
        if node.type == NodeType.CLICK:
            return [locate, f"{rt}.click(target)"]
        if node.type == NodeType.ASSERT_TEXT:
            if node.selector_ref is None and not ins.selector:
                return [f"{rt}.assert_text({self._value_expr(ins)})"]
            return [locate, f"{rt}.assert_text({self._value_expr(ins)}, target)"]

        raise ValueError(f"No renderer for node type {node.type.value}")

    @staticmethod
    def _hint_args(node: ActionNode) -> str:
        ins = node.instructions
        args: Dict[str, str] = {}
        if isinstance(ins, DeterministicInstructions) and ins.selector:
            args["explicit_selector"] = ins.selector
        if node.selector_ref is not None:
            args.update(node.selector_ref.hints())
        order = ["explicit_selector", "text_hint", "role_hint", "type_hint", "structural_hint"]
        return ", ".join(f"{k}={_lit(args[k])}" for k in order if k in args)

    @staticmethod
    def _value_expr(ins: DeterministicInstructions) -> str:
        if ins.env_var:
            return f"os.environ.get({_lit(ins.env_var)}, {_lit(ins.value or '')})"
        return _lit(ins.value or "")


def generate_steps(graph: ActionGraph, fixture_name: Optional[str] = None) -> str:
    """Render step definitions for ``graph`` with the default generator."""
    return StepCodeGenerator(fixture_name or RUNTIME_FIXTURE).generate(graph)


def write_generated(path: str, source: str) -> bool:
    """Write ``source`` to ``path`` unless it already holds it. Returns True if written."""
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            if f.read() == source:
                return False
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(source)
    logger.info(f"[StepCodeGenerator] Wrote {path}")
    return True
