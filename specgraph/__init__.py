"""
SpecGraph - Gherkin specifications compiled into action graphs

Compiles scenarios into content-addressed graphs, persists them,
generates pytest-bdd step definitions and resolves selectors at run time
from hint bundles instead of hard-coded locators.
"""

__version__ = "0.1.0"

from specgraph.graph.builder import GraphBuilder, build_graph
from specgraph.graph.persistence import GraphStore
from specgraph.codegen.generator import StepCodeGenerator, generate_steps
from specgraph.layers.resolve.resolver import SelectorResolver, resolve_selector

__all__ = [
    "GraphBuilder",
    "GraphStore",
    "SelectorResolver",
    "StepCodeGenerator",
    "build_graph",
    "generate_steps",
    "resolve_selector",
    "__version__",
]
