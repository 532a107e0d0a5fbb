#!/usr/bin/env python3
"""
Compile Login Flow Example
==========================

This example compiles examples/login.feature into action graphs, stores
them, writes pytest-bdd step definitions and then checks each targeted
node against a saved copy of the login page.

No browser is needed: resolution runs against examples/login.html.

Usage:
    python examples/compile_login_flow.py
"""

import os

from specgraph import GraphBuilder, GraphStore, resolve_selector
from specgraph.codegen.generator import default_output_name, generate_steps, write_generated
from specgraph.core.errors import SelectorResolutionError
from specgraph.layers.sense.html_snapshot import HtmlDocument

HERE = os.path.dirname(os.path.abspath(__file__))


def main():
    """Compile, store, generate and check the login feature."""

    print("=" * 60)
    print("SpecGraph - Compile Login Flow Example")
    print("=" * 60)
    print()

    with open(os.path.join(HERE, "login.feature"), encoding="utf-8") as f:
        feature_text = f.read()

    store = GraphStore(os.path.join(HERE, "specgraph_store"))
    out_dir = os.path.join(HERE, "generated")
    document = HtmlDocument.from_file(os.path.join(HERE, "login.html"))

    for graph in GraphBuilder().build_feature(feature_text):
        location = store.save(graph)
        path = os.path.join(out_dir, default_output_name(graph))
        written = write_generated(path, generate_steps(graph))

        print(f"Scenario: {graph.metadata.scenario_name}")
        print(f"  Graph:  {graph.id[:12]} ({len(graph.nodes)} nodes)")
        print(f"  Stored: {location}")
        print(f"  Steps:  {path} ({'written' if written else 'unchanged'})")

        # Only the first page is captured, so later nodes may not resolve here
        for node in graph.nodes:
            if node.selector_ref is None:
                continue
            try:
                resolution = resolve_selector(document, **node.selector_ref.hints())
                print(f"    {node.id}: {resolution.locator} ({resolution.confidence.value})")
            except SelectorResolutionError as e:
                print(f"    {node.id}: not on this page ({e})")
        print()

    print("Done!")


if __name__ == "__main__":
    main()
