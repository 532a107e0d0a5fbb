"""Graph module - action graph model, builder and store."""

from specgraph.graph.model import ActionGraph, ActionNode, Edge, NodeType, SelectorRef

__all__ = ["ActionGraph", "ActionNode", "Edge", "NodeType", "SelectorRef"]
