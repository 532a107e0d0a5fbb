"""Sense Layer - document contexts over live and saved pages."""

from specgraph.layers.sense.dom_mapper import ElementNode, SeleniumDocument
from specgraph.layers.sense.html_snapshot import HtmlDocument

__all__ = ["ElementNode", "SeleniumDocument", "HtmlDocument"]
