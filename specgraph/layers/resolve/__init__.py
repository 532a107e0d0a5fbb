"""Resolve Layer - hint bundles to locators."""

from specgraph.layers.resolve.resolver import Resolution, SelectorResolver

__all__ = ["Resolution", "SelectorResolver"]
