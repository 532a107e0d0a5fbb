"""Action Layer - runtime for generated step definitions."""

from specgraph.layers.action.executor import StepRuntime

__all__ = ["StepRuntime"]
