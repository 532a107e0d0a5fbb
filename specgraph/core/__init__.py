"""Core module - hashing, step parsing, errors and configuration."""

from specgraph.core.errors import SpecGraphError
from specgraph.core.hasher import hash_spec, normalize_spec_text
from specgraph.core.config import SpecGraphConfig

__all__ = ["SpecGraphError", "hash_spec", "normalize_spec_text", "SpecGraphConfig"]
