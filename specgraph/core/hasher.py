"""
Spec Hasher - stable content identifiers.

Two digests live here: the spec hash over normalized human-authored text,
and the content hash over canonical JSON used for structural graph ids.
"""

import hashlib
import json
import re
from typing import Any

_WHITESPACE = re.compile(r"\s+")


def normalize_spec_text(text: str) -> str:
    """Trim and collapse internal whitespace. Case and punctuation are kept."""
    return _WHITESPACE.sub(" ", text).strip()


def hash_spec(text: str) -> str:
    """SHA-256 hex digest of the normalized specification text."""
    normalized = normalize_spec_text(text)
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def canonical_json(payload: Any) -> str:
    """Serialize a JSON-compatible payload to one canonical string."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def hash_content(payload: Any) -> str:
    """SHA-256 hex digest of a JSON-compatible payload."""
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
