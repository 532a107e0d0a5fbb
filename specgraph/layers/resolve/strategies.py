"""
Resolution strategies - pure functions from (document, hints) to candidates.

Each strategy returns None when its hints are absent (not applicable) or a
StrategyOutcome holding every element it considers a match together with
the confidence a unique match would carry. Strategies never choose between
candidates arbitrarily; the resolver decides what a count means.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from specgraph.layers.sense.dom_mapper import DocumentContext, ElementNode


class Confidence(str, Enum):
    EXACT = "exact"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"exact": 3, "high": 2, "medium": 1, "low": 0}[self.value]


@dataclass(frozen=True)
class HintBundle:
    """Everything one resolution may use to identify an element."""
    explicit_selector: Optional[str] = None
    text_hint: Optional[str] = None
    role_hint: Optional[str] = None
    type_hint: Optional[str] = None
    structural_hint: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        pairs = [
            ("explicit_selector", self.explicit_selector),
            ("text_hint", self.text_hint),
            ("role_hint", self.role_hint),
            ("type_hint", self.type_hint),
            ("structural_hint", self.structural_hint),
        ]
        return {k: v for k, v in pairs if v}

    def structural(self) -> Tuple[Optional[int], Dict[str, str]]:
        """
        Parse ``structural_hint`` into (nth, attribute filters).

        The hint is ``;``-separated ``key=value`` pairs. ``nth`` is a
        1-based ordinal; every other key is an exact attribute match.

        Raises:
            ValueError: if a pair has no ``=`` or ``nth`` is not a positive integer.
        """
        nth: Optional[int] = None
        attributes: Dict[str, str] = {}
        for part in (self.structural_hint or "").split(";"):
            part = part.strip()
            if not part:
                continue
            if "=" not in part:
                raise ValueError(f"Structural hint part {part!r} is not key=value")
            key, value = (s.strip() for s in part.split("=", 1))
            if key == "nth":
                if not value.isdigit():
                    raise ValueError(f"nth must be a positive integer, got {value!r}")
                nth = int(value)
                if nth < 1:
                    raise ValueError(f"nth must be 1 or greater, got {nth}")
            else:
                attributes[key] = value
        return nth, attributes


@dataclass(frozen=True)
class StrategyOutcome:
    candidates: Tuple[ElementNode, ...]
    confidence: Confidence


@dataclass(frozen=True)
class ResolutionAttempt:
    """One strategy's result, kept for error reports and drift output."""
    strategy: str
    candidate_count: int
    skipped: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "strategy": self.strategy,
            "candidate_count": self.candidate_count,
            "skipped": self.skipped,
        }


Strategy = Callable[[DocumentContext, HintBundle], Optional[StrategyOutcome]]

# Attributes an element's identity is commonly spelled out in.
NAMING_ATTRIBUTES = ("name", "id", "placeholder", "aria-label", "data-testid", "title")

_TOKEN = re.compile(r"[a-z0-9]+")
_TEXT_INPUT_TYPES = ("text", "email", "password", "search", "tel", "url", "number", "date", "")


def _normalize(value: str) -> str:
    return " ".join(value.lower().split())


def innermost(candidates: List[ElementNode]) -> List[ElementNode]:
    """Drop candidates that contain another candidate."""
    contained_in = set()
    for node in candidates:
        contained_in.update(node.ancestor_ids)
    return [node for node in candidates if node.id not in contained_in]


def _prefer_exact(candidates: List[ElementNode], text: str) -> List[ElementNode]:
    """Narrow substring matches to whole-text matches when that is decisive."""
    if len(candidates) < 2:
        return candidates
    needle = _normalize(text)
    exact = [c for c in candidates if _normalize(c.text) == needle or _normalize(c.name) == needle]
    return exact if len(exact) == 1 else candidates


def matches_type(node: ElementNode, type_hint: str) -> bool:
    type_hint = type_hint.lower()
    input_type = node.attributes.get("type", "").lower()
    if type_hint == "input":
        return node.tag == "input" and input_type in _TEXT_INPUT_TYPES
    if type_hint == "button":
        return (
            node.tag == "button"
            or (node.tag == "input" and input_type in ("button", "submit", "reset", "image"))
            or node.role == "button"
        )
    if type_hint == "submit":
        return (node.tag == "button" and input_type in ("submit", "")) or (
            node.tag == "input" and input_type in ("submit", "image")
        )
    if type_hint in ("a", "link"):
        return node.role == "link"
    if type_hint == "heading":
        return node.role == "heading"
    if type_hint == "checkbox":
        return node.role == "checkbox"
    return node.tag == type_hint


def explicit_selector(document: DocumentContext, hints: HintBundle) -> Optional[StrategyOutcome]:
    if not hints.explicit_selector:
        return None
    return StrategyOutcome(tuple(document.query(hints.explicit_selector)), Confidence.EXACT)


def role_text(document: DocumentContext, hints: HintBundle) -> Optional[StrategyOutcome]:
    """Elements exposing ``role_hint`` whose text or accessible name contains ``text_hint``."""
    if not (hints.role_hint and hints.text_hint):
        return None
    role = hints.role_hint.lower()
    candidates = [
        e for e in document.elements()
        if (e.role or "") == role and e.matches_text(hints.text_hint)
    ]
    candidates = _prefer_exact(innermost(candidates), hints.text_hint)
    return StrategyOutcome(tuple(candidates), Confidence.HIGH)


def text_match(document: DocumentContext, hints: HintBundle) -> Optional[StrategyOutcome]:
    """Interactive elements whose text or accessible name contains ``text_hint``."""
    if not hints.text_hint:
        return None
    candidates = [
        e for e in document.elements()
        if e.is_interactive and e.matches_text(hints.text_hint)
    ]
    candidates = _prefer_exact(innermost(candidates), hints.text_hint)
    return StrategyOutcome(tuple(candidates), Confidence.MEDIUM)


def _narrow_by_text(candidates: List[ElementNode], text_hint: str) -> List[ElementNode]:
    by_text = innermost([e for e in candidates if e.matches_text(text_hint)])
    if by_text:
        return by_text
    tokens = _TOKEN.findall(text_hint.lower())
    if not tokens:
        return []
    return [
        e for e in candidates
        if all(
            tok in " ".join(e.attributes.get(a, "") for a in NAMING_ATTRIBUTES).lower()
            for tok in tokens
        )
    ]


def type_match(document: DocumentContext, hints: HintBundle) -> Optional[StrategyOutcome]:
    """
    Elements of ``type_hint`` narrowed by structure, then by text.

    Attribute filters from the structural hint apply first. When the text
    hint is present, elements whose text or accessible name contain it are
    kept; failing that, elements whose naming attributes such as ``name``
    or ``placeholder`` hold all of its words. If neither narrows and no
    structural hint was given, nothing matches. ``nth`` picks by position
    last, among the elements the text narrowed to.
    """
    if not hints.type_hint:
        return None
    nth, attributes = hints.structural()
    candidates = [e for e in document.elements() if matches_type(e, hints.type_hint)]
    if attributes:
        candidates = [
            e for e in candidates
            if all(e.attributes.get(k) == v for k, v in attributes.items())
        ]
    if hints.text_hint:
        narrowed = _narrow_by_text(candidates, hints.text_hint)
        if narrowed:
            candidates = narrowed
        elif nth is None and not attributes:
            candidates = []
    if nth is not None:
        candidates = candidates[nth - 1:nth]
    return StrategyOutcome(tuple(candidates), Confidence.LOW)


STRATEGIES: Dict[str, Strategy] = {
    "explicit": explicit_selector,
    "role_text": role_text,
    "text": text_match,
    "type": type_match,
}

DEFAULT_STRATEGY_ORDER: Tuple[str, ...] = ("explicit", "role_text", "text", "type")
