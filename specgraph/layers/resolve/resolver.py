"""
Selector Resolver - turns a hint bundle into one live locator.

Strategies are tried in priority order and the first one that yields
exactly one candidate wins. Nothing is cached between calls: every
resolution looks at the document as it is now, so markup drift shows up
immediately instead of being masked by a remembered locator.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence
import logging

from specgraph.core.errors import AmbiguousMatch, InvalidSelectorHint, SelectorResolutionError
from specgraph.layers.resolve.strategies import (
    DEFAULT_STRATEGY_ORDER,
    STRATEGIES,
    Confidence,
    HintBundle,
    ResolutionAttempt,
)
from specgraph.layers.sense.dom_mapper import DocumentContext, ElementNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Resolution:
    """A resolved locator and how it was found."""
    locator: str
    confidence: Confidence
    strategy: str
    element: ElementNode
    attempts: List[ResolutionAttempt] = field(default_factory=list, compare=False)

    def to_dict(self):
        return {
            "locator": self.locator,
            "confidence": self.confidence.value,
            "strategy": self.strategy,
            "element": self.element.to_dict(),
            "attempts": [a.to_dict() for a in self.attempts],
        }


class SelectorResolver:
    """
    Resolves hint bundles against a document context.

    The resolver holds only its strategy order, so one instance can be
    shared between concurrently running tests.

    Example:
        >>> resolver = SelectorResolver()
        >>> resolution = resolver.resolve(document, text_hint="email")
        >>> resolution.confidence
        <Confidence.MEDIUM: 'medium'>
    """

    def __init__(self, strategy_order: Optional[Sequence[str]] = None):
        order = tuple(strategy_order) if strategy_order else DEFAULT_STRATEGY_ORDER
        unknown = [name for name in order if name not in STRATEGIES]
        if unknown:
            raise ValueError(f"Unknown resolution strategies: {', '.join(unknown)}")
        self.strategy_order = order

    def resolve(
        self,
        document: DocumentContext,
        explicit_selector: Optional[str] = None,
        text_hint: Optional[str] = None,
        role_hint: Optional[str] = None,
        type_hint: Optional[str] = None,
        structural_hint: Optional[str] = None,
        node_id: Optional[str] = None,
        step_text: Optional[str] = None,
    ) -> Resolution:
        """
        Resolve one element.

        Raises:
            AmbiguousMatch: if some strategy found several candidates and
                none found exactly one.
            SelectorResolutionError: if no strategy found any candidate.
            InvalidSelectorHint: if the explicit selector is not valid CSS
                or the structural hint cannot be parsed.
        """
        hints = HintBundle(
            explicit_selector=explicit_selector,
            text_hint=text_hint,
            role_hint=role_hint,
            type_hint=type_hint,
            structural_hint=structural_hint,
        )
        attempts: List[ResolutionAttempt] = []

        try:
            hints.structural()
        except ValueError as e:
            raise InvalidSelectorHint(
                attempts, hints.to_dict(), node_id=node_id, step_text=step_text, reason=str(e)
            ) from e

        for name in self.strategy_order:
            try:
                outcome = STRATEGIES[name](document, hints)
            except ValueError as e:
                logger.warning(f"[SelectorResolver] {name}: {e}")
                raise InvalidSelectorHint(
                    attempts, hints.to_dict(), node_id=node_id, step_text=step_text, reason=str(e)
                ) from e
            if outcome is None:
                attempts.append(ResolutionAttempt(name, 0, skipped=True))
                continue
            count = len(outcome.candidates)
            attempts.append(ResolutionAttempt(name, count))
            logger.debug(f"[SelectorResolver] {name}: {count} candidate(s) for {hints.to_dict()}")
            if count == 1:
                element = outcome.candidates[0]
                logger.info(
                    f"[SelectorResolver] Resolved {element.selector!r} via {name} "
                    f"({outcome.confidence.value})"
                )
                return Resolution(
                    locator=element.selector,
                    confidence=outcome.confidence,
                    strategy=name,
                    element=element,
                    attempts=attempts,
                )

        error_cls = AmbiguousMatch if any(a.candidate_count > 1 for a in attempts) else SelectorResolutionError
        raise error_cls(attempts, hints.to_dict(), node_id=node_id, step_text=step_text)


def resolve_selector(document: DocumentContext, **hints) -> Resolution:
    """Resolve with the default strategy order."""
    return SelectorResolver().resolve(document, **hints)
