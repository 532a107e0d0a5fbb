"""
Error taxonomy for SpecGraph.

Build-time errors abort the whole compilation. Resolution errors abort
only the current interaction and carry enough context to reproduce it.
"""

from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from specgraph.layers.resolve.strategies import ResolutionAttempt


class SpecGraphError(Exception):
    """Base class for every error raised by SpecGraph."""


class EmptySpecification(SpecGraphError):
    """The specification contains no steps."""

    def __init__(self, message: str = "Specification contains no steps"):
        super().__init__(message)


class MalformedStep(SpecGraphError):
    """A step could not be compiled into an action node."""

    def __init__(self, step_index: int, keyword: str, step_text: str, reason: str):
        self.step_index = step_index
        self.keyword = keyword
        self.step_text = step_text
        self.reason = reason
        super().__init__(f"Step {step_index} ({keyword} {step_text!r}): {reason}")


class GraphValidationError(SpecGraphError):
    """An ActionGraph violates a structural invariant."""


class GraphIdCollisionMismatch(SpecGraphError):
    """
    Two graphs with different structure share one id.

    This indicates a hashing defect and is never recoverable.
    """

    def __init__(self, graph_id: str, stored_digest: str, incoming_digest: str):
        self.graph_id = graph_id
        self.stored_digest = stored_digest
        self.incoming_digest = incoming_digest
        super().__init__(
            f"Graph id {graph_id} already stores different content "
            f"(stored={stored_digest[:12]}, incoming={incoming_digest[:12]})"
        )


class PersistenceIOError(SpecGraphError):
    """Reading or writing the graph store failed."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(f"{message} ({path})" if path else message)


class GraphNotFoundError(SpecGraphError, KeyError):
    """A required graph id is not present in the store."""

    def __str__(self) -> str:
        return f"Graph not found: {self.args[0]}" if self.args else "Graph not found"


class SelectorResolutionError(SpecGraphError):
    """No strategy identified exactly one element for a hint bundle."""

    def __init__(
        self,
        attempts: List["ResolutionAttempt"],
        hints: Dict[str, Any],
        node_id: Optional[str] = None,
        step_text: Optional[str] = None,
    ):
        self.attempts = list(attempts)
        self.hints = dict(hints)
        self.node_id = node_id
        self.step_text = step_text
        super().__init__(self._format())

    def _format(self) -> str:
        tried = ", ".join(
            f"{a.strategy}={a.candidate_count}" for a in self.attempts if not a.skipped
        ) or "none applicable"
        where = f" for node {self.node_id}" if self.node_id else ""
        step = f" ({self.step_text!r})" if self.step_text else ""
        return f"Could not resolve {self.hints}{where}{step}; candidates per strategy: {tried}"

    def with_context(self, node_id: Optional[str], step_text: Optional[str]) -> "SelectorResolutionError":
        """Return a copy of this error carrying the node that triggered it."""
        return type(self)(self.attempts, self.hints, node_id=node_id, step_text=step_text)


class AmbiguousMatch(SelectorResolutionError):
    """More than one equally confident element matched the hint bundle."""

    def _format(self) -> str:
        return "Ambiguous match: " + super()._format()


class InvalidSelectorHint(SelectorResolutionError):
    """A hint bundle that cannot be evaluated, such as a malformed CSS selector."""

    def __init__(
        self,
        attempts: List["ResolutionAttempt"],
        hints: Dict[str, Any],
        node_id: Optional[str] = None,
        step_text: Optional[str] = None,
        reason: str = "invalid hint",
    ):
        self.reason = reason
        super().__init__(attempts, hints, node_id=node_id, step_text=step_text)

    def _format(self) -> str:
        where = f" for node {self.node_id}" if self.node_id else ""
        step = f" ({self.step_text!r})" if self.step_text else ""
        return f"Invalid selector hint {self.hints}{where}{step}: {self.reason}"

    def with_context(self, node_id: Optional[str], step_text: Optional[str]) -> "InvalidSelectorHint":
        return InvalidSelectorHint(
            self.attempts, self.hints, node_id=node_id, step_text=step_text, reason=self.reason
        )


class StepAssertionError(AssertionError):
    """A generated assertion step failed against the live page."""
