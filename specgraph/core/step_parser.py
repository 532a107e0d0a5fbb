"""
Step Parser - Gherkin step text to typed step intents.

Each step is classified by an ordered list of regex rules, then the rule
for its type pulls out values, page references and the hint bundle the
Selector Resolver uses at run time. Quoted values are masked first so
that words inside them never trigger a rule.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

import soupsieve

from specgraph.core.errors import MalformedStep
from specgraph.graph.model import (
    DeterministicInstructions,
    NodeInstructions,
    NodeType,
    RuntimeReference,
    SelectorRef,
)

KEYWORDS = ("Given", "When", "Then", "And", "But")


@dataclass(frozen=True)
class ParsedStep:
    """One authored step as handed over by a feature parser."""
    keyword: str  # Given, When, Then, And, But
    text: str

    def __repr__(self) -> str:
        return f"ParsedStep({self.keyword} {self.text!r})"


@dataclass
class ParsedScenario:
    """A scenario read from feature text, background steps included."""
    name: str
    steps: List[ParsedStep] = field(default_factory=list)
    feature_name: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class StepIntent:
    """What one step compiles to, before node ids are assigned."""
    node_type: NodeType
    instructions: NodeInstructions
    selector_ref: Optional[SelectorRef] = None
    needs_review: bool = False


@dataclass(frozen=True)
class ClassificationRule:
    node_type: NodeType
    pattern: Pattern[str]


def _rule(node_type: NodeType, pattern: str) -> ClassificationRule:
    return ClassificationRule(node_type, re.compile(pattern, re.IGNORECASE))


# Optional grammatical subject in front of an action verb.
_SUBJECT = r"^(?:(?:i|we|you|they|he|she|users?|(?:the|a|an)\s+[\w-]+)\s+)?"

# First matching rule wins. Assertions come first so that
# "should see the submit button" is not read as a click. Action verbs only
# count at the start of a step, so "click the Open button" stays a click.
DEFAULT_RULES: List[ClassificationRule] = [
    _rule(NodeType.ASSERT_URL, r"\burl\b.*?\bshould\s+(?:be|contain|match|equal|end\s+with)\b\s*"),
    _rule(NodeType.ASSERT_URL, r"\bshould\s+be\s+(?:on|at|redirected\s+to)\s+"),
    _rule(NodeType.ASSERT_TEXT, r"\bshould\s+(?:see|contain|display|show|read)\b\s*"),
    _rule(NodeType.ASSERT_TEXT, _SUBJECT + r"(?:see|sees)\b\s*"),
    _rule(NodeType.WAIT, _SUBJECT + r"wait(?:s|ing)?\b(?:\s+for)?\s*"),
    _rule(NodeType.NAVIGATE, _SUBJECT + r"(?:navigate|navigates|go|goes|visit|visits|open|opens)\b(?:\s+to)?\s*"),
    _rule(NodeType.NAVIGATE, _SUBJECT + r"(?:am|is|are)\s+on\s+"),
    _rule(NodeType.INPUT, _SUBJECT + r"(?:enter|enters|fill|fills|type|types|input|inputs)\b(?:\s+in)?\s*"),
    _rule(NodeType.CLICK, _SUBJECT + r"(?:click|clicks|press|presses|tap|taps|submit|submits)\b(?:\s+on)?\s*"),
]

# UI term -> (role hint, type hint)
UI_TERMS: Dict[str, Tuple[Optional[str], Optional[str]]] = {
    "button": ("button", "button"),
    "link": ("link", "a"),
    "heading": ("heading", "heading"),
    "title": ("heading", "heading"),
    "field": ("textbox", "input"),
    "input": ("textbox", "input"),
    "textbox": ("textbox", "input"),
    "box": ("textbox", "input"),
    "textarea": ("textbox", "textarea"),
    "checkbox": ("checkbox", "checkbox"),
    "dropdown": ("combobox", "select"),
    "select": ("combobox", "select"),
    "tab": ("tab", None),
}

_UI_TERM_RE = re.compile(r"\b(" + "|".join(UI_TERMS) + r")\b", re.IGNORECASE)
_LEADING_FILLER = re.compile(
    r"^(?:(?:the|a|an|on|in|into|to|at|my|our|their|his|her|its|named|called|labeled|labelled)\s+)+",
    re.IGNORECASE,
)
_QUOTED = re.compile(r"(?<![\w])([\"'])(.*?)\1(?![\w])")
_STRAY_SINGLE_QUOTE = re.compile(r"(?<![\w])'(?=\w)")
_PLACEHOLDER = re.compile(r"^<([A-Za-z_][A-Za-z0-9_]*)>$")
_ANGLE = re.compile(r"<[^<>]*>")
_MASK = re.compile(r"\x00(\d+)\x00")
_URL = re.compile(r"(?:https?://\S+|(?<!\w)/[^\s\"']*)")
_DURATION = re.compile(
    r"(\d+(?:\.\d+)?)\s*(milliseconds?|ms|seconds?|secs?|s|minutes?|mins?)\b", re.IGNORECASE
)
_CSS_LIKE = re.compile(r"^(?:css=.+|#[\w-]+.*|\.[\w-]+.*|\[[^\]]+\].*)$")

ORDINAL_WORDS = {"first": 1, "second": 2, "third": 3, "fourth": 4, "fifth": 5}
_ORDINAL = re.compile(r"^(first|second|third|fourth|fifth|\d+(?:st|nd|rd|th))\b\s*", re.IGNORECASE)


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


class StepClassifier:
    """Maps step text to a NodeType using an ordered rule list."""

    def __init__(self, rules: Optional[List[ClassificationRule]] = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    def match(self, text: str) -> Tuple[NodeType, Optional[re.Match]]:
        for rule in self.rules:
            found = rule.pattern.search(text)
            if found:
                return rule.node_type, found
        return NodeType.CUSTOM, None

    def classify(self, text: str) -> NodeType:
        return self.match(text)[0]


class _Masked:
    """Step text with quoted literals replaced by numbered placeholders."""

    def __init__(self, text: str, literals: List[str]):
        self.text = text
        self.literals = literals

    def unmask(self, text: str) -> str:
        return _MASK.sub(lambda m: self.literals[int(m.group(1))], text)

    def sole_literal(self, text: str) -> Optional[str]:
        """The literal if ``text`` is exactly one masked quote."""
        found = _MASK.fullmatch(text.strip().rstrip(".").strip())
        return self.literals[int(found.group(1))] if found else None


class RegexStepParser:
    """
    Extracts a StepIntent from one step via lightweight lexical cues.

    Quoted literals become deterministic values, ``<NAME>`` placeholders
    become environment references and words preceding a known UI term
    (button, field, heading, link) become the hint bundle.
    """

    def __init__(self, classifier: Optional[StepClassifier] = None):
        self.classifier = classifier or StepClassifier()

    def parse(self, step: ParsedStep, index: int) -> StepIntent:
        text = step.text.strip()
        masked = self._mask(step, index, text)
        node_type, found = self.classifier.match(masked.text)
        if found is None:
            return StepIntent(
                node_type=NodeType.CUSTOM,
                instructions=RuntimeReference(action="custom", ref_kind="manual"),
                needs_review=True,
            )

        rest = masked.text[found.end():].strip()
        handler = {
            NodeType.NAVIGATE: self._navigate,
            NodeType.INPUT: self._input,
            NodeType.CLICK: self._click,
            NodeType.ASSERT_TEXT: self._assert_text,
            NodeType.ASSERT_URL: self._assert_url,
            NodeType.WAIT: self._wait,
        }[node_type]
        return handler(step, index, masked, rest, found)

    # -- lexical helpers ----------------------------------------------------

    def _mask(self, step: ParsedStep, index: int, text: str) -> _Masked:
        literals: List[str] = []

        def replace(m: re.Match) -> str:
            literals.append(m.group(2))
            return f"\x00{len(literals) - 1}\x00"

        masked_text = _QUOTED.sub(replace, text)
        if '"' in masked_text or _STRAY_SINGLE_QUOTE.search(masked_text):
            raise MalformedStep(index, step.keyword, step.text, "unterminated quoted value")
        for literal in literals:
            if not literal.strip():
                raise MalformedStep(index, step.keyword, step.text, "empty quoted value")
        for literal in literals + [masked_text]:
            for angle in _ANGLE.findall(literal):
                if not _PLACEHOLDER.match(angle):
                    raise MalformedStep(
                        index, step.keyword, step.text, f"unresolvable placeholder {angle}"
                    )
        return _Masked(masked_text, literals)

    def _value(self, masked: _Masked, raw: str) -> Tuple[Optional[str], Optional[str]]:
        """Return (literal value, env var) for a value phrase."""
        literal = masked.sole_literal(raw)
        value = literal if literal is not None else masked.unmask(raw).strip().rstrip(".")
        placeholder = _PLACEHOLDER.match(value.strip())
        if placeholder:
            return value.strip(), placeholder.group(1)
        return value, None

    def _target(self, masked: _Masked, phrase: str,
                default_role: Optional[str] = None,
                default_type: Optional[str] = None) -> SelectorRef:
        """Build a hint bundle from a target phrase such as 'the Login button'."""
        phrase = phrase.strip().rstrip(".").strip()
        role, type_hint = default_role, default_type
        label = phrase
        term = None
        for term in _UI_TERM_RE.finditer(phrase):
            pass
        if term is not None:
            role, type_hint = UI_TERMS[term.group(1).lower()]
            label = phrase[:term.start()]
        label = _LEADING_FILLER.sub("", masked.unmask(label).strip()).strip(" ,")
        structural = None
        ordinal = _ORDINAL.match(label)
        if ordinal:
            word = ordinal.group(1).lower()
            position = ORDINAL_WORDS.get(word) or int(word[:-2])
            structural = f"nth={position}"
            label = label[ordinal.end():].strip()
        return SelectorRef(
            text_hint=label or None,
            role_hint=role,
            type_hint=type_hint,
            structural_hint=structural,
        )

    # -- per-type extraction ------------------------------------------------

    def _navigate(self, step, index, masked, rest, found) -> StepIntent:
        literal = masked.sole_literal(rest)
        if literal is not None:
            return StepIntent(NodeType.NAVIGATE, DeterministicInstructions(action="navigate", url=literal))
        url = _URL.search(masked.unmask(rest))
        if url:
            return StepIntent(NodeType.NAVIGATE, DeterministicInstructions(action="navigate", url=url.group(0).rstrip(".")))
        page = self._page_key(masked, rest)
        if not page:
            raise MalformedStep(index, step.keyword, step.text, "navigation step names no destination")
        return StepIntent(NodeType.NAVIGATE, RuntimeReference(action="navigate", ref_kind="page", key=page))

    def _page_key(self, masked: _Masked, phrase: str) -> str:
        phrase = masked.unmask(phrase).strip().rstrip(".")
        page = re.search(r"^(.*?)\s*\bpage\b", phrase, re.IGNORECASE)
        if page:
            phrase = page.group(1)
        return slugify(_LEADING_FILLER.sub("", phrase.strip()))

    def _input(self, step, index, masked, rest, found) -> StepIntent:
        value_raw, target_raw = None, ""
        # "<value>" into the X field
        into = re.match(r"^(\x00\d+\x00)\s*(?:(?:in|into|on|for)\b\s*(.*))?$", rest, re.IGNORECASE)
        # X field as|with <value>
        as_with = (re.match(r"^(.*?)\s+(?:as|with|=)\s+(.+)$", rest, re.IGNORECASE)
                   or re.match(r"^(.*?)\s+to\s+(.+)$", rest, re.IGNORECASE))
        if into:
            value_raw, target_raw = into.group(1), into.group(2) or ""
        elif as_with:
            target_raw, value_raw = as_with.group(1), as_with.group(2)
        if value_raw is None:
            raise MalformedStep(index, step.keyword, step.text, "input step requires an explicit value")

        value, env_var = self._value(masked, value_raw)
        selector = masked.sole_literal(target_raw) if target_raw else None
        if selector and _CSS_LIKE.match(selector):
            return StepIntent(
                NodeType.INPUT,
                DeterministicInstructions(action="fill", selector=_css_selector(step, index, selector),
                                          value=value, env_var=env_var),
            )
        selector_ref = self._target(masked, target_raw, default_role="textbox", default_type="input")
        return StepIntent(
            NodeType.INPUT,
            DeterministicInstructions(action="fill", value=value, env_var=env_var),
            selector_ref=selector_ref,
        )

    def _click(self, step, index, masked, rest, found) -> StepIntent:
        literal = masked.sole_literal(rest)
        if literal is not None and _CSS_LIKE.match(literal):
            return StepIntent(
                NodeType.CLICK,
                DeterministicInstructions(action="click", selector=_css_selector(step, index, literal)),
            )
        if re.search(r"\bsubmits?\b", found.group(0), re.IGNORECASE):
            phrase = re.sub(r"^(?:the\s+)?form\b", "", rest.strip(), flags=re.IGNORECASE)
            ref = self._target(masked, phrase, default_role="button", default_type="submit")
            if ref.type_hint == "button":
                ref = SelectorRef(text_hint=ref.text_hint, role_hint="button", type_hint="submit")
        else:
            ref = self._target(masked, rest)
        if ref.is_empty:
            raise MalformedStep(index, step.keyword, step.text, "click step names no target")
        return StepIntent(NodeType.CLICK, DeterministicInstructions(action="click"), selector_ref=ref)

    def _assert_text(self, step, index, masked, rest, found) -> StepIntent:
        phrase = re.sub(
            r"^(?:(?:the|a|an)\s+)?(?:text|message|label|words?)\b\s*", "", rest, flags=re.IGNORECASE
        )
        term = _UI_TERM_RE.search(phrase)
        literal = masked.sole_literal(phrase)
        if term and literal is None:
            ref = self._target(masked, phrase)
            if not ref.text_hint:
                raise MalformedStep(index, step.keyword, step.text, "assertion names no expected text")
            return StepIntent(
                NodeType.ASSERT_TEXT,
                DeterministicInstructions(action="assert-text", value=ref.text_hint),
                selector_ref=ref,
            )
        if literal is None:
            phrase = re.sub(r"^(?:the|a|an)\s+", "", phrase, flags=re.IGNORECASE)
        expected, env_var = self._value(masked, phrase)
        if not expected:
            raise MalformedStep(index, step.keyword, step.text, "assertion names no expected text")
        return StepIntent(
            NodeType.ASSERT_TEXT,
            DeterministicInstructions(action="assert-text", value=expected, env_var=env_var),
        )

    def _assert_url(self, step, index, masked, rest, found) -> StepIntent:
        literal = masked.sole_literal(rest)
        if literal is not None:
            return StepIntent(NodeType.ASSERT_URL, DeterministicInstructions(action="assert-url", value=literal))
        url = _URL.search(masked.unmask(rest))
        if url:
            return StepIntent(NodeType.ASSERT_URL, DeterministicInstructions(action="assert-url", value=url.group(0).rstrip(".")))
        page = self._page_key(masked, rest)
        if not page:
            raise MalformedStep(index, step.keyword, step.text, "URL assertion names no expected location")
        return StepIntent(NodeType.ASSERT_URL, RuntimeReference(action="assert-url", ref_kind="page", key=page))

    def _wait(self, step, index, masked, rest, found) -> StepIntent:
        duration = _DURATION.search(masked.unmask(rest))
        if duration:
            amount, unit = float(duration.group(1)), duration.group(2).lower()
            if unit in ("ms", "millisecond", "milliseconds"):
                amount = amount / 1000.0
            elif unit.startswith("min"):
                amount = amount * 60.0
            return StepIntent(NodeType.WAIT, DeterministicInstructions(action="wait", seconds=amount))
        if re.search(r"\b(?:disappear|vanish|be\s+hidden|go\s+away)\b", rest, re.IGNORECASE):
            # Waiting for absence has no locator to resolve.
            return StepIntent(
                NodeType.CUSTOM,
                RuntimeReference(action="custom", ref_kind="manual"),
                needs_review=True,
            )
        phrase = re.sub(r"\s+to\s+(?:appear|be\s+visible|show|load)\b.*$", "", rest, flags=re.IGNORECASE)
        ref = self._target(masked, phrase)
        if ref.is_empty:
            raise MalformedStep(index, step.keyword, step.text, "wait step names neither a duration nor a target")
        return StepIntent(NodeType.WAIT, DeterministicInstructions(action="wait-for"), selector_ref=ref)


def _css_selector(step: ParsedStep, index: int, literal: str) -> str:
    """Strip an optional ``css=`` prefix and check the selector compiles."""
    selector = literal[4:] if literal.startswith("css=") else literal
    try:
        soupsieve.compile(selector)
    except soupsieve.SelectorSyntaxError as e:
        raise MalformedStep(index, step.keyword, step.text, f"invalid CSS selector {selector!r}: {e}") from e
    return selector


def extract_step_intent(step: ParsedStep, index: int = 0) -> StepIntent:
    """Classify one step and extract its hints with the default rules."""
    return RegexStepParser().parse(step, index)


def read_feature(text: str) -> List[ParsedScenario]:
    """
    Read scenarios from feature text.

    Supports Feature/Background/Scenario headers, tags and comments.
    Background steps are prepended to every scenario.
    """
    feature_name: Optional[str] = None
    background: List[ParsedStep] = []
    scenarios: List[ParsedScenario] = []
    pending_tags: List[str] = []
    current: Optional[List[ParsedStep]] = None
    step_pattern = re.compile(r"^(" + "|".join(KEYWORDS) + r")\s+(.+)$")

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("@"):
            pending_tags.extend(tag.lstrip("@") for tag in line.split())
            continue
        header = re.match(r"^(Feature|Background|Scenario|Example):\s*(.*)$", line)
        if header:
            kind, name = header.group(1), header.group(2).strip()
            if kind == "Feature":
                feature_name = name
                current = None
            elif kind == "Background":
                current = background
            else:
                scenario = ParsedScenario(name=name or f"scenario-{len(scenarios) + 1}",
                                          feature_name=feature_name, tags=pending_tags)
                scenarios.append(scenario)
                current = scenario.steps
            pending_tags = []
            continue
        step = step_pattern.match(line)
        if step and current is not None:
            current.append(ParsedStep(keyword=step.group(1), text=step.group(2).strip()))
            continue
        if current is None:
            # Free-form description under a Feature header.
            continue
        raise MalformedStep(lineno, "?", line, "line is not a Given/When/Then/And/But step")

    for scenario in scenarios:
        scenario.steps[:0] = background
    return scenarios
