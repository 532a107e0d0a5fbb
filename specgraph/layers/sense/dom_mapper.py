"""
DOM Mapper - document context over a live browser.

Snapshots the elements the Selector Resolver can choose between in a
single JavaScript pass and exposes them as ElementNodes. The selector of
each node is the opaque locator handed back to the driver.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple, TYPE_CHECKING
import logging

from selenium.common.exceptions import InvalidSelectorException, JavascriptException

if TYPE_CHECKING:
    from selenium.webdriver.remote.webdriver import WebDriver

logger = logging.getLogger(__name__)

# Elements a user can act on directly.
INTERACTIVE_TAGS = ("a", "button", "input", "select", "textarea", "summary", "option")

INTERACTIVE_ROLES = (
    "button", "link", "textbox", "checkbox", "radio", "combobox",
    "menuitem", "tab", "switch", "option", "searchbox",
)

# Implicit ARIA roles by tag (inputs are handled separately).
IMPLICIT_ROLES = {
    "a": "link",
    "button": "button",
    "textarea": "textbox",
    "select": "combobox",
    "h1": "heading", "h2": "heading", "h3": "heading",
    "h4": "heading", "h5": "heading", "h6": "heading",
    "img": "img",
    "nav": "navigation",
    "li": "listitem",
    "option": "option",
    "summary": "button",
    "dialog": "dialog",
}

INPUT_ROLES = {
    "button": "button", "submit": "button", "reset": "button", "image": "button",
    "checkbox": "checkbox", "radio": "radio", "range": "slider",
    "search": "searchbox",
}


def implicit_role(tag: str, attributes: Dict[str, str]) -> Optional[str]:
    explicit = (attributes.get("role") or "").strip().lower()
    if explicit:
        return explicit.split()[0]
    if tag == "input":
        return INPUT_ROLES.get((attributes.get("type") or "text").lower(), "textbox")
    if tag == "a" and "href" not in attributes:
        return None
    return IMPLICIT_ROLES.get(tag)


@dataclass(frozen=True)
class ElementNode:
    """
    One element of a document snapshot.

    ``name`` is the accessible name (aria-label, associated label,
    placeholder, title or alt); ``ancestor_ids`` lists the ids of the
    snapshot elements that contain this one, nearest first.
    """
    id: str
    tag: str
    text: str
    selector: str
    role: Optional[str] = None
    name: str = ""
    attributes: Dict[str, str] = field(default_factory=dict, hash=False, compare=False)
    is_visible: bool = True
    ancestor_ids: Tuple[str, ...] = ()

    @property
    def is_interactive(self) -> bool:
        return self.tag in INTERACTIVE_TAGS or (self.role or "") in INTERACTIVE_ROLES

    def matches_text(self, needle: str) -> bool:
        """Case-insensitive substring match on visible text or accessible name."""
        needle = needle.strip().lower()
        if not needle:
            return False
        return needle in self.text.lower() or needle in self.name.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "tag": self.tag,
            "text": self.text,
            "selector": self.selector,
            "role": self.role,
            "name": self.name,
            "attributes": dict(self.attributes),
            "is_visible": self.is_visible,
        }


class DocumentContext(Protocol):
    """The capability the resolver needs from a live or saved page."""

    def elements(self) -> List[ElementNode]:
        """Visible elements in document order."""
        ...

    def query(self, selector: str) -> List[ElementNode]:
        """
        Visible elements matching a CSS selector.

        Raises:
            ValueError: if the selector is not valid CSS.
        """
        ...


_SNAPSHOT_SCRIPT = r"""
const selector = arguments[0];
const nodes = Array.from(document.querySelectorAll(selector));

const isVisible = (el) => {
    if (el.checkVisibility) return el.checkVisibility();
    const style = window.getComputedStyle(el);
    if (style.display === 'none' || style.visibility === 'hidden') return false;
    const rect = el.getBoundingClientRect();
    return rect.width > 0 && rect.height > 0;
};

const getStableSelector = (el) => {
    if (el.id) {
        if (!/^\d/.test(el.id)) return '#' + CSS.escape(el.id);
        return '[id="' + CSS.escape(el.id) + '"]';
    }
    for (const attr of ['data-testid', 'data-test', 'data-qa']) {
        const val = el.getAttribute(attr);
        if (val && document.querySelectorAll('[' + attr + '="' + CSS.escape(val) + '"]').length === 1) {
            return '[' + attr + '="' + CSS.escape(val) + '"]';
        }
    }
    const path = [];
    let cur = el;
    while (cur && cur.nodeType === Node.ELEMENT_NODE && cur.tagName !== 'HTML') {
        let part = cur.tagName.toLowerCase();
        if (cur !== el && cur.id && !/^\d/.test(cur.id)) {
            path.unshift('#' + CSS.escape(cur.id));
            break;
        }
        let sib = cur, nth = 1;
        while ((sib = sib.previousElementSibling)) {
            if (sib.tagName === cur.tagName) nth++;
        }
        part += ':nth-of-type(' + nth + ')';
        path.unshift(part);
        cur = cur.parentElement;
    }
    return path.join(' > ');
};

const accessibleName = (el) => {
    const aria = el.getAttribute('aria-label');
    if (aria) return aria.trim();
    const labelledBy = el.getAttribute('aria-labelledby');
    if (labelledBy) {
        const parts = labelledBy.split(/\s+/)
            .map(id => document.getElementById(id))
            .filter(Boolean)
            .map(n => (n.innerText || '').trim());
        if (parts.length) return parts.join(' ');
    }
    if (el.labels && el.labels.length) {
        return Array.from(el.labels).map(l => (l.innerText || '').trim()).join(' ');
    }
    return (el.getAttribute('placeholder') || el.getAttribute('title') || el.getAttribute('alt') || '').trim();
};

const visibleText = (el) => {
    if (el.tagName === 'INPUT') {
        return ['submit', 'button', 'reset'].includes((el.type || '').toLowerCase()) ? (el.value || '') : '';
    }
    return el.innerText || '';
};

const index = new Map(nodes.map((el, i) => [el, i]));
return nodes.map((el, i) => {
    const attrs = {};
    for (const attr of el.getAttributeNames()) {
        attrs[attr] = (el.getAttribute(attr) || '').substring(0, 200);
    }
    const ancestors = [];
    let cur = el.parentElement;
    while (cur) {
        if (index.has(cur)) ancestors.push(index.get(cur));
        cur = cur.parentElement;
    }
    return {
        index: i,
        tag: el.tagName.toLowerCase(),
        text: visibleText(el).replace(/\s+/g, ' ').trim().substring(0, 300),
        selector: getStableSelector(el),
        name: accessibleName(el),
        attributes: attrs,
        visible: isVisible(el),
        ancestors: ancestors,
    };
});
"""


class SeleniumDocument:
    """
    Document context backed by a Selenium WebDriver.

    Every call takes a fresh snapshot; nothing is cached between calls
    so markup drift is always observed.

    Example:
        >>> document = SeleniumDocument(driver)
        >>> for elem in document.elements():
        ...     print(f"{elem.tag}: {elem.text}")
    """

    SNAPSHOT_SELECTOR = "body *"

    def __init__(self, driver: "WebDriver"):
        self.driver = driver

    def elements(self) -> List[ElementNode]:
        return [n for n in self._snapshot(self.SNAPSHOT_SELECTOR) if n.is_visible]

    def query(self, selector: str) -> List[ElementNode]:
        try:
            nodes = self._snapshot(selector)
        except (InvalidSelectorException, JavascriptException) as e:
            raise ValueError(f"Invalid CSS selector {selector!r}: {e.msg}") from e
        return [n for n in nodes if n.is_visible]

    def _snapshot(self, selector: str) -> List[ElementNode]:
        results = self.driver.execute_script(_SNAPSHOT_SCRIPT, selector) or []
        nodes = []
        for res in results:
            attributes = dict(res.get("attributes") or {})
            tag = res["tag"]
            nodes.append(ElementNode(
                id=f"e{res['index']}",
                tag=tag,
                text=res.get("text") or "",
                selector=res["selector"],
                role=implicit_role(tag, attributes),
                name=res.get("name") or "",
                attributes=attributes,
                is_visible=bool(res.get("visible", True)),
                ancestor_ids=tuple(f"e{i}" for i in res.get("ancestors") or ()),
            ))
        logger.debug(f"[SeleniumDocument] Snapshot of {selector!r}: {len(nodes)} elements")
        return nodes
