"""
HTML Snapshot - document context over saved page markup.

Lets the resolver run without a browser: against pages captured during
earlier runs (drift diagnostics) or against fixed markup in tests.
"""

import re
from typing import Dict, List, Optional
import logging

from bs4 import BeautifulSoup
from bs4.element import Tag
from soupsieve import SelectorSyntaxError

from specgraph.layers.sense.dom_mapper import ElementNode, implicit_role

logger = logging.getLogger(__name__)

SKIPPED_TAGS = {"head", "script", "style", "template", "noscript", "meta", "link", "title"}
_SIMPLE_ID = re.compile(r"^[A-Za-z_][\w-]*$")
_HIDDEN_STYLE = re.compile(r"(?:display\s*:\s*none|visibility\s*:\s*hidden)", re.IGNORECASE)
_BUTTON_INPUTS = ("submit", "button", "reset")


def _attr_text(value) -> str:
    if isinstance(value, (list, tuple)):
        return " ".join(value)
    return str(value)


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


class HtmlDocument:
    """
    Document context over an HTML string.

    Example:
        >>> document = HtmlDocument('<button id="go">Login</button>')
        >>> [e.selector for e in document.elements()]
        ['#go']
    """

    def __init__(self, html: str):
        self.soup = BeautifulSoup(html, "html.parser")
        self._nodes: Dict[int, ElementNode] = {}
        self._order: List[ElementNode] = []
        self._build()

    @classmethod
    def from_file(cls, path: str) -> "HtmlDocument":
        with open(path, "r", encoding="utf-8") as f:
            return cls(f.read())

    def elements(self) -> List[ElementNode]:
        return [n for n in self._order if n.is_visible]

    def query(self, selector: str) -> List[ElementNode]:
        try:
            tags = self.soup.select(selector)
        except SelectorSyntaxError as e:
            raise ValueError(f"Invalid CSS selector {selector!r}: {e}") from e
        matches = []
        for tag in tags:
            node = self._nodes.get(id(tag))
            if node is not None and node.is_visible:
                matches.append(node)
        return matches

    def _build(self) -> None:
        labels = self._collect_labels()
        for tag in self.soup.find_all(True):
            if self._is_skipped(tag):
                continue
            attributes = {k: _attr_text(v) for k, v in tag.attrs.items()}
            ancestor_ids = tuple(
                self._nodes[id(parent)].id
                for parent in tag.parents
                if id(parent) in self._nodes
            )
            node = ElementNode(
                id=f"e{len(self._order)}",
                tag=tag.name,
                text=self._text(tag, attributes),
                selector=self._stable_selector(tag),
                role=implicit_role(tag.name, attributes),
                name=self._accessible_name(tag, attributes, labels),
                attributes=attributes,
                is_visible=self._is_visible(tag),
                ancestor_ids=ancestor_ids,
            )
            self._nodes[id(tag)] = node
            self._order.append(node)
        logger.debug(f"[HtmlDocument] Parsed {len(self._order)} elements")

    @staticmethod
    def _is_skipped(tag: Tag) -> bool:
        if tag.name in SKIPPED_TAGS:
            return True
        return any(p.name in SKIPPED_TAGS for p in tag.parents)

    @staticmethod
    def _text(tag: Tag, attributes: Dict[str, str]) -> str:
        if tag.name == "input":
            if attributes.get("type", "").lower() in _BUTTON_INPUTS:
                return attributes.get("value", "").strip()
            return ""
        return " ".join(tag.get_text(" ", strip=True).split())

    def _collect_labels(self) -> Dict[int, str]:
        labels: Dict[int, str] = {}
        for label in self.soup.find_all("label"):
            text = " ".join(label.get_text(" ", strip=True).split())
            target: Optional[Tag] = None
            if label.get("for"):
                target = self.soup.find(id=label["for"])
            if target is None:
                target = label.find(["input", "select", "textarea"])
            if target is not None and text:
                labels[id(target)] = text
        return labels

    def _accessible_name(self, tag: Tag, attributes: Dict[str, str], labels: Dict[int, str]) -> str:
        if attributes.get("aria-label"):
            return attributes["aria-label"].strip()
        if attributes.get("aria-labelledby"):
            parts = []
            for ref in attributes["aria-labelledby"].split():
                target = self.soup.find(id=ref)
                if target is not None:
                    parts.append(target.get_text(" ", strip=True))
            if parts:
                return " ".join(parts)
        if id(tag) in labels:
            return labels[id(tag)]
        for attr in ("placeholder", "title", "alt"):
            if attributes.get(attr):
                return attributes[attr].strip()
        return ""

    @staticmethod
    def _is_visible(tag: Tag) -> bool:
        if tag.name == "input" and str(tag.get("type", "")).lower() == "hidden":
            return False
        for node in [tag, *tag.parents]:
            if not isinstance(node, Tag) or node.name == "[document]":
                continue
            if node.has_attr("hidden"):
                return False
            if str(node.get("aria-hidden", "")).lower() == "true":
                return False
            if _HIDDEN_STYLE.search(str(node.get("style", ""))):
                return False
        return True

    def _stable_selector(self, tag: Tag) -> str:
        element_id = tag.get("id")
        if element_id:
            element_id = _attr_text(element_id)
            if _SIMPLE_ID.match(element_id):
                return f"#{element_id}"
            return f'[id="{_escape(element_id)}"]'
        for attr in ("data-testid", "data-test", "data-qa"):
            value = tag.get(attr)
            if value:
                candidate = f'[{attr}="{_escape(_attr_text(value))}"]'
                if len(self.soup.select(candidate)) == 1:
                    return candidate

        path = []
        current: Optional[Tag] = tag
        while isinstance(current, Tag) and current.name not in ("html", "[document]"):
            current_id = current.get("id")
            if current is not tag and current_id and _SIMPLE_ID.match(_attr_text(current_id)):
                path.insert(0, f"#{_attr_text(current_id)}")
                break
            nth = len(current.find_previous_siblings(current.name)) + 1
            path.insert(0, f"{current.name}:nth-of-type({nth})")
            current = current.parent
        return " > ".join(path) or tag.name
