"""Structural node paths.

A path names an element by order, not by content:

- ``"document"`` for the document itself,
- ``"non-element"`` for text and comment nodes (never looked up),
- ``"#id"`` for elements carrying an id, escaped as a CSS identifier,
- ``"body"`` and ``"html"`` for the two roots,
- otherwise ``tag:nth-of-type(n)`` segments joined by ``" > "`` that
  stop at body, or start at ``html`` for nodes outside body.

Resolution is anchored at ``#id``, ``html`` or body and walks the
segments downwards, so an unmoved element always resolves back to
itself. Anything that no longer resolves, including an empty path,
yields None.
"""

from __future__ import annotations

import re

import soupsieve as sv
from bs4 import BeautifulSoup, Tag
from bs4.element import PageElement

from sessiontape.document.host import MutationRecord

DOCUMENT_PATH = "document"
NON_ELEMENT_PATH = "non-element"
SEPARATOR = " > "

_SEGMENT_RE = re.compile(r"^([a-z][a-z0-9_:-]*?)(?::nth-of-type\((\d+)\))?$", re.IGNORECASE)


def _same_tag_index(node: Tag) -> int:
    index = 0
    for sibling in node.parent.children:
        if isinstance(sibling, Tag) and sibling.name == node.name:
            index += 1
            if sibling is node:
                return index
    return index


def segment_of(node: Tag, index: int | None = None) -> str:
    """Return ``tag:nth-of-type(n)`` for node (index computed if omitted)."""
    if index is None:
        index = _same_tag_index(node)
    return f"{node.name}:nth-of-type({index})"


def id_segment(value: str) -> str:
    """Return ``#id`` with the id escaped as a CSS identifier."""
    return "#" + sv.escape(value)


def path_of(node: PageElement | None) -> str:
    """Encode a node as a structural path string."""
    if node is None or isinstance(node, BeautifulSoup):
        return DOCUMENT_PATH
    if not isinstance(node, Tag):
        return NON_ELEMENT_PATH
    if node.get("id"):
        return id_segment(node["id"])
    if node.name == "body":
        return "body"

    segments: list[str] = []
    current: Tag | None = node
    while isinstance(current, Tag) and not isinstance(current, BeautifulSoup):
        if current.name == "body":
            break
        parent = current.parent
        if parent is None or isinstance(parent, BeautifulSoup):
            segments.append(current.name)
            break
        segments.append(segment_of(current))
        current = parent
    segments.reverse()
    return SEPARATOR.join(segments)


def child_path(parent_path: str, segment: str) -> str:
    """Join a child segment onto its parent's path."""
    if parent_path in ("body", ""):
        return segment
    return f"{parent_path}{SEPARATOR}{segment}"


def former_child_path(record: MutationRecord, node: PageElement) -> str:
    """Path a removed node had just before the record's removal.

    The node is already detached, so its same-tag index is rebuilt from
    the record's ``previous_sibling`` and the removed nodes preceding it.
    """
    if not isinstance(node, Tag):
        return NON_ELEMENT_PATH
    if node.get("id"):
        return id_segment(node["id"])
    index = 1
    for earlier in record.removed_nodes:
        if earlier is node:
            break
        if isinstance(earlier, Tag) and earlier.name == node.name:
            index += 1
    sibling = record.previous_sibling
    while sibling is not None:
        if isinstance(sibling, Tag) and sibling.name == node.name:
            index += 1
        sibling = sibling.previous_sibling
    return child_path(path_of(record.target), segment_of(node, index))


def _root_element(document: BeautifulSoup) -> Tag | None:
    return document.find("html")


def _nth_child(parent: Tag, name: str, index: int) -> Tag | None:
    seen = 0
    for child in parent.children:
        if isinstance(child, Tag) and child.name == name:
            seen += 1
            if seen == index:
                return child
    return None


def _by_id(document: BeautifulSoup, anchor: str) -> Tag | None:
    try:
        return document.select_one(anchor)
    except sv.SelectorSyntaxError:
        # Ids recorded without escaping.
        return document.find(id=anchor[1:])


def resolve(document: BeautifulSoup, path: str | None) -> Tag | None:
    """Resolve a path produced by path_of back to an element, or None."""
    if not path or path == NON_ELEMENT_PATH:
        return None
    if path == DOCUMENT_PATH:
        return _root_element(document)

    segments = [part.strip() for part in path.split(SEPARATOR)]
    if any(not part for part in segments):
        return None

    first = segments[0]
    if first.startswith("#"):
        current = _by_id(document, first)
        segments = segments[1:]
    elif first == "html":
        current = _root_element(document)
        segments = segments[1:]
    elif first == "body":
        current = document.find("body")
        segments = segments[1:]
    else:
        current = document.find("body")

    for segment in segments:
        if current is None:
            return None
        match = _SEGMENT_RE.match(segment)
        if match is None:
            return None
        name = match.group(1).lower()
        index = int(match.group(2) or 1)
        if index < 1:
            return None
        current = _nth_child(current, name, index)
    return current
