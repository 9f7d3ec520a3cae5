"""DOM patch reconciliation for recorded mutation events.

Applies one mutation event to the replay document with the smallest
change that reproduces it. Paths that no longer resolve, nodes that
moved, and malformed descriptions are all structural drift: the
operation is skipped and False is returned.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from bs4 import NavigableString, Tag
from bs4.element import PreformattedString

from sessiontape.document.host import DocumentHost
from sessiontape.document.paths import resolve
from sessiontape.document.sanitize import is_script_attribute, sanitize_fragment_html

logger = logging.getLogger(__name__)

# Never replaced wholesale: that would destroy the surface scaffold.
PROTECTED_TAGS = frozenset({"html", "body"})


def _is_text(node: Any) -> bool:
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def apply_mutation(
    host: DocumentHost, data: Mapping[str, Any] | None, *, allow_scripts: bool = False
) -> bool:
    """Apply one recorded mutation. Returns True if the document changed."""
    if not isinstance(data, Mapping) or data.get("blocked"):
        return False
    kind = data.get("mutationType")
    if kind == "characterData":
        return _apply_character_data(host, data)
    target = resolve(host.document, data.get("target"))
    if target is None:
        logger.debug("Drift: %s target %r not found", kind, data.get("target"))
        return False
    if kind == "attributes":
        return _apply_attribute(host, target, data, allow_scripts)
    if kind == "childList":
        return _apply_child_list(host, target, data, allow_scripts)
    return False


def _apply_attribute(
    host: DocumentHost, target: Tag, data: Mapping[str, Any], allow_scripts: bool
) -> bool:
    name = data.get("attributeName")
    if not name or not isinstance(name, str):
        return False
    value = data.get("newValue")
    if not allow_scripts and is_script_attribute(name, None if value is None else str(value)):
        return False
    if value is None:
        if not target.has_attr(name):
            return False
        host.remove_attribute(target, name)
    else:
        host.set_attribute(target, name, value)
    return True


def _replace_text_content(host: DocumentHost, element: Tag, text: str) -> None:
    for child in list(element.contents):
        host.remove_child(child)
    host.append_child(element, NavigableString(text))


def _apply_character_data(host: DocumentHost, data: Mapping[str, Any]) -> bool:
    text = data.get("newValue")
    text = "" if text is None else str(text)
    parent = resolve(host.document, data.get("parentTarget"))
    if parent is not None:
        node = None
        index = data.get("textIndex")
        if isinstance(index, int) and not isinstance(index, bool) and 0 <= index < len(parent.contents):
            candidate = parent.contents[index]
            if _is_text(candidate):
                node = candidate
        if node is None and data.get("oldValue") is not None:
            old = str(data["oldValue"])
            node = next(
                (child for child in parent.contents if _is_text(child) and str(child) == old),
                None,
            )
        if node is None:
            return False
        host.set_text(node, text)
        return True
    # Older payloads point the target at the element holding the text.
    element = resolve(host.document, data.get("target"))
    if element is None:
        return False
    _replace_text_content(host, element, text)
    return True


def _descriptions(data: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    items = data.get(key)
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, Mapping)]


def _apply_child_list(
    host: DocumentHost, target: Tag, data: Mapping[str, Any], allow_scripts: bool
) -> bool:
    removed = _descriptions(data, "removedNodes")
    added = _descriptions(data, "addedNodes")
    inner_html = data.get("targetInnerHTML")
    if not removed and not added and not isinstance(inner_html, str):
        return False

    # Resolve every removal before touching the tree: removing one node
    # shifts the nth-of-type indices of its later siblings.
    doomed: list[Any] = []
    for desc in removed:
        node = _find_removed(host, target, desc, doomed)
        if node is not None:
            doomed.append(node)
    for node in doomed:
        host.remove_child(node)

    appended = 0
    for desc in added:
        appended += _append_described(host, target, desc, allow_scripts)

    if doomed or appended:
        return True
    if target.name in PROTECTED_TAGS or not isinstance(inner_html, str):
        return False
    host.set_inner_html(target, sanitize_fragment_html(inner_html, allow_scripts=allow_scripts))
    return True


def _find_removed(
    host: DocumentHost, target: Tag, desc: Mapping[str, Any], taken: list[Any]
) -> Any:
    node_type = desc.get("nodeType")
    if node_type == "element" and desc.get("path"):
        candidate = resolve(host.document, str(desc["path"]))
        if candidate is not None and candidate.parent is target:
            if not any(candidate is other for other in taken):
                return candidate
        return None
    if node_type == "text":
        text = str(desc.get("textContent") or "")
        for child in target.contents:
            if _is_text(child) and str(child) == text:
                if not any(child is other for other in taken):
                    return child
    return None


def _append_described(
    host: DocumentHost, target: Tag, desc: Mapping[str, Any], allow_scripts: bool
) -> int:
    node_type = desc.get("nodeType")
    if node_type == "text":
        host.append_child(target, NavigableString(str(desc.get("textContent") or "")))
        return 1
    if node_type == "element" and isinstance(desc.get("outerHTML"), str):
        markup = sanitize_fragment_html(desc["outerHTML"], allow_scripts=allow_scripts)
        return len(host.append_html(target, markup))
    return 0
