"""Policy-aware serialization of snapshots, mutation nodes and frames."""

from __future__ import annotations

import copy
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from bs4 import NavigableString, Tag
from bs4.element import PageElement, PreformattedString

from sessiontape.document.controls import FormControl, classify_form_control
from sessiontape.document.host import DocumentHost, url_origin
from sessiontape.document.paths import path_of
from sessiontape.document.sanitize import sanitize_tree
from sessiontape.recording.policy import (
    BLOCKED_HTML,
    BLOCKED_MARKER,
    BLOCKED_TEXT,
    REDACTED_TEXT,
    TEXT_BEARING_ATTRIBUTES,
    TRUNCATED_HTML,
    Redaction,
    RedactionPolicy,
    classify,
    mask_value,
)

IgnoreNode = Callable[[Any], bool]

VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "source", "track", "wbr",
    }
)
# Layout-only attributes a blocked element keeps.
BLOCKED_KEPT_ATTRIBUTES = ("id", "class", "style")

_JAVASCRIPT_RE = re.compile(r"^\s*javascript:", re.IGNORECASE)


def never_ignore(node: Any) -> bool:
    return False


def utf8_size(text: str) -> int:
    return len(text.encode("utf-8"))


def _blank_blocked(tag: Tag) -> None:
    for name in list(tag.attrs):
        if name not in BLOCKED_KEPT_ATTRIBUTES:
            del tag[name]
    tag[BLOCKED_MARKER] = "1"
    tag.clear()
    if tag.name not in VOID_ELEMENTS:
        tag.string = BLOCKED_TEXT


def _mask_text_attributes(tag: Tag) -> bool:
    masked = False
    for name in TEXT_BEARING_ATTRIBUTES:
        if tag.has_attr(name):
            tag[name] = REDACTED_TEXT
            masked = True
    return masked


def _write_form_value(
    original: Tag,
    clone: Tag,
    decision: Redaction,
    host: DocumentHost | None,
) -> None:
    kind = classify_form_control(original)
    if kind is FormControl.TOGGLE:
        if host is not None and original.name == "input":
            if host.is_checked(original):
                clone["checked"] = ""
            elif clone.has_attr("checked"):
                del clone["checked"]
        return
    if kind is FormControl.SELECTOR:
        options = clone.find_all("option")
        if decision.redacts:
            for option in options:
                if option.has_attr("selected"):
                    del option["selected"]
            return
        if host is None:
            return
        chosen = host.get_value(original)
        for option in options:
            if option.get("value", option.get_text()) == chosen:
                option["selected"] = ""
            elif option.has_attr("selected"):
                del option["selected"]
        return
    value = host.get_value(original) if host is not None else None
    if original.name == "textarea":
        if value is None:
            value = original.get_text()
        clone.string = mask_value(value) if decision.redacts else value
        return
    if value is None:
        value = original.get("value")
        if value is None:
            return
    clone["value"] = mask_value(value) if decision.redacts else value


def redacted_copy(
    root: Tag,
    policy: RedactionPolicy,
    *,
    host: DocumentHost | None = None,
    ignore_node: IgnoreNode = never_ignore,
) -> tuple[Tag, int]:
    """Clone root with the policy applied and scripts stripped.

    Tool UI nodes are removed, blocked subtrees replaced by a marker,
    mask-text content replaced, and current form values written into
    the clone (masked where the policy says so).

    Returns:
        (clone, number of redacted spots in the subtree).
    """
    clone = copy.copy(root)
    pairs: list[tuple[PageElement, PageElement]] = [(root, clone)]
    pairs.extend(zip(root.descendants, clone.descendants))

    skipped: set[int] = set()
    removals: list[PageElement] = []
    redactions = 0
    for original, copied in pairs:
        if original is not root and id(original.parent) in skipped:
            skipped.add(id(original))
            continue
        if isinstance(original, Tag):
            if ignore_node(original):
                skipped.add(id(original))
                removals.append(copied)
                continue
            if policy.is_blocked(original):
                skipped.add(id(original))
                _blank_blocked(copied)
                redactions += 1
                continue
            if policy.is_mask_text(original) and _mask_text_attributes(copied):
                redactions += 1
            if classify_form_control(original) is not FormControl.NONE:
                decision = classify(original, "value", policy)
                if decision.redacts:
                    redactions += 1
                _write_form_value(original, copied, decision, host)
                if original.name == "textarea":
                    skipped.add(id(original))
            continue
        if isinstance(original, PreformattedString) or not isinstance(original, NavigableString):
            continue
        if not str(original).strip():
            continue
        if classify(original, None, policy) is Redaction.MASK_TEXT:
            copied.replace_with(NavigableString(REDACTED_TEXT))
            redactions += 1

    for node in removals:
        node.extract()
    sanitize_tree(clone, allow_scripts=False)
    return clone, redactions


def snapshot_html(
    host: DocumentHost,
    policy: RedactionPolicy,
    *,
    ignore_node: IgnoreNode = never_ignore,
) -> str:
    """Serialize the live document for the snapshot event."""
    clone, _ = redacted_copy(
        host.document_element, policy, host=host, ignore_node=ignore_node
    )
    return str(clone)


@dataclass
class NodeSerialization:
    data: dict[str, Any] = field(default_factory=dict)
    redacted: bool = False
    truncated: bool = False


def serialize_node(
    node: PageElement,
    policy: RedactionPolicy,
    *,
    path: str,
    max_bytes: int,
    parent: Tag | None = None,
    host: DocumentHost | None = None,
    ignore_node: IgnoreNode = never_ignore,
) -> NodeSerialization:
    """Describe an added or removed node for patch-based replay.

    Args:
        node: The node (may already be detached).
        policy: Compiled redaction policy.
        path: Structural path of the node at the time of the change.
        max_bytes: UTF-8 size limit for outerHTML before truncation.
        parent: The mutation target, used to classify detached nodes.
    """
    if isinstance(node, PreformattedString) or not isinstance(node, (Tag, NavigableString)):
        return NodeSerialization({"nodeType": "other"})

    decision = classify(node, None, policy, parent=parent)
    if isinstance(node, NavigableString):
        text = str(node)
        if decision is Redaction.BLOCK:
            return NodeSerialization(
                {"nodeType": "text", "textContent": BLOCKED_TEXT}, redacted=True
            )
        if decision.redacts:
            return NodeSerialization(
                {"nodeType": "text", "textContent": REDACTED_TEXT}, redacted=True
            )
        return NodeSerialization({"nodeType": "text", "textContent": text})

    base = {"nodeType": "element", "tagName": node.name, "path": path}
    if decision is Redaction.BLOCK:
        return NodeSerialization({**base, "outerHTML": BLOCKED_HTML}, redacted=True)

    clone, redactions = redacted_copy(node, policy, host=host, ignore_node=ignore_node)
    if decision is Redaction.MASK_TEXT:
        for text in list(clone.find_all(string=True)):
            if not isinstance(text, PreformattedString) and str(text).strip():
                text.replace_with(NavigableString(REDACTED_TEXT))
        for element in [clone, *clone.find_all(True)]:
            _mask_text_attributes(element)
        redactions += 1
    # Script and resource-hint roots are dropped entirely by sanitization.
    outer_html = "" if clone.decomposed else str(clone)
    if utf8_size(outer_html) > max_bytes:
        return NodeSerialization(
            {**base, "outerHTML": TRUNCATED_HTML},
            redacted=redactions > 0,
            truncated=True,
        )
    return NodeSerialization({**base, "outerHTML": outer_html}, redacted=redactions > 0)


def normalize_frame_src(value: str | None) -> str | None:
    if not value:
        return None
    src = str(value).strip()
    if not src or _JAVASCRIPT_RE.match(src):
        return None
    return src


def is_cross_origin(url: str | None, origin: str) -> bool:
    """True if url resolves to a real origin different from origin."""
    if not url:
        return False
    target = url_origin(url)
    if target == "null":
        return False
    return target != origin


def frame_inventory(
    host: DocumentHost,
    policy: RedactionPolicy,
    *,
    ignore_node: IgnoreNode = never_ignore,
) -> list[dict[str, Any]]:
    """Describe every child frame of the document at this moment.

    Blocked frames are left out; their snapshot copy is already blank.
    """
    frames = []
    for frame in host.document.find_all("iframe"):
        if ignore_node(frame) or policy.is_blocked(frame):
            continue
        resolved = normalize_frame_src(host.frame_src(frame))
        frames.append(
            {
                "path": path_of(frame),
                "declaredSrc": frame.get("src"),
                "resolvedSrc": resolved,
                "isCrossOrigin": is_cross_origin(resolved, host.location.origin),
            }
        )
    return frames
