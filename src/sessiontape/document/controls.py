"""Form-control capability classifier.

One function decides what kind of value a node carries, so the
redaction policy and the recorder's value extraction never disagree.
"""

from __future__ import annotations

from enum import Enum

from bs4 import Tag
from bs4.element import PageElement

# Input types whose "value" is not user-entered text.
TOGGLE_INPUT_TYPES = frozenset(
    {"checkbox", "radio", "file", "button", "submit", "reset", "image"}
)


class FormControl(str, Enum):
    """Capability of a node as a form control."""

    TEXT = "text"
    TOGGLE = "toggle"
    SELECTOR = "selector"
    NONE = "none"


def classify_form_control(node: PageElement | None) -> FormControl:
    """Classify a node as a text, toggle or selector control, or none."""
    if not isinstance(node, Tag):
        return FormControl.NONE
    if node.name == "input":
        kind = (node.get("type") or "text").strip().lower()
        if kind in TOGGLE_INPUT_TYPES:
            return FormControl.TOGGLE
        return FormControl.TEXT
    if node.name == "textarea":
        return FormControl.TEXT
    if node.name == "select":
        return FormControl.SELECTOR
    return FormControl.NONE


def is_form_control(node: PageElement | None) -> bool:
    return classify_form_control(node) is not FormControl.NONE
