"""Redaction policy: block, mask or pass.

The policy is compiled once per configuration update into soupsieve
matchers and then evaluated identically at every capture site: the
snapshot clone, attribute and text mutations, serialized added/removed
nodes, and interaction-event values. Blocking dominates masking.

A selector that fails to compile is logged as a policy-evaluation
anomaly and dropped, so it never matches and never aborts capture.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

import soupsieve as sv
from bs4 import BeautifulSoup, Tag
from bs4.element import PageElement

from sessiontape.document.controls import FormControl, classify_form_control
from sessiontape.models.config import PrivacyConfig

logger = logging.getLogger(__name__)

REDACTED_TEXT = "[redacted]"
BLOCKED_TEXT = "[blocked]"
BLOCKED_MARKER = "data-sr-blocked"
BLOCKED_HTML = '<div data-sr-blocked="1">[blocked]</div>'
TRUNCATED_HTML = '<div data-sr-truncated="true">[truncated]</div>'

SENSITIVE_INPUT_TYPES = frozenset({"password", "email", "tel"})
SENSITIVE_NAME_RE = re.compile(r"password|passwd|token|secret|otp|ssn", re.IGNORECASE)

# Attributes that carry user-visible text under a mask-text selector.
TEXT_BEARING_ATTRIBUTES = frozenset(
    {"value", "title", "alt", "placeholder", "aria-label", "label"}
)


class Redaction(str, Enum):
    """Outcome of a policy decision."""

    BLOCK = "block"
    MASK_TEXT = "mask_text"
    MASK_VALUE = "mask_value"
    PASS = "pass"

    @property
    def redacts(self) -> bool:
        return self is not Redaction.PASS


def mask_value(value: str | None) -> str:
    """Length-preserving filler that shares no characters with the input."""
    return "*" * len(value or "")


def _compile(selectors: list[str] | tuple[str, ...], kind: str) -> sv.SoupSieve | None:
    valid: list[str] = []
    for selector in selectors:
        try:
            sv.compile(selector)
        except sv.SelectorSyntaxError as exc:
            logger.warning(
                "policy-evaluation anomaly: ignoring malformed %s selector %r (%s)",
                kind,
                selector,
                exc,
            )
            continue
        valid.append(selector)
    if not valid:
        return None
    return sv.compile(", ".join(valid))


def is_sensitive_control(element: Tag) -> bool:
    """Heuristic for secret-looking fields regardless of maskAllInputs."""
    if element.name == "input":
        kind = (element.get("type") or "").strip().lower()
        if kind in SENSITIVE_INPUT_TYPES:
            return True
    for attribute in ("name", "id", "autocomplete"):
        value = element.get(attribute)
        if value and SENSITIVE_NAME_RE.search(value):
            return True
    return False


@dataclass(frozen=True)
class RedactionPolicy:
    """Compiled privacy configuration."""

    mask_all_inputs: bool = True
    block_matcher: sv.SoupSieve | None = None
    mask_text_matcher: sv.SoupSieve | None = None

    @classmethod
    def from_config(cls, privacy: PrivacyConfig) -> RedactionPolicy:
        return cls(
            mask_all_inputs=privacy.mask_all_inputs,
            block_matcher=_compile(privacy.block_selectors, "block"),
            mask_text_matcher=_compile(privacy.mask_text_selectors, "mask-text"),
        )

    def _closest(self, matcher: sv.SoupSieve | None, element: Tag) -> bool:
        if matcher is None:
            return False
        return matcher.closest(element) is not None

    def is_blocked(self, element: Tag | None) -> bool:
        """True if element or an ancestor matches a block selector."""
        if not isinstance(element, Tag) or isinstance(element, BeautifulSoup):
            return False
        return self._closest(self.block_matcher, element)

    def is_mask_text(self, element: Tag | None) -> bool:
        if not isinstance(element, Tag) or isinstance(element, BeautifulSoup):
            return False
        return self._closest(self.mask_text_matcher, element)


def _element_of(node: PageElement | None, parent: Tag | None) -> Tag | None:
    if isinstance(node, Tag):
        return node
    return parent if parent is not None else getattr(node, "parent", None)


def classify(
    node: PageElement | None,
    attribute: str | None,
    policy: RedactionPolicy,
    *,
    parent: Tag | None = None,
) -> Redaction:
    """Decide how a node (or one of its attributes) must be redacted.

    Args:
        node: Element or text node. Text nodes classify via their parent.
        attribute: Attribute name for attribute values, None for content.
        policy: Compiled policy.
        parent: Parent to use for detached nodes.

    Returns:
        BLOCK, MASK_TEXT, MASK_VALUE or PASS.
    """
    element = _element_of(node, parent)
    if not isinstance(element, Tag) or isinstance(element, BeautifulSoup):
        return Redaction.PASS
    if policy.is_blocked(element) or policy.is_blocked(parent):
        return Redaction.BLOCK

    content = attribute is None or attribute.lower() in TEXT_BEARING_ATTRIBUTES
    if content and (policy.is_mask_text(element) or policy.is_mask_text(parent)):
        return Redaction.MASK_TEXT

    if attribute is not None and attribute.lower() != "value":
        return Redaction.PASS
    # Text inside a textarea is its value; option text is page content.
    if isinstance(node, Tag) or element.name == "textarea":
        kind = classify_form_control(element)
    else:
        kind = FormControl.NONE
    if kind not in (FormControl.TEXT, FormControl.SELECTOR):
        return Redaction.PASS
    if policy.mask_all_inputs or is_sensitive_control(element):
        return Redaction.MASK_VALUE
    return Redaction.PASS
