"""Script-containment sanitization for snapshot and fragment HTML.

Applied at render time on the replay surface regardless of what the
recorder already stripped: script elements, inline ``on*`` handlers
and ``javascript:`` URLs are removed unless script execution is
enabled. ``autofocus`` and resource hints are always removed.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, Tag

from sessiontape.document.host import ensure_scaffold, parse_html

URL_ATTRIBUTES = frozenset({"href", "src", "xlink:href", "formaction", "action"})
RESOURCE_HINTS = frozenset({"preload", "modulepreload", "prefetch"})

_JAVASCRIPT_URL_RE = re.compile(r"^\s*javascript:", re.IGNORECASE)


def is_javascript_url_attribute(name: str | None, value: str | None) -> bool:
    if not name or not value:
        return False
    if name.lower() not in URL_ATTRIBUTES:
        return False
    return bool(_JAVASCRIPT_URL_RE.match(value))


def is_script_attribute(name: str | None, value: str | None) -> bool:
    """True for inline event handlers and javascript: URL attributes."""
    if not name:
        return False
    return name.lower().startswith("on") or is_javascript_url_attribute(name, value)


def sanitize_tree(root: Tag, *, allow_scripts: bool = False) -> Tag:
    """Sanitize root and its descendants in place."""
    elements = list(root.find_all(True))
    if not isinstance(root, BeautifulSoup):
        elements.insert(0, root)
    for element in elements:
        if element.decomposed:
            continue
        if element.has_attr("autofocus"):
            del element["autofocus"]
        if element.name == "link" and (element.get("rel") or "").strip().lower() in RESOURCE_HINTS:
            element.decompose()
            continue
        if allow_scripts:
            continue
        if element.name == "script":
            element.decompose()
            continue
        for name in list(element.attrs):
            if is_script_attribute(name, element.attrs.get(name)):
                del element[name]
    return root


def ensure_base_href(document: BeautifulSoup, base_url: str | None) -> None:
    """Point (or add) the document's <base> at base_url."""
    if not base_url:
        return
    ensure_scaffold(document)
    base = document.find("base")
    if base is None:
        base = document.new_tag("base")
        document.find("head").insert(0, base)
    base["href"] = str(base_url)


def sanitize_document_html(
    raw_html: str | None, base_url: str | None = None, *, allow_scripts: bool = False
) -> str:
    """Sanitize a full document serialization and return its outer HTML."""
    document = ensure_scaffold(parse_html(raw_html))
    ensure_base_href(document, base_url)
    sanitize_tree(document, allow_scripts=allow_scripts)
    return str(document.find("html"))


def sanitize_fragment_html(raw_html: str | None, *, allow_scripts: bool = False) -> str:
    """Sanitize an HTML fragment (innerHTML or outerHTML)."""
    fragment = parse_html(raw_html)
    sanitize_tree(fragment, allow_scripts=allow_scripts)
    return fragment.decode()
