"""Live document model: host, form controls, paths and sanitization."""

from sessiontape.document.controls import FormControl, classify_form_control
from sessiontape.document.host import (
    DocumentHost,
    DomEvent,
    MutationObserver,
    MutationRecord,
    Rect,
    parse_fragment,
    parse_html,
)
from sessiontape.document.paths import path_of, resolve
from sessiontape.document.sanitize import (
    sanitize_document_html,
    sanitize_fragment_html,
)

__all__ = [
    "DocumentHost",
    "DomEvent",
    "FormControl",
    "MutationObserver",
    "MutationRecord",
    "Rect",
    "classify_form_control",
    "parse_fragment",
    "parse_html",
    "path_of",
    "resolve",
    "sanitize_document_html",
    "sanitize_fragment_html",
]
