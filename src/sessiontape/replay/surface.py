"""Isolated rendering surface for replay.

The surface owns a sandboxed child document (a DocumentHost of its own),
the sandbox token set, the virtual viewport, and every visual-effect
timer started on it, so a single stop can cancel them all.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from sessiontape.document.host import DocumentHost, DomEvent
from sessiontape.document.sanitize import sanitize_document_html

logger = logging.getLogger(__name__)

SANDBOX_BASE_TOKENS: tuple[str, ...] = (
    "allow-same-origin",
    "allow-forms",
    "allow-modals",
    "allow-popups",
)
SCRIPT_TOKEN = "allow-scripts"


def sandbox_tokens(allow_scripts: bool) -> tuple[str, ...]:
    if allow_scripts:
        return (*SANDBOX_BASE_TOKENS, SCRIPT_TOKEN)
    return SANDBOX_BASE_TOKENS


class ReplaySurface:
    """A sandboxed child document plus its timers.

    Args:
        viewport: Initial (width, height) of the surface.
        loop: Event loop for effect timers; the running loop if omitted.
    """

    def __init__(
        self,
        viewport: tuple[float, float] = (1280, 720),
        *,
        loop: Any = None,
    ) -> None:
        self.viewport = viewport
        self.sandbox: tuple[str, ...] = sandbox_tokens(False)
        self.document: DocumentHost | None = None
        self._loop = loop
        self._timers: dict[int, Any] = {}
        self._timer_seq = 0

    @property
    def sandbox_attribute(self) -> str:
        return " ".join(self.sandbox)

    def update_sandbox(self, allow_scripts: bool) -> str:
        self.sandbox = sandbox_tokens(allow_scripts)
        return self.sandbox_attribute

    def set_viewport(self, viewport: Any) -> None:
        """Adopt a recorded viewport mapping if it has positive dimensions."""
        if not isinstance(viewport, dict):
            return
        try:
            width = float(viewport.get("width") or 0)
            height = float(viewport.get("height") or 0)
        except (TypeError, ValueError):
            return
        if width > 0 and height > 0:
            self.viewport = (width, height)
            if self.document is not None:
                self.document.set_viewport(width, height)

    async def render(
        self, raw_html: str, base_url: str | None, *, allow_scripts: bool = False
    ) -> DocumentHost:
        """Sanitize and load a snapshot; resolves once the load event fired."""
        self.cancel_timers()
        self.update_sandbox(allow_scripts)
        sanitized = sanitize_document_html(raw_html, base_url, allow_scripts=allow_scripts)
        document = DocumentHost(
            sanitized, url=base_url or "about:srcdoc", viewport=self.viewport
        )
        self.document = document
        # Loading completes on a later loop iteration, as a srcdoc frame does.
        await asyncio.sleep(0)
        document.dispatch_event(
            document.window, DomEvent("load", bubbles=False, cancelable=False)
        )
        logger.debug("Surface rendered %d bytes (sandbox=%s)", len(sanitized), self.sandbox_attribute)
        return document

    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> Any:
        """Schedule an effect timer that cancel_timers() can cancel."""
        loop = self._loop or asyncio.get_running_loop()
        self._timer_seq += 1
        key = self._timer_seq
        handle = loop.call_later(max(0.0, delay_ms) / 1000.0, self._fire, key, callback)
        self._timers[key] = handle
        return handle

    def _fire(self, key: int, callback: Callable[[], Any]) -> None:
        self._timers.pop(key, None)
        callback()

    def cancel_timers(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers = {}

    @property
    def pending_timers(self) -> int:
        return len(self._timers)
