"""Child-frame restoration on the replay surface.

Same-origin frames get their recorded source back. Cross-origin frames
get a bounded wait on the frame loader; if they do not load in time,
or the loader fails, they are replaced by an inert placeholder.
"""

from __future__ import annotations

import asyncio
import html
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from bs4 import Tag
from pydantic import ValidationError

from sessiontape.document.host import DocumentHost
from sessiontape.document.paths import resolve
from sessiontape.models.payload import ChildFrame
from sessiontape.recording.policy import BLOCKED_MARKER
from sessiontape.recording.serialize import is_cross_origin, normalize_frame_src

logger = logging.getLogger(__name__)

FrameLoader = Callable[[str], Awaitable[bool]]

PLACEHOLDER_TEMPLATE = (
    "<!doctype html><html><body style=\"margin:0;font:12px/1.4 sans-serif;"
    "background:#f8fafc;color:#334155;display:flex;align-items:center;"
    "justify-content:center;\"><pre style=\"white-space:pre-wrap;padding:12px;"
    "margin:0;max-width:100%;\">{text}</pre></body></html>"
)


async def headless_frame_loader(url: str) -> bool:
    """Default loader: a headless surface has no network access to frames."""
    return False


def placeholder_srcdoc(desired_src: str | None) -> str:
    text = "\n".join(
        [
            "3rd-party frame could not be restored.",
            f"src: {desired_src or '(unknown)'}",
            "Reason: cross-origin/ad-blocker/network policy.",
        ]
    )
    return PLACEHOLDER_TEMPLATE.format(text=html.escape(text))


def install_placeholder(
    host: DocumentHost, frame: Tag, desired_src: str | None, base_url: str | None
) -> None:
    host.remove_attribute(frame, "src")
    host.set_attribute(frame, "srcdoc", placeholder_srcdoc(desired_src))
    host.set_attribute(frame, "title", f"Third-party frame placeholder ({base_url or ''})")


def _coerce(item: Any) -> ChildFrame | None:
    if isinstance(item, ChildFrame):
        return item
    if not isinstance(item, dict) or not item.get("path"):
        return None
    try:
        return ChildFrame.model_validate(item)
    except ValidationError:
        logger.debug("Skipping malformed frame descriptor %r", item)
        return None


async def _await_frame(
    host: DocumentHost,
    frame: Tag,
    desired: str,
    base_url: str | None,
    loader: FrameLoader,
    timeout_s: float,
) -> bool:
    try:
        loaded = await asyncio.wait_for(loader(desired), timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.info("Frame %s did not load within %.0f ms", desired, timeout_s * 1000)
        loaded = False
    except Exception:
        logger.warning("Frame loader failed for %s", desired, exc_info=True)
        loaded = False
    if loaded:
        host.set_frame_location(frame, desired)
        return True
    install_placeholder(host, frame, desired, base_url)
    return False


async def restore_frames(
    host: DocumentHost,
    frames: Iterable[Any],
    *,
    base_url: str | None,
    loader: FrameLoader = headless_frame_loader,
    timeout_ms: float = 1800,
) -> list[str]:
    """Restore recorded frame sources on the replay document.

    Args:
        host: The replay surface's document.
        frames: Child-frame descriptors (models or wire dicts).
        base_url: The recorded page URL (origin reference).
        loader: Coroutine resolving True once a frame URL has loaded.
        timeout_ms: Bounded wait per cross-origin frame.

    Returns:
        Paths of frames that were replaced by a placeholder.
    """
    origin_ref = host.location.origin
    pending: list[tuple[str, Awaitable[bool]]] = []
    for item in frames or []:
        descriptor = _coerce(item)
        if descriptor is None:
            continue
        target = resolve(host.document, descriptor.path)
        if target is None or target.name != "iframe" or target.has_attr(BLOCKED_MARKER):
            continue
        desired = normalize_frame_src(descriptor.resolved_src or descriptor.declared_src)
        if not desired:
            continue
        desired = host.location.resolve(desired)
        current = normalize_frame_src(target.get("src"))
        if current is None or host.location.resolve(current) != desired:
            host.set_attribute(target, "src", desired)
        if descriptor.is_cross_origin or is_cross_origin(desired, origin_ref):
            pending.append(
                (
                    descriptor.path,
                    _await_frame(host, target, desired, base_url, loader, timeout_ms / 1000.0),
                )
            )
    if not pending:
        return []
    results = await asyncio.gather(*(awaitable for _, awaitable in pending))
    return [path for (path, _), loaded in zip(pending, results) if not loaded]
