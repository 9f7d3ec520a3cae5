"""Interaction replay: pointer overlay, native-like clicks, values, scroll.

The overlay lives in a dedicated ``sr-pointer-layer`` element appended to
the replay body. Its custom tag keeps it out of the ``nth-of-type``
counts that recorded paths rely on.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from bs4 import Tag

from sessiontape.document.controls import FormControl, classify_form_control
from sessiontape.document.host import DocumentHost, DomEvent, closest_tag
from sessiontape.document.paths import resolve
from sessiontape.replay.surface import ReplaySurface

logger = logging.getLogger(__name__)

POINTER_LAYER_ID = "__sr_pointer_layer__"
POINTER_LAYER_TAG = "sr-pointer-layer"
FULL_VIEWPORT_RATIO = 0.92

TRAIL_FADE_MS = 240
RIPPLE_FADE_MS = 260
OUTLINE_RESTORE_MS = 220

LAYER_STYLE = {
    "position": "fixed",
    "inset": "0",
    "pointer-events": "none",
    "z-index": "2147483647",
}
POINTER_STYLE = {
    "position": "fixed",
    "width": "10px",
    "height": "10px",
    "border-radius": "999px",
    "background": "#ef4444",
    "box-shadow": "0 0 0 4px rgba(239, 68, 68, 0.18)",
    "transform": "translate(-50%, -50%) scale(1)",
}
CLICK_OUTLINE = "outline: 2px solid #ef4444"


def css(declarations: Mapping[str, Any]) -> str:
    return "; ".join(f"{name}: {value}" for name, value in declarations.items())


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def uses_target_relative_mapping(target: Tag, data: Mapping[str, Any]) -> bool:
    """Whether a pointer position should be mapped relative to its target.

    Document roots and targets spanning (nearly) the whole recorded
    viewport use viewport-ratio mapping instead, so replay tolerates a
    different viewport size.
    """
    if target.name in ("html", "body"):
        return False
    viewport_width = _number(data.get("viewportWidth"))
    viewport_height = _number(data.get("viewportHeight"))
    if not viewport_width or not viewport_height:
        return True
    width = _number(data.get("targetWidth")) or 0.0
    height = _number(data.get("targetHeight")) or 0.0
    return not (
        width >= viewport_width * FULL_VIEWPORT_RATIO
        or height >= viewport_height * FULL_VIEWPORT_RATIO
    )


def map_pointer_position(
    host: DocumentHost, data: Mapping[str, Any]
) -> tuple[float, float] | None:
    """Map a recorded pointer position onto the replay viewport."""
    x, y = _number(data.get("x")), _number(data.get("y"))
    if x is None or y is None:
        return None
    replay_width = host.window.inner_width
    replay_height = host.window.inner_height
    if not replay_width or not replay_height:
        return None

    target = resolve(host.document, data.get("target"))
    offset_x = _number(data.get("targetOffsetX"))
    offset_y = _number(data.get("targetOffsetY"))
    target_width = _number(data.get("targetWidth")) or 0.0
    target_height = _number(data.get("targetHeight")) or 0.0
    has_target_meta = (
        offset_x is not None and offset_y is not None and target_width > 0 and target_height > 0
    )
    if target is not None and has_target_meta and uses_target_relative_mapping(target, data):
        rect = host.get_bounding_client_rect(target)
        return (
            rect.left + rect.width * (offset_x / target_width),
            rect.top + rect.height * (offset_y / target_height),
        )

    recorded_width = _number(data.get("viewportWidth"))
    recorded_height = _number(data.get("viewportHeight"))
    if not recorded_width or not recorded_height:
        return x, y
    return x / recorded_width * replay_width, y / recorded_height * replay_height


class PointerOverlay:
    """Cursor marker, move trail, click ripple and target outline."""

    def __init__(self, surface: ReplaySurface) -> None:
        self.surface = surface

    def ensure_layer(self, host: DocumentHost) -> tuple[Tag, Tag]:
        layer = host.get_element_by_id(POINTER_LAYER_ID)
        if layer is None:
            layer = host.create_element(
                POINTER_LAYER_TAG, {"id": POINTER_LAYER_ID, "style": css(LAYER_STYLE)}
            )
            pointer = host.create_element(
                "div", {"data-role": "pointer", "style": css({**POINTER_STYLE, "opacity": "0"})}
            )
            layer.append(pointer)
            host.append_child(host.body, layer)
        pointer = layer.find(attrs={"data-role": "pointer"})
        return layer, pointer

    def _place_pointer(self, host: DocumentHost, pointer: Tag, x: float, y: float) -> None:
        style = {**POINTER_STYLE, "left": f"{x:g}px", "top": f"{y:g}px", "opacity": "1"}
        host.set_attribute(pointer, "style", css(style))

    def _fade(self, host: DocumentHost, node: Tag, delay_ms: float) -> None:
        def remove() -> None:
            if node.parent is not None and not node.decomposed:
                host.remove_child(node)

        self.surface.call_later(delay_ms, remove)

    def show_move(self, host: DocumentHost, data: Mapping[str, Any]) -> bool:
        mapped = map_pointer_position(host, data)
        if mapped is None:
            return False
        x, y = mapped
        layer, pointer = self.ensure_layer(host)
        prev_x = _number(layer.get("data-last-x"))
        prev_y = _number(layer.get("data-last-y"))
        if prev_x is not None and prev_y is not None:
            dx, dy = x - prev_x, y - prev_y
            segment = host.create_element(
                "div",
                {
                    "data-role": "trail",
                    "style": css(
                        {
                            "position": "fixed",
                            "left": f"{prev_x:g}px",
                            "top": f"{prev_y:g}px",
                            "width": f"{math.hypot(dx, dy):g}px",
                            "height": "2px",
                            "transform-origin": "0 0",
                            "transform": f"rotate({math.degrees(math.atan2(dy, dx)):g}deg)",
                            "background": "rgba(239, 68, 68, 0.45)",
                            "pointer-events": "none",
                        }
                    ),
                },
            )
            host.append_child(layer, segment)
            self._fade(host, segment, TRAIL_FADE_MS)
        self._place_pointer(host, pointer, x, y)
        host.set_attribute(layer, "data-last-x", f"{x:g}")
        host.set_attribute(layer, "data-last-y", f"{y:g}")
        return True

    def show_click(self, host: DocumentHost, data: Mapping[str, Any]) -> tuple[float, float] | None:
        mapped = map_pointer_position(host, data)
        if mapped is None:
            return None
        x, y = mapped
        layer, pointer = self.ensure_layer(host)
        self._place_pointer(host, pointer, x, y)
        ripple = host.create_element(
            "div",
            {
                "data-role": "ripple",
                "style": css(
                    {
                        "position": "fixed",
                        "left": f"{x:g}px",
                        "top": f"{y:g}px",
                        "width": "12px",
                        "height": "12px",
                        "border": "2px solid rgba(239, 68, 68, 0.75)",
                        "border-radius": "999px",
                        "transform": "translate(-50%, -50%) scale(2.7)",
                        "pointer-events": "none",
                    }
                ),
            },
        )
        host.append_child(layer, ripple)
        self._fade(host, ripple, RIPPLE_FADE_MS)
        return mapped

    def mark_clicked(self, host: DocumentHost, target: Tag) -> None:
        original = target.get("style")
        outlined = f"{original.rstrip('; ')}; {CLICK_OUTLINE}" if original else CLICK_OUTLINE
        host.set_attribute(target, "style", outlined)

        def restore() -> None:
            if target.decomposed or target.get("style") != outlined:
                return
            if original is None:
                host.remove_attribute(target, "style")
            else:
                host.set_attribute(target, "style", original)

        self.surface.call_later(OUTLINE_RESTORE_MS, restore)


def _prevent_navigation(event: DomEvent) -> None:
    event.prevent_default()


def replay_native_click(
    host: DocumentHost, target: Tag, point: tuple[float, float] | None, button: int = 0
) -> None:
    """Dispatch pointerdown, mousedown, pointerup, mouseup and click.

    The default navigation of an enclosing anchor is suppressed for this
    one click.
    """
    x, y = point if point is not None else (0.0, 0.0)
    host.focus(target)
    anchor = closest_tag(target, lambda tag: tag.name == "a" and tag.has_attr("href"))
    if anchor is not None:
        host.add_event_listener(anchor, "click", _prevent_navigation, capture=True, once=True)
    for kind in ("pointerdown", "mousedown", "pointerup", "mouseup", "click"):
        host.dispatch_event(
            target,
            DomEvent(kind, client_x=x, client_y=y, button=button, is_trusted=False),
        )
    if anchor is not None:
        # The listener is already gone if the click reached the anchor.
        host.remove_event_listener(anchor, "click", _prevent_navigation, capture=True)


def _apply_value(host: DocumentHost, target: Tag, data: Mapping[str, Any]) -> None:
    kind = classify_form_control(target)
    if kind is FormControl.NONE:
        return
    if data.get("value") is not None:
        host.set_value(target, data["value"])
    if kind is FormControl.TOGGLE and isinstance(data.get("checked"), bool):
        host.set_checked(target, data["checked"])
    host.dispatch_event(target, DomEvent(str(data["eventType"]), is_trusted=False))


def _apply_scroll(host: DocumentHost, target: Tag, data: Mapping[str, Any]) -> None:
    top = _number(data.get("scrollTop")) or 0.0
    left = _number(data.get("scrollLeft")) or 0.0
    if target is host.document_element or target is host.body:
        host.scroll_to(left, top)
    else:
        host.set_scroll(target, top, left)


def apply_interaction(
    host: DocumentHost, overlay: PointerOverlay, data: Mapping[str, Any] | None
) -> bool:
    """Apply one recorded interaction event. Returns True if it had an effect."""
    if not isinstance(data, Mapping) or data.get("blocked") or not data.get("eventType"):
        return False
    kind = data["eventType"]
    if kind == "mousemove":
        return overlay.show_move(host, data)
    if kind not in ("click", "input", "change", "scroll"):
        return False

    target = resolve(host.document, data.get("target"))
    if target is None:
        logger.debug("Drift: %s target %r not found", kind, data.get("target"))
        return False
    if kind in ("input", "change"):
        _apply_value(host, target, data)
    elif kind == "scroll":
        _apply_scroll(host, target, data)
    else:
        point = overlay.show_click(host, data)
        overlay.mark_clicked(host, target)
        button = data.get("button")
        replay_native_click(host, target, point, button if isinstance(button, int) else 0)
    return True
