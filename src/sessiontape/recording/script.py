"""Scripted sessions: drive a DocumentHost from a list of actions.

Each step advances a manual virtual clock, so recordings made from the
same script and page always carry the same time offsets.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import soupsieve as sv
from bs4 import NavigableString, Tag

from sessiontape.document.controls import FormControl, classify_form_control
from sessiontape.document.host import DocumentHost, DomEvent, Rect
from sessiontape.models.config import TapeConfig, apply_config
from sessiontape.models.payload import SessionPayload
from sessiontape.models.script import RecordingScript
from sessiontape.recording.recorder import SessionRecorder

logger = logging.getLogger(__name__)


class ScriptError(ValueError):
    """Raised when a step cannot be executed against the page."""


class ManualClock:
    """A monotonic clock that only moves when told to (seconds)."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        if ms < 0:
            raise ValueError("clock cannot move backwards")
        self.now += ms / 1000.0


def _select(host: DocumentHost, selector: str | None) -> Tag:
    if not selector:
        raise ScriptError("step needs a target selector")
    try:
        element = host.document.select_one(selector)
    except sv.SelectorSyntaxError as exc:
        raise ScriptError(f"malformed selector {selector!r}") from exc
    if element is None:
        raise ScriptError(f"no element matches {selector!r}")
    return element


def _args(value: Any, key: str) -> dict[str, Any]:
    """Normalize a step value: scalars become ``{key: value}``."""
    if isinstance(value, Mapping):
        return dict(value)
    if value is None:
        return {}
    return {key: value}


def _center(host: DocumentHost, element: Tag) -> tuple[float, float]:
    rect = host.get_bounding_client_rect(element)
    return rect.left + rect.width / 2, rect.top + rect.height / 2


def _click(host: DocumentHost, args: dict[str, Any]) -> None:
    element = _select(host, args.get("target"))
    x, y = _center(host, element)
    x = float(args.get("x", x))
    y = float(args.get("y", y))
    host.focus(element)
    toggles = classify_form_control(element) is FormControl.TOGGLE and (
        element.get("type", "").lower() in ("checkbox", "radio")
    )
    if toggles:
        host.set_checked(element, not host.is_checked(element))
    host.dispatch_event(element, DomEvent("click", client_x=x, client_y=y))
    if toggles:
        host.dispatch_event(element, DomEvent("input", cancelable=False))
        host.dispatch_event(element, DomEvent("change", cancelable=False))


def _move(host: DocumentHost, args: dict[str, Any]) -> None:
    target = args.get("target")
    element = _select(host, target) if target else host.document_element
    host.dispatch_event(
        element,
        DomEvent(
            "mousemove",
            client_x=float(args.get("x", 0)),
            client_y=float(args.get("y", 0)),
        ),
    )


def _value_event(host: DocumentHost, args: dict[str, Any], kind: str) -> None:
    element = _select(host, args.get("target"))
    host.focus(element)
    if "value" in args:
        host.set_value(element, args["value"])
    host.dispatch_event(element, DomEvent(kind, cancelable=False))


def _set_text(host: DocumentHost, args: dict[str, Any]) -> None:
    element = _select(host, args.get("target"))
    text = str(args.get("text", ""))
    node = next(
        (child for child in element.children if type(child) is NavigableString), None
    )
    if node is None:
        host.append_child(element, NavigableString(text))
    else:
        host.set_text(node, text)


def run_step(host: DocumentHost, clock: ManualClock, step: Mapping[str, Any]) -> None:
    """Execute one single-action step."""
    ((action, value),) = step.items()
    logger.debug("step %s %r", action, value)
    if action == "wait":
        clock.advance(float(value or 0))
    elif action == "click":
        _click(host, _args(value, "target"))
    elif action == "move":
        _move(host, _args(value, "target"))
    elif action in ("input", "change"):
        _value_event(host, _args(value, "target"), action)
    elif action == "submit":
        form = _select(host, _args(value, "target").get("target"))
        host.dispatch_event(form, DomEvent("submit"))
    elif action == "scroll":
        args = _args(value, "top")
        target = args.get("target")
        element = _select(host, target) if target else None
        host.scroll(element, float(args.get("top", 0)), float(args.get("left", 0)))
    elif action == "layout":
        args = _args(value, "target")
        host.set_layout(
            _select(host, args.get("target")),
            Rect(
                float(args.get("left", 0)),
                float(args.get("top", 0)),
                float(args.get("width", 0)),
                float(args.get("height", 0)),
            ),
        )
    elif action == "set_attribute":
        args = _args(value, "target")
        host.set_attribute(
            _select(host, args.get("target")), str(args["name"]), args.get("value", "")
        )
    elif action == "append_html":
        args = _args(value, "target")
        host.append_html(_select(host, args.get("target")), str(args.get("html", "")))
    elif action == "remove":
        host.remove_child(_select(host, _args(value, "target").get("target")))
    elif action == "set_text":
        _set_text(host, _args(value, "target"))
    elif action in ("push_state", "replace_state"):
        args = _args(value, "url")
        method = getattr(host.history, action)
        method(args.get("state"), "", args.get("url"))
    elif action == "back":
        host.history.back()
    elif action == "visibility":
        host.set_visibility(str(value))
    else:
        raise ScriptError(f"unknown action {action!r}")


def run_script(
    host: DocumentHost,
    recorder: SessionRecorder,
    steps: list[Mapping[str, Any]],
    *,
    clock: ManualClock,
    gap_ms: float = 250,
) -> None:
    """Run steps against host while recorder is capturing.

    The recorder is started if it is idle; stopping it is left to the
    caller. ``gap_ms`` of virtual time elapses before every step.
    """
    recorder.start()
    for index, step in enumerate(steps):
        clock.advance(gap_ms)
        try:
            run_step(host, clock, step)
        except ScriptError as exc:
            raise ScriptError(f"step {index}: {exc}") from exc


def record_script(
    script: RecordingScript,
    *,
    base_dir: Path | None = None,
    config: TapeConfig | None = None,
) -> SessionPayload:
    """Load the script's page, run its steps and return the payload.

    Args:
        script: Validated recording script.
        base_dir: Directory that ``script.page`` is relative to.
        config: Base configuration; the script's ``config`` is merged on top.
    """
    if script.html is not None:
        markup = script.html
    elif script.page is not None:
        page_path = Path(script.page)
        if base_dir is not None and not page_path.is_absolute():
            page_path = base_dir / page_path
        markup = page_path.read_text(encoding="utf-8")
    else:
        markup = ""

    host = DocumentHost(
        markup,
        url=script.url,
        viewport=(script.viewport.width, script.viewport.height),
        user_agent=script.user_agent,
    )
    effective = apply_config(config or TapeConfig(), script.config)
    ignore = None
    if script.ignore_selector:
        try:
            ignore = sv.compile(script.ignore_selector)
        except sv.SelectorSyntaxError as exc:
            raise ScriptError(f"malformed ignore_selector {script.ignore_selector!r}") from exc

    clock = ManualClock()
    recorder = SessionRecorder(
        host,
        effective,
        ignore_node=(lambda node: ignore.match(node)) if ignore else (lambda node: False),
        clock=clock,
    )
    run_script(host, recorder, script.steps, clock=clock, gap_ms=script.gap_ms)
    clock.advance(script.gap_ms)
    recorder.stop()
    return recorder.get_payload()
