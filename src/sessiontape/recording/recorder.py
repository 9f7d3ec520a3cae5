"""Capture engine: live document -> bounded, privacy-filtered event log.

The recorder observes a DocumentHost. On start() it emits the snapshot,
then attaches a mutation observer, capture-phase interaction listeners,
navigation listeners and history interceptors; stop() detaches all of
them and appends a terminal meta event with the final counters.

Every stored value passes through the redaction policy first. Once the
buffer holds ``limits.max_events`` events, further non-meta events are
dropped and counted in ``dropped_event_count``.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Tag
from bs4.element import PageElement

from sessiontape.document.controls import FormControl, classify_form_control
from sessiontape.document.host import (
    DocumentHost,
    DomEvent,
    MutationObserver,
    MutationRecord,
    closest_tag,
    url_origin,
)
from sessiontape.document.paths import former_child_path, path_of
from sessiontape.models.config import TapeConfig, apply_config
from sessiontape.models.payload import (
    CURRENT_PAYLOAD_SCHEMA_VERSION,
    Event,
    PageInfo,
    RedactionStats,
    SessionPayload,
)
from sessiontape.recording.intercept import MethodInterceptor
from sessiontape.recording.policy import (
    REDACTED_TEXT,
    Redaction,
    RedactionPolicy,
    classify,
    mask_value,
)
from sessiontape.recording.serialize import (
    frame_inventory,
    never_ignore,
    redacted_copy,
    serialize_node,
    snapshot_html,
    utf8_size,
)

logger = logging.getLogger(__name__)

INTERACTION_EVENTS = ("click", "mousemove", "input", "change", "submit", "scroll")
WINDOW_NAVIGATION_EVENTS = ("hashchange", "popstate", "beforeunload", "pagehide", "pageshow")
DOCUMENT_NAVIGATION_EVENTS = ("visibilitychange",)


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"


def _json_safe(value: Any) -> Any:
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError):
        return None


def _without_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


class SessionRecorder:
    """Records one session at a time against a document host.

    Args:
        host: The live document to observe.
        config: Effective configuration; defaults to TapeConfig().
        ignore_node: Predicate marking the tool's own UI. A node is ignored
            when it or any ancestor satisfies the predicate.
        clock: Monotonic clock in seconds (``time.monotonic`` by default).
    """

    def __init__(
        self,
        host: DocumentHost,
        config: TapeConfig | None = None,
        *,
        ignore_node: Callable[[Any], bool] = never_ignore,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.host = host
        self.config = config if config is not None else TapeConfig()
        self._policy = RedactionPolicy.from_config(self.config.privacy)
        self._ignore_node = ignore_node
        self._clock = clock
        self.state = RecorderState.IDLE

        self._events: list[Event] = []
        self._sequence = 0
        self._started_at = 0.0
        self._last_offset = 0.0
        self._last_sample: dict[str, float] = {}
        self._intent_seq = 0
        self._dropped = 0
        self._stats = RedactionStats()

        self._observer = MutationObserver(self._on_mutations)
        self._listeners: list[tuple[Any, str, Callable[[DomEvent], None]]] = []
        self._history_hooks = [
            MethodInterceptor(host.history, "push_state", self._on_push_state),
            MethodInterceptor(host.history, "replace_state", self._on_replace_state),
        ]

    # -- public surface --

    @property
    def is_recording(self) -> bool:
        return self.state is RecorderState.RECORDING

    @property
    def dropped_event_count(self) -> int:
        return self._dropped

    @property
    def redaction_stats(self) -> RedactionStats:
        return self._stats.model_copy()

    @property
    def events(self) -> list[Event]:
        return list(self._events)

    def apply_config(self, partial: Mapping[str, Any] | TapeConfig | None) -> TapeConfig:
        """Merge partial config and recompile the policy. Returns the result."""
        self.config = apply_config(self.config, partial)
        self._policy = RedactionPolicy.from_config(self.config.privacy)
        return self.config

    def start(self) -> None:
        """Begin recording. No-op if already recording."""
        if self.is_recording:
            return
        self._events = []
        self._sequence = 0
        self._started_at = self._clock()
        self._last_offset = 0.0
        self._last_sample = {}
        self._intent_seq = 0
        self._dropped = 0
        self._stats = RedactionStats()
        self.state = RecorderState.RECORDING

        self.record(
            "snapshot",
            {
                "reason": "initial",
                "url": self.host.location.href,
                "viewport": {
                    "width": self.host.window.inner_width,
                    "height": self.host.window.inner_height,
                },
                "iframeSummary": frame_inventory(
                    self.host, self._policy, ignore_node=self._is_ignored
                ),
                "html": snapshot_html(self.host, self._policy, ignore_node=self._is_ignored),
            },
        )
        self._attach()
        logger.debug("Recording started on %s", self.host.location.href)

    def stop(self) -> None:
        """Detach everything and append the terminal meta event. No-op if idle."""
        if not self.is_recording:
            return
        self._detach()
        self.record(
            "meta",
            {
                "action": "recording_stopped",
                "droppedEventCount": self._dropped,
                "redactionStats": self._stats.model_dump(by_alias=True),
            },
        )
        self.state = RecorderState.IDLE
        logger.debug(
            "Recording stopped: %d events, %d dropped", len(self._events), self._dropped
        )

    def get_payload(self) -> SessionPayload:
        """Return an immutable payload built from the accumulated state."""
        config = self.config
        return SessionPayload(
            version=CURRENT_PAYLOAD_SCHEMA_VERSION,
            created_at=datetime.now(timezone.utc),
            page=PageInfo(href=self.host.location.href, agent=self.host.user_agent),
            recording_config={
                "privacy": config.privacy.model_dump(by_alias=True),
                "replay": config.replay.model_dump(by_alias=True),
                "limits": config.limits.model_dump(by_alias=True),
            },
            dropped_event_count=self._dropped,
            redaction_stats=self._stats.model_copy(),
            event_count=len(self._events),
            events=[event.model_copy(deep=True) for event in self._events],
        )

    def record(self, type: str, data: dict[str, Any]) -> Event | None:
        """Append an event, applying the recording gate and the event bound.

        Returns:
            The stored Event, or None if it was not recorded.
        """
        if not self.is_recording and type != "meta":
            return None
        if type != "meta" and len(self._events) >= self.config.limits.max_events:
            self._dropped += 1
            return None
        now = self._clock()
        offset = round((now - self._started_at) * 1000.0, 3)
        offset = max(offset, self._last_offset)
        self._last_offset = offset
        self._sequence += 1
        event = Event(
            id=self._sequence,
            type=type,
            at=round(now * 1000.0, 3),
            time_offset_ms=offset,
            data=data,
        )
        self._events.append(event)
        return event

    # -- attach / detach --

    def _listen(self, target: Any, type: str, handler: Callable[[DomEvent], None]) -> None:
        self.host.add_event_listener(target, type, handler, capture=True)
        self._listeners.append((target, type, handler))

    def _attach(self) -> None:
        self._observer.observe(
            self.host,
            child_list=True,
            attributes=True,
            character_data=True,
            subtree=True,
            attribute_old_value=True,
            character_data_old_value=True,
        )
        for type in INTERACTION_EVENTS:
            self._listen(self.host.document, type, self._on_interaction)
        for type in WINDOW_NAVIGATION_EVENTS:
            self._listen(self.host.window, type, self._on_navigation)
        for type in DOCUMENT_NAVIGATION_EVENTS:
            self._listen(self.host.document, type, self._on_navigation)
        for hook in self._history_hooks:
            hook.install()

    def _detach(self) -> None:
        self._observer.disconnect()
        for target, type, handler in self._listeners:
            self.host.remove_event_listener(target, type, handler, capture=True)
        self._listeners = []
        for hook in self._history_hooks:
            hook.uninstall()

    # -- helpers --

    def _is_ignored(self, node: Any) -> bool:
        current = node if isinstance(node, PageElement) else None
        while current is not None and not isinstance(current, BeautifulSoup):
            if isinstance(current, Tag) and self._ignore_node(current):
                return True
            current = current.parent
        return False

    def _element_of(self, node: Any) -> Tag | None:
        if isinstance(node, BeautifulSoup) or not isinstance(node, PageElement):
            return None
        return node if isinstance(node, Tag) else node.parent

    def _elapsed_ms(self, key: str) -> float | None:
        last = self._last_sample.get(key)
        if last is None:
            return None
        return (self._clock() - last) * 1000.0

    def _throttled(self, key: str, interval_ms: int) -> bool:
        """Leading-edge gate: True if key fired less than interval_ms ago."""
        elapsed = self._elapsed_ms(key)
        if interval_ms and elapsed is not None and elapsed < interval_ms:
            return True
        self._last_sample[key] = self._clock()
        return False

    def _record_intent(self, intent_type: str, target: Any) -> None:
        self._intent_seq += 1
        self.record(
            "event",
            {
                "eventType": "intent_marker",
                "intentType": intent_type,
                "intentSeq": self._intent_seq,
                "target": path_of(self._element_of(target)),
            },
        )

    def _pointer_data(self, event: DomEvent) -> dict[str, Any]:
        data: dict[str, Any] = {
            "x": event.client_x,
            "y": event.client_y,
            "viewportWidth": self.host.window.inner_width,
            "viewportHeight": self.host.window.inner_height,
        }
        if isinstance(event.target, Tag) and event.client_x is not None:
            rect = self.host.get_bounding_client_rect(event.target)
            if rect.width and rect.height:
                data.update(
                    targetOffsetX=event.client_x - rect.left,
                    targetOffsetY=(event.client_y or 0) - rect.top,
                    targetWidth=rect.width,
                    targetHeight=rect.height,
                )
        return data

    # -- interaction --

    def _on_interaction(self, event: DomEvent) -> None:
        target = event.target
        if self._is_ignored(target):
            return
        limits = self.config.limits
        kind = event.type
        if kind == "mousemove" and self._throttled(kind, limits.pointer_sample_interval_ms):
            return
        if kind in ("input", "change") and self._throttled(kind, limits.input_debounce_ms):
            return
        if kind == "scroll" and self._throttled(kind, limits.scroll_debounce_ms):
            return

        if self._policy.is_blocked(self._element_of(target)):
            self._stats.blocked_node_events += 1
            self.record("event", {"eventType": kind, "blocked": True})
            return

        common = {
            "eventType": kind,
            "target": path_of(target),
            "currentTarget": path_of(event.current_target),
            "isTrusted": event.is_trusted,
        }
        if kind == "click":
            self.record("event", {**common, **self._pointer_data(event), "button": event.button})
            self._record_intent("click", target)
            self._record_navigation_intent(target)
        elif kind == "mousemove":
            self.record("event", {**common, **self._pointer_data(event)})
        elif kind in ("input", "change"):
            self.record("event", {**common, **self._value_data(target)})
            self._record_intent(kind, target)
        elif kind == "scroll":
            scrolled = self.host.scrolling_element if target is self.host.document else target
            top, left = self.host.get_scroll(scrolled)
            self.record("event", {**common, "scrollTop": top, "scrollLeft": left})
        elif kind == "submit":
            self.record("event", {**common, "prevented": event.default_prevented})
            self._record_intent("submit", target)

    def _value_data(self, target: Any) -> dict[str, Any]:
        kind = classify_form_control(target)
        if kind is FormControl.NONE:
            return {"value": None}
        raw = self.host.get_value(target)
        if kind is FormControl.TOGGLE:
            return {"value": raw, "checked": self.host.is_checked(target)}
        decision = classify(target, "value", self._policy)
        value = mask_value(raw) if decision.redacts else raw
        if value != raw:
            self._stats.masked_input_events += 1
        return {"value": value}

    def _record_navigation_intent(self, target: Any) -> None:
        anchor = closest_tag(
            self._element_of(target), lambda tag: tag.name == "a" and tag.has_attr("href")
        )
        if anchor is None or self._is_ignored(anchor):
            return
        href = self.host.location.resolve(anchor["href"])
        parts = urlsplit(href)
        self.record(
            "event",
            {
                "eventType": "navigation_intent",
                "target": path_of(anchor),
                "href": href,
                "pathname": parts.path or "/",
                "hash": f"#{parts.fragment}" if parts.fragment else "",
                "targetBlank": anchor.get("target") == "_blank",
                "sameOrigin": url_origin(href) == self.host.location.origin,
            },
        )

    # -- navigation --

    def _on_navigation(self, event: DomEvent) -> None:
        location = self.host.location
        persisted = event.detail.get("persisted")
        data = _without_none({
            "eventType": event.type,
            "href": location.href,
            "pathname": location.pathname + location.search,
            "hash": location.hash,
            "visibilityState": self.host.visibility_state,
            "persisted": persisted if isinstance(persisted, bool) else None,
        })
        if event.type == "popstate":
            data["state"] = _json_safe(event.detail.get("state"))
        self.record("event", data)

    def _record_history(self, kind: str, state: Any, url: str | None) -> None:
        self.record(
            "event",
            {
                "eventType": kind,
                "href": self.host.location.href,
                "targetUrl": self.host.location.resolve(url) if url else None,
                "state": _json_safe(state),
            },
        )

    def _on_push_state(self, state: Any, title: str = "", url: str | None = None) -> None:
        self._record_history("history_pushstate", state, url)

    def _on_replace_state(self, state: Any, title: str = "", url: str | None = None) -> None:
        self._record_history("history_replacestate", state, url)

    # -- mutations --

    def _on_mutations(self, records: list[MutationRecord]) -> None:
        for record in records:
            self._record_mutation(record)

    def _record_mutation(self, record: MutationRecord) -> None:
        target = record.target
        if self._is_ignored(target):
            return
        added = [node for node in record.added_nodes if not self._is_ignored(node)]
        removed = [node for node in record.removed_nodes if not self._is_ignored(node)]
        if record.type == "childList" and not added and not removed:
            return

        base = {
            "eventType": f"mutation_{record.type}",
            "mutationType": record.type,
            "intentSeq": self._intent_seq,
        }
        if self._policy.is_blocked(self._element_of(target)):
            self._stats.blocked_mutations += 1
            self.record("mutation", {**base, "blocked": True})
            return

        data: dict[str, Any] = {
            **base,
            "target": path_of(target),
            "attributeName": record.attribute_name,
            "oldValue": record.old_value,
            "newValue": None,
            "targetInnerHTML": None,
            "addedNodes": [],
            "removedNodes": [],
        }
        if record.type == "attributes":
            data["newValue"] = target.get(record.attribute_name)
            self._mask_mutation_values(data, classify(target, record.attribute_name, self._policy))
        elif record.type == "characterData":
            parent = target.parent
            data["newValue"] = str(target)
            if isinstance(parent, Tag):
                data["parentTarget"] = path_of(parent)
                data["textIndex"] = parent.index(target)
            self._mask_mutation_values(data, classify(target, None, self._policy))
        else:
            self._describe_child_list(record, added, removed, data)
        self.record("mutation", data)

    def _mask_mutation_values(self, data: dict[str, Any], decision: Redaction) -> None:
        if not decision.redacts:
            return
        for key in ("oldValue", "newValue"):
            value = data[key]
            if value is None:
                continue
            data[key] = mask_value(value) if decision is Redaction.MASK_VALUE else REDACTED_TEXT
        self._stats.masked_mutation_values += 1

    def _describe_child_list(
        self,
        record: MutationRecord,
        added: list[PageElement],
        removed: list[PageElement],
        data: dict[str, Any],
    ) -> None:
        max_bytes = self.config.limits.max_mutation_payload_bytes
        target = record.target

        def describe(node: PageElement, path: str) -> dict[str, Any]:
            result = serialize_node(
                node,
                self._policy,
                path=path,
                max_bytes=max_bytes,
                parent=target,
                host=self.host,
                ignore_node=self._is_ignored,
            )
            if result.redacted:
                self._stats.redacted_serialized_nodes += 1
            if result.truncated:
                self._stats.truncated_mutation_html += 1
            return result.data

        data["addedNodes"] = [describe(node, path_of(node)) for node in added]
        data["removedNodes"] = [
            describe(node, former_child_path(record, node)) for node in removed
        ]
        targeted = all(
            item["nodeType"] in ("element", "text")
            for item in data["addedNodes"] + data["removedNodes"]
        )
        if targeted or not isinstance(target, Tag) or isinstance(target, BeautifulSoup):
            return
        clone, _ = redacted_copy(target, self._policy, host=self.host, ignore_node=self._is_ignored)
        inner_html = clone.decode_contents()
        if utf8_size(inner_html) > max_bytes:
            self._stats.truncated_mutation_html += 1
            return
        data["targetInnerHTML"] = inner_html
