"""Behavior summarizer: a pure reduction of a payload to behavior signals.

Events are selected with JMESPath queries over the wire-format payload,
so any conforming payload dict works, not only SessionPayload models.
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Mapping
from typing import Any

import jmespath
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from sessiontape.analysis.prompt import build_behavior_prompt
from sessiontape.models.payload import SessionPayload

RAPID_CLICK_WINDOW_MS = 1400
RAPID_CLICK_THRESHOLD = 3
TOP_INPUT_TARGETS = 5

INTERACTIONS = jmespath.compile("events[?type=='event']")
MUTATIONS = jmespath.compile("events[?type=='mutation']")
OFFSETS = jmespath.compile("events[].timeOffsetMs")
CLICKS = jmespath.compile("[?data.eventType=='click']")
MOUSE_MOVES = jmespath.compile("[?data.eventType=='mousemove']")
INPUTS = jmespath.compile("[?data.eventType=='input' || data.eventType=='change']")
SCROLLS = jmespath.compile("[?data.eventType=='scroll']")
SUBMITS = jmespath.compile("[?data.eventType=='submit']")
TARGETS = jmespath.compile("[].data.target")

_WIRE = {"alias_generator": to_camel, "populate_by_name": True}


class BehaviorSignals(BaseModel):
    model_config = _WIRE

    short_bounce: bool = False
    heavy_exploration: bool = False
    form_intent: bool = False
    completion: bool = False
    hesitation: bool = False
    frustration: bool = False


class InputTargetCount(BaseModel):
    target: str
    count: int


class SessionSummary(BaseModel):
    """Aggregate behavior metrics for one session."""

    model_config = _WIRE

    total_events: int = 0
    interaction_events: int = 0
    mutation_events: int = 0
    duration_ms: float = 0.0
    duration_sec: float = 0.0
    by_event_type: dict[str, int] = Field(default_factory=dict)
    unique_targets: int = 0
    max_scroll_top: float = 0.0
    total_mouse_distance: float = 0.0
    rapid_click_bursts: int = 0
    top_input_targets: list[InputTargetCount] = Field(default_factory=list)
    submits: int = 0
    labels: list[str] = Field(default_factory=list)
    behavior_signals: BehaviorSignals = Field(default_factory=BehaviorSignals)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class BehaviorSummary(BaseModel):
    """Summarizer output: the summary plus a prompt for downstream analysis."""

    summary: SessionSummary
    prompt: str


def _num(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _data(event: Mapping[str, Any]) -> Mapping[str, Any]:
    data = event.get("data")
    return data if isinstance(data, Mapping) else {}


def _event_type(event: Mapping[str, Any]) -> str:
    data = _data(event)
    if data.get("eventType"):
        return str(data["eventType"])
    return "unknown"


def mouse_distance(moves: list[Mapping[str, Any]]) -> float:
    """Total path length through consecutive pointer samples."""
    distance = 0.0
    for prev, curr in zip(moves, moves[1:]):
        prev_data = _data(prev)
        curr_data = _data(curr)
        dx = _num(curr_data.get("x")) - _num(prev_data.get("x"))
        dy = _num(curr_data.get("y")) - _num(prev_data.get("y"))
        distance += math.hypot(dx, dy)
    return distance


def count_rapid_click_bursts(
    clicks: list[Mapping[str, Any]],
    window_ms: float = RAPID_CLICK_WINDOW_MS,
    threshold: int = RAPID_CLICK_THRESHOLD,
) -> int:
    """Count non-overlapping runs of ``threshold`` clicks within ``window_ms``."""
    if len(clicks) < threshold:
        return 0
    bursts = 0
    left = 0
    for right in range(len(clicks)):
        right_ts = _num(clicks[right].get("timeOffsetMs"))
        while left < right and right_ts - _num(clicks[left].get("timeOffsetMs")) > window_ms:
            left += 1
        if right - left + 1 >= threshold:
            bursts += 1
            left = right
    return bursts


def build_labels(signals: BehaviorSignals) -> list[str]:
    labels = []
    if signals.short_bounce:
        labels.append("short_bounce")
    if signals.heavy_exploration:
        labels.append("exploration")
    if signals.form_intent and signals.completion:
        labels.append("goal_completed")
    elif signals.form_intent:
        labels.append("goal_attempted_not_completed")
    if signals.hesitation:
        labels.append("hesitation")
    if signals.frustration:
        labels.append("frustration_signal")
    return labels or ["neutral"]


def _as_wire(payload: SessionPayload | Mapping[str, Any] | Any) -> dict[str, Any]:
    if isinstance(payload, SessionPayload):
        return payload.to_wire()
    if isinstance(payload, Mapping):
        events = payload.get("events")
        if isinstance(events, list):
            return {"events": [dict(e) for e in events if isinstance(e, Mapping)]}
    return {"events": []}


def summarize_session(payload: SessionPayload | Mapping[str, Any] | Any) -> SessionSummary:
    """Compute the session summary. Malformed input yields an empty summary."""
    wire = _as_wire(payload)
    events = wire["events"]
    interactions = INTERACTIONS.search(wire) or []
    mutations = MUTATIONS.search(wire) or []

    clicks = CLICKS.search(interactions) or []
    moves = MOUSE_MOVES.search(interactions) or []
    inputs = INPUTS.search(interactions) or []
    scrolls = SCROLLS.search(interactions) or []
    submits = SUBMITS.search(interactions) or []

    duration_ms = max([0.0, *(_num(offset) for offset in OFFSETS.search(wire) or [])])
    max_scroll_top = max([0.0, *(_num(_data(e).get("scrollTop")) for e in scrolls)])
    unique_targets = len({t for t in TARGETS.search(interactions) or [] if isinstance(t, str) and t})

    input_targets = Counter(
        str(_data(event).get("target") or "unknown") for event in inputs
    )
    rapid_bursts = count_rapid_click_bursts(clicks)

    signals = BehaviorSignals(
        short_bounce=duration_ms < 12000 and len(interactions) < 8,
        heavy_exploration=max_scroll_top > 500 and len(moves) > 30,
        form_intent=len(inputs) >= 4,
        completion=len(submits) > 0,
        hesitation=len(inputs) >= 8 and not submits,
        frustration=rapid_bursts > 0,
    )
    return SessionSummary(
        total_events=len(events),
        interaction_events=len(interactions),
        mutation_events=len(mutations),
        duration_ms=duration_ms,
        duration_sec=round(duration_ms / 1000, 2),
        by_event_type=dict(Counter(_event_type(event) for event in interactions)),
        unique_targets=unique_targets,
        max_scroll_top=max_scroll_top,
        total_mouse_distance=round(mouse_distance(moves), 2),
        rapid_click_bursts=rapid_bursts,
        top_input_targets=[
            InputTargetCount(target=target, count=count)
            for target, count in input_targets.most_common(TOP_INPUT_TARGETS)
        ],
        submits=len(submits),
        labels=build_labels(signals),
        behavior_signals=signals,
    )


def summarize(payload: SessionPayload | Mapping[str, Any] | Any) -> BehaviorSummary:
    """Summarize a finished payload and build the analysis prompt."""
    summary = summarize_session(payload)
    return BehaviorSummary(summary=summary, prompt=build_behavior_prompt(summary.to_wire()))
