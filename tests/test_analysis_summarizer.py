"""Tests for the behavior summarizer and analysis prompt."""

from __future__ import annotations

import json
from typing import Any

from sessiontape.analysis.prompt import JUDGMENT_SCHEMA, build_behavior_prompt
from sessiontape.analysis.summarizer import (
    count_rapid_click_bursts,
    mouse_distance,
    summarize,
    summarize_session,
)
from sessiontape.models.payload import parse_payload


def _event(event_id: int, offset: float, event_type: str, **data: Any) -> dict[str, Any]:
    return {
        "id": event_id,
        "type": "event",
        "timeOffsetMs": offset,
        "data": {"eventType": event_type, **data},
    }


def _make_payload(events: list[dict[str, Any]]) -> dict[str, Any]:
    return {
        "version": 1,
        "events": [
            {"id": 1, "type": "snapshot", "timeOffsetMs": 0, "data": {"html": "<html></html>"}},
            *events,
        ],
    }


class TestHelpers:
    """Distance and burst counting."""

    def test_mouse_distance(self) -> None:
        moves = [{"data": {"x": 0, "y": 0}}, {"data": {"x": 3, "y": 4}}, {"data": {"x": 3, "y": 10}}]
        assert mouse_distance(moves) == 11.0

    def test_mouse_distance_tolerates_missing_coords(self) -> None:
        assert mouse_distance([{"data": {}}, {"data": {"x": "?", "y": None}}]) == 0.0

    def test_bursts_non_overlapping(self) -> None:
        clicks = [{"timeOffsetMs": t} for t in (0, 100, 200, 300, 400)]
        assert count_rapid_click_bursts(clicks) == 2

    def test_spread_clicks_are_not_a_burst(self) -> None:
        clicks = [{"timeOffsetMs": t} for t in (0, 1500, 3000)]
        assert count_rapid_click_bursts(clicks) == 0

    def test_too_few_clicks(self) -> None:
        assert count_rapid_click_bursts([{"timeOffsetMs": 0}, {"timeOffsetMs": 1}]) == 0


class TestSummarizeSession:
    """Counts, signals and labels."""

    def test_short_bounce(self) -> None:
        summary = summarize_session(_make_payload([_event(2, 900, "click", target="#cta")]))
        assert summary.behavior_signals.short_bounce is True
        assert summary.labels == ["short_bounce"]
        assert summary.duration_ms == 900
        assert summary.duration_sec == 0.9
        assert summary.by_event_type == {"click": 1}
        assert summary.unique_targets == 1

    def test_goal_completed(self) -> None:
        events = [
            _event(i + 2, 2000 * (i + 1), "input", target=f"#field{i % 2}") for i in range(4)
        ]
        events.append(_event(10, 15000, "submit", target="#form"))
        summary = summarize_session(_make_payload(events))
        assert summary.behavior_signals.form_intent is True
        assert summary.behavior_signals.completion is True
        assert "goal_completed" in summary.labels
        assert summary.submits == 1
        assert [t.model_dump() for t in summary.top_input_targets] == [
            {"target": "#field0", "count": 2},
            {"target": "#field1", "count": 2},
        ]

    def test_hesitation_without_submit(self) -> None:
        events = [_event(i + 2, 2000 * (i + 1), "change", target="#size") for i in range(8)]
        summary = summarize_session(_make_payload(events))
        assert summary.behavior_signals.hesitation is True
        assert "goal_attempted_not_completed" in summary.labels
        assert "hesitation" in summary.labels

    def test_exploration(self) -> None:
        events = [_event(i + 2, 500 * i, "mousemove", x=i * 10, y=0) for i in range(31)]
        events.append(_event(50, 20000, "scroll", target="document", scrollTop=900))
        summary = summarize_session(_make_payload(events))
        assert summary.behavior_signals.heavy_exploration is True
        assert summary.max_scroll_top == 900
        assert summary.total_mouse_distance == 300.0
        assert "exploration" in summary.labels

    def test_frustration(self) -> None:
        events = [_event(i + 2, 13000 + 100 * i, "click", target="#buy") for i in range(3)]
        summary = summarize_session(_make_payload(events))
        assert summary.rapid_click_bursts == 1
        assert summary.labels == ["frustration_signal"]

    def test_neutral_label(self) -> None:
        events = [_event(i + 2, 2000 * i, "click", target=f"#b{i}") for i in range(10)]
        summary = summarize_session(_make_payload(events))
        assert summary.labels == ["neutral"]

    def test_mutations_counted_not_interactions(self) -> None:
        payload = _make_payload([{"id": 2, "type": "mutation", "timeOffsetMs": 5, "data": {}}])
        summary = summarize_session(payload)
        assert summary.mutation_events == 1
        assert summary.interaction_events == 0
        assert summary.total_events == 2

    def test_model_and_dict_agree(self) -> None:
        raw = _make_payload([_event(2, 10, "click", target="#a")])
        assert summarize_session(parse_payload(raw)) == summarize_session(raw)

    def test_malformed_input_gives_empty_summary(self) -> None:
        summary = summarize_session("not a payload")
        assert summary.total_events == 0
        assert summary.labels == ["short_bounce"]

    def test_wire_keys_are_camel_case(self) -> None:
        wire = summarize_session(_make_payload([])).to_wire()
        assert "behaviorSignals" in wire
        assert "shortBounce" in wire["behaviorSignals"]
        assert "rapidClickBursts" in wire


class TestPrompt:
    """Prompt rendering."""

    def test_prompt_embeds_summary_json(self) -> None:
        result = summarize(_make_payload([_event(2, 10, "click", target="#a")]))
        assert JUDGMENT_SCHEMA in result.prompt
        block = result.prompt.split("Session summary:\n", 1)[1]
        assert json.loads(block) == result.summary.to_wire()

    def test_build_prompt_is_deterministic(self) -> None:
        summary = {"totalEvents": 3}
        assert build_behavior_prompt(summary) == build_behavior_prompt(dict(summary))
