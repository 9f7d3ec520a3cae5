"""Behavior analysis over finished session payloads."""

from sessiontape.analysis.prompt import build_behavior_prompt
from sessiontape.analysis.summarizer import (
    BehaviorSignals,
    BehaviorSummary,
    SessionSummary,
    summarize,
    summarize_session,
)

__all__ = [
    "BehaviorSignals",
    "BehaviorSummary",
    "SessionSummary",
    "build_behavior_prompt",
    "summarize",
    "summarize_session",
]
