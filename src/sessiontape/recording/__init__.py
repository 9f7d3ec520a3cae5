"""Capture engine: redaction policy, serialization and the recorder."""

from sessiontape.recording.intercept import MethodInterceptor
from sessiontape.recording.policy import Redaction, RedactionPolicy, classify
from sessiontape.recording.recorder import RecorderState, SessionRecorder
from sessiontape.recording.script import ManualClock, ScriptError, record_script, run_script

__all__ = [
    "ManualClock",
    "MethodInterceptor",
    "RecorderState",
    "Redaction",
    "RedactionPolicy",
    "ScriptError",
    "SessionRecorder",
    "classify",
    "record_script",
    "run_script",
]
