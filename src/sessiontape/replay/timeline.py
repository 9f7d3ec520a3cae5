"""Virtual-clock timeline scheduler.

A chain of deferred callbacks walks a sorted event list: apply the
event at the cursor, then wait the recorded gap to the next event
(divided by the speed) before the next step. Application is decoupled
from timing by a ``done`` callback, so the next step is only scheduled
once the current event has settled.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Sequence
from typing import Any

from sessiontape.models.payload import Event

logger = logging.getLogger(__name__)

MIN_SPEED = 0.1

ApplyEvent = Callable[[Event, Callable[[], None]], None]


def clamp_speed(speed: Any) -> float:
    """Speed multiplier floored at 0.1; unusable or non-positive values mean 1."""
    try:
        value = float(speed)
    except (TypeError, ValueError):
        return 1.0
    if not math.isfinite(value) or value <= 0:
        return 1.0
    return max(MIN_SPEED, value)


def step_delay_ms(current: Event, following: Event | None, speed: float) -> int:
    """Delay before the step after ``current``: floor(gap / speed), never negative."""
    if following is None:
        return 0
    gap = max(0.0, following.time_offset_ms - current.time_offset_ms)
    return max(0, math.floor(gap / speed))


def build_timeline(events: Sequence[Event], *, include_mutations: bool) -> list[Event]:
    """Replay-eligible events sorted by (time offset, sequence id)."""
    eligible = [
        event
        for event in events
        if event.type == "event" or (include_mutations and event.type == "mutation")
    ]
    return sorted(eligible, key=lambda event: (event.time_offset_ms, event.id))


class TimelineScheduler:
    """Cooperative scheduler driven by ``loop.call_later``.

    Args:
        apply_event: Called with each event and a ``done`` callback that
            must be invoked once the event has been applied.
        on_complete: Called after the last event.
        loop: Event loop (or compatible object with ``call_later``); the
            running loop is used when omitted.
    """

    def __init__(
        self,
        apply_event: ApplyEvent,
        *,
        on_complete: Callable[[], None] | None = None,
        loop: Any = None,
    ) -> None:
        self._apply_event = apply_event
        self._on_complete = on_complete
        self._injected_loop = loop
        self._loop = loop
        self._events: list[Event] = []
        self._cursor = 0
        self._speed = 1.0
        self._handle: Any = None
        self._generation = 0
        self.running = False
        self.scheduled_delays_ms: list[int] = []

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def speed(self) -> float:
        return self._speed

    def start(self, events: Sequence[Event], speed: Any = 1.0) -> None:
        """Start from the first event; any previous run is stopped first."""
        self.stop()
        self._loop = self._injected_loop or asyncio.get_running_loop()
        self._events = list(events)
        self._speed = clamp_speed(speed)
        self.scheduled_delays_ms = []
        self.running = True
        self._step(self._generation)

    def stop(self) -> None:
        """Cancel the pending step and reset the cursor. Safe in any state."""
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._cursor = 0
        self.running = False

    def _schedule(self, delay_ms: int, generation: int) -> None:
        self.scheduled_delays_ms.append(delay_ms)
        self._handle = self._loop.call_later(delay_ms / 1000.0, self._step, generation)

    def _step(self, generation: int) -> None:
        self._handle = None
        if not self.running or generation != self._generation:
            return
        if self._cursor >= len(self._events):
            self.running = False
            self._cursor = 0
            if self._on_complete is not None:
                self._on_complete()
            return

        current = self._events[self._cursor]
        settled = False

        def done() -> None:
            nonlocal settled
            if settled or not self.running or generation != self._generation:
                return
            settled = True
            index = self._cursor
            following = self._events[index + 1] if index + 1 < len(self._events) else None
            self._cursor = index + 1
            self._schedule(step_delay_ms(current, following, self._speed), generation)

        self._apply_event(current, done)
