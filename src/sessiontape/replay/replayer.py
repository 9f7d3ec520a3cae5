"""Replay engine: Idle -> Loaded -> Playing -> Loaded.

The replayer owns one ReplaySurface. ``play`` renders the sanitized
snapshot into it, restores child frames in the background, and drives
a TimelineScheduler over the replay-eligible events.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from sessiontape.document.host import DocumentHost
from sessiontape.models.config import TapeConfig, apply_config
from sessiontape.models.payload import Event, InvalidPayloadError, SessionPayload, parse_payload
from sessiontape.replay.frames import FrameLoader, headless_frame_loader, restore_frames
from sessiontape.replay.interaction import PointerOverlay, apply_interaction
from sessiontape.replay.patch import apply_mutation
from sessiontape.replay.surface import ReplaySurface
from sessiontape.replay.timeline import TimelineScheduler, build_timeline, clamp_speed

logger = logging.getLogger(__name__)


class ReplayState(str, Enum):
    IDLE = "idle"
    LOADED = "loaded"
    PLAYING = "playing"


class ReplayStateError(RuntimeError):
    """Raised when a replay operation is called in the wrong state."""


class SessionReplayer:
    """Replays a SessionPayload into an isolated surface.

    Args:
        surface: Rendering surface; a fresh one is created when omitted.
        config: Initial configuration (only the replay section is used).
        frame_loader: Async callable resolving True once a cross-origin
            frame URL has loaded.
        on_status: Receives human-readable status lines.
        loop: Event loop for the scheduler and effect timers.
    """

    def __init__(
        self,
        surface: ReplaySurface | None = None,
        config: TapeConfig | None = None,
        *,
        frame_loader: FrameLoader | None = None,
        on_status: Callable[[str], Any] | None = None,
        loop: Any = None,
    ) -> None:
        self.surface = surface if surface is not None else ReplaySurface(loop=loop)
        self.config = config if config is not None else TapeConfig()
        self.frame_loader = frame_loader or headless_frame_loader
        self._on_status = on_status
        self._overlay = PointerOverlay(self.surface)
        self._scheduler = TimelineScheduler(
            self._apply_event, on_complete=self._on_complete, loop=loop
        )
        self._payload: SessionPayload | None = None
        self._state = ReplayState.IDLE
        self._run = 0
        self._allow_scripts = False
        self._done: asyncio.Future[None] | None = None
        self._frames_task: asyncio.Task[list[str]] | None = None
        self.placeholder_frames: list[str] = []

    @property
    def state(self) -> ReplayState:
        return self._state

    @property
    def payload(self) -> SessionPayload | None:
        return self._payload

    @property
    def document(self) -> DocumentHost | None:
        return self.surface.document

    @property
    def cursor(self) -> int:
        return self._scheduler.cursor

    @property
    def scheduled_delays_ms(self) -> list[int]:
        return list(self._scheduler.scheduled_delays_ms)

    def _status(self, message: str) -> None:
        logger.info(message)
        if self._on_status is not None:
            self._on_status(message)

    # -- configuration --

    def apply_config(self, partial: Mapping[str, Any] | TapeConfig | None) -> TapeConfig:
        """Merge a partial configuration; applies to the next play()."""
        self.config = apply_config(self.config, partial)
        return self.config

    def set_apply_mutation_events(self, enabled: bool) -> None:
        self.apply_config({"replay": {"applyMutations": bool(enabled)}})

    # -- lifecycle --

    def load(self, payload: SessionPayload | Mapping[str, Any]) -> SessionPayload:
        """Validate and load a payload, resetting the replay position.

        Raises:
            InvalidPayloadError: If the payload is structurally invalid. The
                previously loaded payload (if any) stays loaded.
        """
        parsed = parse_payload(payload)
        if self._state is ReplayState.PLAYING:
            self._halt()
        self._payload = parsed
        self._state = ReplayState.LOADED
        self._status(f"Replay loaded. events={len(parsed.events)}")
        return parsed

    async def play(self, speed: Any = 1.0) -> None:
        """Render the snapshot and start the timeline.

        Returns once playback has started; use wait_until_complete() to
        await the end of the timeline.

        Raises:
            ReplayStateError: If no payload is loaded.
            InvalidPayloadError: If the payload has no snapshot with HTML.
        """
        if self._payload is None:
            raise ReplayStateError("payload is not loaded")
        if self._state is ReplayState.PLAYING:
            return

        snapshot = self._payload.snapshot()
        if snapshot is None or not isinstance(snapshot.data.get("html"), str):
            raise InvalidPayloadError("snapshot event is missing")

        timeline = build_timeline(
            self._payload.events, include_mutations=self.config.replay.apply_mutations
        )
        if not timeline:
            self._status("No replayable events found.")
            return

        rate = clamp_speed(speed)
        self._allow_scripts = self.config.replay.script_mode == "on"
        self._state = ReplayState.PLAYING
        self._run += 1
        run = self._run
        self.placeholder_frames = []

        self.surface.set_viewport(snapshot.data.get("viewport"))
        base_url = snapshot.data.get("url") or self._payload.page.href or None
        try:
            host = await self.surface.render(
                snapshot.data["html"], base_url, allow_scripts=self._allow_scripts
            )
        except Exception:
            if run == self._run:
                self._state = ReplayState.LOADED
            raise
        if run != self._run or self._state is not ReplayState.PLAYING:
            # stop() or load() ran while the surface was loading.
            return

        self._frames_task = asyncio.ensure_future(
            restore_frames(
                host,
                snapshot.data.get("iframeSummary") or [],
                base_url=base_url,
                loader=self.frame_loader,
                timeout_ms=self.config.replay.frame_timeout_ms,
            )
        )
        self._frames_task.add_done_callback(self._frames_restored)

        self._done = asyncio.get_running_loop().create_future()
        scripts = "ON" if self._allow_scripts else "OFF"
        self._status(f"Replay started. speed={rate:g}x, scripts={scripts}")
        self._scheduler.start(timeline, rate)

    def stop(self) -> None:
        """Stop playback, cancel every timer and pending frame wait. Idempotent."""
        self._halt()
        self._status("Replay stopped.")

    def _halt(self) -> None:
        self._run += 1
        self._scheduler.stop()
        self.surface.cancel_timers()
        if self._frames_task is not None and not self._frames_task.done():
            self._frames_task.cancel()
        self._frames_task = None
        self._resolve_done()
        self._state = ReplayState.LOADED if self._payload is not None else ReplayState.IDLE

    def _resolve_done(self) -> None:
        if self._done is not None and not self._done.done():
            self._done.set_result(None)

    async def wait_until_complete(self) -> None:
        """Wait for the current timeline to finish or be stopped."""
        if self._done is not None:
            await asyncio.shield(self._done)

    async def wait_for_frames(self) -> list[str]:
        """Wait for child-frame restoration; returns placeholder frame paths."""
        task = self._frames_task
        if task is not None:
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        return list(self.placeholder_frames)

    def _frames_restored(self, task: asyncio.Task[list[str]]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Frame restoration failed: %s", error)
            return
        self.placeholder_frames = task.result()
        if self.placeholder_frames:
            logger.info("Frames replaced by placeholders: %s", self.placeholder_frames)

    # -- timeline callbacks --

    def _apply_event(self, event: Event, done: Callable[[], None]) -> None:
        host = self.surface.document
        try:
            if host is None:
                return
            if event.type == "mutation":
                apply_mutation(host, event.data, allow_scripts=self._allow_scripts)
            elif event.type == "event":
                apply_interaction(host, self._overlay, event.data)
        except Exception:
            logger.exception("Failed to apply event %s", event.id)
        finally:
            done()

    def _on_complete(self) -> None:
        self._state = ReplayState.LOADED
        self._resolve_done()
        self._status("Replay completed.")
