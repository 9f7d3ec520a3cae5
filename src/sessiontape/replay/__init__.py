"""Replay engine: isolated surface, patches, interactions and the timeline."""

from sessiontape.replay.frames import headless_frame_loader, restore_frames
from sessiontape.replay.interaction import PointerOverlay, apply_interaction, map_pointer_position
from sessiontape.replay.patch import apply_mutation
from sessiontape.replay.replayer import ReplayState, ReplayStateError, SessionReplayer
from sessiontape.replay.surface import ReplaySurface
from sessiontape.replay.timeline import TimelineScheduler, build_timeline, clamp_speed

__all__ = [
    "PointerOverlay",
    "ReplayState",
    "ReplayStateError",
    "ReplaySurface",
    "SessionReplayer",
    "TimelineScheduler",
    "apply_interaction",
    "apply_mutation",
    "build_timeline",
    "clamp_speed",
    "headless_frame_loader",
    "map_pointer_position",
    "restore_frames",
]
