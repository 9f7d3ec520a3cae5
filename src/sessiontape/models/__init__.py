"""sessiontape data models - re-exports all public model classes."""

from sessiontape.models.config import (
    LimitsConfig,
    PrivacyConfig,
    ProjectConfig,
    ReplayConfig,
    TapeConfig,
    apply_config,
)
from sessiontape.models.payload import (
    CURRENT_PAYLOAD_SCHEMA_VERSION,
    ChildFrame,
    Event,
    InvalidPayloadError,
    PageInfo,
    RedactionStats,
    SessionPayload,
    parse_payload,
)
from sessiontape.models.script import ACTIONS, RecordingScript, Viewport

__all__ = [
    "ACTIONS",
    "CURRENT_PAYLOAD_SCHEMA_VERSION",
    "ChildFrame",
    "Event",
    "InvalidPayloadError",
    "LimitsConfig",
    "PageInfo",
    "PrivacyConfig",
    "ProjectConfig",
    "RecordingScript",
    "RedactionStats",
    "ReplayConfig",
    "SessionPayload",
    "TapeConfig",
    "Viewport",
    "apply_config",
    "parse_payload",
]
