"""Pydantic models for the session payload wire format.

The payload is the contract between a recorder and any consumer
(replayer, summarizer, CLI). Field names are snake_case in Python and
camelCase on the wire; legacy browser-snippet names are accepted on
input.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

# Current schema version for payload files.
CURRENT_PAYLOAD_SCHEMA_VERSION = 1

EventType = Literal["snapshot", "meta", "mutation", "event"]

_WIRE_CONFIG = {
    "extra": "ignore",
    "alias_generator": to_camel,
    "populate_by_name": True,
}


class InvalidPayloadError(ValueError):
    """Raised when a payload does not have the minimal replayable shape."""


class PageInfo(BaseModel):
    """Identity of the page a session was recorded on."""

    model_config = dict(_WIRE_CONFIG)

    href: str = ""
    agent: str = Field(
        default="", validation_alias=AliasChoices("agent", "userAgent")
    )


class RedactionStats(BaseModel):
    """Per-category counters of redaction and truncation decisions."""

    model_config = dict(_WIRE_CONFIG)

    masked_input_events: int = 0
    masked_mutation_values: int = 0
    redacted_serialized_nodes: int = 0
    blocked_node_events: int = 0
    blocked_mutations: int = 0
    truncated_mutation_html: int = 0


class ChildFrame(BaseModel):
    """A child frame captured at recording start."""

    model_config = dict(_WIRE_CONFIG)

    path: str
    declared_src: str | None = Field(
        default=None, validation_alias=AliasChoices("declaredSrc", "src")
    )
    resolved_src: str | None = Field(
        default=None, validation_alias=AliasChoices("resolvedSrc", "currentSrc")
    )
    is_cross_origin: bool = False


class Event(BaseModel):
    """A single captured event.

    ``id`` is the sequence number (strictly increasing in capture
    order) and ``time_offset_ms`` the monotonic offset from the start
    of recording.
    """

    model_config = {**_WIRE_CONFIG, "frozen": True}

    id: int = Field(ge=0)
    type: EventType
    at: float = 0.0
    time_offset_ms: float = 0.0
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def event_type(self) -> str | None:
        """The ``eventType`` discriminator carried in data, if any."""
        value = self.data.get("eventType")
        return str(value) if value is not None else None


class SessionPayload(BaseModel):
    """The versioned envelope produced by a recorder."""

    model_config = {**_WIRE_CONFIG, "frozen": True}

    version: int = CURRENT_PAYLOAD_SCHEMA_VERSION
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    page: PageInfo = Field(default_factory=PageInfo)
    recording_config: dict[str, Any] = Field(default_factory=dict)
    dropped_event_count: int = 0
    redaction_stats: RedactionStats = Field(default_factory=RedactionStats)
    event_count: int = 0
    events: list[Event]

    @model_validator(mode="before")
    @classmethod
    def _fill_event_count(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            has_count = "eventCount" in data or "event_count" in data
            events = data.get("events")
            if not has_count and isinstance(events, list):
                data = {**data, "eventCount": len(events)}
        return data

    def snapshot(self) -> Event | None:
        """Return the first snapshot event, or None."""
        for event in self.events:
            if event.type == "snapshot":
                return event
        return None

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON-compatible wire format."""
        return self.model_dump(mode="json", by_alias=True)


def validate_payload_version(payload: SessionPayload) -> None:
    """Validate that a payload's schema version is supported.

    Raises:
        InvalidPayloadError: If version exceeds CURRENT_PAYLOAD_SCHEMA_VERSION.
    """
    if payload.version > CURRENT_PAYLOAD_SCHEMA_VERSION:
        raise InvalidPayloadError(
            f"Payload schema version {payload.version} is newer than "
            f"supported version {CURRENT_PAYLOAD_SCHEMA_VERSION}. "
            f"Please upgrade sessiontape to read this payload."
        )


def parse_payload(raw: SessionPayload | Mapping[str, Any] | Any) -> SessionPayload:
    """Validate raw input into a SessionPayload.

    Checks the minimal shape first (a mapping with an ``events`` list),
    then the full schema and version.

    Raises:
        InvalidPayloadError: If the payload is structurally invalid.
    """
    if isinstance(raw, SessionPayload):
        validate_payload_version(raw)
        return raw
    if not isinstance(raw, Mapping) or not isinstance(raw.get("events"), list):
        raise InvalidPayloadError("invalid payload format")
    try:
        payload = SessionPayload.model_validate(raw)
    except ValidationError as exc:
        raise InvalidPayloadError(f"invalid payload format: {exc}") from exc
    validate_payload_version(payload)
    return payload
