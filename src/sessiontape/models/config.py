"""Runtime configuration for recording and replay.

Captures the privacy, replay and resource-limit options with the
defaults of the browser snippet. Configuration is an explicit value:
each engine holds its own copy and changes go through apply_config(),
which merges recognised keys per section and ignores everything else.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SELECTORS: tuple[str, ...] = (
    ".rr-block",
    ".rr-mask",
    ".clarity-mask",
    "[data-clarity-mask='true']",
    "[data-rr-block='true']",
    "[data-sr-block='true']",
    "[data-private='true']",
    "[data-sensitive='true']",
)

DEFAULT_MASK_TEXT_SELECTORS: tuple[str, ...] = (
    ".rr-mask",
    ".clarity-mask",
    "[data-rr-mask='true']",
    "[data-clarity-mask='true']",
    "[data-sr-mask='true']",
)

# Lower bounds applied when limits are configured (values are clamped, not rejected).
LIMIT_FLOORS: dict[str, int] = {
    "max_events": 1000,
    "max_mutation_payload_bytes": 2000,
    "pointer_sample_interval_ms": 1,
    "scroll_debounce_ms": 0,
    "input_debounce_ms": 0,
}

_SECTION_CONFIG = {
    "extra": "ignore",
    "alias_generator": to_camel,
    "populate_by_name": True,
}


class PrivacyConfig(BaseModel):
    """Redaction options applied at every capture site."""

    model_config = dict(_SECTION_CONFIG)

    mask_all_inputs: bool = True
    block_selectors: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BLOCK_SELECTORS)
    )
    mask_text_selectors: list[str] = Field(
        default_factory=lambda: list(DEFAULT_MASK_TEXT_SELECTORS)
    )

    @field_validator("block_selectors", "mask_text_selectors", mode="before")
    @classmethod
    def _clean_selectors(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set, frozenset)):
            return [str(item) for item in value if item]
        return value


class ReplayConfig(BaseModel):
    """Replay surface options."""

    model_config = dict(_SECTION_CONFIG)

    script_mode: Literal["on", "off"] = "off"
    apply_mutations: bool = False
    frame_timeout_ms: int = Field(default=1800, ge=0)

    @field_validator("script_mode", mode="before")
    @classmethod
    def _coerce_script_mode(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return "on" if value else "off"
        return value


class LimitsConfig(BaseModel):
    """Bounded-resource settings for the recorder."""

    model_config = dict(_SECTION_CONFIG)

    max_events: int = 20000
    max_mutation_payload_bytes: int = Field(
        default=120000,
        validation_alias=AliasChoices(
            "maxMutationPayloadBytes",
            "maxMutationHtmlBytes",
            "max_mutation_payload_bytes",
        ),
    )
    pointer_sample_interval_ms: int = Field(
        default=20,
        validation_alias=AliasChoices(
            "pointerSampleIntervalMs",
            "mousemoveSampleMs",
            "pointer_sample_interval_ms",
        ),
    )
    scroll_debounce_ms: int = 120
    input_debounce_ms: int = 120

    @field_validator(
        "max_events",
        "max_mutation_payload_bytes",
        "pointer_sample_interval_ms",
        "scroll_debounce_ms",
        "input_debounce_ms",
        mode="before",
    )
    @classmethod
    def _clamp(cls, value: Any, info: ValidationInfo) -> int:
        if isinstance(value, bool):
            raise ValueError("limit must be a number")
        try:
            number = int(float(value))
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError(f"limit must be a number, got {value!r}") from exc
        return max(LIMIT_FLOORS[info.field_name], number)


class TapeConfig(BaseModel):
    """Complete engine configuration: privacy, replay and limits."""

    model_config = dict(_SECTION_CONFIG)

    privacy: PrivacyConfig = Field(default_factory=PrivacyConfig)
    replay: ReplayConfig = Field(default_factory=ReplayConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)


class ProjectConfig(TapeConfig):
    """Project-level configuration loaded from sessiontape.yaml."""

    storage_dir: str = ".sessiontape"


_SECTIONS: dict[str, type[BaseModel]] = {
    "privacy": PrivacyConfig,
    "replay": ReplayConfig,
    "limits": LimitsConfig,
}


def _field_for_key(model_cls: type[BaseModel], key: str) -> str | None:
    """Map a wire or Python key to the model's field name, or None."""
    for name, info in model_cls.model_fields.items():
        if key in (name, info.alias):
            return name
        choices = info.validation_alias
        if isinstance(choices, AliasChoices) and key in choices.choices:
            return name
    return None


def apply_config(
    base: TapeConfig,
    partial: Mapping[str, Any] | TapeConfig | None,
) -> TapeConfig:
    """Merge a partial configuration into base and return the effective result.

    Recognised keys replace the matching field of their section; the
    section itself is never replaced wholesale. Unrecognised sections and
    keys are ignored, and a value that fails validation is logged and
    skipped so the running configuration stays usable.

    Args:
        base: The running configuration (left untouched).
        partial: Nested mapping such as ``{"limits": {"maxEvents": 5000}}``.

    Returns:
        A new TapeConfig (or subclass, matching base) with the merge applied.
    """
    if isinstance(partial, TapeConfig):
        partial = partial.model_dump(by_alias=True)
    merged = base.model_dump()
    if not partial:
        return type(base).model_validate(merged)

    for section_name, model_cls in _SECTIONS.items():
        raw_section = partial.get(section_name)
        if not isinstance(raw_section, Mapping):
            continue
        for key, value in raw_section.items():
            field_name = _field_for_key(model_cls, str(key))
            if field_name is None:
                continue
            candidate = {**merged[section_name], field_name: value}
            try:
                validated = model_cls.model_validate(candidate)
            except ValidationError:
                logger.warning(
                    "Ignoring invalid config value %s.%s=%r", section_name, key, value
                )
                continue
            merged[section_name][field_name] = getattr(validated, field_name)

    return type(base).model_validate(merged)


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start (default: cwd) looking for sessiontape.yaml or .sessiontape/.

    Args:
        start: Starting path (file or directory). Defaults to cwd.

    Returns:
        Path to the directory containing sessiontape.yaml or .sessiontape/,
        or cwd if neither is found.
    """
    current = (start or Path.cwd()).resolve()
    if current.is_file():
        current = current.parent
    while current != current.parent:
        if (current / "sessiontape.yaml").exists() or (current / ".sessiontape").exists():
            return current
        current = current.parent
    return Path.cwd()


def load_project_config(project_root: Path | None = None) -> ProjectConfig:
    """Load ProjectConfig from sessiontape.yaml. Returns defaults if not found.

    Args:
        project_root: Path to the project root directory. If None,
            uses find_project_root() to locate it.

    Returns:
        Validated ProjectConfig instance.
    """
    if project_root is None:
        project_root = find_project_root()
    config_path = project_root / "sessiontape.yaml"
    if not config_path.exists():
        return ProjectConfig()
    import yaml

    raw = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        return ProjectConfig()
    config = apply_config(ProjectConfig(), raw)
    storage_dir = raw.get("storage_dir", raw.get("storageDir"))
    if storage_dir:
        config = config.model_copy(update={"storage_dir": str(storage_dir)})
    return config
