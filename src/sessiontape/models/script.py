"""Recording script models.

A recording script is the YAML contract for driving a headless session:
the page to load, the viewport, optional config overrides, and an
ordered list of single-action steps.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, Field

from sessiontape.document.host import DEFAULT_USER_AGENT

ACTIONS: tuple[str, ...] = (
    "click",
    "move",
    "input",
    "change",
    "submit",
    "scroll",
    "wait",
    "layout",
    "set_attribute",
    "append_html",
    "remove",
    "set_text",
    "push_state",
    "replace_state",
    "back",
    "visibility",
)


def check_step(step: dict[str, Any]) -> dict[str, Any]:
    """A step is a mapping with exactly one known action key."""
    if len(step) != 1:
        raise ValueError(f"step must have exactly one action, got {sorted(step)}")
    action = next(iter(step))
    if action not in ACTIONS:
        raise ValueError(f"unknown action {action!r}")
    return step


ScriptStep = Annotated[dict[str, Any], AfterValidator(check_step)]


class Viewport(BaseModel):
    """Window size in CSS pixels."""

    model_config = {"extra": "forbid"}

    width: int = Field(default=1280, ge=1)
    height: int = Field(default=720, ge=1)


class RecordingScript(BaseModel):
    """A scripted session loaded from YAML."""

    model_config = {"extra": "forbid"}

    description: str = ""
    url: str = "https://example.test/"
    page: str | None = None
    html: str | None = None
    viewport: Viewport = Field(default_factory=Viewport)
    user_agent: str = DEFAULT_USER_AGENT
    gap_ms: int = Field(default=250, ge=0)
    ignore_selector: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)
    steps: list[ScriptStep] = Field(default_factory=list)
