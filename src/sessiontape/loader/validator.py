"""Recording-script validation: YAML parsing plus pydantic validation.

Two-stage validation: parse YAML with line tracking, then validate
against RecordingScript. Errors from both stages carry source positions
and are collected for batch reporting.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from sessiontape.loader.yaml_parser import (
    YAMLParseError,
    parse_yaml_file,
    parse_yaml_with_lines,
)
from sessiontape.models.script import ACTIONS, RecordingScript

VALID_SCRIPT_FIELDS: list[str] = list(RecordingScript.model_fields.keys())


@dataclass
class ValidationErrorDetail:
    """A single validation error with source position and context.

    Attributes:
        field: Dotted path of the offending field (``steps.2``).
        message: Human-readable error description.
        type: Pydantic error type string, or a loader-specific one.
        line: 1-indexed line number in the source YAML, or None.
        col: 1-indexed column number in the source YAML, or None.
        suggestion: 'Did you mean X?' hint for typos, or None.
        input_value: The invalid input value, if available.
    """

    field: str
    message: str
    type: str
    line: int | None = None
    col: int | None = None
    suggestion: str | None = None
    input_value: Any = field(default=None)


def _find_line_for_field(
    field_path: str,
    line_map: dict[str, tuple[int, int]],
) -> tuple[int | None, int | None]:
    """Exact match first, then progressively shorter prefixes."""
    parts = field_path.split(".")
    while parts:
        prefix = ".".join(parts)
        if prefix in line_map:
            return line_map[prefix]
        parts.pop()
    return None, None


def _closest(name: str, choices: list[str] | tuple[str, ...]) -> str | None:
    matches = difflib.get_close_matches(name, list(choices), n=1, cutoff=0.6)
    if matches:
        return f"Did you mean '{matches[0]}'?"
    return None


def _suggest(loc: tuple[Any, ...], error_type: str, input_value: Any) -> str | None:
    if "extra" in error_type or "forbidden" in error_type:
        if len(loc) == 1:
            return _closest(str(loc[0]), VALID_SCRIPT_FIELDS)
        return None
    # A single-key step whose key is not a known action.
    if loc and loc[0] == "steps" and isinstance(input_value, dict) and len(input_value) == 1:
        action = str(next(iter(input_value)))
        if action not in ACTIONS:
            return _closest(action, ACTIONS)
    return None


def validate_script(
    raw_data: dict[str, Any],
    line_map: dict[str, tuple[int, int]],
) -> tuple[RecordingScript | None, list[ValidationErrorDetail]]:
    """Validate parsed YAML data against RecordingScript.

    Returns:
        Tuple of (RecordingScript, []) on success, or (None, errors).
    """
    try:
        return RecordingScript.model_validate(raw_data), []
    except ValidationError as e:
        errors: list[ValidationErrorDetail] = []
        for err in e.errors():
            loc = tuple(err.get("loc", ()))
            field_path = ".".join(str(part) for part in loc)
            error_type = err.get("type", "unknown")
            input_value = err.get("input")
            line, col = _find_line_for_field(field_path, line_map)
            errors.append(
                ValidationErrorDetail(
                    field=field_path,
                    message=err.get("msg", "Validation error"),
                    type=error_type,
                    line=line,
                    col=col,
                    suggestion=_suggest(loc, error_type, input_value),
                    input_value=input_value,
                )
            )
        return None, errors


def _yaml_error(e: YAMLParseError) -> ValidationErrorDetail:
    return ValidationErrorDetail(
        field="<yaml>",
        message=e.message,
        type="yaml_syntax_error",
        line=e.line,
        col=e.column,
    )


def validate_script_file(
    filepath: Path,
) -> tuple[RecordingScript | None, list[ValidationErrorDetail]]:
    """Validate a recording-script YAML file, returning all errors at once."""
    try:
        raw_data, line_map = parse_yaml_file(filepath)
    except YAMLParseError as e:
        return None, [_yaml_error(e)]

    if raw_data is None:
        return None, [
            ValidationErrorDetail(
                field="<yaml>",
                message="File is empty or contains only comments",
                type="empty_file",
            )
        ]
    return validate_script(raw_data, line_map)


def validate_script_string(
    source: str,
    filename: str = "<string>",
) -> tuple[RecordingScript | None, list[ValidationErrorDetail]]:
    """Validate a recording script given as a YAML string."""
    try:
        raw_data, line_map = parse_yaml_with_lines(source, filename=filename)
    except YAMLParseError as e:
        return None, [_yaml_error(e)]

    if raw_data is None:
        return None, [
            ValidationErrorDetail(
                field="<yaml>",
                message="Input is empty or contains only comments",
                type="empty_input",
            )
        ]
    return validate_script(raw_data, line_map)
