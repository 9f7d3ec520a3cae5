"""Error formatter with dual-mode output (annotated human and CI concise).

Human mode prints compiler-style annotated errors with the offending
source line; CI mode prints ``file:line:col -- field: message``.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sessiontape.loader.validator import ValidationErrorDetail


ERROR_CODES: dict[str, str] = {
    "extra_forbidden": "E001",
    "missing": "E002",
    "value_error": "E003",
    "greater_than_equal": "E003",
    "less_than_equal": "E003",
    "string_type": "E004",
    "int_type": "E004",
    "int_parsing": "E004",
    "bool_type": "E004",
    "dict_type": "E004",
    "list_type": "E004",
    "model_type": "E004",
    "literal_error": "E005",
    "yaml_syntax_error": "E006",
    "empty_file": "E007",
    "empty_input": "E007",
    "invalid_payload": "E008",
}

ERROR_DESCRIPTIONS: dict[str, str] = {
    "E001": "unknown field",
    "E002": "required field missing",
    "E003": "invalid value",
    "E004": "type mismatch",
    "E005": "invalid literal",
    "E006": "YAML syntax error",
    "E007": "empty input",
    "E008": "invalid session payload",
}


class ErrorFormatter:
    """Formats validation errors for human or CI consumption.

    Args:
        ci_mode: If True, use CI-friendly concise output. If None,
            auto-detect from the CI environment variable.
    """

    def __init__(self, ci_mode: bool | None = None) -> None:
        if ci_mode is None:
            self.ci_mode = os.environ.get("CI", "").lower() in ("true", "1", "yes")
        else:
            self.ci_mode = ci_mode

    def error_code(self, error_type: str) -> str:
        if error_type in ERROR_CODES:
            return ERROR_CODES[error_type]
        for key, code in ERROR_CODES.items():
            if key in error_type:
                return code
        return "E999"

    def format_error(
        self,
        error: ValidationErrorDetail,
        source_lines: list[str],
        filename: str,
    ) -> str:
        if self.ci_mode:
            return self._format_ci(error, filename)
        return self._format_annotated(error, source_lines, filename)

    def _format_ci(self, error: ValidationErrorDetail, filename: str) -> str:
        line = error.line if error.line is not None else 0
        col = error.col if error.col is not None else 0
        suggestion_suffix = f" ({error.suggestion})" if error.suggestion else ""
        return f"{filename}:{line}:{col} -- {error.field}: {error.message}{suggestion_suffix}"

    def _format_annotated(
        self,
        error: ValidationErrorDetail,
        source_lines: list[str],
        filename: str,
    ) -> str:
        """Produce output like::

            error[E003]: invalid value
              --> script.yaml:7:5
               |
             7 |   - clik: "#buy"
               |     ^^^^ Value error, unknown action 'clik'
               |
               = help: Did you mean 'click'?
        """
        code = self.error_code(error.type)
        lines = [f"error[{code}]: {ERROR_DESCRIPTIONS.get(code, 'validation error')}"]

        line_idx = error.line - 1 if error.line is not None else -1
        if 0 <= line_idx < len(source_lines):
            col = error.col if error.col is not None else 1
            src_line = source_lines[line_idx].rstrip()
            number = str(error.line)
            gutter = " " * len(number)
            lines.append(f"  --> {filename}:{error.line}:{col}")
            lines.append("   |")
            lines.append(f" {number} | {src_line}")
            marker = error.field.rsplit(".", 1)[-1]
            start = src_line.find(marker, max(0, col - 1)) if marker else -1
            if start >= 0 and not marker.isdigit():
                lines.append(f" {gutter} | {' ' * start}{'^' * len(marker)} {error.message}")
            else:
                lines.append(f" {gutter} | {' ' * (col - 1)}^ {error.message}")
        else:
            location = f"{filename}:{error.line}" if error.line is not None else filename
            lines.append(f"  --> {location}")
            lines.append("   |")
            lines.append(f"   | {error.field}: {error.message}")
        lines.append("   |")

        if error.suggestion:
            lines.append(f"   = help: {error.suggestion}")
        return "\n".join(lines)

    def format_all(
        self,
        errors: list[ValidationErrorDetail],
        source: str,
        filename: str,
    ) -> str:
        source_lines = source.splitlines()
        return "\n\n".join(
            self.format_error(error, source_lines, filename) for error in errors
        )

    def print_errors(
        self,
        errors: list[ValidationErrorDetail],
        source: str,
        filename: str,
    ) -> None:
        print(self.format_all(errors, source, filename), file=sys.stderr)

    def success_line(self, filename: str, kind: str = "valid") -> str:
        return f"  {filename} ... {kind}"
