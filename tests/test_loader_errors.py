"""Tests for the annotated and CI error formatter."""

from sessiontape.loader.errors import ErrorFormatter
from sessiontape.loader.validator import ValidationErrorDetail

SOURCE = 'url: https://shop.example/\nviewport:\n  width: 0\nsteps:\n  - clik: "#buy"\n'


def _step_error():
    return ValidationErrorDetail(
        field="steps.0",
        message="Value error, unknown action 'clik'",
        type="value_error",
        line=5,
        col=5,
        suggestion="Did you mean 'click'?",
    )


class TestAnnotatedMode:
    """Tests for human-readable annotated output."""

    def test_header_location_and_snippet(self):
        """Annotated output has the code, location and source line."""
        result = ErrorFormatter(ci_mode=False).format_error(
            _step_error(), SOURCE.splitlines(), "script.yaml"
        )
        lines = result.splitlines()
        assert lines[0] == "error[E003]: invalid value"
        assert "--> script.yaml:5:5" in result
        assert ' 5 |   - clik: "#buy"' in result
        assert "= help: Did you mean 'click'?" in result

    def test_field_name_is_underlined(self):
        """The offending key gets a caret underline."""
        error = ValidationErrorDetail(
            field="viewport.width",
            message="Input should be greater than or equal to 1",
            type="greater_than_equal",
            line=3,
            col=3,
        )
        result = ErrorFormatter(ci_mode=False).format_error(error, SOURCE.splitlines(), "s.yaml")
        assert "   |   ^^^^^ Input should be greater than or equal to 1" in result
        assert "help" not in result

    def test_without_line_information(self):
        """Errors without a line still name the field."""
        error = ValidationErrorDetail(field="<yaml>", message="File is empty", type="empty_file")
        result = ErrorFormatter(ci_mode=False).format_error(error, [], "s.yaml")
        assert result.startswith("error[E007]: empty input")
        assert "--> s.yaml" in result
        assert "<yaml>: File is empty" in result


class TestCIMode:
    """Tests for concise CI output."""

    def test_single_line(self):
        """CI output is file:line:col -- field: message (suggestion)."""
        result = ErrorFormatter(ci_mode=True).format_error(_step_error(), [], "script.yaml")
        assert result == (
            "script.yaml:5:5 -- steps.0: Value error, unknown action 'clik' "
            "(Did you mean 'click'?)"
        )

    def test_missing_position_is_zero(self):
        """Unknown positions render as 0."""
        error = ValidationErrorDetail(field="<payload>", message="bad", type="invalid_payload")
        assert ErrorFormatter(ci_mode=True).format_error(error, [], "p.json") == "p.json:0:0 -- <payload>: bad"

    def test_auto_detect_from_environment(self, monkeypatch):
        """ci_mode=None follows the CI environment variable."""
        monkeypatch.setenv("CI", "true")
        assert ErrorFormatter().ci_mode is True
        monkeypatch.setenv("CI", "")
        assert ErrorFormatter().ci_mode is False


class TestErrorCodes:
    """Tests for error code lookup."""

    def test_known_codes(self):
        formatter = ErrorFormatter(ci_mode=True)
        assert formatter.error_code("extra_forbidden") == "E001"
        assert formatter.error_code("missing") == "E002"
        assert formatter.error_code("literal_error") == "E005"
        assert formatter.error_code("yaml_syntax_error") == "E006"
        assert formatter.error_code("invalid_payload") == "E008"

    def test_substring_match_and_fallback(self):
        formatter = ErrorFormatter(ci_mode=True)
        assert formatter.error_code("missing_argument") == "E002"
        assert formatter.error_code("something_new") == "E999"

    def test_format_all_joins_errors(self):
        """format_all separates errors with a blank line."""
        errors = [_step_error(), _step_error()]
        result = ErrorFormatter(ci_mode=True).format_all(errors, SOURCE, "script.yaml")
        assert result.count("script.yaml:5:5") == 2
        assert "\n\n" in result
