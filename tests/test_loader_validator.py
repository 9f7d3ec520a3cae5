"""Tests for recording-script validation pipeline."""

from sessiontape.loader.validator import validate_script_file, validate_script_string


class TestValidateScriptString:
    """Tests for validate_script_string function."""

    def test_valid_script(self):
        """Valid YAML returns a RecordingScript and no errors."""
        source = "url: https://shop.example/\ngap_ms: 50\nsteps:\n  - click: '#buy'\n"
        script, errors = validate_script_string(source)
        assert errors == []
        assert script is not None
        assert script.gap_ms == 50
        assert script.steps == [{"click": "#buy"}]
        assert script.viewport.width == 1280

    def test_unknown_top_level_field_with_suggestion(self):
        """A misspelled top-level field is reported with a suggestion."""
        script, errors = validate_script_string("viewprt:\n  width: 10\n")
        assert script is None
        assert len(errors) == 1
        assert errors[0].field == "viewprt"
        assert errors[0].type == "extra_forbidden"
        assert errors[0].line == 1
        assert errors[0].suggestion == "Did you mean 'viewport'?"

    def test_unknown_step_action_with_suggestion(self):
        """An unknown step action points at the step's line."""
        source = 'url: https://shop.example/\nsteps:\n  - click: "#a"\n  - wait: 100\n  - clik: "#buy"\n'
        script, errors = validate_script_string(source)
        assert script is None
        assert len(errors) == 1
        assert errors[0].field == "steps.2"
        assert errors[0].line == 5
        assert errors[0].col == 5
        assert "unknown action 'clik'" in errors[0].message
        assert errors[0].suggestion == "Did you mean 'click'?"

    def test_step_with_two_actions(self):
        """A step must carry exactly one action key."""
        script, errors = validate_script_string("steps:\n  - click: a\n    wait: 1\n")
        assert script is None
        assert "exactly one action" in errors[0].message
        assert errors[0].suggestion is None

    def test_nested_range_error(self):
        """Out-of-range nested values point at the nested key."""
        script, errors = validate_script_string("viewport:\n  width: 0\n")
        assert script is None
        assert errors[0].field == "viewport.width"
        assert errors[0].type == "greater_than_equal"
        assert (errors[0].line, errors[0].col) == (2, 3)

    def test_collects_all_errors(self):
        """Every error is reported in one pass."""
        source = "gap_ms: -1\nsteps:\n  - jump: 1\nbogus: true\n"
        _, errors = validate_script_string(source)
        assert {e.field for e in errors} == {"gap_ms", "steps.0", "bogus"}

    def test_empty_input(self):
        """Empty input is an error."""
        script, errors = validate_script_string("")
        assert script is None
        assert errors[0].type == "empty_input"

    def test_yaml_syntax_error(self):
        """Syntax errors surface as a yaml_syntax_error detail."""
        script, errors = validate_script_string("steps: [\n")
        assert script is None
        assert errors[0].type == "yaml_syntax_error"
        assert errors[0].field == "<yaml>"


class TestValidateScriptFile:
    """Tests for validate_script_file function."""

    def test_valid_file(self, tmp_path):
        """A valid script file returns the parsed script."""
        path = tmp_path / "checkout.yaml"
        path.write_text("page: checkout.html\nsteps:\n  - input: {target: '#card', value: '4111'}\n")
        script, errors = validate_script_file(path)
        assert errors == []
        assert script.page == "checkout.html"

    def test_comment_only_file(self, tmp_path):
        """A comment-only file is reported as empty."""
        path = tmp_path / "empty.yaml"
        path.write_text("# todo\n")
        script, errors = validate_script_file(path)
        assert script is None
        assert errors[0].type == "empty_file"
