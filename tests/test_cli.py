"""Tests for the sessiontape CLI commands."""

import json

import pytest
from typer.testing import CliRunner

from sessiontape.cli.main import app

runner = CliRunner()

PAGE = """\
<html><head><title>Checkout</title></head><body>
  <form id="pay">
    <input id="card" name="card">
    <input id="pw" type="password">
    <button id="buy" type="button">Buy</button>
  </form>
</body></html>
"""

SCRIPT = """\
description: checkout happy path
url: https://shop.example/checkout
page: checkout.html
gap_ms: 200
steps:
  - click: "#buy"
  - input: {target: "#card", value: "4111 1111"}
  - input: {target: "#pw", value: "hunter2"}
"""


@pytest.fixture
def project(tmp_path, monkeypatch):
    """A project directory with a page and a recording script."""
    (tmp_path / "sessiontape.yaml").write_text("storage_dir: .sessiontape\n")
    (tmp_path / "checkout.html").write_text(PAGE)
    (tmp_path / "checkout.yaml").write_text(SCRIPT)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _record(project, *extra):
    result = runner.invoke(app, ["record", str(project / "checkout.yaml"), *extra])
    assert result.exit_code == 0, result.output
    return result


class TestVersion:
    """Tests for the --version flag."""

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "sessiontape 0.1.0" in result.output


class TestRecordCommand:
    """Tests for sessiontape record."""

    def test_record_stores_session(self, project):
        """Recording saves a payload under .sessiontape/sessions."""
        result = _record(project)
        assert "Session saved:" in result.output
        stored = list((project / ".sessiontape" / "sessions").glob("*.json"))
        assert len(stored) == 1

    def test_record_exports_masked_payload(self, project):
        """--out writes the payload with sensitive values masked."""
        _record(project, "--no-save", "--out", str(project / "out.json"))
        data = json.loads((project / "out.json").read_text())
        assert not (project / ".sessiontape" / "sessions").exists()
        assert data["page"]["href"] == "https://shop.example/checkout"
        values = [e["data"].get("value") for e in data["events"] if e["type"] == "event"]
        assert "hunter2" not in values
        assert "*******" in values
        assert "hunter2" not in (project / "out.json").read_text()

    def test_record_missing_script(self, project):
        result = runner.invoke(app, ["record", "nope.yaml"])
        assert result.exit_code == 1

    def test_record_invalid_script(self, project):
        """Validation errors stop the recording."""
        (project / "bad.yaml").write_text("steps:\n  - clik: '#buy'\n")
        result = runner.invoke(app, ["record", "bad.yaml"])
        assert result.exit_code == 1

    def test_record_step_failure(self, project):
        """A step that cannot run exits with an error."""
        (project / "broken.yaml").write_text("page: checkout.html\nsteps:\n  - click: '#missing'\n")
        result = runner.invoke(app, ["record", "broken.yaml"])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestInspectCommand:
    """Tests for sessiontape inspect."""

    def test_inspect_latest(self, project):
        _record(project)
        result = runner.invoke(app, ["inspect"])
        assert result.exit_code == 0
        assert "https://shop.example/checkout" in result.output
        assert "event:click" in result.output

    def test_inspect_file(self, project):
        _record(project, "--no-save", "--out", "out.json")
        result = runner.invoke(app, ["inspect", "out.json"])
        assert result.exit_code == 0
        assert "snapshot" in result.output

    def test_inspect_without_sessions(self, project):
        result = runner.invoke(app, ["inspect"])
        assert result.exit_code == 1
        assert "No stored sessions found" in result.output

    def test_inspect_unknown_id(self, project):
        result = runner.invoke(app, ["inspect", "deadbeef"])
        assert result.exit_code == 1
        assert "No session found" in result.output


class TestSummarizeCommand:
    """Tests for sessiontape summarize."""

    def test_summary_json(self, project):
        _record(project)
        result = runner.invoke(app, ["summarize"])
        assert result.exit_code == 0
        summary = json.loads(result.stdout)
        assert summary["byEventType"]["click"] == 1
        assert summary["byEventType"]["input"] == 2
        assert summary["behaviorSignals"]["shortBounce"] is True

    def test_prompt(self, project):
        _record(project)
        result = runner.invoke(app, ["summarize", "--prompt"])
        assert result.exit_code == 0
        assert "Session summary:" in result.stdout


class TestReplayCommand:
    """Tests for sessiontape replay."""

    def test_replay_writes_document(self, project):
        _record(project)
        result = runner.invoke(app, ["replay", "--speed", "10", "--out", "final.html"])
        assert result.exit_code == 0, result.output
        assert "Replay completed." in result.output
        html = (project / "final.html").read_text()
        assert html.startswith("<!doctype html>")
        assert "hunter2" not in html

    def test_replay_invalid_file(self, project):
        (project / "broken.json").write_text("{}")
        result = runner.invoke(app, ["replay", "broken.json"])
        assert result.exit_code == 1


class TestValidateCommand:
    """Tests for sessiontape validate."""

    def test_valid_script(self, project):
        result = runner.invoke(app, ["validate", "checkout.yaml"])
        assert result.exit_code == 0
        assert "valid script" in result.output
        assert "1/1 files valid" in result.output

    def test_invalid_script_ci(self, project):
        (project / "bad.yaml").write_text("steps:\n  - clik: '#buy'\n")
        result = runner.invoke(app, ["validate", "--ci", "bad.yaml"])
        assert result.exit_code == 1
        assert "bad.yaml:2:5 -- steps.0:" in result.output
        assert "Did you mean 'click'?" in result.output

    def test_payload_files(self, project):
        _record(project, "--no-save", "--out", "good.json")
        (project / "bad.json").write_text('{"events": 3}')
        result = runner.invoke(app, ["validate", "--ci", "good.json", "bad.json"])
        assert result.exit_code == 1
        assert "valid payload" in result.output
        assert "bad.json:0:0 -- <payload>:" in result.output
        assert "1/2 files valid" in result.output

    def test_missing_file(self, project):
        result = runner.invoke(app, ["validate", "missing.yaml"])
        assert result.exit_code == 1
