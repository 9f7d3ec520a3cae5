"""Tests for the redaction policy, form-control classifier and serialization."""

from __future__ import annotations

import pytest

from sessiontape.document.controls import FormControl, classify_form_control
from sessiontape.document.host import DocumentHost, parse_html
from sessiontape.models.config import PrivacyConfig
from sessiontape.recording.intercept import MethodInterceptor
from sessiontape.recording.policy import (
    BLOCKED_HTML,
    REDACTED_TEXT,
    TRUNCATED_HTML,
    Redaction,
    RedactionPolicy,
    classify,
    mask_value,
)
from sessiontape.recording.serialize import (
    frame_inventory,
    is_cross_origin,
    normalize_frame_src,
    serialize_node,
    snapshot_html,
)

PAGE = """
<html><body>
  <form>
    <input id="user" name="user" value="alice">
    <input id="pw" type="password" value="hunter2">
    <input id="agree" type="checkbox" value="yes">
    <textarea id="note">call me</textarea>
    <select id="size"><option value="s">Small</option><option value="l" selected>Large</option></select>
  </form>
  <div class="rr-block" id="card"><span>4111 1111 1111 1111</span></div>
  <p data-sr-mask="true" id="addr" title="home">221B Baker Street</p>
  <p id="plain">public text</p>
  <script>track()</script>
</body></html>
"""


def _make_policy(**overrides) -> RedactionPolicy:
    return RedactionPolicy.from_config(PrivacyConfig(**overrides))


def _make_host() -> DocumentHost:
    return DocumentHost(PAGE, url="https://app.example/profile")


class TestMaskValue:
    """Length-preserving masking."""

    @pytest.mark.parametrize("raw", ["secret123", "a", "päßwörd"])
    def test_same_length_no_shared_chars(self, raw: str) -> None:
        masked = mask_value(raw)
        assert len(masked) == len(raw)
        assert not set(masked) & set(raw)

    def test_empty_and_none(self) -> None:
        assert mask_value("") == ""
        assert mask_value(None) == ""


class TestClassifyFormControl:
    """One classifier for every capture site."""

    def test_kinds(self) -> None:
        soup = parse_html(PAGE)
        assert classify_form_control(soup.find(id="user")) is FormControl.TEXT
        assert classify_form_control(soup.find(id="agree")) is FormControl.TOGGLE
        assert classify_form_control(soup.find(id="note")) is FormControl.TEXT
        assert classify_form_control(soup.find(id="size")) is FormControl.SELECTOR
        assert classify_form_control(soup.find(id="plain")) is FormControl.NONE
        assert classify_form_control(None) is FormControl.NONE


class TestClassify:
    """Block dominates mask; mask-all covers text and selector values."""

    def test_blocked_ancestor(self) -> None:
        soup = parse_html(PAGE)
        span = soup.find(id="card").find("span")
        assert classify(span, None, _make_policy()) is Redaction.BLOCK

    def test_mask_text_content_and_title(self) -> None:
        soup = parse_html(PAGE)
        addr = soup.find(id="addr")
        policy = _make_policy()
        assert classify(addr.contents[0], None, policy) is Redaction.MASK_TEXT
        assert classify(addr, "title", policy) is Redaction.MASK_TEXT
        assert classify(addr, "class", policy) is Redaction.PASS

    def test_mask_all_inputs(self) -> None:
        soup = parse_html(PAGE)
        policy = _make_policy()
        assert classify(soup.find(id="user"), "value", policy) is Redaction.MASK_VALUE
        assert classify(soup.find(id="size"), "value", policy) is Redaction.MASK_VALUE
        assert classify(soup.find(id="agree"), "value", policy) is Redaction.PASS

    def test_sensitive_fields_masked_without_mask_all(self) -> None:
        soup = parse_html(PAGE)
        policy = _make_policy(mask_all_inputs=False)
        assert classify(soup.find(id="pw"), "value", policy) is Redaction.MASK_VALUE
        assert classify(soup.find(id="user"), "value", policy) is Redaction.PASS

    def test_textarea_text_is_a_value(self) -> None:
        soup = parse_html(PAGE)
        note = soup.find(id="note")
        assert classify(note.contents[0], None, _make_policy()) is Redaction.MASK_VALUE

    def test_plain_text_passes(self) -> None:
        soup = parse_html(PAGE)
        assert classify(soup.find(id="plain").contents[0], None, _make_policy()) is Redaction.PASS

    def test_malformed_selector_is_dropped(self, caplog: pytest.LogCaptureFixture) -> None:
        policy = _make_policy(block_selectors=["div[[", "#plain"])
        soup = parse_html(PAGE)
        assert policy.is_blocked(soup.find(id="plain"))
        assert "policy-evaluation anomaly" in caplog.text


class TestSnapshotHtml:
    """The snapshot clone applies the policy and strips scripts."""

    def test_snapshot_redacts(self) -> None:
        host = _make_host()
        host.set_value(host.get_element_by_id("user"), "bob")
        html = snapshot_html(host, _make_policy())
        clone = parse_html(html)
        assert clone.find(id="user")["value"] == "***"
        assert clone.find(id="pw")["value"] == "*******"
        assert clone.find(id="note").get_text() == "*******"
        assert clone.find(id="card").get_text() == "[blocked]"
        assert clone.find(id="card")["data-sr-blocked"] == "1"
        assert clone.find(id="addr").get_text() == REDACTED_TEXT
        assert clone.find(id="plain").get_text() == "public text"
        assert clone.find("script") is None
        assert "4111" not in html
        assert "alice" not in html

    def test_mask_text_covers_text_attributes(self) -> None:
        """Tooltip and alt text under a mask-text selector are redacted too."""
        host = DocumentHost(
            '<p data-sr-mask="true" id="addr" title="home" class="card">'
            '<img id="face" alt="Alice Smith" src="/a.png">221B Baker Street</p>',
            url="https://app.example/",
        )
        html = snapshot_html(host, _make_policy())
        clone = parse_html(html)
        assert clone.find(id="addr")["title"] == REDACTED_TEXT
        assert clone.find(id="addr")["class"] == "card"
        assert clone.find(id="face")["alt"] == REDACTED_TEXT
        assert clone.find(id="face")["src"] == "/a.png"
        assert "home" not in html
        assert "Alice" not in html

    def test_live_document_untouched(self) -> None:
        host = _make_host()
        snapshot_html(host, _make_policy())
        assert host.get_element_by_id("user")["value"] == "alice"
        assert host.document.find("script") is not None

    def test_selected_option_cleared_when_masked(self) -> None:
        clone = parse_html(snapshot_html(_make_host(), _make_policy()))
        assert all(not option.has_attr("selected") for option in clone.find_all("option"))

    def test_ignored_nodes_removed(self) -> None:
        host = _make_host()
        html = snapshot_html(
            host, _make_policy(), ignore_node=lambda node: node.get("id") == "plain"
        )
        assert "public text" not in html


class TestSerializeNode:
    """Added/removed node descriptions."""

    def test_element_description(self) -> None:
        host = _make_host()
        plain = host.get_element_by_id("plain")
        result = serialize_node(plain, _make_policy(), path="#plain", max_bytes=5000)
        assert result.data == {
            "nodeType": "element",
            "tagName": "p",
            "path": "#plain",
            "outerHTML": '<p id="plain">public text</p>',
        }
        assert not result.redacted and not result.truncated

    def test_blocked_element(self) -> None:
        host = _make_host()
        card = host.get_element_by_id("card")
        result = serialize_node(card, _make_policy(), path="#card", max_bytes=5000)
        assert result.data["outerHTML"] == BLOCKED_HTML
        assert result.redacted

    def test_truncated_element(self) -> None:
        host = _make_host()
        plain = host.get_element_by_id("plain")
        result = serialize_node(plain, _make_policy(), path="#plain", max_bytes=10)
        assert result.data["outerHTML"] == TRUNCATED_HTML
        assert result.truncated

    def test_detached_text_classified_by_parent(self) -> None:
        host = _make_host()
        addr = host.get_element_by_id("addr")
        text = addr.contents[0].extract()
        result = serialize_node(text, _make_policy(), path="non-element", max_bytes=5000, parent=addr)
        assert result.data == {"nodeType": "text", "textContent": REDACTED_TEXT}

    def test_mask_text_element_attributes(self) -> None:
        host = _make_host()
        addr = host.get_element_by_id("addr")
        result = serialize_node(addr, _make_policy(), path="#addr", max_bytes=5000)
        assert 'title="[redacted]"' in result.data["outerHTML"]
        assert "home" not in result.data["outerHTML"]
        assert result.redacted

    def test_detached_element_under_mask_text_parent(self) -> None:
        """A removed child is classified by its former parent, attributes included."""
        host = DocumentHost(
            '<div data-sr-mask="true" id="box"><img id="face" alt="Alice Smith" src="/a.png"></div>'
        )
        box = host.get_element_by_id("box")
        face = host.get_element_by_id("face").extract()
        result = serialize_node(face, _make_policy(), path="#face", max_bytes=5000, parent=box)
        assert "Alice" not in result.data["outerHTML"]
        assert 'alt="[redacted]"' in result.data["outerHTML"]
        assert result.redacted

    def test_comment_is_other(self) -> None:
        soup = parse_html("<div><!-- note --></div>")
        comment = soup.find("div").contents[0]
        result = serialize_node(comment, _make_policy(), path="non-element", max_bytes=5000)
        assert result.data == {"nodeType": "other"}


class TestFrames:
    """Frame inventory and origin checks."""

    def test_inventory(self) -> None:
        host = DocumentHost(
            '<iframe id="ad" src="https://ads.example/slot"></iframe>'
            '<iframe src="/embed"></iframe>'
            '<iframe src="javascript:void(0)"></iframe>',
            url="https://app.example/",
        )
        frames = frame_inventory(host, _make_policy())
        assert frames[0] == {
            "path": "#ad",
            "declaredSrc": "https://ads.example/slot",
            "resolvedSrc": "https://ads.example/slot",
            "isCrossOrigin": True,
        }
        assert frames[1]["resolvedSrc"] == "https://app.example/embed"
        assert frames[1]["isCrossOrigin"] is False
        assert frames[2]["resolvedSrc"] is None

    def test_blocked_frames_left_out(self) -> None:
        """A frame inside a blocked subtree never exposes its source."""
        host = DocumentHost(
            '<div class="rr-block"><iframe id="chat" src="https://support.example/c?u=42"></iframe></div>'
            '<iframe id="open" src="/embed"></iframe>',
            url="https://app.example/",
        )
        frames = frame_inventory(host, _make_policy())
        assert [frame["path"] for frame in frames] == ["#open"]
        assert "support.example" not in str(frames)

    def test_normalize_and_origin(self) -> None:
        assert normalize_frame_src("  ") is None
        assert normalize_frame_src("JAVASCRIPT:x") is None
        assert is_cross_origin("about:blank", "https://a.example") is False
        assert is_cross_origin("https://b.example/", "https://a.example") is True


class TestMethodInterceptor:
    """Reversible wrapping of instance methods."""

    def test_install_and_uninstall(self) -> None:
        host = _make_host()
        calls: list[tuple] = []
        hook = MethodInterceptor(host.history, "push_state", lambda *a: calls.append(a))
        hook.install()
        hook.install()
        host.history.push_state({"n": 1}, "", "/x")
        assert calls == [({"n": 1}, "", "/x")]
        assert host.location.href == "https://app.example/x"
        hook.uninstall()
        hook.uninstall()
        host.history.push_state(None, "", "/y")
        assert len(calls) == 1
        assert "push_state" not in vars(host.history)
