"""Tests for applying recorded mutation events to the replay document."""

from __future__ import annotations

from typing import Any

from sessiontape.document.host import DocumentHost
from sessiontape.replay.patch import apply_mutation

PAGE = """
<html><body>
  <div id="app"><p>first</p><p>second</p></div>
  <ul id="list"><li>a</li><li>b</li><li>c</li></ul>
  <span id="label">Total: 5</span>
</body></html>
"""


def _make_host() -> DocumentHost:
    return DocumentHost(PAGE, url="https://replay.example/")


def _child_list(target: str, **kwargs: Any) -> dict[str, Any]:
    return {
        "eventType": "mutation_childList",
        "mutationType": "childList",
        "target": target,
        "addedNodes": kwargs.get("added", []),
        "removedNodes": kwargs.get("removed", []),
        "targetInnerHTML": kwargs.get("inner_html"),
    }


class TestAttributes:
    """Attribute set and removal."""

    def test_sets_attribute(self) -> None:
        host = _make_host()
        changed = apply_mutation(
            host,
            {"mutationType": "attributes", "target": "#app", "attributeName": "class", "newValue": "dark"},
        )
        assert changed is True
        assert host.get_element_by_id("app")["class"] == "dark"

    def test_none_value_removes(self) -> None:
        host = _make_host()
        host.set_attribute(host.get_element_by_id("app"), "hidden", "")
        apply_mutation(
            host,
            {"mutationType": "attributes", "target": "#app", "attributeName": "hidden", "newValue": None},
        )
        assert not host.get_element_by_id("app").has_attr("hidden")

    def test_script_attribute_dropped_when_scripts_off(self) -> None:
        host = _make_host()
        data = {"mutationType": "attributes", "target": "#app", "attributeName": "onclick", "newValue": "x()"}
        assert apply_mutation(host, data) is False
        assert not host.get_element_by_id("app").has_attr("onclick")
        assert apply_mutation(host, data, allow_scripts=True) is True

    def test_missing_target_is_drift(self) -> None:
        host = _make_host()
        before = host.serialize()
        data = {"mutationType": "attributes", "target": "#ghost", "attributeName": "class", "newValue": "x"}
        assert apply_mutation(host, data) is False
        assert host.serialize() == before

    def test_targetless_record_changes_nothing(self) -> None:
        """A record without a target never lands on the root element."""
        host = _make_host()
        before = host.serialize()
        for target in (None, ""):
            data = {"mutationType": "attributes", "target": target, "attributeName": "class", "newValue": "x"}
            assert apply_mutation(host, data) is False
        assert not host.document_element.has_attr("class")
        assert host.serialize() == before

    def test_blocked_and_malformed_ignored(self) -> None:
        host = _make_host()
        assert apply_mutation(host, {"blocked": True, "mutationType": "attributes"}) is False
        assert apply_mutation(host, None) is False
        assert apply_mutation(host, {"mutationType": "bogus", "target": "#app"}) is False


class TestCharacterData:
    """Text node updates."""

    def test_updates_text_by_index(self) -> None:
        host = _make_host()
        apply_mutation(
            host,
            {
                "mutationType": "characterData",
                "target": "non-element",
                "parentTarget": "#label",
                "textIndex": 0,
                "oldValue": "Total: 5",
                "newValue": "Total: 6",
            },
        )
        assert host.get_element_by_id("label").get_text() == "Total: 6"

    def test_falls_back_to_old_value_match(self) -> None:
        host = _make_host()
        changed = apply_mutation(
            host,
            {
                "mutationType": "characterData",
                "parentTarget": "#label",
                "textIndex": 9,
                "oldValue": "Total: 5",
                "newValue": "Total: 7",
            },
        )
        assert changed is True
        assert host.get_element_by_id("label").get_text() == "Total: 7"

    def test_element_target_fallback(self) -> None:
        host = _make_host()
        apply_mutation(host, {"mutationType": "characterData", "target": "#label", "newValue": "Done"})
        assert host.get_element_by_id("label").get_text() == "Done"
        assert host.get_element_by_id("list") is not None


class TestChildList:
    """Targeted node additions and removals."""

    def test_removal_by_path_then_addition(self) -> None:
        host = _make_host()
        data = _child_list(
            "#list",
            removed=[{"nodeType": "element", "tagName": "li", "path": "#list > li:nth-of-type(2)"}],
            added=[{"nodeType": "element", "tagName": "li", "outerHTML": "<li>d</li>"}],
        )
        assert apply_mutation(host, data) is True
        items = [li.get_text() for li in host.get_element_by_id("list").find_all("li")]
        assert items == ["a", "c", "d"]

    def test_multiple_removals_resolved_before_any_removal(self) -> None:
        host = _make_host()
        data = _child_list(
            "#list",
            removed=[
                {"nodeType": "element", "path": "#list > li:nth-of-type(1)"},
                {"nodeType": "element", "path": "#list > li:nth-of-type(2)"},
            ],
        )
        apply_mutation(host, data)
        items = [li.get_text() for li in host.get_element_by_id("list").find_all("li")]
        assert items == ["c"]

    def test_added_html_is_sanitized(self) -> None:
        host = _make_host()
        data = _child_list(
            "#app",
            added=[{"nodeType": "element", "outerHTML": '<p onclick="steal()">x<script>bad()</script></p>'}],
        )
        apply_mutation(host, data)
        added = host.get_element_by_id("app").find_all("p")[-1]
        assert not added.has_attr("onclick")
        assert added.find("script") is None

    def test_text_nodes(self) -> None:
        host = _make_host()
        apply_mutation(
            host,
            _child_list(
                "#label",
                removed=[{"nodeType": "text", "textContent": "Total: 5"}],
                added=[{"nodeType": "text", "textContent": "Total: 9"}],
            ),
        )
        assert host.get_element_by_id("label").get_text() == "Total: 9"

    def test_inner_html_fallback_for_untargeted_change(self) -> None:
        host = _make_host()
        data = _child_list("#app", added=[{"nodeType": "other"}], inner_html="<em>swapped</em>")
        assert apply_mutation(host, data) is True
        assert str(host.get_element_by_id("app").decode_contents()) == "<em>swapped</em>"

    def test_body_never_replaced_wholesale(self) -> None:
        host = _make_host()
        before = host.serialize()
        data = _child_list("body", added=[{"nodeType": "other"}], inner_html="<p>gone</p>")
        assert apply_mutation(host, data) is False
        assert host.serialize() == before

    def test_moved_node_is_drift(self) -> None:
        host = _make_host()
        data = _child_list(
            "#app",
            removed=[{"nodeType": "element", "path": "#list > li:nth-of-type(1)"}],
        )
        assert apply_mutation(host, data) is False
        assert len(host.get_element_by_id("list").find_all("li")) == 3
