"""Tests for script-containment sanitization."""

from __future__ import annotations

from sessiontape.document.host import parse_html
from sessiontape.document.sanitize import (
    is_script_attribute,
    sanitize_document_html,
    sanitize_fragment_html,
)

RAW = """
<html><head>
<link rel="preload" href="/big.js">
<link rel="stylesheet" href="/site.css">
<script>alert(1)</script>
</head>
<body onload="boot()">
<a id="go" href="javascript:steal()" onclick="x()">go</a>
<input id="name" autofocus>
<img src="/logo.png" onerror="x()">
</body></html>
"""


class TestIsScriptAttribute:
    """Inline handlers and javascript: URLs."""

    def test_handlers(self) -> None:
        assert is_script_attribute("onclick", "x()")
        assert is_script_attribute("ONLOAD", "")

    def test_javascript_urls(self) -> None:
        assert is_script_attribute("href", "  JavaScript:void(0)")
        assert not is_script_attribute("href", "/home")
        assert not is_script_attribute("title", "javascript: the good parts")


class TestSanitizeDocument:
    """Full-document sanitization used by the replay surface."""

    def test_scripts_disabled(self) -> None:
        clean = parse_html(sanitize_document_html(RAW, "https://site.example/page"))
        assert clean.find("script") is None
        assert clean.find("body").get("onload") is None
        link = clean.find(id="go")
        assert link.get("href") is None
        assert link.get("onclick") is None
        assert clean.find("img").get("onerror") is None
        assert clean.find("img")["src"] == "/logo.png"

    def test_always_removes_autofocus_and_hints(self) -> None:
        clean = parse_html(sanitize_document_html(RAW, allow_scripts=True))
        assert clean.find(id="name").get("autofocus") is None
        rels = [link.get("rel") for link in clean.find_all("link")]
        assert rels == ["stylesheet"]

    def test_scripts_enabled_keeps_script_content(self) -> None:
        clean = parse_html(sanitize_document_html(RAW, allow_scripts=True))
        assert clean.find("script") is not None
        assert clean.find(id="go")["onclick"] == "x()"

    def test_base_href_inserted(self) -> None:
        clean = parse_html(sanitize_document_html("<p>hi</p>", "https://site.example/a/b"))
        base = clean.find("head").find("base")
        assert base["href"] == "https://site.example/a/b"

    def test_existing_base_repointed(self) -> None:
        raw = '<html><head><base href="/old/"></head><body></body></html>'
        clean = parse_html(sanitize_document_html(raw, "https://site.example/"))
        bases = clean.find_all("base")
        assert len(bases) == 1
        assert bases[0]["href"] == "https://site.example/"


class TestSanitizeFragment:
    """Fragment sanitization used for mutation patches."""

    def test_fragment_stays_a_fragment(self) -> None:
        clean = sanitize_fragment_html('<li onclick="x()">a</li><li>b</li>')
        assert clean == "<li>a</li><li>b</li>"

    def test_fragment_script_removed(self) -> None:
        assert sanitize_fragment_html("<script>x()</script><b>ok</b>") == "<b>ok</b>"
