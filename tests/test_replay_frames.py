"""Tests for child-frame restoration on the replay surface."""

from __future__ import annotations

import asyncio

import pytest

from sessiontape.document.host import DocumentHost
from sessiontape.replay.frames import placeholder_srcdoc, restore_frames

PAGE = """
<html><body>
  <iframe id="same" src="/widget"></iframe>
  <iframe id="ad"></iframe>
</body></html>
"""


def _make_host() -> DocumentHost:
    return DocumentHost(PAGE, url="https://shop.example/cart")


FRAMES = [
    {
        "path": "#same",
        "declaredSrc": "/widget",
        "resolvedSrc": "https://shop.example/widget?v=2",
        "isCrossOrigin": False,
    },
    {
        "path": "#ad",
        "declaredSrc": "https://thirdparty.example/x",
        "resolvedSrc": "https://thirdparty.example/x",
        "isCrossOrigin": True,
    },
]


class TestPlaceholder:
    """Placeholder document content."""

    def test_escapes_src(self) -> None:
        srcdoc = placeholder_srcdoc('https://x.example/?a=<b>')
        assert "&lt;b&gt;" in srcdoc
        assert "3rd-party frame could not be restored." in srcdoc

    def test_unknown_src(self) -> None:
        assert "(unknown)" in placeholder_srcdoc(None)


class TestRestoreFrames:
    """Same-origin restoration and bounded cross-origin waits."""

    @pytest.mark.asyncio
    async def test_same_origin_src_restored(self) -> None:
        host = _make_host()
        placeholders = await restore_frames(host, FRAMES[:1], base_url="https://shop.example/cart")
        assert placeholders == []
        assert host.get_element_by_id("same")["src"] == "https://shop.example/widget?v=2"

    @pytest.mark.asyncio
    async def test_cross_origin_timeout_gets_placeholder(self) -> None:
        host = _make_host()

        async def hanging(url: str) -> bool:
            await asyncio.sleep(10)
            return True

        placeholders = await restore_frames(
            host, FRAMES, base_url="https://shop.example/cart", loader=hanging, timeout_ms=20
        )
        ad = host.get_element_by_id("ad")
        assert placeholders == ["#ad"]
        assert not ad.has_attr("src")
        assert "https://thirdparty.example/x" in ad["srcdoc"]

    @pytest.mark.asyncio
    async def test_cross_origin_loaded(self) -> None:
        host = _make_host()

        async def instant(url: str) -> bool:
            return True

        placeholders = await restore_frames(host, FRAMES, base_url=None, loader=instant)
        assert placeholders == []
        ad = host.get_element_by_id("ad")
        assert ad["src"] == "https://thirdparty.example/x"
        assert host.frame_src(ad) == "https://thirdparty.example/x"

    @pytest.mark.asyncio
    async def test_loader_error_gets_placeholder(self) -> None:
        host = _make_host()

        async def broken(url: str) -> bool:
            raise ConnectionError("blocked by policy")

        placeholders = await restore_frames(host, FRAMES, base_url=None, loader=broken)
        assert placeholders == ["#ad"]

    @pytest.mark.asyncio
    async def test_blocked_frames_keep_no_source(self) -> None:
        """Frames blanked at capture are never pointed at their recorded source."""
        host = DocumentHost(
            '<iframe id="same" data-sr-blocked="1"></iframe><iframe id="ad" data-sr-blocked="1"></iframe>',
            url="https://shop.example/cart",
        )
        placeholders = await restore_frames(host, FRAMES, base_url="https://shop.example/cart")
        assert placeholders == []
        for frame in host.document.find_all("iframe"):
            assert not frame.has_attr("src")
            assert not frame.has_attr("srcdoc")

    @pytest.mark.asyncio
    async def test_malformed_and_unresolvable_descriptors_skipped(self) -> None:
        host = _make_host()
        placeholders = await restore_frames(
            host,
            [None, {"declaredSrc": "x"}, {"path": "#missing", "resolvedSrc": "https://a.example"}],
            base_url=None,
        )
        assert placeholders == []
