"""Live document host.

A BeautifulSoup tree plus the browser-side surfaces the recorder hooks
into and the replayer drives: DOM-style mutation records delivered to
observers, capture/bubble event dispatch with default actions, form
state, focus, scroll offsets, layout rectangles, viewport, visibility,
location and a session history.

Node identity is always compared with ``is``; bs4 tags compare
structurally with ``==``, so per-node state is keyed by ``id()``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Doctype, NavigableString, Tag
from bs4.element import PageElement

logger = logging.getLogger(__name__)

PARSER = "html.parser"
DEFAULT_USER_AGENT = "sessiontape/0.1 (headless)"


def parse_html(markup: str | None) -> BeautifulSoup:
    """Parse markup with every attribute kept as a plain string."""
    return BeautifulSoup(markup or "", PARSER, multi_valued_attributes=None)


def parse_fragment(markup: str | None) -> list[PageElement]:
    """Parse a fragment into detached top-level nodes."""
    soup = parse_html(markup)
    return [node.extract() for node in list(soup.contents)]


def ensure_scaffold(soup: BeautifulSoup) -> BeautifulSoup:
    """Make sure the tree has html, head and body elements."""
    html = soup.find("html")
    if html is None:
        html = soup.new_tag("html")
        for node in list(soup.contents):
            if not isinstance(node, Doctype):
                html.append(node.extract())
        soup.append(html)
    head = html.find("head")
    if head is None:
        head = soup.new_tag("head")
        html.insert(0, head)
    body = html.find("body")
    if body is None:
        body = soup.new_tag("body")
        for node in list(html.contents):
            if node is not head:
                body.append(node.extract())
        html.append(body)
    return soup


def url_origin(url: str | None) -> str:
    """Return scheme://host[:port] for a URL, or "null" for opaque URLs."""
    if not url:
        return "null"
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https", "file") or not parts.netloc:
        return "null"
    return f"{parts.scheme}://{parts.netloc}"


@dataclass(frozen=True)
class Rect:
    """A client bounding rectangle in viewport pixels."""

    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass(eq=False)
class MutationRecord:
    """A structural change, shaped like the DOM's MutationRecord."""

    type: str  # attributes, characterData, childList
    target: PageElement
    attribute_name: str | None = None
    old_value: str | None = None
    added_nodes: list[PageElement] = field(default_factory=list)
    removed_nodes: list[PageElement] = field(default_factory=list)
    previous_sibling: PageElement | None = None
    next_sibling: PageElement | None = None


@dataclass(eq=False)
class DomEvent:
    """A dispatched event. ``detail`` carries kind-specific extras."""

    type: str
    bubbles: bool = True
    cancelable: bool = True
    client_x: float | None = None
    client_y: float | None = None
    button: int = 0
    is_trusted: bool = True
    detail: dict[str, Any] = field(default_factory=dict)
    target: Any = None
    current_target: Any = None
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self) -> None:
        if self.cancelable:
            self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


@dataclass(eq=False)
class _Listener:
    type: str
    handler: Callable[[DomEvent], Any]
    capture: bool
    once: bool


class Window:
    """The window object: viewport size and viewport scroll offsets."""

    def __init__(self, width: float, height: float) -> None:
        self.inner_width = width
        self.inner_height = height
        self.scroll_x = 0.0
        self.scroll_y = 0.0


class Location:
    """The current document URL."""

    def __init__(self, href: str) -> None:
        self.href = href

    @property
    def origin(self) -> str:
        return url_origin(self.href)

    @property
    def pathname(self) -> str:
        return urlsplit(self.href).path or "/"

    @property
    def search(self) -> str:
        query = urlsplit(self.href).query
        return f"?{query}" if query else ""

    @property
    def hash(self) -> str:
        fragment = urlsplit(self.href).fragment
        return f"#{fragment}" if fragment else ""

    def resolve(self, url: str | None) -> str:
        if url is None or url == "":
            return self.href
        return urljoin(self.href, str(url))


def _strip_fragment(url: str) -> str:
    return url.split("#", 1)[0]


class History:
    """Session history with push/replace entry points and back()."""

    def __init__(self, host: DocumentHost) -> None:
        self._host = host
        self._entries: list[tuple[Any, str]] = [(None, host.location.href)]
        self._index = 0

    @property
    def length(self) -> int:
        return len(self._entries)

    @property
    def state(self) -> Any:
        return self._entries[self._index][0]

    def push_state(self, state: Any, title: str = "", url: str | None = None) -> None:
        target = self._host.location.resolve(url)
        del self._entries[self._index + 1 :]
        self._entries.append((state, target))
        self._index += 1
        self._host.location.href = target

    def replace_state(self, state: Any, title: str = "", url: str | None = None) -> None:
        target = self._host.location.resolve(url)
        self._entries[self._index] = (state, target)
        self._host.location.href = target

    def back(self) -> None:
        if self._index == 0:
            return
        old_href = self._host.location.href
        self._index -= 1
        state, href = self._entries[self._index]
        self._host.location.href = href
        self._host.dispatch_event(
            self._host.window,
            DomEvent("popstate", bubbles=False, cancelable=False, detail={"state": state}),
        )
        if old_href != href and _strip_fragment(old_href) == _strip_fragment(href):
            self._host.dispatch_event(
                self._host.window,
                DomEvent("hashchange", bubbles=False, cancelable=False),
            )


class MutationObserver:
    """Receives batches of MutationRecords from a host."""

    def __init__(self, callback: Callable[[list[MutationRecord]], Any]) -> None:
        self._callback = callback
        self._host: DocumentHost | None = None
        self.child_list = True
        self.attributes = True
        self.character_data = True
        self.subtree = True
        self.attribute_old_value = True
        self.character_data_old_value = True

    def observe(
        self,
        host: DocumentHost,
        *,
        child_list: bool = True,
        attributes: bool = True,
        character_data: bool = True,
        subtree: bool = True,
        attribute_old_value: bool = True,
        character_data_old_value: bool = True,
    ) -> None:
        self.child_list = child_list
        self.attributes = attributes
        self.character_data = character_data
        self.subtree = subtree
        self.attribute_old_value = attribute_old_value
        self.character_data_old_value = character_data_old_value
        if self._host is not host:
            self.disconnect()
            host._observers.append(self)
            self._host = host

    def disconnect(self) -> None:
        if self._host is None:
            return
        observers = self._host._observers
        self._host._observers = [obs for obs in observers if obs is not self]
        self._host = None

    @property
    def connected(self) -> bool:
        return self._host is not None

    def _accepts(self, record: MutationRecord, root: Tag | None) -> bool:
        if record.type == "childList" and not self.child_list:
            return False
        if record.type == "attributes" and not self.attributes:
            return False
        if record.type == "characterData" and not self.character_data:
            return False
        if not self.subtree:
            return record.target is root
        return True

    def _deliver(self, records: list[MutationRecord], root: Tag | None) -> None:
        accepted = []
        for record in records:
            if not self._accepts(record, root):
                continue
            keep_old = (
                self.attribute_old_value
                if record.type == "attributes"
                else self.character_data_old_value
            )
            if record.type != "childList" and not keep_old:
                record = MutationRecord(
                    type=record.type,
                    target=record.target,
                    attribute_name=record.attribute_name,
                )
            accepted.append(record)
        if accepted:
            self._callback(accepted)


class DocumentHost:
    """A live document plus its window, history and interaction state.

    Args:
        html: Initial markup. Missing html/head/body elements are added.
        url: The document URL used for origin checks and link resolution.
        viewport: (width, height) of the window in CSS pixels.
        user_agent: Client identity string reported in payloads.
    """

    def __init__(
        self,
        html: str = "",
        url: str = "about:blank",
        *,
        viewport: tuple[float, float] = (1280, 720),
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.document = ensure_scaffold(parse_html(html))
        self.window = Window(*viewport)
        self.location = Location(url)
        self.history = History(self)
        self.user_agent = user_agent
        self.visibility_state = "visible"
        self.active_element: Tag | None = None
        self.navigations: list[str] = []
        self._observers: list[MutationObserver] = []
        self._pending: list[MutationRecord] = []
        self._batch_depth = 0
        self._listeners: dict[int, list[_Listener]] = {}
        self._values: dict[int, str] = {}
        self._checked: dict[int, bool] = {}
        self._scroll: dict[int, tuple[float, float]] = {}
        self._layout: dict[int, Rect] = {}
        self._frame_locations: dict[int, str] = {}

    # -- tree access --

    @property
    def document_element(self) -> Tag:
        return self.document.find("html")

    @property
    def head(self) -> Tag:
        return self.document_element.find("head")

    @property
    def body(self) -> Tag:
        return self.document_element.find("body")

    @property
    def scrolling_element(self) -> Tag:
        return self.document_element

    def get_element_by_id(self, element_id: str) -> Tag | None:
        return self.document.find(id=element_id)

    def create_element(self, name: str, attrs: dict[str, str] | None = None) -> Tag:
        return self.document.new_tag(name, attrs=dict(attrs or {}))

    def contains(self, node: PageElement | None) -> bool:
        """True if node is attached to this document."""
        current = node
        while current is not None:
            if current is self.document:
                return True
            current = current.parent
        return False

    # -- mutation observation --

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Defer mutation delivery until the block exits, as one batch."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending:
                pending, self._pending = self._pending, []
                self._deliver(pending)

    def _queue(self, record: MutationRecord) -> None:
        if self._batch_depth:
            self._pending.append(record)
        else:
            self._deliver([record])

    def _deliver(self, records: list[MutationRecord]) -> None:
        root = self.document_element
        for observer in list(self._observers):
            observer._deliver(records, root)
        for record in records:
            for node in record.removed_nodes:
                if not self.contains(node):
                    self._forget(node)

    def _forget(self, node: PageElement) -> None:
        """Drop live state held for a detached node and its descendants."""
        nodes = [node]
        if isinstance(node, Tag):
            nodes.extend(node.descendants)
        states = (self._values, self._checked, self._scroll, self._layout, self._frame_locations)
        for item in nodes:
            for state in states:
                state.pop(id(item), None)

    def set_attribute(self, element: Tag, name: str, value: Any) -> None:
        old = element.get(name)
        element[name] = str(value)
        self._queue(
            MutationRecord("attributes", element, attribute_name=name, old_value=old)
        )

    def remove_attribute(self, element: Tag, name: str) -> None:
        if not element.has_attr(name):
            return
        old = element.get(name)
        del element[name]
        self._queue(
            MutationRecord("attributes", element, attribute_name=name, old_value=old)
        )

    def set_text(self, text_node: NavigableString, value: str) -> NavigableString:
        """Replace a text node's data. Returns the live node now in the tree."""
        old = str(text_node)
        replacement = NavigableString(value)
        text_node.replace_with(replacement)
        self._queue(MutationRecord("characterData", replacement, old_value=old))
        return replacement

    def append_child(self, parent: Tag, node: PageElement) -> PageElement:
        # A moved node keeps its live state: both records go out together.
        with self.batch():
            if node.parent is not None:
                self.remove_child(node)
            previous = parent.contents[-1] if parent.contents else None
            parent.append(node)
            self._queue(
                MutationRecord(
                    "childList", parent, added_nodes=[node], previous_sibling=previous
                )
            )
        return node

    def insert_before(
        self, parent: Tag, node: PageElement, reference: PageElement | None
    ) -> PageElement:
        if reference is None:
            return self.append_child(parent, node)
        with self.batch():
            if node.parent is not None:
                self.remove_child(node)
            previous = reference.previous_sibling
            parent.insert(parent.index(reference), node)
            self._queue(
                MutationRecord(
                    "childList",
                    parent,
                    added_nodes=[node],
                    previous_sibling=previous,
                    next_sibling=reference,
                )
            )
        return node

    def remove_child(self, node: PageElement) -> PageElement:
        parent = node.parent
        if parent is None:
            return node
        previous = node.previous_sibling
        following = node.next_sibling
        node.extract()
        self._queue(
            MutationRecord(
                "childList",
                parent,
                removed_nodes=[node],
                previous_sibling=previous,
                next_sibling=following,
            )
        )
        return node

    def append_html(self, parent: Tag, markup: str) -> list[PageElement]:
        nodes = parse_fragment(markup)
        previous = parent.contents[-1] if parent.contents else None
        for node in nodes:
            parent.append(node)
        if nodes:
            self._queue(
                MutationRecord(
                    "childList", parent, added_nodes=nodes, previous_sibling=previous
                )
            )
        return nodes

    def set_inner_html(self, element: Tag, markup: str) -> list[PageElement]:
        removed = [node.extract() for node in list(element.contents)]
        added = parse_fragment(markup)
        for node in added:
            element.append(node)
        if removed or added:
            self._queue(
                MutationRecord(
                    "childList", element, added_nodes=added, removed_nodes=removed
                )
            )
        return added

    # -- events --

    def add_event_listener(
        self,
        target: Any,
        type: str,
        handler: Callable[[DomEvent], Any],
        *,
        capture: bool = False,
        once: bool = False,
    ) -> None:
        listeners = self._listeners.setdefault(id(target), [])
        for existing in listeners:
            if (
                existing.type == type
                and existing.handler is handler
                and existing.capture == capture
            ):
                return
        listeners.append(_Listener(type, handler, capture, once))

    def remove_event_listener(
        self,
        target: Any,
        type: str,
        handler: Callable[[DomEvent], Any],
        *,
        capture: bool = False,
    ) -> None:
        listeners = self._listeners.get(id(target))
        if not listeners:
            return
        remaining = [
            entry
            for entry in listeners
            if not (
                entry.type == type
                and entry.handler is handler
                and entry.capture == capture
            )
        ]
        if remaining:
            self._listeners[id(target)] = remaining
        else:
            del self._listeners[id(target)]

    def listener_count(self, type: str | None = None) -> int:
        """Number of registered listeners, optionally for one event type."""
        return sum(
            1
            for listeners in self._listeners.values()
            for entry in listeners
            if type is None or entry.type == type
        )

    def _propagation_path(self, target: Any) -> list[Any]:
        if target is self.window:
            return []
        if target is self.document:
            return [self.window]
        ancestors: list[Any] = []
        current = target.parent if target is not None else None
        while current is not None:
            ancestors.append(current)
            current = current.parent
        ancestors.reverse()
        if ancestors and ancestors[0] is self.document:
            return [self.window, *ancestors]
        return ancestors

    def _invoke(self, node: Any, event: DomEvent, *, capture: bool | None) -> None:
        listeners = self._listeners.get(id(node))
        if not listeners:
            return
        event.current_target = node
        for entry in list(listeners):
            if entry.type != event.type:
                continue
            if capture is not None and entry.capture != capture:
                continue
            if entry.once:
                self.remove_event_listener(
                    node, entry.type, entry.handler, capture=entry.capture
                )
            try:
                entry.handler(event)
            except Exception:
                logger.exception("Listener for %r raised", event.type)

    def dispatch_event(self, target: Any, event: DomEvent) -> bool:
        """Dispatch through capture, target and bubble phases.

        Returns:
            False if a listener called prevent_default(), else True.
        """
        event.target = target
        path = self._propagation_path(target)
        for node in path:
            if event.propagation_stopped:
                break
            self._invoke(node, event, capture=True)
        if not event.propagation_stopped:
            self._invoke(target, event, capture=True)
            self._invoke(target, event, capture=False)
        if event.bubbles:
            for node in reversed(path):
                if event.propagation_stopped:
                    break
                self._invoke(node, event, capture=False)
        event.current_target = None
        if not event.default_prevented:
            self._default_action(target, event)
        return not event.default_prevented

    def _default_action(self, target: Any, event: DomEvent) -> None:
        if event.type != "click" or not isinstance(target, PageElement):
            return
        element = target if isinstance(target, Tag) else target.parent
        anchor = closest_tag(element, lambda tag: tag.name == "a" and tag.has_attr("href"))
        if anchor is not None:
            self.navigate(anchor["href"])
            return
        submitter = closest_tag(element, _is_submit_control)
        if submitter is not None:
            form = closest_tag(submitter, lambda tag: tag.name == "form")
            if form is not None:
                self.dispatch_event(form, DomEvent("submit"))

    def navigate(self, url: str) -> None:
        """Follow a link: fragment changes fire hashchange, others unload."""
        target = self.location.resolve(url)
        current = self.location.href
        if _strip_fragment(target) == _strip_fragment(current) and "#" in target:
            if target != current:
                self.location.href = target
                self.dispatch_event(
                    self.window, DomEvent("hashchange", bubbles=False, cancelable=False)
                )
            return
        self.navigations.append(target)
        self.dispatch_event(self.window, DomEvent("beforeunload", bubbles=False))
        self.dispatch_event(
            self.window,
            DomEvent("pagehide", bubbles=False, cancelable=False, detail={"persisted": False}),
        )
        self.location.href = target

    def set_visibility(self, state: str) -> None:
        self.visibility_state = state
        self.dispatch_event(
            self.document, DomEvent("visibilitychange", bubbles=False, cancelable=False)
        )

    def fire_page_event(self, type: str, *, persisted: bool = False) -> None:
        """Fire a page lifecycle event (pageshow, pagehide) on the window."""
        self.dispatch_event(
            self.window,
            DomEvent(type, bubbles=False, cancelable=False, detail={"persisted": persisted}),
        )

    # -- form state and focus --

    def get_value(self, element: Tag) -> str:
        if id(element) in self._values:
            return self._values[id(element)]
        if element.name == "textarea":
            return element.get_text()
        if element.name == "select":
            options = element.find_all("option")
            chosen = next((opt for opt in options if opt.has_attr("selected")), None)
            if chosen is None and options:
                chosen = options[0]
            if chosen is None:
                return ""
            return chosen.get("value", chosen.get_text())
        if element.name == "input" and element.get("type", "").lower() in ("checkbox", "radio"):
            return element.get("value", "on")
        return element.get("value", "")

    def set_value(self, element: Tag, value: Any) -> None:
        self._values[id(element)] = "" if value is None else str(value)

    def is_checked(self, element: Tag) -> bool:
        if id(element) in self._checked:
            return self._checked[id(element)]
        return element.has_attr("checked")

    def set_checked(self, element: Tag, checked: bool) -> None:
        self._checked[id(element)] = bool(checked)

    def focus(self, element: Tag | None) -> None:
        self.active_element = element

    # -- scroll, layout and frames --

    def get_scroll(self, element: Tag) -> tuple[float, float]:
        """Return (scroll_top, scroll_left) for an element."""
        return self._scroll.get(id(element), (0.0, 0.0))

    def set_scroll(self, element: Tag, top: float, left: float) -> None:
        self._scroll[id(element)] = (float(top), float(left))
        if element is self.scrolling_element:
            self.window.scroll_y = float(top)
            self.window.scroll_x = float(left)

    def scroll_to(self, left: float, top: float) -> None:
        """Scroll the viewport (window.scrollTo)."""
        self.set_scroll(self.scrolling_element, top, left)

    def scroll(self, element: Tag | None, top: float, left: float = 0.0) -> None:
        """User-initiated scroll: update offsets and fire a scroll event.

        Viewport scrolls (element None or the scrolling element) fire at
        the document, as browsers do.
        """
        if element is None or element is self.scrolling_element:
            self.scroll_to(left, top)
            target: Any = self.document
        else:
            self.set_scroll(element, top, left)
            target = element
        self.dispatch_event(target, DomEvent("scroll", bubbles=False, cancelable=False))

    def set_viewport(self, width: float, height: float) -> None:
        self.window.inner_width = width
        self.window.inner_height = height

    def set_layout(self, element: Tag, rect: Rect) -> None:
        self._layout[id(element)] = rect

    def get_bounding_client_rect(self, element: Tag) -> Rect:
        if id(element) in self._layout:
            return self._layout[id(element)]
        if element is self.document_element or element is self.body:
            return Rect(0.0, 0.0, self.window.inner_width, self.window.inner_height)
        return Rect()

    def frame_src(self, frame: Tag) -> str | None:
        """The frame's current location: navigated URL or resolved src."""
        if id(frame) in self._frame_locations:
            return self._frame_locations[id(frame)]
        src = frame.get("src")
        if not src:
            return None
        return self.location.resolve(src)

    def set_frame_location(self, frame: Tag, url: str) -> None:
        self._frame_locations[id(frame)] = url

    def serialize(self) -> str:
        """Serialize the document element (outerHTML)."""
        return str(self.document_element)


def closest_tag(
    node: PageElement | None, predicate: Callable[[Tag], bool]
) -> Tag | None:
    """Return node or its nearest ancestor Tag satisfying predicate."""
    current = node if isinstance(node, Tag) else getattr(node, "parent", None)
    while isinstance(current, Tag) and not isinstance(current, BeautifulSoup):
        if predicate(current):
            return current
        current = current.parent
    return None


def _is_submit_control(tag: Tag) -> bool:
    if tag.name == "button":
        return tag.get("type", "submit").lower() == "submit"
    if tag.name == "input":
        return tag.get("type", "").lower() in ("submit", "image")
    return False
