"""In-memory host backed by BeautifulSoup documents.

Each surface holds a parsed document, a history stack, console and network logs.
Pages come from a url→html map given at construction (unknown URLs load a blank
page titled with the URL). DOM operations mutate the parsed document and emit the
same typed events a real browser surface would push to the recorder.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlparse

import soupsieve
from bs4 import BeautifulSoup, Tag

from ..errors import HostError
from ..recording.events import FileChange, FileMeta, KeyDown, PointerActivation, SelectionChange, ValueCommit
from ..recording.selectors import generate_selector
from .host import EventSink, SurfaceClosedCallback, SurfaceInfo

logger = logging.getLogger("mcp.bronco.memory_host")

BLANK_URL = "about:blank"
# 1x1 transparent PNG; the in-memory host has nothing to rasterize.
_PLACEHOLDER_PNG = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)
_TEXT_INPUT_TYPES = frozenset({"", "text", "search", "email", "password", "tel", "url", "number"})
_INTERACTIVE = "a, button, input, select, textarea, [role=button], [onclick]"


@dataclass
class _Surface:
    id: int
    url: str
    document: BeautifulSoup
    history: list[str] = field(default_factory=list)
    cursor: int = 0
    console: list[dict[str, Any]] = field(default_factory=list)
    network: list[dict[str, Any]] = field(default_factory=list)
    focused: Tag | None = None
    scroll: tuple[int, int] = (0, 0)
    dialog: str | None = None
    hovered: str | None = None

    @property
    def title(self) -> str:
        node = self.document.title
        return node.get_text(strip=True) if node is not None else ""


class MemoryHost:
    def __init__(self, pages: dict[str, str] | None = None) -> None:
        self.pages: dict[str, str] = dict(pages or {})
        self._surfaces: dict[int, _Surface] = {}
        self._ids = itertools.count(1)
        self._active: int | None = None
        self._sinks: dict[int, list[EventSink]] = {}
        self._closed_callbacks: list[SurfaceClosedCallback] = []
        self._cookies: dict[tuple[str, str], dict[str, Any]] = {}

    # ───────────────────────── Helpers ─────────────────────────

    def add_page(self, url: str, html: str) -> None:
        self.pages[url] = html

    def _load(self, url: str) -> tuple[BeautifulSoup, int]:
        html = self.pages.get(url)
        status = 200
        if html is None:
            status = 200 if url == BLANK_URL else 404
            html = f"<html><head><title>{url}</title></head><body></body></html>"
        return BeautifulSoup(html, "html.parser"), status

    def _surface(self, surface_id: int) -> _Surface:
        surface = self._surfaces.get(surface_id)
        if surface is None:
            raise HostError(f"Tab {surface_id} not found")
        return surface

    def _info(self, surface: _Surface) -> SurfaceInfo:
        return SurfaceInfo(id=surface.id, url=surface.url, title=surface.title, active=surface.id == self._active)

    def _emit(self, surface: _Surface, event: Any) -> None:
        for sink in list(self._sinks.get(surface.id, ())):
            try:
                sink(event)
            except Exception:  # noqa: BLE001
                logger.exception("event sink failed surface=%s", surface.id)

    def _query(self, surface: _Surface, selector: str) -> Tag:
        if not isinstance(selector, str) or not selector.strip():
            raise HostError("Selector is required")
        try:
            element = surface.document.select_one(selector)
        except soupsieve.SelectorSyntaxError as exc:
            raise HostError(f"Invalid selector: {selector}") from exc
        if element is None:
            raise HostError(f"Element not found: {selector}")
        return element

    def _show(self, surface: _Surface, url: str, *, push: bool) -> None:
        document, status = self._load(url)
        surface.document = document
        surface.url = url
        surface.focused = None
        surface.scroll = (0, 0)
        surface.network.append({"url": url, "method": "GET", "status": status, "type": "document", "timestamp": _now()})
        if push:
            del surface.history[surface.cursor + 1 :]
            surface.history.append(url)
            surface.cursor = len(surface.history) - 1

    def _page(self, surface: _Surface) -> dict[str, Any]:
        return {"success": True, "url": surface.url, "title": surface.title}

    # ───────────────────────── Surfaces ─────────────────────────

    async def list_surfaces(self) -> list[SurfaceInfo]:
        return [self._info(s) for s in self._surfaces.values()]

    async def get_surface(self, surface_id: int) -> SurfaceInfo | None:
        surface = self._surfaces.get(surface_id)
        return self._info(surface) if surface is not None else None

    async def create_surface(self, url: str | None = None) -> SurfaceInfo:
        return self.open_surface(url or BLANK_URL)

    def open_surface(self, url: str = BLANK_URL) -> SurfaceInfo:
        """Open a tab the way a user would (no executor involved)."""
        surface_id = next(self._ids)
        surface = _Surface(id=surface_id, url=url, document=BeautifulSoup("", "html.parser"))
        self._surfaces[surface_id] = surface
        self._show(surface, url, push=True)
        self._active = surface_id
        return self._info(surface)

    async def close_surface(self, surface_id: int) -> None:
        self._surface(surface_id)
        self.destroy_surface(surface_id)

    def destroy_surface(self, surface_id: int) -> None:
        """Tear a surface down out-of-band (user closed the tab)."""
        if self._surfaces.pop(surface_id, None) is None:
            return
        self._sinks.pop(surface_id, None)
        if self._active == surface_id:
            self._active = next(iter(self._surfaces), None)
        for callback in list(self._closed_callbacks):
            callback(surface_id)

    # ───────────────────────── Navigation ─────────────────────────

    async def navigate(self, surface_id: int, url: str) -> dict[str, Any]:
        surface = self._surface(surface_id)
        if not url:
            raise HostError("URL is required")
        self._show(surface, url, push=True)
        return self._page(surface)

    async def go_back(self, surface_id: int) -> dict[str, Any]:
        surface = self._surface(surface_id)
        if surface.cursor > 0:
            surface.cursor -= 1
            self._show(surface, surface.history[surface.cursor], push=False)
        return self._page(surface)

    async def go_forward(self, surface_id: int) -> dict[str, Any]:
        surface = self._surface(surface_id)
        if surface.cursor < len(surface.history) - 1:
            surface.cursor += 1
            self._show(surface, surface.history[surface.cursor], push=False)
        return self._page(surface)

    # ───────────────────────── Interaction ─────────────────────────

    async def click(self, surface_id: int, selector: str) -> dict[str, Any]:
        surface = self._surface(surface_id)
        element = self._query(surface, selector)
        surface.focused = element
        self._emit(surface, PointerActivation(target=element, url=surface.url))
        if element.name == "input" and str(element.get("type") or "").lower() in {"checkbox", "radio"}:
            if element.has_attr("checked"):
                del element["checked"]
            else:
                element["checked"] = ""
        href = element.get("href") if element.name == "a" else None
        if isinstance(href, str) and href and not href.startswith(("#", "javascript:")):
            self._show(surface, urljoin(surface.url, href), push=True)
        return {"success": True, "selector": selector, "url": surface.url}

    async def type_text(self, surface_id: int, selector: str, text: str) -> dict[str, Any]:
        surface = self._surface(surface_id)
        element = self._query(surface, selector)
        if element.name == "textarea":
            for i in range(1, len(text) + 1):
                element.string = text[:i]
                self._emit(surface, ValueCommit(target=element, value=text[:i], url=surface.url))
            if not text:
                element.string = ""
        elif element.name == "input" and str(element.get("type") or "").lower() in _TEXT_INPUT_TYPES:
            for i in range(1, len(text) + 1):
                element["value"] = text[:i]
                self._emit(surface, ValueCommit(target=element, value=text[:i], url=surface.url))
            if not text:
                element["value"] = ""
        else:
            raise HostError(f"Element is not a text field: {selector}")
        surface.focused = element
        return {"success": True, "selector": selector, "value": text}

    async def select_option(self, surface_id: int, selector: str, value: str) -> dict[str, Any]:
        surface = self._surface(surface_id)
        element = self._query(surface, selector)
        if element.name != "select":
            raise HostError(f"Element is not a select: {selector}")
        chosen: Tag | None = None
        for option in element.find_all("option"):
            option_value = option.get("value")
            if option_value is None:
                option_value = option.get_text(strip=True)
            if option_value == value or option.get_text(strip=True) == value:
                chosen = option
                break
        if chosen is None:
            raise HostError(f"Option not found: {value}")
        for option in element.find_all("option"):
            if option.has_attr("selected"):
                del option["selected"]
        chosen["selected"] = ""
        text = chosen.get_text(strip=True)
        picked = chosen.get("value") if chosen.get("value") is not None else text
        self._emit(surface, SelectionChange(target=element, value=str(picked), text=text or None, url=surface.url))
        return {"success": True, "selector": selector, "value": picked, "text": text}

    async def press_key(self, surface_id: int, key: str, selector: str | None = None) -> dict[str, Any]:
        surface = self._surface(surface_id)
        if not key:
            raise HostError("Key is required")
        target = self._query(surface, selector) if selector else (surface.focused or surface.document.body)
        if target is None:
            raise HostError("No element to receive key press")
        self._emit(surface, KeyDown(target=target, key=key, url=surface.url))
        return {"success": True, "key": key}

    async def hover(self, surface_id: int, selector: str) -> dict[str, Any]:
        surface = self._surface(surface_id)
        self._query(surface, selector)
        surface.hovered = selector
        return {"success": True, "selector": selector}

    async def drag(self, surface_id: int, source: str, target: str) -> dict[str, Any]:
        surface = self._surface(surface_id)
        self._query(surface, source)
        self._query(surface, target)
        return {"success": True, "source": source, "target": target}

    async def scroll(self, surface_id: int, *, x: int = 0, y: int = 0, selector: str | None = None) -> dict[str, Any]:
        surface = self._surface(surface_id)
        if selector:
            self._query(surface, selector)
            return {"success": True, "selector": selector}
        sx, sy = surface.scroll
        surface.scroll = (max(0, sx + int(x)), max(0, sy + int(y)))
        return {"success": True, "scrollX": surface.scroll[0], "scrollY": surface.scroll[1]}

    async def wait_for_selector(self, surface_id: int, selector: str, timeout: float) -> dict[str, Any]:
        deadline = time.monotonic() + max(0.0, float(timeout))
        while True:
            surface = self._surface(surface_id)
            try:
                self._query(surface, selector)
                return {"success": True, "selector": selector}
            except HostError:
                if time.monotonic() >= deadline:
                    raise HostError(f"Timeout waiting for selector: {selector}") from None
            await asyncio.sleep(0.05)

    def open_dialog(self, surface_id: int, message: str) -> None:
        self._surface(surface_id).dialog = message

    async def handle_dialog(self, surface_id: int, accept: bool, prompt_text: str | None = None) -> dict[str, Any]:
        surface = self._surface(surface_id)
        out: dict[str, Any] = {"success": True, "action": "accept" if accept else "dismiss"}
        if surface.dialog is None:
            out["note"] = "No dialog is open"
        else:
            out["message"], surface.dialog = surface.dialog, None
        if prompt_text is not None:
            out["promptText"] = prompt_text
        return out

    async def upload_file(
        self, surface_id: int, selector: str, file_name: str, content_b64: str, mime_type: str
    ) -> dict[str, Any]:
        surface = self._surface(surface_id)
        element = self._query(surface, selector)
        if element.name != "input" or str(element.get("type") or "").lower() != "file":
            raise HostError(f"Element is not a file input: {selector}")
        try:
            data = base64.b64decode(content_b64 or "", validate=True)
        except (binascii.Error, ValueError) as exc:
            raise HostError(f"Invalid file content for {file_name}") from exc
        meta = FileMeta(name=file_name, size=len(data), mime_type=mime_type or "")
        element["data-file-name"] = file_name
        self._emit(surface, FileChange(target=element, files=(meta,), url=surface.url))
        return {"success": True, "selector": selector, "fileName": file_name, "size": len(data)}

    # ───────────────────────── Inspection ─────────────────────────

    async def screenshot(self, surface_id: int) -> dict[str, Any]:
        self._surface(surface_id)
        return {"dataUrl": f"data:image/png;base64,{_PLACEHOLDER_PNG}", "mimeType": "image/png"}

    async def snapshot(self, surface_id: int) -> dict[str, Any]:
        surface = self._surface(surface_id)
        elements = []
        for element in surface.document.select(_INTERACTIVE):
            entry: dict[str, Any] = {"tag": element.name, "selector": generate_selector(element)}
            text = " ".join(element.get_text(" ", strip=True).split())
            if text:
                entry["text"] = text[:80]
            for attr in ("type", "name", "placeholder", "href", "aria-label", "value"):
                raw = element.get(attr)
                if isinstance(raw, str) and raw:
                    entry[attr] = raw
            elements.append(entry)
        body = surface.document.body or surface.document
        return {
            "url": surface.url,
            "title": surface.title,
            "text": " ".join(body.get_text(" ", strip=True).split()),
            "elements": elements,
        }

    async def console_messages(self, surface_id: int) -> list[dict[str, Any]]:
        return list(self._surface(surface_id).console)

    async def network_requests(self, surface_id: int) -> list[dict[str, Any]]:
        return list(self._surface(surface_id).network)

    def log_console(self, surface_id: int, text: str, level: str = "log") -> None:
        self._surface(surface_id).console.append({"level": level, "text": text, "timestamp": _now()})

    async def get_cookies(self, surface_id: int, url: str | None = None) -> list[dict[str, Any]]:
        surface = self._surface(surface_id)
        domain = _domain(url or surface.url)
        return [dict(c) for (d, _), c in sorted(self._cookies.items()) if not domain or d == domain]

    async def set_cookie(self, surface_id: int, cookie: dict[str, Any]) -> dict[str, Any]:
        surface = self._surface(surface_id)
        name = cookie.get("name")
        if not isinstance(name, str) or not name:
            raise HostError("Cookie name is required")
        domain = str(cookie.get("domain") or _domain(str(cookie.get("url") or surface.url)))
        stored = {
            "name": name,
            "value": str(cookie.get("value") or ""),
            "domain": domain,
            "path": str(cookie.get("path") or "/"),
        }
        self._cookies[(domain, name)] = stored
        return {"success": True, "cookie": {k: v for k, v in stored.items() if k != "value"}}

    async def evaluate(self, surface_id: int, expression: str) -> Any:
        surface = self._surface(surface_id)
        expr = (expression or "").strip().rstrip(";")
        if expr == "document.title":
            return surface.title
        if expr in {"location.href", "window.location.href", "document.URL"}:
            return surface.url
        if expr == "document.documentElement.outerHTML":
            return str(surface.document)
        raise HostError(f"Expression not supported by the in-memory host: {expr}")

    # ───────────────────────── Events ─────────────────────────

    def subscribe(self, surface_id: int, sink: EventSink) -> None:
        self._surface(surface_id)
        sinks = self._sinks.setdefault(surface_id, [])
        if sink not in sinks:
            sinks.append(sink)

    def unsubscribe(self, surface_id: int, sink: EventSink) -> None:
        sinks = self._sinks.get(surface_id)
        if sinks and sink in sinks:
            sinks.remove(sink)

    def on_surface_closed(self, callback: SurfaceClosedCallback) -> None:
        self._closed_callbacks.append(callback)


def _now() -> int:
    return int(time.time() * 1000)


def _domain(url: str) -> str:
    return (urlparse(url).hostname or "").lower()
