"""Host automation API the executor drives.

A host owns the surfaces (tabs) and performs per-operation DOM work. The executor
only enforces gating and target bookkeeping on top of it. Hosts raise `HostError`
with the operation/selector in the message when something cannot be done.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from ..recording.events import SurfaceEvent

EventSink = Callable[[SurfaceEvent], None]
SurfaceClosedCallback = Callable[[int], None]


@dataclass(frozen=True)
class SurfaceInfo:
    id: int
    url: str
    title: str = ""
    active: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "url": self.url, "title": self.title, "active": self.active}


@runtime_checkable
class HostAutomation(Protocol):
    # Surfaces
    async def list_surfaces(self) -> list[SurfaceInfo]: ...
    async def get_surface(self, surface_id: int) -> SurfaceInfo | None: ...
    async def create_surface(self, url: str | None = None) -> SurfaceInfo: ...
    async def close_surface(self, surface_id: int) -> None: ...

    # Navigation
    async def navigate(self, surface_id: int, url: str) -> dict[str, Any]: ...
    async def go_back(self, surface_id: int) -> dict[str, Any]: ...
    async def go_forward(self, surface_id: int) -> dict[str, Any]: ...

    # Interaction
    async def click(self, surface_id: int, selector: str) -> dict[str, Any]: ...
    async def type_text(self, surface_id: int, selector: str, text: str) -> dict[str, Any]: ...
    async def select_option(self, surface_id: int, selector: str, value: str) -> dict[str, Any]: ...
    async def press_key(self, surface_id: int, key: str, selector: str | None = None) -> dict[str, Any]: ...
    async def hover(self, surface_id: int, selector: str) -> dict[str, Any]: ...
    async def drag(self, surface_id: int, source: str, target: str) -> dict[str, Any]: ...
    async def scroll(
        self, surface_id: int, *, x: int = 0, y: int = 0, selector: str | None = None
    ) -> dict[str, Any]: ...
    async def wait_for_selector(self, surface_id: int, selector: str, timeout: float) -> dict[str, Any]: ...
    async def handle_dialog(self, surface_id: int, accept: bool, prompt_text: str | None = None) -> dict[str, Any]: ...
    async def upload_file(
        self, surface_id: int, selector: str, file_name: str, content_b64: str, mime_type: str
    ) -> dict[str, Any]: ...

    # Inspection
    async def screenshot(self, surface_id: int) -> dict[str, Any]: ...
    async def snapshot(self, surface_id: int) -> dict[str, Any]: ...
    async def console_messages(self, surface_id: int) -> list[dict[str, Any]]: ...
    async def network_requests(self, surface_id: int) -> list[dict[str, Any]]: ...
    async def get_cookies(self, surface_id: int, url: str | None = None) -> list[dict[str, Any]]: ...
    async def set_cookie(self, surface_id: int, cookie: dict[str, Any]) -> dict[str, Any]: ...
    async def evaluate(self, surface_id: int, expression: str) -> Any: ...

    # Events
    def subscribe(self, surface_id: int, sink: EventSink) -> None: ...
    def unsubscribe(self, surface_id: int, sink: EventSink) -> None: ...
    def on_surface_closed(self, callback: SurfaceClosedCallback) -> None: ...
