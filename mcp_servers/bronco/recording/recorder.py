"""Action recorder: turns typed surface events into a buffer of Actions.

The host pushes events into `handle_event`; the recorder never reaches into the
host. Text edits are debounced per field (keyed by the field's selector) with
`loop.call_later`, so a burst of keystrokes yields one `type` action carrying the
final value.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..errors import EmptyRecordingError
from .events import FileChange, KeyDown, PointerActivation, SelectionChange, SurfaceEvent, ValueCommit
from .model import (
    Action,
    ClickAction,
    KeypressAction,
    NavigateAction,
    Recording,
    SelectAction,
    TypeAction,
    UploadAction,
    now_ms,
)
from .selectors import generate_selector
from .store import RecordingStore

logger = logging.getLogger("mcp.bronco.recorder")

IGNORE_ATTRIBUTE = "data-bronco-ignore"
SPECIAL_KEYS = frozenset({"Enter", "Tab", "Escape", "ArrowUp", "ArrowDown", "ArrowLeft", "ArrowRight"})
CLICK_TEXT_LIMIT = 100


class _PendingEdit:
    __slots__ = ("handle", "url", "value")

    def __init__(self, value: str, url: str, handle: asyncio.TimerHandle) -> None:
        self.value = value
        self.url = url
        self.handle = handle


class ActionRecorder:
    def __init__(self, *, debounce: float = 0.5, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.debounce = max(0.0, float(debounce))
        self._loop = loop
        self._recording = False
        self._actions: list[Action] = []
        self._origin_url = ""
        self._pending: dict[str, _PendingEdit] = {}

    # ───────────────────────── State ─────────────────────────

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def actions(self) -> list[Action]:
        return list(self._actions)

    @property
    def origin_url(self) -> str:
        return self._origin_url

    def start(self, origin_url: str, title: str | None = None) -> dict[str, Any]:
        self.discard()
        self._recording = True
        self._origin_url = origin_url or ""
        self._actions.append(NavigateAction(url=self._origin_url, title=title or None, timestamp=now_ms()))
        logger.info("recording started url=%s", self._origin_url)
        return {"success": True, "recording": True, "url": self._origin_url}

    def stop(self) -> dict[str, Any]:
        self.flush()
        self._recording = False
        logger.info("recording stopped actions=%s", len(self._actions))
        return {"success": True, "recording": False, "actionCount": len(self._actions)}

    def discard(self) -> None:
        for pending in self._pending.values():
            pending.handle.cancel()
        self._pending.clear()
        self._actions.clear()
        self._origin_url = ""

    def status(self) -> dict[str, Any]:
        return {"isRecording": self._recording, "actionCount": len(self._actions), "pendingEdits": len(self._pending)}

    def current(self) -> dict[str, Any]:
        return {
            "isRecording": self._recording,
            "originUrl": self._origin_url,
            "actions": [a.to_dict() for a in self._actions],
        }

    def save(self, name: str, store: RecordingStore) -> dict[str, Any]:
        self.flush()
        if not self._actions:
            raise EmptyRecordingError()
        recording = Recording(name=name, actions=list(self._actions), origin_url=self._origin_url)
        result = store.save(recording)
        self._actions.clear()
        return result

    def take(self) -> dict[str, Any]:
        """Hand the buffer over to a caller that persists it elsewhere, then clear it."""
        self.flush()
        if not self._actions:
            raise EmptyRecordingError()
        taken = {"originUrl": self._origin_url, "actions": [a.to_dict() for a in self._actions]}
        self._actions.clear()
        return taken

    # ───────────────────────── Events ─────────────────────────

    def handle_event(self, event: SurfaceEvent) -> None:
        if not self._recording:
            return
        if isinstance(event, PointerActivation):
            self._on_activation(event)
        elif isinstance(event, ValueCommit):
            self._on_value(event)
        elif isinstance(event, SelectionChange):
            self._actions.append(
                SelectAction(
                    selector=generate_selector(event.target),
                    url=event.url or None,
                    timestamp=now_ms(),
                    value=event.value,
                    text=event.text,
                )
            )
        elif isinstance(event, KeyDown):
            if event.key in SPECIAL_KEYS:
                self._actions.append(
                    KeypressAction(
                        selector=generate_selector(event.target),
                        url=event.url or None,
                        timestamp=now_ms(),
                        key=event.key,
                    )
                )
        elif isinstance(event, FileChange):
            self._on_files(event)
        else:
            logger.debug("ignoring event %r", type(event).__name__)

    def _on_activation(self, event: PointerActivation) -> None:
        target = event.target
        if target.has_attr(IGNORE_ATTRIBUTE) or target.find_parent(attrs={IGNORE_ATTRIBUTE: True}) is not None:
            return
        text = " ".join(target.get_text(" ", strip=True).split())[:CLICK_TEXT_LIMIT]
        self._actions.append(
            ClickAction(
                selector=generate_selector(target),
                url=event.url or None,
                timestamp=now_ms(),
                tag=target.name,
                text=text or None,
            )
        )

    def _on_value(self, event: ValueCommit) -> None:
        selector = generate_selector(event.target)
        previous = self._pending.pop(selector, None)
        if previous is not None:
            previous.handle.cancel()
        loop = self._loop or asyncio.get_running_loop()
        handle = loop.call_later(self.debounce, self._commit_edit, selector)
        self._pending[selector] = _PendingEdit(event.value, event.url, handle)

    def _commit_edit(self, selector: str) -> None:
        pending = self._pending.pop(selector, None)
        if pending is None:
            return
        self._actions.append(
            TypeAction(selector=selector, url=pending.url or None, timestamp=now_ms(), value=pending.value)
        )

    def flush(self) -> int:
        """Commit every pending debounced edit now."""
        selectors = list(self._pending)
        for selector in selectors:
            pending = self._pending.get(selector)
            if pending is not None:
                pending.handle.cancel()
            self._commit_edit(selector)
        return len(selectors)

    def _on_files(self, event: FileChange) -> None:
        if not event.files:
            return
        first = event.files[0]
        self._actions.append(
            UploadAction(
                selector=generate_selector(event.target),
                url=event.url or None,
                timestamp=now_ms(),
                file_name=first.name,
                file_size=first.size,
                mime_type=first.mime_type or None,
            )
        )
