"""Replay a stored recording through the executor's method/params interface.

Actions run strictly in order. A failing action is reported and replay moves on;
each action yields exactly one result entry. Settle delays follow a successful
action only.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from ..config import ReplayTiming
from .model import (
    Action,
    ClickAction,
    KeypressAction,
    NavigateAction,
    SelectAction,
    TypeAction,
    UnknownAction,
    UploadAction,
    action_type_name,
)
from .store import RecordingStore

logger = logging.getLogger("mcp.bronco.replay")

Execute = Callable[[str, dict[str, Any]], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[Any]]


class SkipAction(Exception):
    """The action cannot be replayed; reported as skipped, not failed."""


def guess_mime_type(path: str | Path) -> str:
    mime, _ = mimetypes.guess_type(str(path))
    return mime or "application/octet-stream"


def read_upload(path: str | Path) -> tuple[str, str]:
    """Return (base64 content, file name) for a local file."""
    p = Path(path).expanduser()
    data = p.read_bytes()
    return base64.b64encode(data).decode("ascii"), p.name


class ReplayEngine:
    def __init__(
        self,
        store: RecordingStore,
        execute: Execute,
        *,
        timing: ReplayTiming | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self.store = store
        self.execute = execute
        self.timing = timing or ReplayTiming()
        self._sleep = sleep or asyncio.sleep

    def _command_for(self, action: Action) -> tuple[str, dict[str, Any], float]:
        t = self.timing
        if isinstance(action, NavigateAction):
            return "navigate", {"url": action.url or ""}, t.navigate
        if isinstance(action, ClickAction):
            return "click", {"selector": action.selector}, t.click
        if isinstance(action, TypeAction):
            return "type", {"selector": action.selector, "text": action.value}, t.input
        if isinstance(action, SelectAction):
            return "select_option", {"selector": action.selector, "value": action.value}, t.input
        if isinstance(action, KeypressAction):
            params: dict[str, Any] = {"key": action.key}
            if action.selector:
                params["selector"] = action.selector
            return "press_key", params, t.input
        if isinstance(action, UploadAction):
            return "upload_file", self._upload_params(action), t.upload
        if isinstance(action, UnknownAction):
            raise SkipAction(f"Unknown action type: {action.type_name or '<missing>'}")
        raise SkipAction(f"Unsupported action: {type(action).__name__}")

    @staticmethod
    def _upload_params(action: UploadAction) -> dict[str, Any]:
        if not action.file_path:
            raise SkipAction("File upload requires filePath to replay")
        try:
            content, file_name = read_upload(action.file_path)
        except OSError as exc:
            raise SkipAction(f"File not readable: {action.file_path} ({exc})") from exc
        return {
            "selector": action.selector,
            "fileName": action.file_name or file_name,
            "fileContent": content,
            "mimeType": action.mime_type or guess_mime_type(action.file_path),
        }

    async def replay(self, name: str) -> dict[str, Any]:
        recording = self.store.get(name)
        logger.info("replay start name=%s actions=%s", name, len(recording.actions))
        results: list[dict[str, Any]] = []
        for index, action in enumerate(recording.actions):
            results.append(await self._run_one(index, action))
        failed = sum(1 for r in results if not r.get("success"))
        logger.info("replay done name=%s actions=%s failed=%s", name, len(results), failed)
        return {
            "success": True,
            "recording": recording.name or name,
            "actionsExecuted": len(results),
            "results": results,
        }

    async def _run_one(self, index: int, action: Action) -> dict[str, Any]:
        entry: dict[str, Any] = {"action": action_type_name(action), "selector": action.selector}
        try:
            method, params, settle = self._command_for(action)
        except SkipAction as exc:
            logger.info("replay skip index=%s reason=%s", index, exc)
            entry.update(success=True, skipped=True, reason=str(exc))
            return entry

        try:
            result = await self.execute(method, params)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("replay action failed index=%s method=%s error=%s", index, method, exc)
            entry.update(success=False, error=str(exc))
            return entry

        entry.update(success=True, result=result)
        if settle > 0:
            await self._sleep(settle)
        return entry
