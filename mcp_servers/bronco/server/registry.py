"""
Tool registry with dispatch table for the MCP server.

Most tools are thin forwards to an executor command over the bridge; the rest
(wait, status, recording store access, replay) are served in-process.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..errors import (
    BridgeError,
    ControlDisabledError,
    EmptyRecordingError,
    InvalidParamsError,
    NoTargetError,
    NotConnectedError,
    RecordingNotFoundError,
    RemoteError,
    RequestTimeoutError,
    TargetNotFoundError,
    TransportLostError,
)
from ..recording.model import Recording, action_from_dict
from ..recording.replay import ReplayEngine, guess_mime_type, read_upload
from .types import HandlerFunc, ServerContext, ToolResult

logger = logging.getLogger("mcp.bronco.registry")


class ToolRegistry:
    """Registry for tool handlers with an agent-connection precheck."""

    def __init__(self) -> None:
        # name -> (handler, requires_agent)
        self._handlers: dict[str, tuple[HandlerFunc, bool]] = {}

    def register(self, name: str, handler: HandlerFunc, requires_agent: bool = True) -> None:
        """Register a tool handler."""
        self._handlers[name] = (handler, requires_agent)

    def register_many(self, handlers: dict[str, tuple[HandlerFunc, bool]]) -> None:
        self._handlers.update(handlers)

    def get(self, name: str) -> tuple[HandlerFunc, bool] | None:
        return self._handlers.get(name)

    def has(self, name: str) -> bool:
        return name in self._handlers

    def dispatch(self, name: str, ctx: ServerContext, arguments: dict[str, Any]) -> ToolResult:
        """
        Dispatch tool call to its handler.

        Raises:
            KeyError: If tool not found
            BridgeError: Whatever the handler or the bridge raised
        """
        handler_info = self._handlers.get(name)
        if handler_info is None:
            raise KeyError(f"Unknown tool: {name}")

        handler, requires_agent = handler_info
        if requires_agent and not ctx.bridge.is_connected():
            raise NotConnectedError()
        return handler(ctx, arguments)

    @property
    def tool_names(self) -> list[str]:
        return list(self._handlers.keys())

    def __len__(self) -> int:
        return len(self._handlers)


_SUGGESTIONS: list[tuple[type[BridgeError], str]] = [
    (NotConnectedError, "Start the agent (bronco-browser agent) or enable the extension, then retry"),
    (TransportLostError, "The agent dropped; it reconnects on its own. Retry in a few seconds"),
    (RequestTimeoutError, "The page may be busy; check browser_status and retry"),
    (ControlDisabledError, "Turn browser control on (bronco-browser control on) and retry"),
    (NoTargetError, "Call browser_list_tabs, then browser_connect_tab"),
    (TargetNotFoundError, "The tab is gone; call browser_list_tabs and connect to another one"),
    (RecordingNotFoundError, "Call browser_list_recordings to see saved names"),
    (EmptyRecordingError, "Start a recording and perform some actions before saving"),
]


def suggestion_for(exc: BaseException) -> str | None:
    for exc_type, hint in _SUGGESTIONS:
        if isinstance(exc, exc_type):
            return hint
    return None


# ───────────────────────── Forwarded tools ─────────────────────────

# tool -> (executor method, forwarded argument keys)
FORWARDED_TOOLS: dict[str, tuple[str, tuple[str, ...]]] = {
    "browser_list_tabs": ("list_tabs", ()),
    "browser_connect_tab": ("connect_tab", ("tabId",)),
    "browser_disconnect_tab": ("disconnect_tab", ()),
    "browser_get_page_info": ("get_page_info", ()),
    "browser_tab_new": ("tab_new", ("url",)),
    "browser_tab_close": ("tab_close", ("tabId",)),
    "browser_navigate": ("navigate", ("url",)),
    "browser_go_back": ("go_back", ()),
    "browser_go_forward": ("go_forward", ()),
    "browser_click": ("click", ("selector",)),
    "browser_type": ("type", ("selector", "text")),
    "browser_select_option": ("select_option", ("selector", "value")),
    "browser_press_key": ("press_key", ("key", "selector")),
    "browser_hover": ("hover", ("selector",)),
    "browser_drag": ("drag", ("sourceSelector", "targetSelector")),
    "browser_scroll": ("scroll", ("direction", "amount", "selector")),
    "browser_wait_for_selector": ("wait_for_selector", ("selector", "timeout")),
    "browser_handle_dialog": ("handle_dialog", ("action", "promptText")),
    "browser_snapshot": ("snapshot", ()),
    "browser_console_messages": ("console_messages", ()),
    "browser_network_requests": ("network_requests", ("filter",)),
    "browser_evaluate": ("evaluate", ("code",)),
    "browser_get_cookies": ("get_cookies", ()),
    "browser_set_cookie": (
        "set_cookie",
        ("name", "value", "domain", "path", "secure", "httpOnly", "expirationDate"),
    ),
    "browser_start_recording": ("start_recording", ()),
    "browser_stop_recording": ("stop_recording", ()),
}


def _forward(method: str, keys: tuple[str, ...]) -> HandlerFunc:
    def handler(ctx: ServerContext, args: dict[str, Any]) -> ToolResult:
        params = {k: args[k] for k in keys if args.get(k) is not None}
        return ToolResult.json(ctx.bridge.call(method, params))

    handler.__name__ = f"forward_{method}"
    return handler


# ───────────────────────── Local tools ─────────────────────────


def _require_str(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidParamsError(f"Missing required parameter: {key}")
    return value


def _screenshot(ctx: ServerContext, args: dict[str, Any]) -> ToolResult:
    result = ctx.bridge.call("screenshot", {})
    data_url = result.get("dataUrl") if isinstance(result, dict) else result
    return ToolResult.from_data_url(data_url)


def _wait(ctx: ServerContext, args: dict[str, Any]) -> ToolResult:
    raw = args.get("seconds")
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 0:
        raise InvalidParamsError("seconds must be a non-negative number")
    time.sleep(float(raw))
    return ToolResult.json({"success": True, "waited": raw})


def _upload_file(ctx: ServerContext, args: dict[str, Any]) -> ToolResult:
    selector = _require_str(args, "selector")
    path = Path(_require_str(args, "filePath")).expanduser().resolve()
    try:
        content, base_name = read_upload(path)
    except OSError as exc:
        raise InvalidParamsError(f"Cannot read file {path}: {exc.strerror or exc}") from exc
    file_name = args.get("fileName") if isinstance(args.get("fileName"), str) and args.get("fileName") else base_name
    mime_type = args.get("mimeType") if isinstance(args.get("mimeType"), str) and args.get("mimeType") else None
    params = {
        "selector": selector,
        "fileName": file_name,
        "fileContent": content,
        "mimeType": mime_type or guess_mime_type(file_name),
    }
    return ToolResult.json(ctx.bridge.call("upload_file", params))


def _status(ctx: ServerContext, args: dict[str, Any]) -> ToolResult:
    out: dict[str, Any] = {"bridge": ctx.bridge.status(), "recordingsDir": str(ctx.store.directory)}
    if ctx.bridge.is_connected():
        try:
            out["agent"] = ctx.bridge.call("status", {}, timeout=5.0)
        except BridgeError as exc:
            out["agentError"] = str(exc)
    return ToolResult.json(out)


def _save_recording(ctx: ServerContext, args: dict[str, Any]) -> ToolResult:
    name = _require_str(args, "name")
    # The executor stops the recorder and hands over its buffer, leaving it empty.
    try:
        taken = ctx.bridge.call("take_recording", {})
    except RemoteError as exc:
        if str(exc) == str(EmptyRecordingError()):
            raise EmptyRecordingError() from exc
        raise
    raw_actions = taken.get("actions") if isinstance(taken, dict) else taken
    actions = [action_from_dict(a) for a in raw_actions or [] if isinstance(a, dict)]
    if not actions:
        raise EmptyRecordingError()
    origin = taken.get("originUrl") if isinstance(taken, dict) else None
    recording = Recording(name=name, actions=actions, origin_url=origin or actions[0].url or "")
    return ToolResult.json(ctx.store.save(recording))


def _list_recordings(ctx: ServerContext, args: dict[str, Any]) -> ToolResult:
    return ToolResult.json(ctx.store.list())


def _get_recording(ctx: ServerContext, args: dict[str, Any]) -> ToolResult:
    return ToolResult.json(ctx.store.get(_require_str(args, "name")).to_dict())


def _delete_recording(ctx: ServerContext, args: dict[str, Any]) -> ToolResult:
    return ToolResult.json(ctx.store.delete(_require_str(args, "name")))


def _replay_recording(ctx: ServerContext, args: dict[str, Any]) -> ToolResult:
    name = _require_str(args, "name")
    engine = ReplayEngine(ctx.store, ctx.bridge.send, timing=ctx.config.replay_timing)
    return ToolResult.json(ctx.bridge.run(engine.replay(name)))


LOCAL_TOOLS: dict[str, tuple[HandlerFunc, bool]] = {
    "browser_screenshot": (_screenshot, True),
    "browser_upload_file": (_upload_file, True),
    "browser_save_recording": (_save_recording, True),
    "browser_replay_recording": (_replay_recording, True),
    "browser_wait": (_wait, False),
    "browser_status": (_status, False),
    "browser_list_recordings": (_list_recordings, False),
    "browser_get_recording": (_get_recording, False),
    "browser_delete_recording": (_delete_recording, False),
}


def create_default_registry() -> ToolRegistry:
    registry = ToolRegistry()
    forwarded: dict[str, tuple[Callable[[ServerContext, dict[str, Any]], ToolResult], bool]] = {
        name: (_forward(method, keys), True) for name, (method, keys) in FORWARDED_TOOLS.items()
    }
    registry.register_many(forwarded)
    registry.register_many(LOCAL_TOOLS)
    return registry
