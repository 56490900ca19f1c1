"""Command catalog and dispatch registry for the executor.

Each command is a `CommandSpec`: an async handler plus its gating flags. The
registry refuses duplicates, non-coroutine handlers, and (on `validate`) a catalog
with missing entries, so a misspelled command is caught at startup, not at call
time.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..errors import InvalidParamsError, TargetNotFoundError, UnknownMethodError

if TYPE_CHECKING:
    from .executor import CommandExecutor

Handler = Callable[["CommandExecutor", "int | None", dict[str, Any]], Awaitable[Any]]

CATALOG: tuple[str, ...] = (
    "status",
    "list_tabs",
    "connect_tab",
    "disconnect_tab",
    "get_page_info",
    "navigate",
    "go_back",
    "go_forward",
    "click",
    "type",
    "select_option",
    "press_key",
    "hover",
    "drag",
    "scroll",
    "wait_for_selector",
    "handle_dialog",
    "screenshot",
    "snapshot",
    "console_messages",
    "network_requests",
    "get_cookies",
    "set_cookie",
    "evaluate",
    "upload_file",
    "tab_new",
    "tab_close",
    "start_recording",
    "stop_recording",
    "recording_status",
    "get_current_recording",
    "save_recording",
    "take_recording",
)

DEFAULT_SCROLL_AMOUNT = 500
DEFAULT_WAIT_TIMEOUT_MS = 10000


@dataclass(frozen=True, slots=True)
class CommandSpec:
    name: str
    handler: Handler
    requires_control: bool = False
    requires_target: bool = False


class CommandRegistry:
    def __init__(self) -> None:
        self._specs: dict[str, CommandSpec] = {}

    def register(self, spec: CommandSpec) -> None:
        if not spec.name:
            raise ValueError("Command name is required")
        if spec.name in self._specs:
            raise ValueError(f"Duplicate command: {spec.name}")
        if not inspect.iscoroutinefunction(spec.handler):
            raise TypeError(f"Handler for {spec.name} must be an async function")
        self._specs[spec.name] = spec

    def get(self, name: str) -> CommandSpec:
        spec = self._specs.get(name)
        if spec is None:
            raise UnknownMethodError(name)
        return spec

    def validate(self, catalog: tuple[str, ...] = CATALOG) -> None:
        missing = [name for name in catalog if name not in self._specs]
        if missing:
            raise ValueError(f"Commands missing from registry: {', '.join(missing)}")

    @property
    def names(self) -> list[str]:
        return list(self._specs)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)


# ───────────────────────── Param helpers ─────────────────────────


def _str(params: dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidParamsError(f"Missing required parameter: {key}")
    return value


def _opt_str(params: dict[str, Any], key: str) -> str | None:
    value = params.get(key)
    return value if isinstance(value, str) and value else None


def _tab_id(params: dict[str, Any], key: str = "tabId") -> int:
    value = params.get(key)
    if isinstance(value, bool):
        raise InvalidParamsError(f"Invalid {key}: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidParamsError(f"Invalid {key}: {value!r}") from None


def _number(params: dict[str, Any], key: str, default: float) -> float:
    value = params.get(key)
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidParamsError(f"Invalid {key}: {value!r}") from None


# ───────────────────────── Session ─────────────────────────


async def _status(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> dict[str, Any]:
    return {**ex.control.snapshot(), "recording": ex.recorder.status()}


async def _list_tabs(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> list[dict[str, Any]]:
    if not ex.control.control_enabled:
        return []
    surfaces = await ex.host.list_surfaces()
    return [{**s.to_dict(), "connected": s.id == ex.control.target} for s in surfaces]


async def _connect_tab(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> dict[str, Any]:
    tab_id = _tab_id(params)
    info = await ex.host.get_surface(tab_id)
    if info is None:
        raise TargetNotFoundError(tab_id)
    if ex.control.target is not None and ex.control.target != tab_id:
        ex.stop_recording_if_active()
    ex.control.connect(tab_id)
    return {"success": True, "tabId": tab_id, "title": info.title, "url": info.url}


async def _disconnect_tab(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> dict[str, Any]:
    ex.stop_recording_if_active()
    previous = ex.control.disconnect()
    return {"success": True, "disconnectedTabId": previous}


async def _get_page_info(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> dict[str, Any]:
    info = await ex.host.get_surface(target)
    if info is None:
        raise TargetNotFoundError(target)
    return {"tabId": info.id, "url": info.url, "title": info.title}


async def _tab_new(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> dict[str, Any]:
    info = await ex.host.create_surface(_opt_str(params, "url"))
    return {"success": True, "tabId": info.id, "url": info.url}


async def _tab_close(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> dict[str, Any]:
    tab_id = _tab_id(params) if params.get("tabId") is not None else target
    if tab_id is None:
        raise InvalidParamsError("No tab specified and no tab connected")
    if await ex.host.get_surface(tab_id) is None:
        raise TargetNotFoundError(tab_id)
    await ex.host.close_surface(tab_id)
    # Hosts that report closures through on_surface_closed have already cleared it.
    ex.surface_closed(tab_id)
    return {"success": True, "closedTabId": tab_id}


# ───────────────────────── Navigation ─────────────────────────


async def _navigate(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.navigate(target, _str(params, "url"))


async def _go_back(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.go_back(target)


async def _go_forward(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.go_forward(target)


# ───────────────────────── Interaction ─────────────────────────


async def _click(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.click(target, _str(params, "selector"))


async def _type(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    text = params.get("text")
    if not isinstance(text, str):
        raise InvalidParamsError("Missing required parameter: text")
    return await ex.host.type_text(target, _str(params, "selector"), text)


async def _select_option(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    value = params.get("value")
    if not isinstance(value, str):
        raise InvalidParamsError("Missing required parameter: value")
    return await ex.host.select_option(target, _str(params, "selector"), value)


async def _press_key(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.press_key(target, _str(params, "key"), _opt_str(params, "selector"))


async def _hover(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.hover(target, _str(params, "selector"))


async def _drag(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.drag(target, _str(params, "sourceSelector"), _str(params, "targetSelector"))


async def _scroll(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    selector = _opt_str(params, "selector")
    direction = (_opt_str(params, "direction") or "down").lower()
    amount = int(_number(params, "amount", DEFAULT_SCROLL_AMOUNT))
    deltas = {"down": (0, amount), "up": (0, -amount), "right": (amount, 0), "left": (-amount, 0)}
    if direction not in deltas:
        raise InvalidParamsError(f"Invalid direction: {direction}")
    x, y = deltas[direction]
    return await ex.host.scroll(target, x=x, y=y, selector=selector)


async def _wait_for_selector(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    timeout_ms = _number(params, "timeout", DEFAULT_WAIT_TIMEOUT_MS)
    return await ex.host.wait_for_selector(target, _str(params, "selector"), max(0.0, timeout_ms) / 1000.0)


async def _handle_dialog(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    action = (_opt_str(params, "action") or "accept").lower()
    if action not in {"accept", "dismiss"}:
        raise InvalidParamsError(f"Invalid dialog action: {action}")
    return await ex.host.handle_dialog(target, action == "accept", _opt_str(params, "promptText"))


async def _upload_file(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.upload_file(
        target,
        _str(params, "selector"),
        _str(params, "fileName"),
        _str(params, "fileContent"),
        _opt_str(params, "mimeType") or "application/octet-stream",
    )


# ───────────────────────── Inspection ─────────────────────────


async def _screenshot(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.screenshot(target)


async def _snapshot(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.snapshot(target)


async def _console_messages(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.console_messages(target)


async def _network_requests(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    requests = await ex.host.network_requests(target)
    needle = _opt_str(params, "filter")
    if needle:
        requests = [r for r in requests if needle in str(r.get("url") or "")]
    return requests


async def _get_cookies(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    return await ex.host.get_cookies(target, _opt_str(params, "url"))


async def _set_cookie(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    _str(params, "name")
    keys = ("name", "value", "domain", "path", "url", "secure", "httpOnly", "expirationDate")
    cookie = {k: params[k] for k in keys if k in params}
    return await ex.host.set_cookie(target, cookie)


async def _evaluate(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    code = _opt_str(params, "code") or _str(params, "expression")
    return {"result": await ex.host.evaluate(target, code)}


# ───────────────────────── Recording ─────────────────────────


async def _start_recording(ex: CommandExecutor, target: int, params: dict[str, Any]) -> Any:
    info = await ex.host.get_surface(target)
    if info is None:
        raise TargetNotFoundError(target)
    return ex.start_recording(target, info.url, info.title)


async def _stop_recording(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> Any:
    return ex.stop_recording()


async def _recording_status(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> Any:
    return ex.recorder.status()


async def _get_current_recording(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> Any:
    ex.recorder.flush()
    return ex.recorder.current()


async def _save_recording(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> Any:
    name = _str(params, "name")
    # Saving needs a stopped recorder so the buffer is final.
    if ex.recorder.is_recording:
        ex.stop_recording()
    return ex.recorder.save(name, ex.store)


async def _take_recording(ex: CommandExecutor, target: int | None, params: dict[str, Any]) -> Any:
    if ex.recorder.is_recording:
        ex.stop_recording()
    return ex.recorder.take()


def build_registry() -> CommandRegistry:
    registry = CommandRegistry()
    specs = [
        CommandSpec("status", _status),
        CommandSpec("list_tabs", _list_tabs),
        CommandSpec("connect_tab", _connect_tab, requires_control=True),
        CommandSpec("disconnect_tab", _disconnect_tab),
        CommandSpec("get_page_info", _get_page_info, requires_target=True),
        CommandSpec("navigate", _navigate, requires_target=True),
        CommandSpec("go_back", _go_back, requires_target=True),
        CommandSpec("go_forward", _go_forward, requires_target=True),
        CommandSpec("click", _click, requires_target=True),
        CommandSpec("type", _type, requires_target=True),
        CommandSpec("select_option", _select_option, requires_target=True),
        CommandSpec("press_key", _press_key, requires_target=True),
        CommandSpec("hover", _hover, requires_target=True),
        CommandSpec("drag", _drag, requires_target=True),
        CommandSpec("scroll", _scroll, requires_target=True),
        CommandSpec("wait_for_selector", _wait_for_selector, requires_target=True),
        CommandSpec("handle_dialog", _handle_dialog, requires_target=True),
        CommandSpec("screenshot", _screenshot, requires_target=True),
        CommandSpec("snapshot", _snapshot, requires_target=True),
        CommandSpec("console_messages", _console_messages, requires_target=True),
        CommandSpec("network_requests", _network_requests, requires_target=True),
        CommandSpec("get_cookies", _get_cookies, requires_target=True),
        CommandSpec("set_cookie", _set_cookie, requires_target=True),
        CommandSpec("evaluate", _evaluate, requires_target=True),
        CommandSpec("upload_file", _upload_file, requires_target=True),
        CommandSpec("tab_new", _tab_new, requires_control=True),
        CommandSpec("tab_close", _tab_close),
        CommandSpec("start_recording", _start_recording, requires_target=True),
        CommandSpec("stop_recording", _stop_recording),
        CommandSpec("recording_status", _recording_status),
        CommandSpec("get_current_recording", _get_current_recording),
        CommandSpec("save_recording", _save_recording),
        CommandSpec("take_recording", _take_recording),
    ]
    for spec in specs:
        registry.register(spec)
    registry.validate()
    return registry


__all__ = ["CATALOG", "CommandRegistry", "CommandSpec", "build_registry"]
