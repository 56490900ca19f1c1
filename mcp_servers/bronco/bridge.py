from __future__ import annotations

import asyncio
import concurrent.futures
import contextlib
import logging
import threading
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

from . import protocol
from .config import BroncoConfig
from .errors import (
    BridgeError,
    InvalidParamsError,
    NotConnectedError,
    RemoteError,
    RequestTimeoutError,
    TransportLostError,
)

logger = logging.getLogger("mcp.bronco.bridge")

T = TypeVar("T")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _import_websockets():
    try:
        import websockets  # type: ignore[import-not-found]

        return websockets
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError(
            "The browser bridge requires the 'websockets' Python package. Install it (pip install websockets)."
        ) from exc


@dataclass
class _Pending:
    method: str
    future: asyncio.Future
    timer: asyncio.TimerHandle
    timeout: float


class PendingRequests:
    """Pending request table.

    Every entry leaves the table exactly once: through `resolve` (matching
    response), through its timer (timeout) or through `fail_all` (transport
    loss). All mutation happens on the owning event loop.
    """

    def __init__(self) -> None:
        self._entries: dict[int, _Pending] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, req_id: object) -> bool:
        return req_id in self._entries

    def register(
        self,
        req_id: int,
        method: str,
        timeout: float,
        loop: asyncio.AbstractEventLoop,
    ) -> asyncio.Future:
        if req_id in self._entries:
            raise ValueError(f"duplicate request id {req_id}")
        fut = loop.create_future()
        timer = loop.call_later(timeout, self._expire, req_id)
        self._entries[req_id] = _Pending(method=method, future=fut, timer=timer, timeout=timeout)
        return fut

    def _take(self, req_id: int) -> _Pending | None:
        entry = self._entries.pop(req_id, None)
        if entry is not None:
            entry.timer.cancel()
        return entry

    def resolve(self, response: protocol.Response) -> bool:
        """Settle the request matching `response`; False when the id is unknown."""
        entry = self._take(response.id)
        if entry is None or entry.future.done():
            return False
        if response.ok:
            entry.future.set_result(response.result)
        else:
            entry.future.set_exception(RemoteError(response.error or "Remote command failed", method=entry.method))
        return True

    def discard(self, req_id: int) -> None:
        entry = self._take(req_id)
        if entry is not None and not entry.future.done():
            entry.future.cancel()

    def fail_all(self, make_error: Callable[[], BaseException]) -> int:
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            entry.timer.cancel()
            if not entry.future.done():
                entry.future.set_exception(make_error())
        return len(entries)

    def _expire(self, req_id: int) -> None:
        entry = self._entries.pop(req_id, None)
        if entry is None:
            return
        logger.warning("request_timeout id=%s method=%s", req_id, entry.method)
        if not entry.future.done():
            entry.future.set_exception(RequestTimeoutError(entry.method, entry.timeout))


class BridgeServer:
    """Issuer side of the bridge: a local websocket server for the browser agent.

    - Async core (`send`) running on a dedicated daemon thread's event loop.
    - Sync facade (`call`, `run`) for the stdio MCP loop.
    - Exactly one agent session at a time: a new connection replaces the old one.
    - Fail-fast: with no session every request is refused with NotConnectedError.
    """

    def __init__(self, config: BroncoConfig | None = None) -> None:
        self.config = config or BroncoConfig.from_env()
        self.host = self.config.host
        self.port = int(self.config.port)
        self.request_timeout = float(self.config.request_timeout)

        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._connected = threading.Event()

        self._server: Any | None = None
        self._ws: Any | None = None
        self._bind_error: str | None = None
        self._session_id: str | None = None
        self._session_seq = 0
        self._agent_ready = False
        self._last_seen_ms = 0
        self._started_at_ms = _now_ms()

        self._next_id = 1
        self._pending = PendingRequests()

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0, require_listening: bool = True) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop.clear()
        with self._lock:
            self._bind_error = None

        t = threading.Thread(target=self._run_thread, name="bronco-bridge", daemon=True)
        self._thread = t
        t.start()

        deadline = time.time() + max(0.05, float(wait_timeout))
        while time.time() < deadline:
            with self._lock:
                if self._server is not None:
                    return
            if not t.is_alive():
                break
            time.sleep(0.02)

        with self._lock:
            bind_error = self._bind_error
            listening = self._server is not None
        if listening:
            return
        if not t.is_alive():
            raise RuntimeError(f"Bridge thread died during startup on {self.host}:{self.port}")
        if require_listening:
            raise RuntimeError(f"Bridge failed to listen on {self.host}:{self.port}: {bind_error or 'timeout'}")

    def stop(self, *, timeout: float = 2.0) -> None:
        self._stop.set()
        loop = self._loop
        if loop is not None and loop.is_running():
            with contextlib.suppress(Exception):
                asyncio.run_coroutine_threadsafe(self._shutdown_async(), loop).result(timeout=timeout)
        t = self._thread
        if t is not None:
            t.join(timeout=timeout)

    def status(self) -> dict[str, Any]:
        with self._lock:
            return {
                "listening": self._server is not None,
                "host": self.host,
                "port": self.port,
                "connected": self._ws is not None,
                "agentReady": bool(self._agent_ready),
                "sessionId": self._session_id,
                "pending": len(self._pending),
                **({"lastSeenMs": self._last_seen_ms} if self._last_seen_ms else {}),
                **({"bindError": self._bind_error} if self._bind_error else {}),
                "serverStartedAtMs": self._started_at_ms,
            }

    def is_connected(self) -> bool:
        with self._lock:
            return self._ws is not None

    def wait_for_connection(self, *, timeout: float = 5.0) -> bool:
        """Block until an agent session is open or timeout."""
        return bool(self._connected.wait(timeout=max(0.0, float(timeout))))

    # ─────────────────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────────────────

    async def send(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> Any:
        """Send one command and await its correlated result.

        Must run on the bridge loop. Raises NotConnectedError, RequestTimeoutError,
        RemoteError or TransportLostError.
        """
        if not isinstance(method, str) or not method.strip():
            raise InvalidParamsError("Bridge method is required")

        with self._lock:
            ws = self._ws
        if ws is None:
            raise NotConnectedError()

        loop = asyncio.get_running_loop()
        req_id = self._next_id
        self._next_id += 1
        wait = float(timeout) if timeout is not None and timeout > 0 else self.request_timeout
        fut = self._pending.register(req_id, method, wait, loop)

        request = protocol.Request(id=req_id, method=method, params=dict(params or {}))
        try:
            await ws.send(protocol.encode(request.to_dict()))
        except Exception as exc:  # noqa: BLE001
            self._pending.discard(req_id)
            raise TransportLostError(f"Bridge send failed: {exc}") from exc

        try:
            return await fut
        except asyncio.CancelledError:
            self._pending.discard(req_id)
            raise

    def call(self, method: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> Any:
        """Blocking variant of `send` for callers outside the bridge loop."""
        wait = float(timeout) if timeout is not None and timeout > 0 else self.request_timeout
        return self.run(self.send(method, params, timeout=wait), timeout=wait + 5.0)

    def run(self, coro: Coroutine[Any, Any, T], *, timeout: float | None = None) -> T:
        """Run a coroutine on the bridge loop and block for its result."""
        loop = self._loop
        if loop is None or not loop.is_running():
            coro.close()
            raise NotConnectedError("Bridge is not running")
        fut = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return fut.result(timeout=timeout)
        except concurrent.futures.TimeoutError as exc:
            fut.cancel()
            raise RequestTimeoutError("bridge.run", float(timeout or 0)) from exc

    # ─────────────────────────────────────────────────────────────────────────
    # Internals (async)
    # ─────────────────────────────────────────────────────────────────────────

    def _run_thread(self) -> None:
        asyncio.run(self._run_async())

    async def _run_async(self) -> None:
        websockets = _import_websockets()
        self._loop = asyncio.get_running_loop()

        backoff_s = 0.25
        max_backoff_s = 5.0
        try:
            while not self._stop.is_set():
                with self._lock:
                    has_server = self._server is not None
                if has_server:
                    await asyncio.sleep(0.1)
                    continue
                try:
                    server = await websockets.serve(
                        self._handler,
                        self.host,
                        self.port,
                        max_size=64 * 1024 * 1024,
                        ping_interval=None,
                    )
                except OSError as exc:
                    with self._lock:
                        self._bind_error = str(exc)
                    logger.error("bridge_bind_failed host=%s port=%s error=%s", self.host, self.port, exc)
                    await asyncio.sleep(backoff_s)
                    backoff_s = min(backoff_s * 1.6, max_backoff_s)
                    continue

                bound_port = self.port
                with contextlib.suppress(Exception):
                    bound_port = int(next(iter(server.sockets)).getsockname()[1])
                with self._lock:
                    self._server = server
                    self.port = bound_port
                    self._bind_error = None
                backoff_s = 0.25
                logger.info("bridge listening on ws://%s:%s", self.host, self.port)
        finally:
            await self._shutdown_async()

    async def _handler(self, ws) -> None:  # type: ignore[no-untyped-def]
        with self._lock:
            previous = self._ws
            self._session_seq += 1
            self._ws = ws
            self._session_id = f"session-{_now_ms()}-{self._session_seq}"
            self._agent_ready = False
            self._last_seen_ms = _now_ms()
            session_id = self._session_id

        if previous is not None:
            # Requests in flight were written to the old socket; their answers can never arrive here.
            failed = self._pending.fail_all(lambda: TransportLostError("Agent session replaced by a new connection"))
            logger.info("session_replaced new=%s failed_pending=%s", session_id, failed)
            with contextlib.suppress(Exception):
                await previous.close(code=1000, reason="replaced")

        self._connected.set()
        logger.info("agent connected session=%s", session_id)

        try:
            async for raw in ws:
                with self._lock:
                    self._last_seen_ms = _now_ms()
                msg = protocol.decode(raw)
                if msg is None:
                    logger.warning("dropping malformed frame session=%s", session_id)
                    continue
                self._on_message(msg)
        except Exception as exc:  # noqa: BLE001
            logger.info("agent connection closed session=%s reason=%s", session_id, exc)
        finally:
            with self._lock:
                current = self._ws is ws
            if current:
                self._disconnect("Extension disconnected")

    def _on_message(self, msg: dict[str, Any]) -> None:
        mtype = protocol.control_type(msg)
        if mtype == protocol.MSG_KEEPALIVE:
            return
        if mtype == protocol.MSG_EXTENSION_READY:
            with self._lock:
                self._agent_ready = True
            logger.info("agent ready session=%s", self._session_id)
            return

        response = protocol.parse_response(msg)
        if response is None:
            logger.debug("ignoring unexpected message keys=%s", sorted(msg))
            return
        if not self._pending.resolve(response):
            logger.debug("dropping response for unknown id=%s", response.id)

    def _disconnect(self, reason: str) -> None:
        with self._lock:
            self._ws = None
            self._session_id = None
            self._agent_ready = False
            self._connected.clear()
        failed = self._pending.fail_all(lambda: TransportLostError(reason))
        logger.info("agent disconnected failed_pending=%s", failed)

    async def _shutdown_async(self) -> None:
        with self._lock:
            srv = self._server
            self._server = None
            ws = self._ws
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()
            self._disconnect("Bridge stopped")
        if srv is not None:
            with contextlib.suppress(Exception):
                srv.close()
                await srv.wait_closed()


__all__ = ["BridgeError", "BridgeServer", "PendingRequests"]
