from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from . import protocol
from .bridge import _import_websockets
from .config import BroncoConfig
from .errors import BridgeError
from .executor.executor import CommandExecutor

logger = logging.getLogger("mcp.bronco.agent")


class ExecutorAgent:
    """Executor side of the bridge: a reconnecting websocket client.

    - Announces itself with `extension_ready` on every (re)connect.
    - Sends `keepalive` every `keepalive_interval` seconds while connected.
    - Runs each incoming request as its own task through the CommandExecutor.
    - On loss waits a fixed `reconnect_delay` and reconnects until `stop` is set.
    - Polls the persisted control flag every `control_poll_interval` seconds, so
      `bronco-browser control off` takes effect while the agent runs.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        config: BroncoConfig | None = None,
        *,
        url: str | None = None,
    ) -> None:
        self.executor = executor
        self.config = config or executor.config
        self.url = url or self.config.ws_url
        self.reconnect_delay = max(0.0, float(self.config.reconnect_delay))
        self.keepalive_interval = max(0.01, float(self.config.keepalive_interval))
        self.control_poll_interval = max(0.01, float(self.config.control_poll_interval))

        self.connected = asyncio.Event()
        self.sessions = 0
        self.last_error: str | None = None
        self._tasks: set[asyncio.Task] = set()

    def status(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "connected": self.connected.is_set(),
            "sessions": self.sessions,
            "inFlight": len(self._tasks),
            **({"lastError": self.last_error} if self.last_error else {}),
            **self.executor.control.snapshot(),
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Supervised loop
    # ─────────────────────────────────────────────────────────────────────────

    async def run(self, stop: asyncio.Event | None = None) -> None:
        websockets = _import_websockets()
        stop = stop or asyncio.Event()
        control_watch = asyncio.create_task(self._watch_control())
        try:
            while not stop.is_set():
                try:
                    async with websockets.connect(self.url, ping_interval=None, open_timeout=5.0) as ws:
                        await self._session(ws, stop)
                except (OSError, asyncio.TimeoutError) as exc:
                    self.last_error = str(exc) or type(exc).__name__
                    logger.debug("connect failed url=%s error=%s", self.url, self.last_error)
                except Exception as exc:  # noqa: BLE001
                    self.last_error = str(exc) or type(exc).__name__
                    logger.info("session ended url=%s reason=%s", self.url, self.last_error)

                if stop.is_set():
                    break
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(stop.wait(), timeout=self.reconnect_delay)
        finally:
            control_watch.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await control_watch

        await self._cancel_tasks()
        logger.info("agent stopped")

    async def _session(self, ws, stop: asyncio.Event) -> None:  # type: ignore[no-untyped-def]
        await ws.send(protocol.encode(protocol.extension_ready()))
        self.sessions += 1
        self.last_error = None
        self.executor.control.set_transport_connected(True)
        self.connected.set()
        logger.info("agent connected url=%s session=%s", self.url, self.sessions)

        keepalive = asyncio.create_task(self._keepalive(ws))
        watcher = asyncio.create_task(self._close_on_stop(ws, stop))
        try:
            async for raw in ws:
                msg = protocol.decode(raw)
                if msg is None:
                    logger.warning("dropping malformed frame")
                    continue
                if protocol.control_type(msg) is not None:
                    continue
                request = protocol.parse_request(msg)
                if request is None:
                    logger.debug("ignoring message keys=%s", sorted(msg))
                    continue
                task = asyncio.create_task(self._handle(ws, request))
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
        finally:
            for t in (keepalive, watcher):
                t.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await t
            self.connected.clear()
            self.executor.control.set_transport_connected(False)
            logger.info("agent disconnected url=%s", self.url)

    async def _keepalive(self, ws) -> None:  # type: ignore[no-untyped-def]
        frame = protocol.encode(protocol.keepalive())
        while True:
            await asyncio.sleep(self.keepalive_interval)
            try:
                await ws.send(frame)
            except Exception:  # noqa: BLE001
                return

    async def _watch_control(self) -> None:
        while True:
            await asyncio.sleep(self.control_poll_interval)
            try:
                self.executor.sync_control_from_disk()
            except Exception:  # noqa: BLE001
                logger.exception("control flag sync failed")

    @staticmethod
    async def _close_on_stop(ws, stop: asyncio.Event) -> None:  # type: ignore[no-untyped-def]
        await stop.wait()
        with contextlib.suppress(Exception):
            await ws.close()

    async def _cancel_tasks(self) -> None:
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        for t in tasks:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await t

    # ─────────────────────────────────────────────────────────────────────────
    # Requests
    # ─────────────────────────────────────────────────────────────────────────

    async def _handle(self, ws, request: protocol.Request) -> None:  # type: ignore[no-untyped-def]
        try:
            result = await self.executor.execute(request.method, request.params)
            response = protocol.Response(id=request.id, result=result)
        except asyncio.CancelledError:
            raise
        except BridgeError as exc:
            logger.info("command failed id=%s method=%s error=%s", request.id, request.method, exc)
            response = protocol.Response(id=request.id, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("command crashed id=%s method=%s", request.id, request.method)
            response = protocol.Response(id=request.id, error=str(exc) or type(exc).__name__)

        try:
            frame = protocol.encode(response.to_dict())
        except (TypeError, ValueError) as exc:
            frame = protocol.encode({"id": request.id, "error": f"Result is not JSON-serializable: {exc}"})
        try:
            await ws.send(frame)
        except Exception as exc:  # noqa: BLE001
            logger.info("reply dropped id=%s method=%s reason=%s", request.id, request.method, exc)
