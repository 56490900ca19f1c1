"""
MCP server bridging an AI client to the user's own browser.

This module provides the stdio entry point and JSON-RPC protocol handling.
Tool dispatch is handled via the registry in server/registry.py.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from collections.abc import Callable
from typing import Any

from .bridge import BridgeServer
from .config import BroncoConfig
from .errors import BridgeError
from .recording.store import RecordingStore
from .server.contract import (
    DEFAULT_PROTOCOL_VERSION,
    LATEST_PROTOCOL_VERSION,
    SUPPORTED_PROTOCOL_VERSIONS,
    initialize_result,
    select_protocol,
    tools_list,
)
from .server.redaction import redact_jsonrpc_for_log, redact_tool_arguments
from .server.registry import create_default_registry, suggestion_for
from .server.types import ServerContext, ToolResult

logger = logging.getLogger("mcp.bronco")

__all__ = [
    "SUPPORTED_PROTOCOL_VERSIONS",
    "LATEST_PROTOCOL_VERSION",
    "DEFAULT_PROTOCOL_VERSION",
    "McpServer",
    "configure_logging",
    "main",
    "run_stdio",
]


def configure_logging(level: str | None = None) -> None:
    """stderr only: stdout carries the JSON-RPC stream."""
    logging.basicConfig(
        level=(level or os.environ.get("BRONCO_LOG_LEVEL") or "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )


def _write_message(payload: dict[str, Any]) -> None:
    """Write JSON-RPC message to stdout."""
    if os.environ.get("BRONCO_TRACE"):
        logger.info("send %s", redact_jsonrpc_for_log(payload))
    line = (json.dumps(payload, ensure_ascii=False, default=str) + "\n").encode()
    sys.stdout.buffer.write(line)
    sys.stdout.buffer.flush()


def _read_message() -> dict[str, Any] | None:
    """Read one JSON-RPC message from stdin; None at EOF."""
    while True:
        line = sys.stdin.buffer.readline()
        if not line:
            return None
        line = line.strip()
        if not line:
            continue
        try:
            msg = json.loads(line.decode())
        except (UnicodeDecodeError, ValueError) as exc:
            logger.warning("dropping malformed frame: %s", exc)
            _write_message({"jsonrpc": "2.0", "id": None, "error": {"code": -32700, "message": "Parse error"}})
            continue
        if os.environ.get("BRONCO_TRACE"):
            logger.info("recv %s", redact_jsonrpc_for_log(msg))
        return msg if isinstance(msg, dict) else {}


class McpServer:
    """MCP Server with registry-based tool dispatch."""

    def __init__(
        self,
        config: BroncoConfig | None = None,
        *,
        bridge: BridgeServer | None = None,
        store: RecordingStore | None = None,
        write: Callable[[dict[str, Any]], None] | None = None,
        start_bridge: bool = True,
    ) -> None:
        self.config = config or BroncoConfig.from_env()
        self.bridge = bridge or BridgeServer(self.config)
        self.store = store or RecordingStore(self.config.recordings_dir)
        self.registry = create_default_registry()
        self.context = ServerContext(bridge=self.bridge, store=self.store, config=self.config)
        self._write = write or _write_message
        self.bridge_error: str | None = None

        if start_bridge:
            try:
                self.bridge.start(wait_timeout=5.0)
            except RuntimeError as exc:
                # Fail-soft: do not crash the MCP handshake; tool errors carry bridgeError.
                self.bridge_error = str(exc)
                logger.error("bridge_start_failed: %s", exc)

    def close(self) -> None:
        self.bridge.stop()

    def handle_initialize(self, request_id: Any, params: dict[str, Any] | None = None) -> None:
        requested = (params or {}).get("protocolVersion") if isinstance(params, dict) else None
        protocol = select_protocol(requested)
        self._write({"jsonrpc": "2.0", "id": request_id, "result": initialize_result(protocol)})

    def handle_list_tools(self, request_id: Any) -> None:
        self._write({"jsonrpc": "2.0", "id": request_id, "result": {"tools": tools_list()}})

    def _log_call(self, name: str, arguments: dict[str, Any]) -> None:
        """Log tool call with sanitized arguments."""
        logger.info("tool=%s args=%s", name, redact_tool_arguments(name, arguments))

    def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        self._log_call(name, arguments)
        try:
            if not name:
                return ToolResult.error("Missing tool name")
            if not self.registry.has(name):
                return ToolResult.error(f"Unknown tool: {name}", tool=name)
            return self.registry.dispatch(name, self.context, arguments)
        except BridgeError as e:
            logger.info("tool_error tool=%s error=%s", name, e)
            details = {"bridgeError": self.bridge_error} if self.bridge_error else None
            return ToolResult.error(str(e), tool=name, suggestion=suggestion_for(e), details=details)
        except Exception as exc:
            logger.exception("tool_call_failed tool=%s", name)
            return ToolResult.error(str(exc) or type(exc).__name__, tool=name)

    def handle_call_tool(self, request_id: Any, name: str, arguments: dict[str, Any]) -> None:
        result = self.call_tool(name, arguments)
        self._write(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "result": {"content": result.to_content_list(), "isError": result.is_error},
            }
        )

    def dispatch(self, message: dict[str, Any]) -> None:
        """Dispatch incoming JSON-RPC message to appropriate handler."""
        if not message:
            return

        method = message.get("method")
        request_id = message.get("id")
        params = message.get("params") or {}

        if method == "initialize":
            self.handle_initialize(request_id, params)
        elif isinstance(method, str) and method.startswith("notifications/"):
            return
        elif method == "tools/list":
            self.handle_list_tools(request_id)
        elif method == "tools/call":
            name = params.get("name") if isinstance(params, dict) else None
            arguments = params.get("arguments") if isinstance(params, dict) else None
            self.handle_call_tool(request_id, name or "", arguments if isinstance(arguments, dict) else {})
        elif method == "ping":
            self._write({"jsonrpc": "2.0", "id": request_id, "result": {}})
        elif request_id is not None:
            self._write(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "error": {"code": -32601, "message": f"Method {method} not found"},
                }
            )


def run_stdio(server: McpServer) -> None:
    """Serve newline-delimited JSON-RPC on stdin/stdout until EOF."""
    try:
        while True:
            message = _read_message()
            if message is None:
                break
            server.dispatch(message)
    finally:
        server.close()


def main() -> None:
    """Main entry point for the MCP stdio server."""
    configure_logging()
    run_stdio(McpServer())


if __name__ == "__main__":
    main()
