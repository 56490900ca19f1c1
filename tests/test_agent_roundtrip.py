from __future__ import annotations

import asyncio
import json
import socket
import threading
import time
from collections.abc import Callable

import pytest

PAGES = {
    "https://shop.test/": (
        "<html><head><title>Shop</title></head><body>"
        '<form id="search"><input name="q"><button id="go">Go</button></form>'
        '<input type="file" id="cv">'
        "</body></html>"
    ),
}


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


def _wait_until(pred: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if pred():
            return True
        time.sleep(0.02)
    return bool(pred())


class _AgentThread:
    """Runs ExecutorAgent.run() on its own event loop."""

    def __init__(self, agent) -> None:  # type: ignore[no-untyped-def]
        self.agent = agent
        self.loop: asyncio.AbstractEventLoop | None = None
        self.stop_event: asyncio.Event | None = None
        self.ready = threading.Event()
        self.thread = threading.Thread(target=self._run, daemon=True)

    def _run(self) -> None:
        async def _main() -> None:
            self.loop = asyncio.get_running_loop()
            self.stop_event = asyncio.Event()
            self.ready.set()
            await self.agent.run(self.stop_event)

        asyncio.run(_main())

    def start(self) -> _AgentThread:
        self.thread.start()
        assert self.ready.wait(timeout=3.0)
        return self

    def stop(self) -> None:
        if self.loop is not None and self.stop_event is not None:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        self.thread.join(timeout=5.0)


def _executor(tmp_path, *, enabled: bool):
    from mcp_servers.bronco.config import BroncoConfig
    from mcp_servers.bronco.executor import CommandExecutor, ControlState, MemoryHost

    config = BroncoConfig(
        recordings_dir=str(tmp_path / "agent-recordings"),
        state_file=str(tmp_path / "state.json"),
        type_debounce=0.05,
    )
    host = MemoryHost(PAGES)
    tab = host.open_surface("https://shop.test/")
    ex = CommandExecutor(host, ControlState(state_file=config.state_file, control_enabled=enabled), config=config)
    return ex, tab.id


def _agent(ex, port: int):
    from mcp_servers.bronco.agent import ExecutorAgent
    from mcp_servers.bronco.config import BroncoConfig

    config = BroncoConfig(
        host="127.0.0.1",
        port=port,
        reconnect_delay=0.1,
        keepalive_interval=0.05,
        control_poll_interval=0.05,
    )
    return ExecutorAgent(ex, config)


def test_mcp_tools_drive_agent_end_to_end(tmp_path) -> None:
    pytest.importorskip("websockets")
    from mcp_servers.bronco.bridge import BridgeServer
    from mcp_servers.bronco.config import BroncoConfig, ReplayTiming
    from mcp_servers.bronco.main import McpServer

    server_config = BroncoConfig(
        host="127.0.0.1",
        port=0,
        request_timeout=5.0,
        recordings_dir=str(tmp_path / "recordings"),
        replay_timing=ReplayTiming(navigate=0.0, click=0.0, input=0.0, upload=0.0),
    )
    bridge = BridgeServer(server_config)
    bridge.start(wait_timeout=5.0)
    server = McpServer(server_config, bridge=bridge, write=lambda _msg: None, start_bridge=False)

    ex, tab = _executor(tmp_path, enabled=False)
    runner = _AgentThread(_agent(ex, bridge.port)).start()
    try:
        assert bridge.wait_for_connection(timeout=5.0)
        assert _wait_until(lambda: bridge.status()["agentReady"] is True)

        # Control off: no tabs are visible and connecting is refused.
        assert server.call_tool("browser_list_tabs", {}).data == []
        refused = server.call_tool("browser_connect_tab", {"tabId": tab})
        assert refused.is_error and "Browser control is disabled" in refused.data["error"]

        ex.set_control_enabled(True)
        tabs = server.call_tool("browser_list_tabs", {}).data
        assert [t["id"] for t in tabs] == [tab]
        connected = server.call_tool("browser_connect_tab", {"tabId": tab}).data
        assert connected["title"] == "Shop"

        missing = server.call_tool("browser_click", {"selector": "#nope"})
        assert missing.is_error and missing.data["error"] == "Element not found: #nope"

        shot = server.call_tool("browser_screenshot", {})
        assert shot.to_content_list()[0]["type"] == "image"

        assert server.call_tool("browser_start_recording", {}).data["recording"] is True
        server.call_tool("browser_type", {"selector": 'input[name="q"]', "text": "boots"})
        time.sleep(0.2)
        server.call_tool("browser_click", {"selector": "#go"})
        stopped = server.call_tool("browser_stop_recording", {}).data
        assert stopped["actionCount"] == 3

        saved = server.call_tool("browser_save_recording", {"name": "search"}).data
        assert saved["success"] is True and saved["actionCount"] == 3
        assert server.store.exists("search")

        # The executor buffer was handed over, so there is nothing left to save.
        again = server.call_tool("browser_save_recording", {"name": "search-copy"})
        assert again.is_error and again.data["error"] == "No actions to save"
        assert "Start a recording" in again.data["suggestion"]
        assert not server.store.exists("search-copy")
        assert ex.recorder.actions == []

        replayed = server.call_tool("browser_replay_recording", {"name": "search"}).data
        assert replayed["actionsExecuted"] == 3
        assert [r["action"] for r in replayed["results"]] == ["navigate", "type", "click"]
        assert all(r["success"] for r in replayed["results"])

        status = server.call_tool("browser_status", {}).data
        assert status["bridge"]["connected"] is True
        assert status["agent"]["controlEnabled"] is True
        assert status["agent"]["targetSurfaceId"] == tab

        upload = tmp_path / "cv.txt"
        upload.write_text("resume", encoding="utf-8")
        uploaded = server.call_tool("browser_upload_file", {"selector": "#cv", "filePath": str(upload)}).data
        assert uploaded["fileName"] == "cv.txt" and uploaded["size"] == 6

        assert bridge.status()["pending"] == 0
    finally:
        runner.stop()
        bridge.stop()


def test_keepalive_keeps_session_fresh(tmp_path) -> None:
    pytest.importorskip("websockets")
    from mcp_servers.bronco.bridge import BridgeServer
    from mcp_servers.bronco.config import BroncoConfig

    bridge = BridgeServer(BroncoConfig(host="127.0.0.1", port=0))
    bridge.start(wait_timeout=5.0)
    ex, _tab = _executor(tmp_path, enabled=True)
    runner = _AgentThread(_agent(ex, bridge.port)).start()
    try:
        assert bridge.wait_for_connection(timeout=5.0)
        assert _wait_until(lambda: "lastSeenMs" in bridge.status())
        first_seen = bridge.status()["lastSeenMs"]
        assert _wait_until(lambda: bridge.status()["lastSeenMs"] > first_seen)
        assert ex.control.transport_connected is True
        assert bridge.status()["pending"] == 0
    finally:
        runner.stop()
        bridge.stop()
    assert ex.control.transport_connected is False


def test_agent_reconnects_when_bridge_comes_back(tmp_path) -> None:
    pytest.importorskip("websockets")
    from mcp_servers.bronco.bridge import BridgeServer
    from mcp_servers.bronco.config import BroncoConfig

    port = _free_port()
    ex, _tab = _executor(tmp_path, enabled=True)
    agent = _agent(ex, port)
    runner = _AgentThread(agent).start()
    bridge = None
    try:
        # Nothing listens yet: the agent keeps retrying.
        assert _wait_until(lambda: agent.last_error is not None, timeout=3.0)
        assert agent.sessions == 0

        bridge = BridgeServer(BroncoConfig(host="127.0.0.1", port=port))
        bridge.start(wait_timeout=5.0)
        assert bridge.wait_for_connection(timeout=5.0)
        assert _wait_until(lambda: agent.sessions == 1)
        assert json.dumps(bridge.call("list_tabs"))

        bridge.stop()
        assert _wait_until(lambda: not agent.connected.is_set())

        bridge = BridgeServer(BroncoConfig(host="127.0.0.1", port=port))
        bridge.start(wait_timeout=5.0)
        assert bridge.wait_for_connection(timeout=5.0)
        assert _wait_until(lambda: agent.sessions == 2)
    finally:
        runner.stop()
        if bridge is not None:
            bridge.stop()


def test_control_off_reaches_running_agent(monkeypatch, tmp_path) -> None:
    pytest.importorskip("websockets")
    from click.testing import CliRunner

    from mcp_servers.bronco.bridge import BridgeServer
    from mcp_servers.bronco.cli import cli
    from mcp_servers.bronco.config import BroncoConfig
    from mcp_servers.bronco.errors import RemoteError

    bridge = BridgeServer(BroncoConfig(host="127.0.0.1", port=0, request_timeout=5.0))
    bridge.start(wait_timeout=5.0)
    ex, tab = _executor(tmp_path, enabled=True)
    runner = _AgentThread(_agent(ex, bridge.port)).start()
    monkeypatch.setenv("BRONCO_STATE_FILE", str(tmp_path / "state.json"))
    try:
        assert bridge.wait_for_connection(timeout=5.0)
        assert bridge.call("connect_tab", {"tabId": tab})["success"] is True
        bridge.call("click", {"selector": "#go"})

        result = CliRunner().invoke(cli, ["control", "off"])
        assert result.exit_code == 0, result.output
        assert _wait_until(lambda: ex.control.control_enabled is False)
        assert ex.control.target is None

        with pytest.raises(RemoteError, match="No tab connected"):
            bridge.call("click", {"selector": "#go"})
        assert bridge.call("list_tabs") == []
        assert bridge.call("status")["targetSurfaceId"] is None
    finally:
        runner.stop()
        bridge.stop()
