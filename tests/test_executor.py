from __future__ import annotations

import asyncio
import base64

import pytest

PAGES = {
    "https://shop.test/": (
        "<html><head><title>Shop</title></head><body>"
        '<form id="search"><input name="q">'
        '<select name="size"><option value="s">Small</option><option value="l">Large</option></select>'
        '<button id="go">Go</button><input type="checkbox" id="agree"></form>'
        '<a href="/about">About</a>'
        '<input type="file" id="cv">'
        "</body></html>"
    ),
    "https://shop.test/about": "<html><head><title>About</title></head><body><p>About us</p></body></html>",
}


def _setup(tmp_path, *, enabled: bool = True, debounce: float = 0.05):
    from mcp_servers.bronco.config import BroncoConfig
    from mcp_servers.bronco.executor import CommandExecutor, ControlState, MemoryHost

    config = BroncoConfig(
        recordings_dir=str(tmp_path / "recordings"),
        state_file=str(tmp_path / "state.json"),
        type_debounce=debounce,
    )
    host = MemoryHost(PAGES)
    tab = host.open_surface("https://shop.test/")
    ex = CommandExecutor(host, ControlState(state_file=config.state_file, control_enabled=enabled), config=config)
    return host, ex, tab.id


def test_registry_covers_catalog_and_rejects_bad_specs() -> None:
    from mcp_servers.bronco.executor import CATALOG, CommandRegistry, CommandSpec, build_registry

    registry = build_registry()
    assert sorted(registry.names) == sorted(CATALOG)

    async def handler(ex, target, params):
        return None

    def sync_handler(ex, target, params):
        return None

    fresh = CommandRegistry()
    fresh.register(CommandSpec("status", handler))
    with pytest.raises(ValueError, match="Duplicate"):
        fresh.register(CommandSpec("status", handler))
    with pytest.raises(TypeError):
        fresh.register(CommandSpec("click", sync_handler))
    with pytest.raises(ValueError, match="list_tabs"):
        fresh.validate()


def test_unknown_method_and_missing_params(tmp_path) -> None:
    from mcp_servers.bronco.errors import InvalidParamsError, UnknownMethodError

    host, ex, tab = _setup(tmp_path)

    async def _main() -> None:
        with pytest.raises(UnknownMethodError, match="Unknown method: teleport"):
            await ex.execute("teleport", {})
        await ex.execute("connect_tab", {"tabId": tab})
        with pytest.raises(InvalidParamsError, match="selector"):
            await ex.execute("click", {})
        with pytest.raises(InvalidParamsError, match="tabId"):
            await ex.execute("connect_tab", {"tabId": "abc"})

    asyncio.run(_main())


def test_disabled_control_hides_tabs_and_refuses_connect(tmp_path) -> None:
    from mcp_servers.bronco.errors import ControlDisabledError, NoTargetError

    host, ex, tab = _setup(tmp_path, enabled=False)

    async def _main() -> None:
        assert await ex.execute("list_tabs") == []
        with pytest.raises(ControlDisabledError):
            await ex.execute("connect_tab", {"tabId": tab})
        with pytest.raises(ControlDisabledError):
            await ex.execute("tab_new", {"url": "https://shop.test/about"})
        with pytest.raises(NoTargetError):
            await ex.execute("click", {"selector": "#go"})

    asyncio.run(_main())


def test_disabling_control_clears_target(tmp_path) -> None:
    from mcp_servers.bronco.errors import NoTargetError

    host, ex, tab = _setup(tmp_path)

    async def _main() -> None:
        tabs = await ex.execute("list_tabs")
        assert [t["id"] for t in tabs] == [tab] and tabs[0]["connected"] is False

        out = await ex.execute("connect_tab", {"tabId": tab})
        assert out == {"success": True, "tabId": tab, "title": "Shop", "url": "https://shop.test/"}
        assert (await ex.execute("list_tabs"))[0]["connected"] is True
        await ex.execute("click", {"selector": "#go"})

        ex.set_control_enabled(False)
        assert ex.control.target is None
        with pytest.raises(NoTargetError):
            await ex.execute("click", {"selector": "#go"})

        # Re-enabling does not restore the old target.
        ex.set_control_enabled(True)
        assert ex.control.target is None

    asyncio.run(_main())


def test_connect_unknown_tab(tmp_path) -> None:
    from mcp_servers.bronco.errors import TargetNotFoundError

    host, ex, tab = _setup(tmp_path)

    async def _main() -> None:
        with pytest.raises(TargetNotFoundError, match="Tab 999 not found"):
            await ex.execute("connect_tab", {"tabId": 999})
        assert ex.control.target is None

    asyncio.run(_main())


def test_out_of_band_close_clears_target_and_stops_recording(tmp_path) -> None:
    from mcp_servers.bronco.errors import NoTargetError

    host, ex, tab = _setup(tmp_path)

    async def _main() -> None:
        await ex.execute("connect_tab", {"tabId": tab})
        await ex.execute("start_recording")
        assert ex.recorder.is_recording

        host.destroy_surface(tab)

        assert ex.control.target is None
        assert not ex.recorder.is_recording
        with pytest.raises(NoTargetError):
            await ex.execute("snapshot")

    asyncio.run(_main())


def test_target_missing_at_execution_time(tmp_path) -> None:
    from mcp_servers.bronco.errors import TargetNotFoundError

    host, ex, tab = _setup(tmp_path)

    async def _main() -> None:
        await ex.execute("connect_tab", {"tabId": tab})
        # Surface vanishes without a close notification.
        host._surfaces.pop(tab)
        with pytest.raises(TargetNotFoundError):
            await ex.execute("click", {"selector": "#go"})
        assert ex.control.target is None

    asyncio.run(_main())


def test_tab_new_and_close(tmp_path) -> None:
    from mcp_servers.bronco.errors import InvalidParamsError

    host, ex, tab = _setup(tmp_path)

    async def _main() -> None:
        with pytest.raises(InvalidParamsError, match="No tab specified"):
            await ex.execute("tab_close")
        created = await ex.execute("tab_new", {"url": "https://shop.test/about"})
        assert created["success"] is True and created["url"] == "https://shop.test/about"
        await ex.execute("connect_tab", {"tabId": created["tabId"]})
        closed = await ex.execute("tab_close")
        assert closed == {"success": True, "closedTabId": created["tabId"]}
        assert ex.control.target is None
        assert [t["id"] for t in await ex.execute("list_tabs")] == [tab]

    asyncio.run(_main())


def test_page_operations_on_memory_host(tmp_path) -> None:
    from mcp_servers.bronco.errors import HostError

    host, ex, tab = _setup(tmp_path)

    async def _main() -> None:
        await ex.execute("connect_tab", {"tabId": tab})

        await ex.execute("type", {"selector": 'input[name="q"]', "text": "boots"})
        picked = await ex.execute("select_option", {"selector": 'select[name="size"]', "value": "Large"})
        assert picked["value"] == "l"
        await ex.execute("click", {"selector": "#agree"})

        snap = await ex.execute("snapshot")
        by_selector = {e["selector"]: e for e in snap["elements"]}
        assert by_selector['input[name="q"]']["value"] == "boots"
        assert snap["title"] == "Shop"

        with pytest.raises(HostError, match="Element not found: #nope"):
            await ex.execute("click", {"selector": "#nope"})
        with pytest.raises(HostError, match="Timeout waiting for selector"):
            await ex.execute("wait_for_selector", {"selector": "#later", "timeout": 50})

        page = await ex.execute("click", {"selector": "a"})
        assert page["url"] == "https://shop.test/about"
        assert (await ex.execute("get_page_info"))["title"] == "About"
        assert (await ex.execute("go_back"))["title"] == "Shop"
        assert (await ex.execute("go_forward"))["title"] == "About"

        scrolled = await ex.execute("scroll", {"direction": "down", "amount": 300})
        assert scrolled["scrollY"] == 300
        assert (await ex.execute("evaluate", {"code": "document.title"})) == {"result": "About"}

        requests = await ex.execute("network_requests", {"filter": "about"})
        assert requests and all("about" in r["url"] for r in requests)

        await ex.execute("set_cookie", {"name": "sid", "value": "secret"})
        cookies = await ex.execute("get_cookies")
        assert [c["name"] for c in cookies] == ["sid"]

        dialog = await ex.execute("handle_dialog", {"action": "dismiss"})
        assert dialog["action"] == "dismiss" and dialog["note"] == "No dialog is open"
        host.open_dialog(tab, "Leave page?")
        assert (await ex.execute("handle_dialog"))["message"] == "Leave page?"

        shot = await ex.execute("screenshot")
        assert shot["dataUrl"].startswith("data:image/png;base64,")

    asyncio.run(_main())


def test_recording_through_executor_and_local_save(tmp_path) -> None:
    host, ex, tab = _setup(tmp_path)

    async def _main():
        await ex.execute("connect_tab", {"tabId": tab})
        started = await ex.execute("start_recording")
        assert started["recording"] is True and started["tabId"] == tab

        await ex.execute("type", {"selector": 'input[name="q"]', "text": "boots"})
        await asyncio.sleep(0.15)
        await ex.execute("select_option", {"selector": 'select[name="size"]', "value": "l"})
        await ex.execute("press_key", {"key": "Enter", "selector": 'input[name="q"]'})
        await ex.execute("press_key", {"key": "x"})
        content = base64.b64encode(b"%PDF").decode("ascii")
        await ex.execute(
            "upload_file",
            {"selector": "#cv", "fileName": "cv.pdf", "fileContent": content, "mimeType": "application/pdf"},
        )
        await ex.execute("click", {"selector": "#go"})

        status = await ex.execute("recording_status")
        current = await ex.execute("get_current_recording")
        saved = await ex.execute("save_recording", {"name": "search flow"})
        return status, current, saved

    status, current, saved = asyncio.run(_main())

    assert status["isRecording"] is True
    kinds = [a["type"] for a in current["actions"]]
    assert kinds == ["navigate", "type", "select", "keypress", "upload", "click"]
    assert current["actions"][1]["value"] == "boots"
    assert current["actions"][4]["fileName"] == "cv.pdf"
    assert current["actions"][4]["fileSize"] == 4
    assert saved["success"] is True and saved["actionCount"] == 6
    assert not ex.recorder.is_recording
    assert ex.store.exists("search flow")


def test_control_state_persists(tmp_path) -> None:
    import json

    from mcp_servers.bronco.errors import ControlDisabledError
    from mcp_servers.bronco.executor import ControlState

    path = tmp_path / "nested" / "state.json"
    state = ControlState(state_file=path)
    assert state.control_enabled is False
    with pytest.raises(ControlDisabledError):
        state.connect(1)

    state.set_control_enabled(True)
    assert json.loads(path.read_text(encoding="utf-8"))["controlEnabled"] is True
    assert ControlState(state_file=path).control_enabled is True

    state.connect(3)
    assert state.surface_destroyed(4) is False
    assert state.surface_destroyed(3) is True
    assert state.snapshot() == {"transportConnected": False, "controlEnabled": True, "targetSurfaceId": None}

    path.write_text("{broken", encoding="utf-8")
    assert ControlState(state_file=path).control_enabled is False


def test_take_recording_hands_over_buffer_once(tmp_path) -> None:
    from mcp_servers.bronco.errors import EmptyRecordingError

    host, ex, tab = _setup(tmp_path)

    async def _main():
        await ex.execute("connect_tab", {"tabId": tab})
        await ex.execute("start_recording")
        await ex.execute("click", {"selector": "#go"})
        await ex.execute("type", {"selector": 'input[name="q"]', "text": "boots"})

        # Still recording: the pending edit is flushed and capture stops.
        taken = await ex.execute("take_recording")
        assert not ex.recorder.is_recording
        assert ex.recorder.actions == []
        with pytest.raises(EmptyRecordingError):
            await ex.execute("take_recording")
        return taken

    taken = asyncio.run(_main())
    assert taken["originUrl"] == "https://shop.test/"
    assert [a["type"] for a in taken["actions"]] == ["navigate", "click", "type"]
    assert taken["actions"][2]["value"] == "boots"


def test_control_off_from_cli_releases_target(monkeypatch, tmp_path) -> None:
    from click.testing import CliRunner

    from mcp_servers.bronco.cli import cli
    from mcp_servers.bronco.errors import NoTargetError

    host, ex, tab = _setup(tmp_path)
    monkeypatch.setenv("BRONCO_STATE_FILE", str(tmp_path / "state.json"))
    runner = CliRunner()

    async def _main() -> None:
        await ex.execute("connect_tab", {"tabId": tab})
        await ex.execute("start_recording")
        assert ex.sync_control_from_disk() is None

        result = runner.invoke(cli, ["control", "off"])
        assert result.exit_code == 0, result.output
        assert ex.sync_control_from_disk() is False
        assert ex.control.control_enabled is False
        assert ex.control.target is None
        assert not ex.recorder.is_recording
        with pytest.raises(NoTargetError):
            await ex.execute("click", {"selector": "#go"})
        assert await ex.execute("list_tabs") == []

        # Nothing new on disk: no change to apply.
        assert ex.sync_control_from_disk() is None

        result = runner.invoke(cli, ["control", "on"])
        assert result.exit_code == 0, result.output
        assert ex.sync_control_from_disk() is True
        assert ex.control.control_enabled is True
        assert ex.control.target is None

    asyncio.run(_main())


def test_own_writes_are_not_reported_as_external_changes(tmp_path) -> None:
    from mcp_servers.bronco.executor import ControlState
    from mcp_servers.bronco.executor.control import save_control_enabled

    path = tmp_path / "state.json"
    state = ControlState(state_file=path, control_enabled=False)
    state.set_control_enabled(True)
    assert state.poll_state_file() is None

    # Rewritten with the value already in memory.
    save_control_enabled(path, True)
    assert state.poll_state_file() is None

    save_control_enabled(path, False)
    assert state.poll_state_file() is False
