from __future__ import annotations

import asyncio
import base64
from typing import Any

import pytest


class _Executor:
    def __init__(self, fail: dict[str, str] | None = None) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail = fail or {}

    async def __call__(self, method: str, params: dict[str, Any]) -> Any:
        self.calls.append((method, params))
        selector = params.get("selector")
        if selector in self.fail:
            from mcp_servers.bronco.errors import RemoteError

            raise RemoteError(self.fail[selector], method=method)
        return {"success": True}


def _engine(tmp_path, executor: _Executor, sleeps: list[float]):
    from mcp_servers.bronco.config import ReplayTiming
    from mcp_servers.bronco.recording.replay import ReplayEngine
    from mcp_servers.bronco.recording.store import RecordingStore

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    store = RecordingStore(tmp_path)
    return store, ReplayEngine(store, executor, timing=ReplayTiming(), sleep=fake_sleep)


def _save(store, name: str, actions: list[dict[str, Any]]) -> None:
    from mcp_servers.bronco.recording.model import Recording

    store.save(Recording.from_dict({"name": name, "actions": actions, "originUrl": "https://a.test/"}))


def test_replay_runs_in_order_with_settle_delays(tmp_path) -> None:
    executor = _Executor()
    sleeps: list[float] = []
    store, engine = _engine(tmp_path, executor, sleeps)
    _save(
        store,
        "basic",
        [
            {"type": "navigate", "url": "https://a.test/"},
            {"type": "click", "selector": "#go"},
            {"type": "type", "selector": 'input[name="q"]', "value": "shoes"},
        ],
    )

    out = asyncio.run(engine.replay("basic"))

    assert out["success"] is True
    assert out["recording"] == "basic"
    assert out["actionsExecuted"] == 3
    assert [r["success"] for r in out["results"]] == [True, True, True]
    assert executor.calls == [
        ("navigate", {"url": "https://a.test/"}),
        ("click", {"selector": "#go"}),
        ("type", {"selector": 'input[name="q"]', "text": "shoes"}),
    ]
    assert sleeps == [1.0, 0.3, 0.1]


def test_failed_action_is_reported_and_replay_continues(tmp_path) -> None:
    executor = _Executor(fail={"#missing": "Element not found: #missing"})
    sleeps: list[float] = []
    store, engine = _engine(tmp_path, executor, sleeps)
    _save(
        store,
        "partial",
        [
            {"type": "navigate", "url": "https://a.test/"},
            {"type": "click", "selector": "#missing"},
            {"type": "select", "selector": "#size", "value": "l"},
            {"type": "keypress", "selector": "#q", "key": "Enter"},
        ],
    )

    out = asyncio.run(engine.replay("partial"))

    results = out["results"]
    assert out["success"] is True and out["actionsExecuted"] == 4
    assert results[1] == {
        "action": "click",
        "selector": "#missing",
        "success": False,
        "error": "Element not found: #missing",
    }
    assert results[2]["success"] is True
    assert executor.calls[2] == ("select_option", {"selector": "#size", "value": "l"})
    assert executor.calls[3] == ("press_key", {"key": "Enter", "selector": "#q"})
    # No settle delay after the failed click.
    assert sleeps == [1.0, 0.1, 0.1]


def test_upload_without_path_and_unknown_types_are_skipped(tmp_path) -> None:
    executor = _Executor()
    store, engine = _engine(tmp_path, executor, [])
    _save(
        store,
        "skips",
        [
            {"type": "upload", "selector": "#cv", "fileName": "cv.pdf", "fileSize": 10},
            {"type": "hover", "selector": "#menu"},
            {"selector": "#typeless"},
        ],
    )

    out = asyncio.run(engine.replay("skips"))

    assert executor.calls == []
    assert out["actionsExecuted"] == 3
    first, second, third = out["results"]
    assert first["skipped"] is True and "filePath" in first["reason"]
    assert second == {
        "action": "hover",
        "selector": "#menu",
        "success": True,
        "skipped": True,
        "reason": "Unknown action type: hover",
    }
    assert third["reason"] == "Unknown action type: <missing>"


def test_upload_with_local_path_sends_content(tmp_path) -> None:
    source = tmp_path / "notes.txt"
    source.write_bytes(b"hello upload")
    executor = _Executor()
    sleeps: list[float] = []
    store, engine = _engine(tmp_path / "recs", executor, sleeps)
    _save(store, "upload", [{"type": "upload", "selector": "#doc", "fileName": "", "filePath": str(source)}])

    out = asyncio.run(engine.replay("upload"))

    assert out["results"][0]["success"] is True
    method, params = executor.calls[0]
    assert method == "upload_file"
    assert params["fileName"] == "notes.txt"
    assert params["mimeType"] == "text/plain"
    assert base64.b64decode(params["fileContent"]) == b"hello upload"
    assert sleeps == []


def test_replay_of_missing_recording_raises(tmp_path) -> None:
    from mcp_servers.bronco.errors import RecordingNotFoundError

    store, engine = _engine(tmp_path, _Executor(), [])
    with pytest.raises(RecordingNotFoundError):
        asyncio.run(engine.replay("nope"))


def test_guess_mime_type_fallback() -> None:
    from mcp_servers.bronco.recording.replay import guess_mime_type

    assert guess_mime_type("report.pdf") == "application/pdf"
    assert guess_mime_type("blob.unknownext") == "application/octet-stream"
