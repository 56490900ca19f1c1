from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9876
DEFAULT_RECORDINGS_DIR = "~/.bronco-browser-recordings"
DEFAULT_STATE_FILE = "~/.bronco-browser/state.json"


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _env_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


@dataclass
class ReplayTiming:
    """Settle delays (seconds) applied after each successful replayed action."""

    navigate: float = 1.0
    click: float = 0.3
    input: float = 0.1  # type / select / keypress
    upload: float = 0.0

    @classmethod
    def from_env(cls) -> ReplayTiming:
        return cls(
            navigate=_env_int("BRONCO_SETTLE_NAVIGATE_MS", 1000) / 1000.0,
            click=_env_int("BRONCO_SETTLE_CLICK_MS", 300) / 1000.0,
            input=_env_int("BRONCO_SETTLE_INPUT_MS", 100) / 1000.0,
            upload=_env_int("BRONCO_SETTLE_UPLOAD_MS", 0) / 1000.0,
        )


@dataclass
class BroncoConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    request_timeout: float = 30.0
    reconnect_delay: float = 3.0
    keepalive_interval: float = 20.0
    type_debounce: float = 0.5
    control_poll_interval: float = 1.0
    recordings_dir: str = field(default_factory=lambda: expand_path(DEFAULT_RECORDINGS_DIR))
    state_file: str = field(default_factory=lambda: expand_path(DEFAULT_STATE_FILE))
    replay_timing: ReplayTiming = field(default_factory=ReplayTiming)

    @property
    def ws_url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> BroncoConfig:
        host = (os.environ.get("BRONCO_HOST") or DEFAULT_HOST).strip() or DEFAULT_HOST
        port = _env_int("BRONCO_PORT", DEFAULT_PORT)
        if port < 1 or port > 65535:
            port = DEFAULT_PORT
        return cls(
            host=host,
            port=port,
            request_timeout=_env_float("BRONCO_REQUEST_TIMEOUT", 30.0) or 30.0,
            reconnect_delay=_env_float("BRONCO_RECONNECT_DELAY", 3.0),
            keepalive_interval=_env_float("BRONCO_KEEPALIVE_INTERVAL", 20.0) or 20.0,
            type_debounce=_env_int("BRONCO_TYPE_DEBOUNCE_MS", 500) / 1000.0,
            control_poll_interval=(_env_int("BRONCO_CONTROL_POLL_MS", 1000) or 1000) / 1000.0,
            recordings_dir=expand_path(os.environ.get("BRONCO_RECORDINGS_DIR") or DEFAULT_RECORDINGS_DIR),
            state_file=expand_path(os.environ.get("BRONCO_STATE_FILE") or DEFAULT_STATE_FILE),
            replay_timing=ReplayTiming.from_env(),
        )
