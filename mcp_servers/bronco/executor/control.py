"""Control state owned by the executor.

All transitions of {transportConnected, controlEnabled, targetSurfaceId} live here
so the clearing rules hold everywhere:
- disabling control clears the target
- destruction of the targeted surface clears the target
- only `connect` sets the target, and only while control is enabled

`controlEnabled` is the only field persisted across restarts (atomic JSON write).
The file is also the channel for `bronco-browser control`: a running agent polls
it with `poll_state_file`.
"""

from __future__ import annotations

import json
import logging
import os
import time
from contextlib import suppress
from pathlib import Path
from typing import Any

from ..errors import ControlDisabledError

logger = logging.getLogger("mcp.bronco.control")

SurfaceId = int


def load_control_enabled(path: Path) -> bool:
    try:
        if not path.is_file():
            return False
        obj = json.loads(path.read_text(encoding="utf-8", errors="replace"))
    except (OSError, ValueError) as exc:
        logger.warning("control_state_unreadable path=%s error=%s", path, exc)
        return False
    return bool(obj.get("controlEnabled")) if isinstance(obj, dict) else False


def save_control_enabled(path: Path, enabled: bool) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"version": 1, "updatedAt": int(time.time() * 1000), "controlEnabled": bool(enabled)}
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    with suppress(OSError):
        os.chmod(tmp, 0o600)
    tmp.replace(path)


class ControlState:
    def __init__(self, *, state_file: str | Path | None = None, control_enabled: bool | None = None) -> None:
        self._state_file = Path(state_file) if state_file else None
        if control_enabled is None:
            control_enabled = load_control_enabled(self._state_file) if self._state_file else False
        self._control_enabled = bool(control_enabled)
        self._transport_connected = False
        self._target: SurfaceId | None = None
        self._seen_signature = self._file_signature()

    @property
    def control_enabled(self) -> bool:
        return self._control_enabled

    @property
    def transport_connected(self) -> bool:
        return self._transport_connected

    @property
    def target(self) -> SurfaceId | None:
        return self._target

    def set_control_enabled(self, enabled: bool, *, persist: bool = True) -> bool:
        enabled = bool(enabled)
        self._control_enabled = enabled
        if not enabled and self._target is not None:
            logger.info("control disabled, releasing target=%s", self._target)
            self._target = None
        if persist and self._state_file is not None:
            try:
                save_control_enabled(self._state_file, enabled)
            except OSError as exc:
                logger.warning("control_state_save_failed path=%s error=%s", self._state_file, exc)
            self._seen_signature = self._file_signature()
        return enabled

    # ───────────────────────── State file ─────────────────────────

    def _file_signature(self) -> tuple[int, int, int] | None:
        if self._state_file is None:
            return None
        try:
            st = self._state_file.stat()
        except OSError:
            return None
        return (st.st_ino, st.st_mtime_ns, st.st_size)

    def poll_state_file(self) -> bool | None:
        """Return the persisted flag when another process rewrote it to a new value.

        Returns None when the file is unchanged since the last look, or when it
        still agrees with the in-memory flag.
        """
        signature = self._file_signature()
        if signature is None or signature == self._seen_signature:
            return None
        self._seen_signature = signature
        assert self._state_file is not None
        enabled = load_control_enabled(self._state_file)
        return enabled if enabled != self._control_enabled else None

    def set_transport_connected(self, connected: bool) -> None:
        self._transport_connected = bool(connected)

    def connect(self, surface_id: SurfaceId) -> None:
        if not self._control_enabled:
            raise ControlDisabledError()
        self._target = surface_id

    def disconnect(self) -> SurfaceId | None:
        previous = self._target
        self._target = None
        return previous

    def surface_destroyed(self, surface_id: SurfaceId) -> bool:
        """Drop the target when its surface went away out-of-band."""
        if self._target is not None and self._target == surface_id:
            logger.info("targeted surface %s destroyed", surface_id)
            self._target = None
            return True
        return False

    def snapshot(self) -> dict[str, Any]:
        return {
            "transportConnected": self._transport_connected,
            "controlEnabled": self._control_enabled,
            "targetSurfaceId": self._target,
        }
