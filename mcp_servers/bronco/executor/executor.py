"""Command executor: gating, target bookkeeping and recording wiring over a host."""

from __future__ import annotations

import logging
from typing import Any

from ..config import BroncoConfig
from ..errors import ControlDisabledError, NoTargetError, TargetNotFoundError
from ..recording.recorder import ActionRecorder
from ..recording.store import RecordingStore
from .commands import CommandRegistry, build_registry
from .control import ControlState
from .host import HostAutomation

logger = logging.getLogger("mcp.bronco.executor")


class CommandExecutor:
    def __init__(
        self,
        host: HostAutomation,
        control: ControlState | None = None,
        *,
        config: BroncoConfig | None = None,
        recorder: ActionRecorder | None = None,
        store: RecordingStore | None = None,
        registry: CommandRegistry | None = None,
    ) -> None:
        self.config = config or BroncoConfig()
        self.host = host
        self.control = control or ControlState(state_file=self.config.state_file)
        self.recorder = recorder or ActionRecorder(debounce=self.config.type_debounce)
        self.store = store or RecordingStore(self.config.recordings_dir)
        self.registry = registry or build_registry()
        self._recording_surface: int | None = None
        host.on_surface_closed(self.surface_closed)

    async def execute(self, method: str, params: dict[str, Any] | None = None) -> Any:
        spec = self.registry.get(method)
        if spec.requires_control and not self.control.control_enabled:
            raise ControlDisabledError()
        target = await self._require_target() if spec.requires_target else None
        return await spec.handler(self, target, dict(params or {}))

    async def _require_target(self) -> int:
        target = self.control.target
        if target is None:
            raise NoTargetError()
        if await self.host.get_surface(target) is None:
            self.surface_closed(target)
            raise TargetNotFoundError(target)
        return target

    # ───────────────────────── Control ─────────────────────────

    def set_control_enabled(self, enabled: bool, *, persist: bool = True) -> bool:
        if not enabled:
            self.stop_recording_if_active()
        return self.control.set_control_enabled(enabled, persist=persist)

    def sync_control_from_disk(self) -> bool | None:
        """Apply a control flag written by another process (`bronco-browser control`)."""
        enabled = self.control.poll_state_file()
        if enabled is None:
            return None
        logger.info("control flag changed on disk enabled=%s", enabled)
        return self.set_control_enabled(enabled, persist=False)

    def surface_closed(self, surface_id: int) -> None:
        if self._recording_surface == surface_id:
            self.stop_recording()
        self.control.surface_destroyed(surface_id)

    # ───────────────────────── Recording ─────────────────────────

    def start_recording(self, surface_id: int, url: str, title: str | None = None) -> dict[str, Any]:
        self.stop_recording_if_active()
        result = self.recorder.start(url, title)
        self.host.subscribe(surface_id, self.recorder.handle_event)
        self._recording_surface = surface_id
        return {**result, "tabId": surface_id}

    def stop_recording(self) -> dict[str, Any]:
        surface_id, self._recording_surface = self._recording_surface, None
        if surface_id is not None:
            self.host.unsubscribe(surface_id, self.recorder.handle_event)
        return self.recorder.stop()

    def stop_recording_if_active(self) -> None:
        if self.recorder.is_recording:
            self.stop_recording()
