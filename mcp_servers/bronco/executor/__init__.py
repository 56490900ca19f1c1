"""Browser-side command execution: control state, command registry and hosts."""

from __future__ import annotations

from .commands import CATALOG, CommandRegistry, CommandSpec, build_registry
from .control import ControlState
from .executor import CommandExecutor
from .host import HostAutomation, SurfaceInfo
from .memory_host import MemoryHost

__all__ = [
    "CATALOG",
    "CommandExecutor",
    "CommandRegistry",
    "CommandSpec",
    "ControlState",
    "HostAutomation",
    "MemoryHost",
    "SurfaceInfo",
    "build_registry",
]
