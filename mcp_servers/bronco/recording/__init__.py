"""Action recording, selector generation, persistence and replay."""

from __future__ import annotations

from .model import Action, Recording, action_from_dict
from .recorder import ActionRecorder
from .replay import ReplayEngine
from .selectors import generate_selector
from .store import RecordingStore

__all__ = [
    "Action",
    "ActionRecorder",
    "Recording",
    "RecordingStore",
    "ReplayEngine",
    "action_from_dict",
    "generate_selector",
]
