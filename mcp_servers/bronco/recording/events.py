"""Typed events a host surface emits to the recorder sink.

Targets are BeautifulSoup `Tag`s living in the surface's current document, so the
selector generator can check uniqueness against that document.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from bs4 import Tag


@dataclass(frozen=True)
class PointerActivation:
    target: Tag
    url: str = ""


@dataclass(frozen=True)
class ValueCommit:
    """A text-like field changed value (fires per edit; the recorder debounces)."""

    target: Tag
    value: str
    url: str = ""


@dataclass(frozen=True)
class SelectionChange:
    target: Tag
    value: str
    text: str | None = None
    url: str = ""


@dataclass(frozen=True)
class KeyDown:
    target: Tag
    key: str
    url: str = ""


@dataclass(frozen=True)
class FileMeta:
    name: str
    size: int
    mime_type: str = ""


@dataclass(frozen=True)
class FileChange:
    target: Tag
    files: tuple[FileMeta, ...] = field(default_factory=tuple)
    url: str = ""


SurfaceEvent = Union[PointerActivation, ValueCommit, SelectionChange, KeyDown, FileChange]
