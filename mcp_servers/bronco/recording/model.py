"""Recording data model.

Persisted shape (one JSON object per recording):

    {"name": str, "actions": [Action...], "createdAt": epoch_ms, "originUrl": str}

Actions are tagged on "type". Unknown tags survive a load/save cycle untouched
and are reported as skipped on replay.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, ClassVar


def now_ms() -> int:
    return int(time.time() * 1000)


def _opt_str(raw: Any) -> str | None:
    return raw if isinstance(raw, str) else None


def _opt_int(raw: Any) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return int(raw)
    return None


@dataclass
class Action:
    kind: ClassVar[str] = ""

    selector: str | None = None
    url: str | None = None
    timestamp: int | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.kind}
        if self.selector is not None:
            out["selector"] = self.selector
        out.update(self._fields())
        if self.url is not None and "url" not in out:
            out["url"] = self.url
        if self.timestamp is not None:
            out["timestamp"] = self.timestamp
        return out

    def _fields(self) -> dict[str, Any]:
        return {}

    @classmethod
    def _from(cls, data: dict[str, Any]) -> Action:
        return cls(
            selector=_opt_str(data.get("selector")),
            url=_opt_str(data.get("url")),
            timestamp=_opt_int(data.get("timestamp")),
        )


@dataclass
class NavigateAction(Action):
    kind: ClassVar[str] = "navigate"

    title: str | None = None

    def _fields(self) -> dict[str, Any]:
        out: dict[str, Any] = {"url": self.url or ""}
        if self.title:
            out["title"] = self.title
        return out

    @classmethod
    def _from(cls, data: dict[str, Any]) -> NavigateAction:
        return cls(
            url=_opt_str(data.get("url")) or "",
            title=_opt_str(data.get("title")),
            timestamp=_opt_int(data.get("timestamp")),
        )


@dataclass
class ClickAction(Action):
    kind: ClassVar[str] = "click"

    tag: str | None = None
    text: str | None = None

    def _fields(self) -> dict[str, Any]:
        return {
            **({"tag": self.tag} if self.tag else {}),
            **({"text": self.text} if self.text else {}),
        }

    @classmethod
    def _from(cls, data: dict[str, Any]) -> ClickAction:
        base = Action._from(data)
        return cls(
            selector=base.selector,
            url=base.url,
            timestamp=base.timestamp,
            tag=_opt_str(data.get("tag")),
            text=_opt_str(data.get("text")),
        )


@dataclass
class TypeAction(Action):
    kind: ClassVar[str] = "type"

    value: str = ""

    def _fields(self) -> dict[str, Any]:
        return {"value": self.value}

    @classmethod
    def _from(cls, data: dict[str, Any]) -> TypeAction:
        base = Action._from(data)
        return cls(selector=base.selector, url=base.url, timestamp=base.timestamp, value=str(data.get("value") or ""))


@dataclass
class SelectAction(Action):
    kind: ClassVar[str] = "select"

    value: str = ""
    text: str | None = None

    def _fields(self) -> dict[str, Any]:
        return {"value": self.value, **({"text": self.text} if self.text else {})}

    @classmethod
    def _from(cls, data: dict[str, Any]) -> SelectAction:
        base = Action._from(data)
        return cls(
            selector=base.selector,
            url=base.url,
            timestamp=base.timestamp,
            value=str(data.get("value") or ""),
            text=_opt_str(data.get("text")),
        )


@dataclass
class KeypressAction(Action):
    kind: ClassVar[str] = "keypress"

    key: str = ""

    def _fields(self) -> dict[str, Any]:
        return {"key": self.key}

    @classmethod
    def _from(cls, data: dict[str, Any]) -> KeypressAction:
        base = Action._from(data)
        return cls(selector=base.selector, url=base.url, timestamp=base.timestamp, key=str(data.get("key") or ""))


@dataclass
class UploadAction(Action):
    """File chosen in a file input. Only metadata is captured, never the bytes."""

    kind: ClassVar[str] = "upload"

    file_name: str = ""
    file_size: int | None = None
    mime_type: str | None = None
    file_path: str | None = None

    def _fields(self) -> dict[str, Any]:
        out: dict[str, Any] = {"fileName": self.file_name}
        if self.file_size is not None:
            out["fileSize"] = self.file_size
        if self.mime_type:
            out["mimeType"] = self.mime_type
        if self.file_path:
            out["filePath"] = self.file_path
        return out

    @classmethod
    def _from(cls, data: dict[str, Any]) -> UploadAction:
        base = Action._from(data)
        return cls(
            selector=base.selector,
            url=base.url,
            timestamp=base.timestamp,
            file_name=str(data.get("fileName") or ""),
            file_size=_opt_int(data.get("fileSize")),
            mime_type=_opt_str(data.get("mimeType")),
            file_path=_opt_str(data.get("filePath")),
        )


@dataclass
class UnknownAction(Action):
    """An action whose tag this version does not understand (kept verbatim)."""

    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def type_name(self) -> str:
        return str(self.raw.get("type") or "")

    def to_dict(self) -> dict[str, Any]:
        return dict(self.raw)


ACTION_TYPES: dict[str, type[Action]] = {
    cls.kind: cls for cls in (NavigateAction, ClickAction, TypeAction, SelectAction, KeypressAction, UploadAction)
}


def action_type_name(action: Action) -> str:
    return action.type_name if isinstance(action, UnknownAction) else action.kind


def action_from_dict(data: dict[str, Any]) -> Action:
    cls = ACTION_TYPES.get(str(data.get("type") or ""))
    if cls is None:
        return UnknownAction(selector=_opt_str(data.get("selector")), raw=dict(data))
    return cls._from(data)


@dataclass
class Recording:
    name: str
    actions: list[Action] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)
    origin_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "actions": [a.to_dict() for a in self.actions],
            "createdAt": self.created_at,
            "originUrl": self.origin_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Recording:
        raw_actions = data.get("actions")
        actions: list[Action] = []
        if isinstance(raw_actions, list):
            actions = [action_from_dict(a) for a in raw_actions if isinstance(a, dict)]
        origin = data.get("originUrl")
        if not isinstance(origin, str):
            # Older files stored the origin under "url".
            origin = data.get("url") if isinstance(data.get("url"), str) else ""
        return cls(
            name=str(data.get("name") or ""),
            actions=actions,
            created_at=_opt_int(data.get("createdAt")) or 0,
            origin_url=origin,
        )

    def summary(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "actionCount": len(self.actions),
            "createdAt": self.created_at,
            "originUrl": self.origin_url,
        }
