"""
Type definitions for MCP tool responses.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..bridge import BridgeServer
    from ..config import BroncoConfig
    from ..recording.store import RecordingStore


@dataclass(slots=True)
class ToolContent:
    """Single content item in tool response."""

    type: str  # "text" or "image"
    text: str | None = None
    data: str | None = None  # base64 for images
    mime_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to MCP content format."""
        if self.type == "image":
            return {"type": "image", "data": self.data, "mimeType": self.mime_type}
        return {"type": "text", "text": self.text}


def _dump(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


@dataclass(slots=True)
class ToolResult:
    """Result of a tool execution."""

    content: list[ToolContent] = field(default_factory=list)
    is_error: bool = False
    # Raw payload kept for in-process callers and tests; not sent over the wire.
    data: Any | None = None

    @classmethod
    def text(cls, text: str) -> ToolResult:
        return cls(content=[ToolContent(type="text", text=text or "")])

    @classmethod
    def error(
        cls,
        message: str,
        *,
        tool: str | None = None,
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> ToolResult:
        """Create error result: `Error: <message>` plus optional hint lines."""
        payload: dict[str, Any] = {"ok": False, "error": message}
        lines = [f"Error: {message}"]
        if tool:
            payload["tool"] = tool
        if suggestion:
            payload["suggestion"] = suggestion
            lines.append(f"Suggestion: {suggestion}")
        if details:
            payload["details"] = details
            lines.append(f"Details: {_dump(details)}")
        return cls(content=[ToolContent(type="text", text="\n".join(lines))], is_error=True, data=payload)

    @classmethod
    def json(cls, data: Any) -> ToolResult:
        """Create result with pretty-printed JSON text content."""
        return cls(content=[ToolContent(type="text", text=_dump(data))], data=data)

    @classmethod
    def image(cls, data_b64: str, mime_type: str = "image/png") -> ToolResult:
        """Create result with single image content. Falls back to an error if data is empty."""
        if not data_b64:
            return cls.error("Screenshot data is empty")
        return cls(content=[ToolContent(type="image", data=data_b64, mime_type=mime_type)])

    @classmethod
    def from_data_url(cls, data_url: str) -> ToolResult:
        """Image result from a `data:<mime>;base64,<payload>` URL."""
        if not isinstance(data_url, str) or not data_url.startswith("data:") or "," not in data_url:
            return cls.error("Screenshot did not return a data URL")
        header, payload = data_url.split(",", 1)
        mime_type = header[5:].split(";", 1)[0] or "image/png"
        return cls.image(payload, mime_type)

    def to_content_list(self) -> list[dict[str, Any]]:
        """Convert to MCP content list format."""
        return [c.to_dict() for c in self.content]


@dataclass(slots=True)
class ServerContext:
    """What tool handlers get to work with."""

    bridge: BridgeServer
    store: RecordingStore
    config: BroncoConfig


HandlerFunc = Callable[[ServerContext, dict[str, Any]], ToolResult]
