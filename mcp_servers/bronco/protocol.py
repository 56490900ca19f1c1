"""Bridge wire format.

One JSON object per websocket text frame:
- request:  {"id": int, "method": str, "params": {...}}
- response: {"id": int, "result": any} or {"id": int, "error": str}
- control:  {"type": "keepalive"} / {"type": "extension_ready"} (never correlated)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

MSG_KEEPALIVE = "keepalive"
MSG_EXTENSION_READY = "extension_ready"
CONTROL_TYPES = frozenset({MSG_KEEPALIVE, MSG_EXTENSION_READY})


@dataclass(frozen=True)
class Request:
    id: int
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "method": self.method, "params": self.params}


@dataclass(frozen=True)
class Response:
    id: int
    result: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"id": self.id, "error": self.error}
        return {"id": self.id, "result": self.result}


def encode(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False)


def decode(raw: str | bytes) -> dict[str, Any] | None:
    """Parse a frame; anything that is not a JSON object yields None."""
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return msg if isinstance(msg, dict) else None


def control_type(msg: dict[str, Any]) -> str | None:
    mtype = msg.get("type")
    if isinstance(mtype, str) and mtype in CONTROL_TYPES:
        return mtype
    return None


def _coerce_id(raw: Any) -> int | None:
    # bool is an int subclass; a `true` id is not a request id.
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def parse_request(msg: dict[str, Any]) -> Request | None:
    req_id = _coerce_id(msg.get("id"))
    method = msg.get("method")
    if req_id is None or not isinstance(method, str) or not method.strip():
        return None
    raw_params = msg.get("params")
    params = {k: v for k, v in raw_params.items() if isinstance(k, str)} if isinstance(raw_params, dict) else {}
    return Request(id=req_id, method=method.strip(), params=params)


def parse_response(msg: dict[str, Any]) -> Response | None:
    req_id = _coerce_id(msg.get("id"))
    if req_id is None or "method" in msg:
        return None
    if "error" in msg and msg.get("error") is not None:
        err = msg.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str):
            err = err["message"]
        return Response(id=req_id, error=str(err) or "Remote command failed")
    return Response(id=req_id, result=msg.get("result"))


def keepalive() -> dict[str, Any]:
    return {"type": MSG_KEEPALIVE}


def extension_ready() -> dict[str, Any]:
    return {"type": MSG_EXTENSION_READY}
