"""Redaction utilities for logging.

Prefers safety over fidelity: typed text, cookie values, script bodies and large
payloads never reach the logs.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_SENSITIVE_SUBSTRINGS = (
    "token",
    "secret",
    "password",
    "passwd",
    "authorization",
    "cookie",
    "session",
    "api-key",
    "api_key",
    "apikey",
)
_SENSITIVE_EXACT = {"auth", "pwd", "pass"}

# tool -> argument keys whose values are always summarized
_TOOL_REDACTIONS: dict[str, frozenset[str]] = {
    "browser_type": frozenset({"text"}),
    "browser_set_cookie": frozenset({"value"}),
    "browser_evaluate": frozenset({"code"}),
    "browser_handle_dialog": frozenset({"prompttext"}),
}


def is_sensitive_key(key: str) -> bool:
    k = (key or "").strip().lower()
    if not k:
        return False
    if k in _SENSITIVE_EXACT:
        return True
    return any(s in k for s in _SENSITIVE_SUBSTRINGS)


def redacted_summary(value: Any) -> str:
    if value is None:
        return "<redacted>"
    if isinstance(value, (bytes, bytearray, str)):
        return f"<redacted len={len(value)}>"
    if isinstance(value, (list, tuple, set, dict)):
        return f"<redacted items={len(value)}>"
    return "<redacted>"


def redact_url(url: str) -> str:
    """Drop userinfo and redact sensitive query values; other params are kept."""
    if not isinstance(url, str) or not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    netloc = parts.netloc.split("@", 1)[1] if "@" in parts.netloc else parts.netloc
    query = parts.query
    if query:
        pairs = parse_qsl(query, keep_blank_values=True)
        if any(is_sensitive_key(k) for k, _ in pairs):
            query = urlencode([(k, "<redacted>" if is_sensitive_key(k) and v else v) for k, v in pairs])
    if netloc == parts.netloc and query == parts.query:
        return url
    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


def redact_tool_arguments(tool: str, args: dict[str, Any]) -> dict[str, Any]:
    """Redact tool arguments for safe logging."""
    if not isinstance(args, dict):
        return {}
    return _redact_any(args, tool=tool, key=None)


def _redact_any(value: Any, *, tool: str, key: str | None) -> Any:
    if isinstance(value, dict):
        return {k: _redact_any(v, tool=tool, key=str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact_any(v, tool=tool, key=key) for v in value]

    lk = (key or "").lower()
    if lk == "url" and isinstance(value, str):
        return redact_url(value)
    if lk in _TOOL_REDACTIONS.get(tool, frozenset()):
        return redacted_summary(value)
    if lk == "filecontent":
        return redacted_summary(value)
    if is_sensitive_key(lk):
        return redacted_summary(value)
    return value


def redact_jsonrpc_for_log(payload: dict[str, Any], *, max_text_chars: int = 512) -> dict[str, Any]:
    """Redact a JSON-RPC frame for trace logs: tool args, images and long text."""
    msg = dict(payload) if isinstance(payload, dict) else {}

    params = msg.get("params")
    if msg.get("method") == "tools/call" and isinstance(params, dict):
        name = params.get("name")
        args = params.get("arguments")
        if isinstance(name, str) and isinstance(args, dict):
            msg["params"] = {**params, "arguments": redact_tool_arguments(name, args)}

    result = msg.get("result")
    if isinstance(result, dict) and isinstance(result.get("content"), list):
        content = []
        for item in result["content"]:
            if isinstance(item, dict):
                item = dict(item)
                if item.get("type") == "image" and isinstance(item.get("data"), str):
                    item["data"] = f"<omitted image base64 len={len(item['data'])}>"
                text = item.get("text")
                if isinstance(text, str) and len(text) > max_text_chars:
                    item["text"] = text[:max_text_chars] + f"… <truncated len={len(text)}>"
            content.append(item)
        msg["result"] = {**result, "content": content}
    return msg
