"""Disk-backed recording store.

- One JSON file per recording under the recordings directory.
- File stems use an injective encoding of the name: [a-z0-9-] kept as-is, every
  other UTF-8 byte written as `_xx`. Distinct names never share a file, even on
  case-insensitive filesystems.
- Writes go to a temp file first and are moved into place with os.replace.
- Corrupt files are logged and skipped by `list()`.
"""

from __future__ import annotations

import json
import logging
import os
import string
from contextlib import suppress
from pathlib import Path
from typing import Any

from ..errors import InvalidParamsError, RecordingNotFoundError
from .model import Recording

logger = logging.getLogger("mcp.bronco.recordings")

_PLAIN = frozenset(string.ascii_lowercase + string.digits + "-")
SUFFIX = ".json"


def encode_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidParamsError("Recording name is required")
    out: list[str] = []
    for ch in name:
        if ch in _PLAIN:
            out.append(ch)
        else:
            out.extend(f"_{b:02x}" for b in ch.encode("utf-8"))
    return "".join(out)


def decode_name(stem: str) -> str:
    data = bytearray()
    i = 0
    while i < len(stem):
        ch = stem[i]
        if ch == "_":
            data.append(int(stem[i + 1 : i + 3], 16))
            i += 3
        else:
            data.extend(ch.encode("ascii"))
            i += 1
    return data.decode("utf-8")


class RecordingStore:
    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()

    def path_for(self, name: str) -> Path:
        return self.directory / f"{encode_name(name)}{SUFFIX}"

    def _ensure_dir(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, recording: Recording) -> dict[str, Any]:
        path = self.path_for(recording.name)
        self._ensure_dir()
        text = json.dumps(recording.to_dict(), ensure_ascii=False, indent=2)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(text, encoding="utf-8")
        with suppress(OSError):
            os.chmod(tmp, 0o600)
        tmp.replace(path)
        logger.info("recording saved name=%s actions=%s file=%s", recording.name, len(recording.actions), path)
        return {"success": True, "name": recording.name, "file": str(path), "actionCount": len(recording.actions)}

    def exists(self, name: str) -> bool:
        return self.path_for(name).is_file()

    def get(self, name: str) -> Recording:
        path = self.path_for(name)
        if not path.is_file():
            raise RecordingNotFoundError(name)
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Recording file {path} does not hold a JSON object")
        recording = Recording.from_dict(data)
        if not recording.name:
            recording.name = name
        return recording

    def delete(self, name: str) -> dict[str, Any]:
        path = self.path_for(name)
        if not path.is_file():
            raise RecordingNotFoundError(name)
        path.unlink()
        logger.info("recording deleted name=%s", name)
        return {"success": True, "deleted": name}

    def list(self) -> dict[str, dict[str, Any]]:
        if not self.directory.is_dir():
            return {}
        out: dict[str, dict[str, Any]] = {}
        for path in sorted(self.directory.glob(f"*{SUFFIX}")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                if not isinstance(data, dict):
                    raise ValueError("not a JSON object")
                recording = Recording.from_dict(data)
            except (OSError, ValueError) as exc:
                logger.error("skipping unreadable recording file=%s error=%s", path.name, exc)
                continue
            name = recording.name
            if not name:
                with suppress(ValueError):
                    name = decode_name(path.stem)
            if not name:
                continue
            recording.name = name
            out[name] = {**recording.summary(), "file": str(path)}
        return out
