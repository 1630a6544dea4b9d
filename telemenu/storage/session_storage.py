"""Per-chat session storage for conversation state."""

from __future__ import annotations

import asyncio
import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import structlog

logger = structlog.get_logger()

_UNSAFE_KEY_CHARS_RE = re.compile(r"[^A-Za-z0-9_.-]")


class SessionStorage(Protocol):
    """Blob storage keyed by chat. Keys never span chats."""

    async def load(self, chat_key: str) -> Optional[Dict[str, Any]]:
        ...

    async def save(self, chat_key: str, blob: Dict[str, Any]) -> None:
        ...

    async def delete(self, chat_key: str) -> None:
        ...


class MemorySessionStorage:
    """Process-local storage; state is lost on restart.

    Blobs are kept as JSON text so values read back exactly as they would
    from :class:`JsonFileSessionStorage`.
    """

    def __init__(self) -> None:
        self._blobs: Dict[str, str] = {}

    async def load(self, chat_key: str) -> Optional[Dict[str, Any]]:
        raw = self._blobs.get(chat_key)
        return json.loads(raw) if raw is not None else None

    async def save(self, chat_key: str, blob: Dict[str, Any]) -> None:
        self._blobs[chat_key] = json.dumps(blob, ensure_ascii=False)

    async def delete(self, chat_key: str) -> None:
        self._blobs.pop(chat_key, None)

    def __len__(self) -> int:
        return len(self._blobs)


class JsonFileSessionStorage:
    """One JSON file per chat key under ``directory``, replaced atomically.

    File access runs in a worker thread so the event loop keeps serving
    other chats.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _path(self, chat_key: str) -> Path:
        safe_key = _UNSAFE_KEY_CHARS_RE.sub("_", chat_key)
        return self.directory / f"{safe_key}.json"

    async def load(self, chat_key: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._load_sync, self._path(chat_key))

    async def save(self, chat_key: str, blob: Dict[str, Any]) -> None:
        payload = {
            "chat_key": chat_key,
            "updated_at": datetime.now(timezone.utc).isoformat(),
            "data": blob,
        }
        content = json.dumps(payload, ensure_ascii=False, indent=2)
        await asyncio.to_thread(self._write_sync, self._path(chat_key), content)

    async def delete(self, chat_key: str) -> None:
        await asyncio.to_thread(self._path(chat_key).unlink, missing_ok=True)

    @staticmethod
    def _load_sync(path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(
                "Discarding unreadable session file", path=str(path), error=str(e)
            )
            return None
        if not isinstance(payload, dict):
            return None
        blob = payload.get("data")
        return blob if isinstance(blob, dict) else None

    @staticmethod
    def _write_sync(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = path.with_suffix(f"{path.suffix}.tmp")
        tmp_file.write_text(content, encoding="utf-8")
        tmp_file.replace(path)
