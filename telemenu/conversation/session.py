"""Durable per-chat conversation state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from ..storage.session_storage import SessionStorage

logger = structlog.get_logger()


@dataclass
class ConversationRecord:
    """State of one conversation instance (chat, action).

    ``log`` holds one ``{"kind", "value"}`` entry per completed step; on
    every update the handler is replayed against it. ``payload`` is frozen
    once ``payload_resolved`` is set, including when nothing was found.
    """

    action_id: str
    payload: Optional[Dict[str, Any]] = None
    payload_resolved: bool = False
    prompt_message_id: Optional[int] = None
    prompt_is_photo: bool = False
    origin_menu_id: Optional[str] = None
    log: List[Dict[str, Any]] = field(default_factory=list)
    waiting: Optional[Dict[str, Any]] = None
    parent_action_id: Optional[str] = None

    def freeze_payload(self, payload: Optional[Dict[str, Any]]) -> None:
        if self.payload_resolved:
            return
        self.payload = dict(payload) if payload is not None else None
        self.payload_resolved = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_id": self.action_id,
            "payload": self.payload,
            "payload_resolved": self.payload_resolved,
            "prompt_message_id": self.prompt_message_id,
            "prompt_is_photo": self.prompt_is_photo,
            "origin_menu_id": self.origin_menu_id,
            "log": list(self.log),
            "waiting": self.waiting,
            "parent_action_id": self.parent_action_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationRecord":
        return cls(
            action_id=str(data["action_id"]),
            payload=data.get("payload"),
            payload_resolved=bool(data.get("payload_resolved", False)),
            prompt_message_id=data.get("prompt_message_id"),
            prompt_is_photo=bool(data.get("prompt_is_photo", False)),
            origin_menu_id=data.get("origin_menu_id"),
            log=list(data.get("log") or []),
            waiting=data.get("waiting"),
            parent_action_id=data.get("parent_action_id"),
        )


_NO_STAGED = object()


@dataclass
class ChatSession:
    """Everything persisted for one chat."""

    conversations: Dict[str, ConversationRecord] = field(default_factory=dict)
    active_action_id: Optional[str] = None
    staged_payload: Any = _NO_STAGED

    @property
    def active(self) -> Optional[ConversationRecord]:
        if self.active_action_id is None:
            return None
        return self.conversations.get(self.active_action_id)

    def begin(self, record: ConversationRecord) -> None:
        self.conversations[record.action_id] = record
        self.active_action_id = record.action_id

    def end(self, action_id: str) -> None:
        self.conversations.pop(action_id, None)
        if self.active_action_id == action_id:
            self.active_action_id = None

    def stage_payload(self, payload: Optional[Dict[str, Any]]) -> None:
        self.staged_payload = payload

    def pop_staged_payload(self) -> Any:
        """Return and clear the staged payload (``_NO_STAGED`` if none)."""
        value = self.staged_payload
        self.staged_payload = _NO_STAGED
        return value

    @property
    def is_empty(self) -> bool:
        return not self.conversations and self.staged_payload is _NO_STAGED

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "conversations": {
                key: record.to_dict() for key, record in self.conversations.items()
            },
            "active_action_id": self.active_action_id,
        }
        if self.staged_payload is not _NO_STAGED:
            data["staged_payload"] = self.staged_payload
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ChatSession":
        if not data:
            return cls()
        conversations = {
            key: ConversationRecord.from_dict(value)
            for key, value in (data.get("conversations") or {}).items()
        }
        session = cls(
            conversations=conversations,
            active_action_id=data.get("active_action_id"),
        )
        if "staged_payload" in data:
            session.staged_payload = data["staged_payload"]
        if session.active_action_id not in session.conversations:
            session.active_action_id = None
        return session


def is_staged(value: Any) -> bool:
    return value is not _NO_STAGED


class ChatSessionStore:
    """Load/save ChatSession objects through a SessionStorage backend."""

    def __init__(self, storage: SessionStorage) -> None:
        self.storage = storage

    @staticmethod
    def chat_key(chat_id: int) -> str:
        return f"chat:{chat_id}"

    async def load(self, chat_id: int) -> ChatSession:
        """Load the chat's session; a blob of the wrong shape loads as empty."""
        blob = await self.storage.load(self.chat_key(chat_id))
        try:
            return ChatSession.from_dict(blob)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                "Discarding malformed chat session",
                chat_id=chat_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ChatSession()

    async def save(self, chat_id: int, session: ChatSession) -> None:
        key = self.chat_key(chat_id)
        if session.is_empty:
            await self.storage.delete(key)
            return
        await self.storage.save(key, session.to_dict())
