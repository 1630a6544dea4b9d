"""Inbound events and per-update context objects."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional


class EventKind(str, enum.Enum):
    COMMAND = "command"
    TEXT = "text"
    CALLBACK = "callback"
    PHOTO = "photo"


@dataclass
class InboundEvent:
    """Transport-neutral view of one incoming update, scoped to a chat.

    ``message_id`` is the message the update refers to: the user's own
    message for commands/text/photos, or the bot message carrying the pressed
    button for callbacks.
    """

    chat_id: int
    kind: EventKind
    text: Optional[str] = None
    command: Optional[str] = None
    args: list[str] = field(default_factory=list)
    callback_data: Optional[str] = None
    callback_query_id: Optional[str] = None
    message_id: Optional[int] = None
    message_is_photo: bool = False
    photo_file_id: Optional[str] = None
    sender: dict[str, Any] = field(default_factory=dict)
    is_private: bool = True
    update_id: Optional[int] = None

    @property
    def is_callback(self) -> bool:
        return self.kind is EventKind.CALLBACK

    @property
    def is_message(self) -> bool:
        return self.kind is not EventKind.CALLBACK


@dataclass
class MenuContext:
    """Context handed to builders, guards, labels and action handlers."""

    chat_id: int
    event: Optional[InboundEvent] = None
    user: dict[str, Any] = field(default_factory=dict)
    synthetic: bool = False
    callback_answered: bool = False

    @classmethod
    def synthetic_context(cls) -> "MenuContext":
        """Best-effort context used while scanning menus without a real update."""
        return cls(chat_id=0, synthetic=True)

    @property
    def sender(self) -> dict[str, Any]:
        """Telegram user who sent the update (``id``, ``first_name``, ...)."""
        if self.event is None:
            return {}
        return self.event.sender

    @property
    def text(self) -> Optional[str]:
        return self.event.text if self.event else None
