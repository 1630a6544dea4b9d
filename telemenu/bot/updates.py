"""Convert python-telegram-bot updates into engine events."""

from __future__ import annotations

from typing import Any, Optional

from telegram import Update, User
from telegram.constants import ChatType

from ..engine.context import EventKind, InboundEvent


def parse_command(text: str) -> Optional[tuple[str, list[str]]]:
    """Split ``/cmd@bot arg1 arg2`` into ("cmd", ["arg1", "arg2"])."""
    if not text.startswith("/"):
        return None
    head, *args = text.split()
    name = head[1:].split("@", 1)[0].lower()
    if not name:
        return None
    return name, args


def sender_info(user: Optional[User]) -> dict[str, Any]:
    if user is None:
        return {}
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "username": user.username,
        "language_code": user.language_code,
    }


def event_from_update(update: Update) -> Optional[InboundEvent]:
    """Build an InboundEvent, or None for updates the engine does not handle."""
    chat = update.effective_chat
    if chat is None:
        return None

    common: dict[str, Any] = {
        "chat_id": chat.id,
        "sender": sender_info(update.effective_user),
        "is_private": chat.type == ChatType.PRIVATE,
        "update_id": update.update_id,
    }

    query = update.callback_query
    if query is not None:
        message = query.message
        return InboundEvent(
            kind=EventKind.CALLBACK,
            callback_data=query.data,
            callback_query_id=query.id,
            message_id=message.message_id if message is not None else None,
            message_is_photo=bool(getattr(message, "photo", None)),
            **common,
        )

    message = update.message
    if message is None:
        return None

    if message.photo:
        largest = max(message.photo, key=lambda size: size.width * size.height)
        return InboundEvent(
            kind=EventKind.PHOTO,
            text=message.caption,
            message_id=message.message_id,
            photo_file_id=largest.file_id,
            **common,
        )

    if message.text is None:
        return None

    command = parse_command(message.text)
    if command is not None:
        name, args = command
        return InboundEvent(
            kind=EventKind.COMMAND,
            text=message.text,
            command=name,
            args=args,
            message_id=message.message_id,
            **common,
        )

    return InboundEvent(
        kind=EventKind.TEXT,
        text=message.text,
        message_id=message.message_id,
        **common,
    )
