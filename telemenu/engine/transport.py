"""Outbound transport boundary used by the engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence


class EditResult(enum.Enum):
    OK = "ok"
    NOT_MODIFIED = "not_modified"


class MessageKind(enum.Enum):
    TEXT = "text"
    IMAGE = "image"


@dataclass(frozen=True)
class KeyboardButton:
    """One rendered inline button: either callback data or a URL."""

    text: str
    callback_data: Optional[str] = None
    url: Optional[str] = None


Keyboard = Sequence[Sequence[KeyboardButton]]


class Transport(Protocol):
    """Chat API used for rendering.

    Edits return :class:`EditResult`; every other failure raises
    :class:`telemenu.exceptions.TransportError`.
    """

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        keyboard: Optional[Keyboard] = None,
        parse_mode: Optional[str] = None,
    ) -> int:
        ...

    async def send_photo(
        self,
        chat_id: int,
        photo: str,
        *,
        caption: Optional[str] = None,
        keyboard: Optional[Keyboard] = None,
        parse_mode: Optional[str] = None,
    ) -> int:
        ...

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        *,
        keyboard: Optional[Keyboard] = None,
        parse_mode: Optional[str] = None,
    ) -> EditResult:
        ...

    async def edit_message_media(
        self,
        chat_id: int,
        message_id: int,
        photo: str,
        *,
        caption: Optional[str] = None,
        keyboard: Optional[Keyboard] = None,
        parse_mode: Optional[str] = None,
    ) -> EditResult:
        ...

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        ...

    async def answer_callback(
        self,
        callback_query_id: str,
        text: Optional[str] = None,
        *,
        show_alert: bool = False,
    ) -> None:
        ...
