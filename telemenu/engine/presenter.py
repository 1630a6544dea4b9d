"""Message transition policy: edit in place, or delete and resend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog

from ..exceptions import TransportError
from .render import RenderedMenu
from .transport import EditResult, MessageKind, Transport

logger = structlog.get_logger()


@dataclass(frozen=True)
class PresentedMessage:
    message_id: int
    kind: MessageKind
    edited: bool


class MessagePresenter:
    """Show rendered content while keeping a single visible menu message."""

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    async def present(
        self,
        chat_id: int,
        rendered: RenderedMenu,
        *,
        message_id: Optional[int] = None,
        current_kind: MessageKind = MessageKind.TEXT,
        explicit_target: bool = False,
    ) -> PresentedMessage:
        """Edit ``message_id`` when possible, otherwise send a new message.

        Same-kind transitions are edits and an unchanged edit counts as
        success. Cross-kind transitions delete the old message first. Other
        edit failures fall back to a fresh message unless ``explicit_target``
        is set, in which case they propagate.
        """
        if message_id is None:
            return await self._send(chat_id, rendered)

        if rendered.kind is not current_kind:
            await self.delete_quietly(chat_id, message_id)
            return await self._send(chat_id, rendered)

        try:
            result = await self._edit(chat_id, message_id, rendered)
        except TransportError as e:
            if explicit_target:
                raise
            logger.info(
                "Edit failed, sending new message",
                chat_id=chat_id,
                message_id=message_id,
                error=str(e),
            )
            return await self._send(chat_id, rendered)

        if result is EditResult.NOT_MODIFIED:
            logger.debug("Message not modified", chat_id=chat_id, message_id=message_id)
        return PresentedMessage(message_id=message_id, kind=rendered.kind, edited=True)

    async def delete_quietly(self, chat_id: int, message_id: int) -> bool:
        """Delete a message, ignoring failures (already gone, too old)."""
        try:
            await self.transport.delete_message(chat_id, message_id)
        except TransportError as e:
            logger.debug(
                "Failed to delete message",
                chat_id=chat_id,
                message_id=message_id,
                error=str(e),
            )
            return False
        return True

    async def _send(self, chat_id: int, rendered: RenderedMenu) -> PresentedMessage:
        if rendered.image_url:
            message_id = await self.transport.send_photo(
                chat_id,
                rendered.image_url,
                caption=rendered.text,
                keyboard=rendered.keyboard,
                parse_mode=rendered.parse_mode,
            )
        else:
            message_id = await self.transport.send_message(
                chat_id,
                rendered.text,
                keyboard=rendered.keyboard,
                parse_mode=rendered.parse_mode,
            )
        return PresentedMessage(message_id=message_id, kind=rendered.kind, edited=False)

    async def _edit(
        self, chat_id: int, message_id: int, rendered: RenderedMenu
    ) -> EditResult:
        if rendered.image_url:
            return await self.transport.edit_message_media(
                chat_id,
                message_id,
                rendered.image_url,
                caption=rendered.text,
                keyboard=rendered.keyboard,
                parse_mode=rendered.parse_mode,
            )
        return await self.transport.edit_message_text(
            chat_id,
            message_id,
            rendered.text,
            keyboard=rendered.keyboard,
            parse_mode=rendered.parse_mode,
        )
