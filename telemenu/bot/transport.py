"""Transport implementation over python-telegram-bot's ``telegram.Bot``."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import structlog
from telegram import Bot, InputMediaPhoto
from telegram.error import BadRequest, TelegramError

from ..engine.transport import EditResult, Keyboard
from ..exceptions import TransportError
from .utils.telegram_errors import is_markdown_parse_error, is_noop_edit_error
from .utils.ui_adapter import build_reply_markup

logger = structlog.get_logger()


class TelegramTransport:
    """Send, edit and delete chat messages through the Bot API.

    Formatting errors are retried once without ``parse_mode``. Every other
    Telegram failure is raised as :class:`TransportError`.
    """

    def __init__(self, bot: Bot) -> None:
        self.bot = bot

    async def _call(
        self,
        operation: str,
        request: Callable[..., Awaitable[Any]],
        kwargs: dict[str, Any],
    ) -> Any:
        try:
            return await request(**kwargs)
        except BadRequest as e:
            if kwargs.get("parse_mode") and is_markdown_parse_error(e):
                logger.warning(
                    "Telegram rejected formatting, retrying as plain text",
                    operation=operation,
                    parse_mode=kwargs.get("parse_mode"),
                    error=str(e),
                )
                retry_kwargs = dict(kwargs)
                retry_kwargs.pop("parse_mode", None)
                try:
                    return await request(**retry_kwargs)
                except TelegramError as retry_error:
                    raise TransportError(
                        f"{operation} failed: {retry_error}"
                    ) from retry_error
            raise TransportError(f"{operation} failed: {e}") from e
        except TelegramError as e:
            raise TransportError(f"{operation} failed: {e}") from e

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        keyboard: Optional[Keyboard] = None,
        parse_mode: Optional[str] = None,
    ) -> int:
        kwargs: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "reply_markup": build_reply_markup(keyboard),
        }
        if parse_mode:
            kwargs["parse_mode"] = parse_mode
        message = await self._call("send_message", self.bot.send_message, kwargs)
        return message.message_id

    async def send_photo(
        self,
        chat_id: int,
        photo: str,
        *,
        caption: Optional[str] = None,
        keyboard: Optional[Keyboard] = None,
        parse_mode: Optional[str] = None,
    ) -> int:
        kwargs: dict[str, Any] = {
            "chat_id": chat_id,
            "photo": photo,
            "caption": caption,
            "reply_markup": build_reply_markup(keyboard),
        }
        if parse_mode:
            kwargs["parse_mode"] = parse_mode
        message = await self._call("send_photo", self.bot.send_photo, kwargs)
        return message.message_id

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        *,
        keyboard: Optional[Keyboard] = None,
        parse_mode: Optional[str] = None,
    ) -> EditResult:
        kwargs: dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "reply_markup": build_reply_markup(keyboard),
        }
        if parse_mode:
            kwargs["parse_mode"] = parse_mode
        return await self._edit("edit_message_text", self.bot.edit_message_text, kwargs)

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
        kwargs: dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "media": InputMediaPhoto(media=photo, caption=caption, parse_mode=parse_mode),
            "reply_markup": build_reply_markup(keyboard),
        }
        return await self._edit(
            "edit_message_media", self.bot.edit_message_media, kwargs
        )

    async def _edit(
        self,
        operation: str,
        request: Callable[..., Awaitable[Any]],
        kwargs: dict[str, Any],
    ) -> EditResult:
        try:
            await self._call(operation, request, kwargs)
        except TransportError as e:
            if e.__cause__ is not None and is_noop_edit_error(e.__cause__):
                return EditResult.NOT_MODIFIED
            raise
        return EditResult.OK

    async def delete_message(self, chat_id: int, message_id: int) -> None:
        try:
            await self.bot.delete_message(chat_id=chat_id, message_id=message_id)
        except TelegramError as e:
            raise TransportError(f"delete_message failed: {e}") from e

    async def answer_callback(
        self,
        callback_query_id: str,
        text: Optional[str] = None,
        *,
        show_alert: bool = False,
    ) -> None:
        try:
            await self.bot.answer_callback_query(
                callback_query_id=callback_query_id,
                text=text,
                show_alert=show_alert,
            )
        except TelegramError as e:
            raise TransportError(f"answer_callback_query failed: {e}") from e
