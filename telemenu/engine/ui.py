"""Toast and alert feedback for button presses."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import structlog

from ..exceptions import TransportError
from .context import MenuContext
from .transport import Transport

logger = structlog.get_logger()

StepRunner = Callable[[str, Callable[[], Awaitable[Any]]], Awaitable[Any]]


class UIHelper:
    """Answer the current callback query with a short notice.

    Outside callback updates both methods do nothing. Inside conversations a
    ``step_runner`` records the call so replays do not repeat it.
    """

    def __init__(
        self,
        ctx: MenuContext,
        transport: Transport,
        step_runner: Optional[StepRunner] = None,
    ) -> None:
        self.ctx = ctx
        self.transport = transport
        self._step_runner = step_runner

    async def toast(self, text: str) -> None:
        await self._notify(text, show_alert=False)

    async def alert(self, text: str) -> None:
        await self._notify(text, show_alert=True)

    async def _notify(self, text: str, *, show_alert: bool) -> None:
        async def effect() -> bool:
            return await answer_callback_once(
                self.ctx, self.transport, text, show_alert=show_alert
            )

        if self._step_runner is not None:
            await self._step_runner("ui", effect)
        else:
            await effect()


async def answer_callback_once(
    ctx: MenuContext,
    transport: Transport,
    text: Optional[str] = None,
    *,
    show_alert: bool = False,
) -> bool:
    """Answer the callback query of ``ctx`` unless it was already answered."""
    event = ctx.event
    if event is None or not event.is_callback or not event.callback_query_id:
        return False
    if ctx.callback_answered:
        return False
    ctx.callback_answered = True
    try:
        await transport.answer_callback(
            event.callback_query_id, text, show_alert=show_alert
        )
    except TransportError as e:
        logger.debug(
            "Failed to answer callback query",
            chat_id=ctx.chat_id,
            error=str(e),
        )
        return False
    return True
