"""Route inbound events to menus, actions and active conversations."""

from __future__ import annotations

import asyncio
import re
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, Optional

import structlog

from .. import i18n
from ..conversation.manager import ConversationManager
from ..conversation.session import ChatSession, ChatSessionStore
from ..utils.callables import call_maybe_async
from .context import EventKind, InboundEvent, MenuContext
from .pagination import PageStateStore
from .presenter import MessagePresenter, PresentedMessage
from .protocol import CallbackCodec, CallbackData, Op
from .registry import ActionNode, MenuNode, Registry
from .render import Renderer
from .transport import MessageKind, Transport
from .ui import answer_callback_once

logger = structlog.get_logger()

_INT_RE = re.compile(r"-?\d+")

UserResolver = Callable[[InboundEvent], Any]


def _scalar_payload(value: str) -> Dict[str, Any]:
    return {"id": int(value) if _INT_RE.fullmatch(value) else value}


@dataclass
class _ChatLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class Dispatcher:
    """Single entry point for chat updates.

    Updates of one chat are handled strictly in order; different chats run
    concurrently.
    """

    def __init__(
        self,
        registry: Registry,
        renderer: Renderer,
        presenter: MessagePresenter,
        manager: ConversationManager,
        session_store: ChatSessionStore,
        page_store: PageStateStore,
        transport: Transport,
        translator: i18n.Translator,
        codec: CallbackCodec,
        resolve_user: Optional[UserResolver] = None,
    ) -> None:
        self.registry = registry
        self.renderer = renderer
        self.presenter = presenter
        self.manager = manager
        self.session_store = session_store
        self.page_store = page_store
        self.transport = transport
        self.translator = translator
        self.codec = codec
        self.resolve_user = resolve_user
        self._chat_locks: Dict[int, _ChatLock] = {}

    @asynccontextmanager
    async def chat_lock(self, chat_id: int) -> AsyncIterator[None]:
        """Serialize work for one chat; the lock is dropped once nobody waits."""
        entry = self._chat_locks.get(chat_id)
        if entry is None:
            entry = self._chat_locks[chat_id] = _ChatLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._chat_locks.pop(chat_id, None)

    async def send_root(self, chat_id: int) -> PresentedMessage:
        """Send the root menu to a chat as a new message."""
        async with self.chat_lock(chat_id):
            ctx = MenuContext(chat_id=chat_id)
            return await self._present_menu(ctx, self.registry.root_id)

    async def dispatch(self, event: InboundEvent) -> None:
        chat_id = event.chat_id
        async with self.chat_lock(chat_id):
            ctx = MenuContext(
                chat_id=chat_id, event=event, user=await self._resolve_user(event)
            )
            session = await self.session_store.load(chat_id)
            try:
                await self._route(ctx, session, event)
            except Exception as e:
                await self._recover(ctx, session, e)
            finally:
                await answer_callback_once(ctx, self.transport)
                await self.session_store.save(chat_id, session)

    async def _resolve_user(self, event: InboundEvent) -> Dict[str, Any]:
        if self.resolve_user is None:
            return {}
        try:
            user = await call_maybe_async(self.resolve_user, event)
        except Exception as e:
            logger.warning(
                "User resolver failed",
                chat_id=event.chat_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return {}
        return dict(user or {})

    async def _recover(
        self, ctx: MenuContext, session: ChatSession, error: Exception
    ) -> None:
        """Log a handler failure, drop the active conversation and show the root."""
        active = session.active
        logger.error(
            "Error while handling update",
            chat_id=ctx.chat_id,
            action_id=active.action_id if active else None,
            error=str(error),
            error_type=type(error).__name__,
            exc_info=error,
        )
        if active is not None:
            session.end(active.action_id)
        await self._present_menu(ctx, self.registry.root_id)

    async def _route(
        self, ctx: MenuContext, session: ChatSession, event: InboundEvent
    ) -> None:
        if session.active is not None:
            await self.manager.resume(ctx, session)
            return

        if event.is_callback:
            await self._route_callback(ctx, session, event)
            return

        if event.kind is EventKind.COMMAND and event.command:
            if await self._route_command(ctx, session, event):
                return
        elif event.kind is EventKind.TEXT and event.text:
            if await self._route_text(ctx, session, event):
                return

        if event.is_private:
            await self._present_menu(ctx, self.registry.root_id)

    async def _route_command(
        self, ctx: MenuContext, session: ChatSession, event: InboundEvent
    ) -> bool:
        command = (event.command or "").lower()
        for node, trigger in self.registry.command_targets():
            if trigger != command:
                continue
            payload = _scalar_payload(" ".join(event.args)) if event.args else None
            await self._open(ctx, session, node, payload)
            return True

        if command == "start":
            self.page_store.clear_chat(ctx.chat_id)
            await self._present_menu(ctx, self.registry.root_id)
            return True
        return False

    async def _route_text(
        self, ctx: MenuContext, session: ChatSession, event: InboundEvent
    ) -> bool:
        text = event.text or ""
        for node, word in self.registry.word_targets():
            if word == text:
                await self._open(ctx, session, node, None)
                return True

        for node, pattern in self.registry.regexp_targets():
            match = pattern.search(text)
            if match is None:
                continue
            payload = None
            if match.groups() and match.group(1) is not None:
                payload = _scalar_payload(match.group(1))
            await self._open(ctx, session, node, payload)
            return True
        return False

    async def _open(
        self,
        ctx: MenuContext,
        session: ChatSession,
        node: Any,
        payload: Optional[Dict[str, Any]],
    ) -> None:
        """Open a trigger target: show a menu or start an action."""
        if isinstance(node, MenuNode):
            logger.debug("Trigger opened menu", chat_id=ctx.chat_id, menu_id=node.id)
            await self._present_menu(ctx, node.id)
            return

        logger.debug("Trigger started action", chat_id=ctx.chat_id, action_id=node.id)
        session.stage_payload(payload)
        await self.manager.start(ctx, session, node)

    async def _route_callback(
        self, ctx: MenuContext, session: ChatSession, event: InboundEvent
    ) -> None:
        data = self.codec.decode_or_none(event.callback_data)
        if data is None:
            logger.warning(
                "Ignoring malformed callback data",
                chat_id=ctx.chat_id,
                callback_data=event.callback_data,
            )
            return

        if data.op in (Op.NAVIGATE, Op.REFRESH):
            await self._present_menu(ctx, data.target, in_place=True)
        elif data.op is Op.PAGE:
            await self._change_page(ctx, data)
        elif data.op is Op.TAB:
            active_tab = data.payload_id
            await self._present_menu(
                ctx,
                data.target,
                in_place=True,
                active_tab=str(active_tab) if active_tab is not None else None,
            )
        elif data.op is Op.ACTION:
            node = await self._find_action(ctx, data)
            if node is None:
                await self._stale(ctx)
                return
            await self.manager.start(ctx, session, node, origin_id=data.origin)
        elif data.op is Op.INLINE:
            if not await self.manager.start_inline(ctx, session, data):
                await self._stale(ctx)
        elif data.op in (Op.CHOICE, Op.CANCEL):
            # No conversation is waiting for this prompt any more.
            await self._stale(ctx)
        # NOOP: nothing to do beyond answering the query.

    async def _change_page(self, ctx: MenuContext, data: CallbackData) -> None:
        page = data.payload_id
        if not isinstance(page, int) or data.origin is None or not data.origin.isdigit():
            logger.warning(
                "Ignoring malformed page callback",
                chat_id=ctx.chat_id,
                target=data.target,
                origin=data.origin,
            )
            return
        self.page_store.set(ctx.chat_id, data.target, int(data.origin), page)
        await self._present_menu(ctx, data.target, in_place=True)

    async def _find_action(
        self, ctx: MenuContext, data: CallbackData
    ) -> Optional[ActionNode]:
        node = self.registry.actions.get(data.target)
        if node is not None or data.origin not in self.registry.menus:
            return node

        # Rendering the origin menu adopts actions first seen in its layout.
        await self.renderer.render_menu(data.origin, ctx)
        return self.registry.actions.get(data.target)

    async def _stale(self, ctx: MenuContext) -> None:
        logger.info(
            "Stale button pressed",
            chat_id=ctx.chat_id,
            callback_data=ctx.event.callback_data if ctx.event else None,
        )
        await answer_callback_once(
            ctx, self.transport, self.translator.translate(i18n.ACTION_UNAVAILABLE, ctx)
        )
        await self._present_menu(ctx, self.registry.root_id, in_place=True)

    async def _present_menu(
        self,
        ctx: MenuContext,
        menu_id: str,
        *,
        in_place: bool = False,
        active_tab: Optional[str] = None,
    ) -> PresentedMessage:
        """Render a menu; ``in_place`` edits the message of the pressed button."""
        rendered = await self.renderer.render_menu(menu_id, ctx, active_tab=active_tab)

        event = ctx.event
        message_id: Optional[int] = None
        current_kind = MessageKind.TEXT
        if in_place and event is not None and event.is_callback:
            message_id = event.message_id
            if event.message_is_photo:
                current_kind = MessageKind.IMAGE

        if rendered.stale_target and message_id is not None:
            await self.presenter.delete_quietly(ctx.chat_id, message_id)
            message_id = None

        return await self.presenter.present(
            ctx.chat_id, rendered, message_id=message_id, current_kind=current_kind
        )
