"""Conversation resumption manager.

Action handlers run as conversations. A conversation never keeps a live
coroutine between updates: on each update for the chat the handler is
re-run from the top, replaying recorded steps from the conversation log
until it reaches the first step that needs new input (an ``ask`` without a
recorded answer), where it suspends again. Only the log and the
ConversationRecord are persisted.
"""

from __future__ import annotations

import json
import re
from typing import Any, Awaitable, Callable, Dict, List, NoReturn, Optional

import structlog

from ..engine.context import InboundEvent, MenuContext
from ..engine.presenter import MessagePresenter
from ..engine.protocol import CallbackCodec, CallbackData, Op
from ..engine.registry import ActionNode, Registry, inline_action_id
from ..engine.render import RenderedMenu, Renderer
from ..engine.transport import KeyboardButton, MessageKind, Transport
from ..engine.ui import UIHelper, answer_callback_once
from ..exceptions import (
    ConversationCancelled,
    ConversationError,
    ConversationNavigated,
    ConversationSignal,
    ConversationSuspended,
)
from ..i18n import Translator
from ..menu.layout import InlineTarget, Layout
from ..utils.callables import call_maybe_async
from .helper import ActionContext, ConversationHelper
from .session import ChatSession, ConversationRecord, is_staged

logger = structlog.get_logger()

_INT_RE = re.compile(r"-?\d+")

_MISSING = object()


def _capture_payload(value: str) -> Dict[str, Any]:
    return {"id": int(value) if _INT_RE.fullmatch(value) else value}


class ConversationRun:
    """State of one replay of a handler for one update."""

    MISSING = _MISSING

    def __init__(
        self,
        manager: "ConversationManager",
        ctx: MenuContext,
        record: ConversationRecord,
        resume_event: Optional[InboundEvent] = None,
        *,
        probe: bool = False,
    ) -> None:
        self.manager = manager
        self.ctx = ctx
        self.record = record
        self.probe = probe
        self.cursor = 0
        self._resume_event = resume_event

    @property
    def codec(self) -> CallbackCodec:
        return self.manager.codec

    def tr(self, key: str, variables: Optional[Dict[str, Any]] = None) -> str:
        return self.manager.translator.translate(key, self.ctx, variables)

    def replayed(self, kind: str) -> Any:
        """Return the recorded value of the next step, or MISSING if it is live."""
        if self.cursor >= len(self.record.log):
            return _MISSING
        entry = self.record.log[self.cursor]
        if entry.get("kind") != kind:
            raise ConversationError(
                f"Conversation {self.record.action_id!r} replay diverged at step "
                f"{self.cursor}: recorded {entry.get('kind')!r}, handler called {kind!r}"
            )
        self.cursor += 1
        return entry.get("value")

    def record_step(self, kind: str, value: Any) -> Any:
        """Append a step; returns the value as it will read back after a restart."""
        try:
            stored = json.loads(json.dumps(value))
        except (TypeError, ValueError) as e:
            raise ConversationError(
                f"Conversation {self.record.action_id!r} step {self.cursor} ({kind}) "
                f"returned a value that cannot be stored as JSON: {e}"
            ) from e
        self.record.log.append({"kind": kind, "value": stored})
        self.cursor += 1
        return stored

    async def step(self, kind: str, effect: Callable[[], Awaitable[Any]]) -> Any:
        """Run a side effect once; replays return the recorded result."""
        value = self.replayed(kind)
        if value is not _MISSING:
            return value
        if self.probe:
            return None
        return self.record_step(kind, await effect())

    def take_resume_event(self) -> Optional[InboundEvent]:
        """The update that resumed this run; only the first live ask sees it."""
        event = self._resume_event
        self._resume_event = None
        return event

    def decode(self, event: InboundEvent) -> Optional[CallbackData]:
        if not event.is_callback:
            return None
        return self.codec.decode_or_none(event.callback_data)

    def suspend(self, step: int, field_type: str) -> NoReturn:
        self.record.waiting = {"step": step, "type": field_type}
        raise ConversationSuspended(step)

    async def show_prompt(
        self,
        text: str,
        keyboard: List[List[KeyboardButton]],
        parse_mode: Optional[str] = None,
    ) -> None:
        rendered = RenderedMenu(
            node_id=self.record.action_id,
            text=text,
            keyboard=keyboard,
            parse_mode=parse_mode,
        )
        presented = await self.manager.presenter.present(
            self.ctx.chat_id,
            rendered,
            message_id=self.record.prompt_message_id,
            current_kind=_prompt_kind(self.record),
        )
        self.record.prompt_message_id = presented.message_id
        self.record.prompt_is_photo = presented.kind is MessageKind.IMAGE

    async def reject(
        self,
        event: InboundEvent,
        error: str,
        question: str,
        keyboard: List[List[KeyboardButton]],
        parse_mode: Optional[str],
    ) -> None:
        """Report unusable input; the question stays and the wait continues."""
        if event.is_callback:
            await self.answer_callback(error)
            return
        await self.delete_user_message(event)
        await self.show_prompt(f"{error}\n\n{question}", keyboard, parse_mode)

    async def answer_callback(self, text: Optional[str] = None) -> None:
        await answer_callback_once(self.ctx, self.manager.transport, text)

    async def delete_user_message(self, event: InboundEvent) -> None:
        if event.message_id is not None and not event.is_callback:
            await self.manager.presenter.delete_quietly(self.ctx.chat_id, event.message_id)


def _prompt_kind(record: ConversationRecord) -> MessageKind:
    return MessageKind.IMAGE if record.prompt_is_photo else MessageKind.TEXT


class ConversationManager:
    """Start, resume and tear down conversations for a chat session."""

    def __init__(
        self,
        registry: Registry,
        renderer: Renderer,
        presenter: MessagePresenter,
        transport: Transport,
        translator: Translator,
        codec: CallbackCodec,
    ) -> None:
        self.registry = registry
        self.renderer = renderer
        self.presenter = presenter
        self.transport = transport
        self.translator = translator
        self.codec = codec

    def resolve_payload(
        self,
        record: ConversationRecord,
        session: ChatSession,
        node: ActionNode,
        event: Optional[InboundEvent],
    ) -> None:
        """Freeze the invocation payload; the first source that yields one wins.

        Order: already persisted payload, payload staged by the dispatcher,
        first capture group of a regexp trigger, payload of the ``a:``/``i:``
        callback token. Absence is frozen too.
        """
        if record.payload_resolved:
            return

        staged = session.pop_staged_payload()
        if is_staged(staged) and staged is not None:
            record.freeze_payload(staged)
            return

        if event is not None and event.text is not None:
            for pattern in node.triggers.regexps:
                match = pattern.search(event.text)
                if match and match.groups() and match.group(1) is not None:
                    record.freeze_payload(_capture_payload(match.group(1)))
                    return

        if event is not None and event.is_callback:
            data = self.codec.decode_or_none(event.callback_data)
            if (
                data is not None
                and data.op in (Op.ACTION, Op.INLINE)
                and data.target == node.id
                and data.payload is not None
            ):
                record.freeze_payload(data.payload)
                return

        record.freeze_payload(None)

    async def start(
        self,
        ctx: MenuContext,
        session: ChatSession,
        node: ActionNode,
        *,
        origin_id: Optional[str] = None,
        parent_action_id: Optional[str] = None,
    ) -> None:
        """Begin a new conversation instance for ``node`` and run it."""
        previous = session.active
        if previous is not None:
            logger.warning(
                "Replacing active conversation",
                chat_id=ctx.chat_id,
                previous_action_id=previous.action_id,
                action_id=node.id,
            )
            session.end(previous.action_id)

        event = ctx.event
        record = ConversationRecord(
            action_id=node.id,
            origin_menu_id=origin_id if origin_id in self.registry.menus else None,
            parent_action_id=parent_action_id,
        )
        if event is not None and event.is_callback:
            record.prompt_message_id = event.message_id
            record.prompt_is_photo = event.message_is_photo

        session.begin(record)
        self.resolve_payload(record, session, node, event)
        logger.info(
            "Conversation started",
            chat_id=ctx.chat_id,
            action_id=node.id,
            origin_menu_id=record.origin_menu_id,
            has_payload=record.payload is not None,
        )
        await self._execute(ctx, session, node, record, resume_event=None)

    async def start_inline(
        self, ctx: MenuContext, session: ChatSession, data: CallbackData
    ) -> bool:
        """Handle an ``i:`` token: a coroutine button declared in an action layout."""
        node = self.registry.actions.get(data.target)
        if node is None and data.origin is not None:
            node = await self.adopt_inline(ctx, data.origin, data.target, data.payload)
        if node is None:
            return False
        await self.start(ctx, session, node, parent_action_id=data.origin)
        return True

    async def resume(self, ctx: MenuContext, session: ChatSession) -> None:
        """Feed the current update to the chat's active conversation."""
        record = session.active
        if record is None:
            return

        node = self.registry.actions.get(record.action_id)
        if node is None and record.parent_action_id is not None:
            node = await self.adopt_inline(
                ctx, record.parent_action_id, record.action_id, record.payload
            )
        if node is None:
            logger.warning(
                "Active conversation refers to unknown action",
                chat_id=ctx.chat_id,
                action_id=record.action_id,
            )
            session.end(record.action_id)
            await answer_callback_once(ctx, self.transport)
            await self.show_menu_in_prompt(ctx, record, None)
            return

        await self._execute(ctx, session, node, record, resume_event=ctx.event)

    async def _execute(
        self,
        ctx: MenuContext,
        session: ChatSession,
        node: ActionNode,
        record: ConversationRecord,
        *,
        resume_event: Optional[InboundEvent],
    ) -> None:
        run = ConversationRun(self, ctx, record, resume_event)
        action_ctx = ActionContext(
            ctx=ctx,
            conversation=ConversationHelper(run),
            ui=UIHelper(ctx, self.transport, step_runner=run.step),
            payload=dict(record.payload or {}),
        )

        try:
            await call_maybe_async(node.handler, action_ctx)
        except ConversationSuspended as signal:
            logger.debug(
                "Conversation suspended",
                chat_id=ctx.chat_id,
                action_id=node.id,
                step=signal.step,
            )
            return
        except ConversationCancelled:
            logger.info("Conversation cancelled", chat_id=ctx.chat_id, action_id=node.id)
            session.end(record.action_id)
            await self.show_menu_in_prompt(ctx, record, record.origin_menu_id)
            return
        except ConversationNavigated as signal:
            logger.info(
                "Conversation navigated away",
                chat_id=ctx.chat_id,
                action_id=node.id,
                menu_id=signal.menu_id,
            )
            session.end(record.action_id)
            await self.show_menu_in_prompt(ctx, record, signal.menu_id)
            return
        except Exception:
            session.end(record.action_id)
            raise

        session.end(record.action_id)
        logger.info(
            "Conversation completed",
            chat_id=ctx.chat_id,
            action_id=node.id,
            steps=len(record.log),
        )

        layout = action_ctx.layout
        if layout.is_empty:
            return
        rendered = await self.renderer.render(
            node.id,
            layout,
            ctx,
            inherited_payload=record.payload,
            in_action=True,
        )
        await self.presenter.present(
            ctx.chat_id,
            rendered,
            message_id=record.prompt_message_id,
            current_kind=_prompt_kind(record),
        )

    async def show_menu_in_prompt(
        self,
        ctx: MenuContext,
        record: ConversationRecord,
        menu_id: Optional[str],
    ) -> None:
        """Render ``menu_id`` (or the root) into the conversation's prompt message."""
        rendered = await self.renderer.render_menu(menu_id or self.registry.root_id, ctx)
        await self.presenter.present(
            ctx.chat_id,
            rendered,
            message_id=record.prompt_message_id,
            current_kind=_prompt_kind(record),
            explicit_target=record.prompt_message_id is not None,
        )

    async def adopt_inline(
        self,
        ctx: MenuContext,
        parent_id: str,
        action_id: str,
        payload: Optional[Dict[str, Any]],
    ) -> Optional[ActionNode]:
        """Re-run the parent action as a probe to find an inline button's handler.

        The probe stops at the parent's first ask, so only buttons declared
        before it can be found.
        """
        parent = self.registry.actions.get(parent_id)
        if parent is None:
            return None

        probe_record = ConversationRecord(
            action_id=parent_id, payload=payload, payload_resolved=True
        )
        run = ConversationRun(self, ctx, probe_record, probe=True)
        layout = Layout()
        action_ctx = ActionContext(
            ctx=ctx,
            conversation=ConversationHelper(run),
            ui=UIHelper(ctx, self.transport, step_runner=run.step),
            layout=layout,
            payload=dict(payload or {}),
        )
        try:
            await call_maybe_async(parent.handler, action_ctx)
        except ConversationSignal:
            pass
        except Exception as e:
            logger.warning(
                "Probe run of parent action failed",
                parent_action_id=parent_id,
                action_id=action_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        for index, button in enumerate(layout.buttons()):
            target = button.target
            if (
                isinstance(target, InlineTarget)
                and target.resumable
                and inline_action_id(parent_id, button, index) == action_id
            ):
                return self.registry.adopt_action(
                    ActionNode(
                        id=action_id,
                        handler=target.handler,
                        origin_id=parent_id,
                        inline=True,
                    )
                )

        logger.info(
            "Inline action not found in parent layout",
            parent_action_id=parent_id,
            action_id=action_id,
        )
        return None
