"""Primitives available to action handlers: ask, form, say, delete, navigate.

Every primitive is one step of the conversation log. When a handler is
replayed, steps already in the log return their recorded value without
repeating side effects; the first step past the end of the log runs live.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Sequence, Union

from .. import i18n
from ..engine.context import EventKind, InboundEvent, MenuContext
from ..engine.protocol import CallbackData, Op, compact_id
from ..engine.registry import ActionNode
from ..engine.transport import KeyboardButton
from ..engine.ui import UIHelper
from ..exceptions import (
    ConversationCancelled,
    ConversationError,
    ConversationNavigated,
    ProbeAborted,
)
from ..menu.layout import ActionTarget, Layout, MenuTarget, PromptKeyboard, UrlTarget
from ..menu.refs import MenuRef
from ..utils.callables import call_maybe_async

if TYPE_CHECKING:
    from .manager import ConversationRun

FIELD_TYPES = ("text", "number", "photo")

KeyboardBuilder = Callable[[PromptKeyboard], Any]


def parse_number(raw: str) -> Optional[Union[int, float]]:
    """Parse user text as int, then float; reject non-finite values."""
    text = raw.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


@dataclass
class FormField:
    name: str
    question: str
    type: str = "text"
    validate: Optional[Callable[[Any], Any]] = None
    error_message: Optional[str] = None

    @classmethod
    def coerce(cls, value: Union["FormField", Dict[str, Any]]) -> "FormField":
        if isinstance(value, FormField):
            return value
        return cls(**value)


class ConversationHelper:
    """Conversation primitives bound to one replay run."""

    def __init__(self, run: "ConversationRun") -> None:
        self._run = run

    async def ask(
        self,
        question: str,
        choices: Optional[KeyboardBuilder] = None,
        *,
        type: str = "text",
        validate: Optional[Callable[[Any], Any]] = None,
        error_message: Optional[str] = None,
        parse_mode: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Show ``question`` in the prompt message and wait for the answer.

        With ``choices`` the prompt shows the built keyboard and the answer
        is the id (or label) of the pressed button. Otherwise the answer is
        text, a number, or the file id of the largest photo size.
        """
        run = self._run
        step = run.cursor
        recorded = run.replayed("ask")
        if recorded is not run.MISSING:
            return recorded
        if run.probe:
            raise ProbeAborted()

        field_type = "choice" if choices is not None else type
        if field_type != "choice" and field_type not in FIELD_TYPES:
            raise ValueError(f"Unsupported ask type: {type!r}")

        question_text = run.tr(question, variables)
        choice_keys: List[str] = []
        keyboard: List[List[KeyboardButton]] = []
        if choices is not None:
            builder = PromptKeyboard()
            choices(builder)
            keyboard, choice_keys = self._choice_keyboard(builder, variables)
        keyboard.append(
            [
                KeyboardButton(
                    run.tr(i18n.CANCEL),
                    callback_data=run.codec.encode(Op.CANCEL, run.record.action_id),
                )
            ]
        )

        event = run.take_resume_event()
        if event is None:
            await run.show_prompt(question_text, keyboard, parse_mode)
            run.suspend(step, field_type)

        waiting = run.record.waiting or {}
        if waiting.get("step") != step:
            raise ConversationError(
                f"Conversation {run.record.action_id!r} replay diverged: "
                f"waiting at step {waiting.get('step')}, reached step {step}"
            )

        data = run.decode(event)
        if (
            data is not None
            and data.op is Op.CANCEL
            and data.target == run.record.action_id
        ):
            await run.answer_callback()
            raise ConversationCancelled()

        value, error = await self._accept(
            event,
            data,
            field_type,
            choice_keys,
            validate=validate,
            error_message=error_message,
            variables=variables,
        )
        if error is not None:
            await run.reject(event, error, question_text, keyboard, parse_mode)
            run.suspend(step, field_type)

        if not event.is_callback:
            await run.delete_user_message(event)
        run.record.waiting = None
        return run.record_step("ask", value)

    async def form(
        self, fields: Sequence[Union[FormField, Dict[str, Any]]]
    ) -> Dict[str, Any]:
        """Ask every field in order and collect the answers by name."""
        result: Dict[str, Any] = {}
        for raw_field in fields:
            form_field = FormField.coerce(raw_field)
            result[form_field.name] = await self.ask(
                form_field.question,
                type=form_field.type,
                validate=form_field.validate,
                error_message=form_field.error_message,
            )
        return result

    async def say(
        self,
        text: str,
        keyboard: Optional[KeyboardBuilder] = None,
        *,
        parse_mode: Optional[str] = None,
        variables: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Update the prompt message without waiting for input."""
        run = self._run

        async def effect() -> None:
            rows: List[List[KeyboardButton]] = []
            if keyboard is not None:
                builder = PromptKeyboard()
                keyboard(builder)
                rows = self._say_keyboard(builder, variables)
            await run.show_prompt(run.tr(text, variables), rows, parse_mode)
            return None

        await run.step("say", effect)

    async def delete(self) -> None:
        """Delete the prompt message; the next prompt is sent as a new message."""
        run = self._run

        async def effect() -> None:
            message_id = run.record.prompt_message_id
            if message_id is not None:
                await run.manager.presenter.delete_quietly(run.ctx.chat_id, message_id)
            run.record.prompt_message_id = None
            run.record.prompt_is_photo = False
            return None

        await run.step("delete", effect)

    async def navigate(self, menu: Optional[MenuRef] = None) -> None:
        """End the conversation and show ``menu`` (or the root) in the prompt."""
        if menu is not None:
            self._run.manager.registry.adopt_menu(menu)
        raise ConversationNavigated(menu.id if menu is not None else None)

    async def external(self, fn: Callable[[], Any]) -> Any:
        """Run ``fn`` once per conversation and replay its (JSON) result."""

        async def effect() -> Any:
            return await call_maybe_async(fn)

        return await self._run.step("external", effect)

    async def reply(self, text: str, *, parse_mode: Optional[str] = None) -> Optional[int]:
        """Send a separate message to the chat; returns its message id."""
        run = self._run

        async def effect() -> int:
            return await run.manager.transport.send_message(
                run.ctx.chat_id, text, parse_mode=parse_mode
            )

        return await run.step("reply", effect)

    def _choice_keyboard(
        self, builder: PromptKeyboard, variables: Optional[Dict[str, Any]]
    ) -> tuple[List[List[KeyboardButton]], List[str]]:
        run = self._run
        rows: List[List[KeyboardButton]] = []
        current: List[KeyboardButton] = []
        keys: List[str] = []
        for button in builder.buttons:
            if not isinstance(button.label, str):
                raise ValueError("Choice buttons need a string label")
            if button.force_new_row or (
                builder.row_limit and len(current) >= builder.row_limit
            ):
                if current:
                    rows.append(current)
                current = []
            key = button.key if button.key is not None else button.label
            keys.append(key)
            current.append(
                KeyboardButton(
                    run.tr(button.label, variables),
                    callback_data=run.codec.encode(
                        Op.CHOICE, run.record.action_id, payload={"id": compact_id(key)}
                    ),
                )
            )
        if current:
            rows.append(current)
        return rows, keys

    def _say_keyboard(
        self, builder: PromptKeyboard, variables: Optional[Dict[str, Any]]
    ) -> List[List[KeyboardButton]]:
        run = self._run
        registry = run.manager.registry
        rows: List[List[KeyboardButton]] = []
        current: List[KeyboardButton] = []
        for button in builder.buttons:
            if button.force_new_row or (
                builder.row_limit and len(current) >= builder.row_limit
            ):
                if current:
                    rows.append(current)
                current = []
            if isinstance(button.label, str):
                label = run.tr(button.label, variables)
            else:
                label = str(button.label(run.ctx))
            target = button.target
            if isinstance(target, UrlTarget):
                rendered = KeyboardButton(label, url=target.url)
            elif isinstance(target, MenuTarget):
                registry.adopt_menu(target.ref)
                rendered = KeyboardButton(
                    label, callback_data=run.codec.encode(Op.NAVIGATE, target.ref.id)
                )
            elif isinstance(target, ActionTarget):
                registry.adopt_action(ActionNode.from_ref(target.ref))
                rendered = KeyboardButton(
                    label,
                    callback_data=run.codec.encode(
                        Op.ACTION, target.ref.id, payload=button.payload_data
                    ),
                )
            else:
                rendered = KeyboardButton(
                    label, callback_data=run.codec.encode(Op.NOOP, run.record.action_id)
                )
            current.append(rendered)
        if current:
            rows.append(current)
        return rows

    async def _accept(
        self,
        event: InboundEvent,
        data: Optional[CallbackData],
        field_type: str,
        choice_keys: List[str],
        *,
        validate: Optional[Callable[[Any], Any]],
        error_message: Optional[str],
        variables: Optional[Dict[str, Any]],
    ) -> tuple[Any, Optional[str]]:
        """Return (value, None) for an acceptable answer, else (None, error text)."""
        run = self._run

        def failure(default_key: str) -> tuple[Any, str]:
            if error_message:
                return None, run.tr(error_message, variables)
            return None, run.tr(default_key)

        value: Any
        if field_type != "choice" and event.is_callback:
            return None, run.tr(i18n.FINISH_FIRST)
        if field_type == "choice":
            if (
                data is None
                or data.op is not Op.CHOICE
                or data.target != run.record.action_id
                or str(data.payload_id) not in choice_keys
            ):
                return None, run.tr(i18n.USE_BUTTONS)
            value = str(data.payload_id)
        elif field_type == "photo":
            if event.kind is not EventKind.PHOTO or not event.photo_file_id:
                return failure(i18n.PHOTO_ERROR)
            value = event.photo_file_id
        else:
            if event.kind is not EventKind.TEXT or event.text is None:
                return failure(i18n.TEXT_ERROR)
            value = event.text
            if field_type == "number":
                value = parse_number(event.text)
                if value is None:
                    return failure(i18n.NUMBER_ERROR)

        if validate is not None and not await call_maybe_async(validate, value):
            return failure(i18n.INVALID_ERROR)
        return value, None


@dataclass
class ActionContext:
    """Argument passed to every action handler."""

    ctx: MenuContext
    conversation: ConversationHelper
    ui: UIHelper
    layout: Layout = field(default_factory=Layout)
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        """``payload["id"]`` as a string ("" when absent)."""
        value = self.payload.get("id")
        return "" if value is None else str(value)

    @property
    def user(self) -> Dict[str, Any]:
        return self.ctx.user

    async def navigate(self, menu: Optional[MenuRef] = None) -> None:
        await self.conversation.navigate(menu)

    async def reply(self, text: str, *, parse_mode: Optional[str] = None) -> Optional[int]:
        return await self.conversation.reply(text, parse_mode=parse_mode)
