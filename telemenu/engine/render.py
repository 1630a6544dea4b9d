"""Render pipeline: Layout → message text and inline keyboard."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from .. import i18n
from ..menu.layout import (
    ActionTarget,
    Button,
    ImageBlock,
    InlineTarget,
    Layout,
    ListBlock,
    MenuTarget,
    RefreshBlock,
    TextBlock,
    UrlTarget,
)
from ..utils.callables import call_maybe_async
from .context import MenuContext
from .pagination import PageStateStore
from .protocol import CallbackCodec, Op, compact_id
from .registry import ActionNode, Registry, inline_action_id
from .transport import KeyboardButton, MessageKind

logger = structlog.get_logger()


@dataclass
class RenderedMenu:
    """Outbound message content for one node."""

    node_id: str
    text: str
    keyboard: list[list[KeyboardButton]] = field(default_factory=list)
    parse_mode: Optional[str] = None
    image_url: Optional[str] = None
    stale_target: bool = False

    @property
    def kind(self) -> MessageKind:
        return MessageKind.IMAGE if self.image_url else MessageKind.TEXT

    def callback_tokens(self) -> list[str]:
        return [
            button.callback_data
            for row in self.keyboard
            for button in row
            if button.callback_data is not None
        ]


class _Grid:
    """Row accumulator honoring forced rows and a per-row limit."""

    def __init__(self, row_limit: int = 0) -> None:
        self.row_limit = row_limit
        self.rows: list[list[KeyboardButton]] = []
        self.current: list[KeyboardButton] = []

    def place(self, button: KeyboardButton, *, force_new_row: bool = False) -> None:
        if force_new_row or (self.row_limit and len(self.current) >= self.row_limit):
            self.break_row()
        self.current.append(button)

    def add(self, button: KeyboardButton) -> None:
        self.current.append(button)

    def break_row(self) -> None:
        if self.current:
            self.rows.append(self.current)
            self.current = []

    def result(self) -> list[list[KeyboardButton]]:
        self.break_row()
        return self.rows


class Renderer:
    """Resolve guards, labels, tabs and pagination into a RenderedMenu."""

    def __init__(
        self,
        registry: Registry,
        codec: CallbackCodec,
        page_store: PageStateStore,
        translator: i18n.Translator,
        *,
        default_items_per_page: int = 10,
        default_columns: int = 1,
    ) -> None:
        self.registry = registry
        self.codec = codec
        self.page_store = page_store
        self.translator = translator
        self.default_items_per_page = default_items_per_page
        self.default_columns = default_columns

    async def render_menu(
        self,
        menu_id: str,
        ctx: MenuContext,
        *,
        active_tab: Optional[str] = None,
    ) -> RenderedMenu:
        """Run a menu's builder and render it; unknown ids fall back to the root."""
        node = self.registry.menus.get(menu_id)
        stale = False
        if node is None:
            logger.info("Unknown menu id, rendering root", menu_id=menu_id)
            node = self.registry.adopt_menu(self.registry.root)
            stale = True
            active_tab = None

        layout = Layout()
        await call_maybe_async(node.builder, layout, ctx)
        rendered = await self.render(
            node.id, layout, ctx, back_to=node.parent_id, active_tab=active_tab
        )
        rendered.stale_target = stale
        return rendered

    async def render(
        self,
        node_id: str,
        layout: Layout,
        ctx: MenuContext,
        *,
        back_to: Optional[str] = None,
        inherited_payload: Optional[dict[str, Any]] = None,
        active_tab: Optional[str] = None,
        in_action: bool = False,
    ) -> RenderedMenu:
        """Render an already built layout for ``node_id``.

        ``in_action`` marks layouts produced by action handlers: their inline
        coroutine buttons become inline sub-action tokens and lists are not
        paginated.
        """
        self._run_tab(layout, active_tab)
        elements = list(layout.elements)

        grid = _Grid(layout.row_limit)
        text_block: Optional[TextBlock] = None
        image_url: Optional[str] = None
        button_index = 0
        list_index = 0

        for element in elements:
            if isinstance(element, TextBlock):
                text_block = element
            elif isinstance(element, ImageBlock):
                image_url = element.url
            elif isinstance(element, Button):
                index = button_index
                button_index += 1
                if not await self._passes_guard(element, ctx):
                    continue
                rendered = await self._render_button(
                    node_id,
                    element,
                    index,
                    ctx,
                    inherited_payload=inherited_payload,
                    in_action=in_action,
                )
                grid.place(rendered, force_new_row=element.force_new_row)
            elif isinstance(element, ListBlock):
                await self._render_list(
                    grid,
                    node_id,
                    element,
                    list_index,
                    ctx,
                    inherited_payload=inherited_payload,
                    paginate=not in_action,
                )
                list_index += 1
            elif isinstance(element, RefreshBlock):
                grid.break_row()
                grid.add(
                    KeyboardButton(
                        self._tr(element.label, ctx),
                        callback_data=self.codec.encode(Op.REFRESH, node_id),
                    )
                )
                grid.break_row()

        if back_to is not None:
            grid.break_row()
            grid.add(
                KeyboardButton(
                    self._tr(i18n.BACK, ctx),
                    callback_data=self.codec.encode(Op.NAVIGATE, back_to),
                )
            )

        if text_block is not None and text_block.content:
            text = self._tr(text_block.content, ctx, text_block.variables)
            parse_mode = text_block.parse_mode
        else:
            text = self._tr(i18n.MENU_FALLBACK, ctx)
            parse_mode = None

        return RenderedMenu(
            node_id=node_id,
            text=text,
            keyboard=grid.result(),
            parse_mode=parse_mode,
            image_url=image_url,
        )

    def _run_tab(self, layout: Layout, active_tab: Optional[str]) -> None:
        """Run the selected tab handler once, before snapshotting.

        Falls back to the default tab when nothing is selected or the
        selected key no longer matches a button.
        """
        buttons = layout.buttons()
        chosen: Optional[Button] = None
        if active_tab is not None:
            for index, button in enumerate(buttons):
                if button.resolved_key(index) == active_tab:
                    chosen = button
                    break
        if chosen is None:
            chosen = next((b for b in buttons if b.is_default_tab), None)

        if chosen is None:
            return
        target = chosen.target
        if isinstance(target, InlineTarget) and not target.resumable:
            target.handler()

    async def _passes_guard(self, button: Button, ctx: MenuContext) -> bool:
        if button.guard_fn is None:
            return True
        return bool(await call_maybe_async(button.guard_fn, ctx))

    async def _label(self, button: Button, ctx: MenuContext) -> str:
        if callable(button.label):
            return str(await call_maybe_async(button.label, ctx))
        return self._tr(button.label, ctx)

    def _tr(
        self,
        key: str,
        ctx: Optional[MenuContext],
        variables: Optional[dict[str, Any]] = None,
    ) -> str:
        return self.translator.translate(key, ctx, variables)

    @staticmethod
    def _button_payload(
        button: Button, inherited_payload: Optional[dict[str, Any]]
    ) -> Optional[dict[str, Any]]:
        if button.payload_data is not None:
            return button.payload_data
        if inherited_payload is not None:
            return inherited_payload
        if button.key is not None:
            return {"id": button.key}
        return None

    async def _render_button(
        self,
        node_id: str,
        button: Button,
        index: Optional[int],
        ctx: MenuContext,
        *,
        inherited_payload: Optional[dict[str, Any]] = None,
        in_action: bool = False,
    ) -> KeyboardButton:
        label = await self._label(button, ctx)
        target = button.target

        if isinstance(target, UrlTarget):
            return KeyboardButton(label, url=target.url)

        if isinstance(target, MenuTarget):
            self.registry.adopt_menu(target.ref, None if in_action else node_id)
            return KeyboardButton(
                label, callback_data=self.codec.encode(Op.NAVIGATE, target.ref.id)
            )

        if isinstance(target, ActionTarget):
            self.registry.adopt_action(ActionNode.from_ref(target.ref))
            data = self.codec.encode(
                Op.ACTION,
                target.ref.id,
                origin=node_id,
                payload=self._button_payload(button, inherited_payload),
            )
            return KeyboardButton(label, callback_data=data)

        if isinstance(target, InlineTarget) and index is not None:
            if target.resumable:
                action_id = inline_action_id(node_id, button, index)
                self.registry.adopt_action(
                    ActionNode(
                        id=action_id,
                        handler=target.handler,
                        origin_id=node_id,
                        inline=True,
                    )
                )
                data = self.codec.encode(
                    Op.INLINE if in_action else Op.ACTION,
                    action_id,
                    origin=node_id,
                    payload=self._button_payload(button, inherited_payload),
                )
                return KeyboardButton(label, callback_data=data)
            if not in_action:
                tab_key = compact_id(button.resolved_key(index))
                data = self.codec.encode(Op.TAB, node_id, payload={"id": tab_key})
                return KeyboardButton(label, callback_data=data)

        return KeyboardButton(label, callback_data=self.codec.encode(Op.NOOP, node_id))

    async def _render_list(
        self,
        grid: _Grid,
        node_id: str,
        block: ListBlock,
        list_index: int,
        ctx: MenuContext,
        *,
        inherited_payload: Optional[dict[str, Any]] = None,
        paginate: bool = True,
    ) -> None:
        per_page = block.items_per_page or self.default_items_per_page
        columns = block.column_count or self.default_columns
        total_pages = math.ceil(len(block.items) / per_page)

        page = 0
        page_items = block.items
        if paginate:
            page = self.page_store.get(ctx.chat_id, node_id, list_index)
            page = max(0, min(page, total_pages - 1))
            start = page * per_page
            page_items = block.items[start : start + per_page]

        grid.break_row()
        column = 0
        for item in page_items:
            button = block.render_item(item)
            if not await self._passes_guard(button, ctx):
                continue
            if column >= columns:
                grid.break_row()
                column = 0
            grid.add(
                await self._render_button(
                    node_id,
                    button,
                    None,
                    ctx,
                    inherited_payload=inherited_payload,
                )
            )
            column += 1
        grid.break_row()

        if not paginate or total_pages <= 1:
            return

        origin = str(list_index)
        if page > 0:
            grid.add(
                KeyboardButton(
                    self._tr(i18n.PREVIOUS_PAGE, ctx),
                    callback_data=self.codec.encode(
                        Op.PAGE, node_id, origin=origin, payload={"id": page - 1}
                    ),
                )
            )
        grid.add(
            KeyboardButton(
                f"{page + 1}/{total_pages}",
                callback_data=self.codec.encode(Op.NOOP, node_id),
            )
        )
        if page < total_pages - 1:
            grid.add(
                KeyboardButton(
                    self._tr(i18n.NEXT_PAGE, ctx),
                    callback_data=self.codec.encode(
                        Op.PAGE, node_id, origin=origin, payload={"id": page + 1}
                    ),
                )
            )
        grid.break_row()
