"""Menu/action registry.

Discovery walks the menu graph depth-first from the root, running every
builder once against a synthetic context, and assigns each reachable menu
and action its stable id. Menus and actions only seen later (menus declared
inside builders, list items whose action differs from the probed one) are
adopted lazily by the renderer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Pattern

import structlog

from ..exceptions import DuplicateIdError
from ..menu.layout import ActionTarget, Button, InlineTarget, Layout, MenuTarget
from ..menu.refs import ActionRef, Catalog, MenuRef, Triggers
from ..utils.callables import call_maybe_async, same_callable
from .context import MenuContext

logger = structlog.get_logger()


@dataclass
class MenuNode:
    id: str
    ref: MenuRef
    parent_id: Optional[str] = None

    @property
    def builder(self) -> Callable[..., Any]:
        return self.ref.builder

    @property
    def triggers(self) -> Triggers:
        return self.ref.triggers


@dataclass
class ActionNode:
    """Registered action.

    Inline actions are declared on a button; ``origin_id`` is the menu or
    action whose layout declares them.
    """

    id: str
    handler: Callable[..., Any]
    triggers: Triggers = field(default_factory=Triggers)
    origin_id: Optional[str] = None
    inline: bool = False

    @classmethod
    def from_ref(cls, ref: ActionRef) -> "ActionNode":
        return cls(id=ref.id, handler=ref.handler, triggers=ref.triggers)


def inline_action_id(owner_id: str, button: Button, index: int) -> str:
    """Stable id of an inline handler: ``<owner>_<button id or position>``."""
    return f"{owner_id}_{button.resolved_key(index)}"


class Registry:
    """Authoritative map of menu and action ids."""

    def __init__(self, root: MenuRef, *, strict_ids: bool = False) -> None:
        self.root = root
        self.strict_ids = strict_ids
        self.menus: dict[str, MenuNode] = {}
        self.actions: dict[str, ActionNode] = {}

    @property
    def root_id(self) -> str:
        return self.root.id

    @classmethod
    async def discover(
        cls,
        root: MenuRef,
        catalog: Optional[Catalog] = None,
        *,
        strict_ids: bool = False,
    ) -> "Registry":
        """Build a registry from everything reachable from ``root``."""
        registry = cls(root, strict_ids=strict_ids)
        visited: set[str] = set()
        await registry._visit_menu(root, None, visited)

        if catalog is not None:
            # Declared but unreachable menus/actions still need their triggers.
            for menu_ref in catalog.menus:
                if menu_ref.id not in registry.menus:
                    await registry._visit_menu(menu_ref, None, visited)
            for action_ref in catalog.actions:
                registry.adopt_action(ActionNode.from_ref(action_ref))

        logger.info(
            "Menu registry discovered",
            root_id=root.id,
            menus=len(registry.menus),
            actions=len(registry.actions),
        )
        return registry

    async def _visit_menu(
        self, ref: MenuRef, parent_id: Optional[str], visited: set[str]
    ) -> None:
        if ref.id in visited:
            self.adopt_menu(ref, parent_id)
            return
        visited.add(ref.id)
        self.adopt_menu(ref, parent_id)

        layout = Layout()
        try:
            await call_maybe_async(ref.builder, layout, MenuContext.synthetic_context())
        except Exception as e:
            logger.warning(
                "Menu builder failed during discovery",
                menu_id=ref.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return

        for index, button in enumerate(layout.buttons()):
            await self._visit_button(ref.id, button, index, visited)

        for block in layout.lists():
            if not block.items:
                continue
            try:
                probe = block.render_item(block.items[0])
            except Exception as e:
                logger.debug(
                    "List probe render failed",
                    menu_id=ref.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            await self._visit_list_item(ref.id, probe, visited)

    async def _visit_button(
        self, menu_id: str, button: Button, index: int, visited: set[str]
    ) -> None:
        target = button.target
        if isinstance(target, ActionTarget):
            self.adopt_action(ActionNode.from_ref(target.ref))
        elif isinstance(target, InlineTarget):
            if target.resumable:
                self.adopt_action(
                    ActionNode(
                        id=inline_action_id(menu_id, button, index),
                        handler=target.handler,
                        origin_id=menu_id,
                        inline=True,
                    )
                )
        elif isinstance(target, MenuTarget):
            await self._visit_menu(target.ref, menu_id, visited)

    async def _visit_list_item(
        self, menu_id: str, button: Button, visited: set[str]
    ) -> None:
        target = button.target
        if isinstance(target, ActionTarget):
            self.adopt_action(ActionNode.from_ref(target.ref))
        elif isinstance(target, MenuTarget):
            await self._visit_menu(target.ref, menu_id, visited)

    def adopt_menu(self, ref: MenuRef, parent_id: Optional[str] = None) -> MenuNode:
        """Insert a menu if its id is new; the first parent seen wins."""
        existing = self.menus.get(ref.id)
        if existing is not None:
            if not same_callable(existing.builder, ref.builder):
                self._duplicate("menu", ref.id)
            return existing

        node = MenuNode(
            id=ref.id,
            ref=ref,
            parent_id=parent_id if ref.id != self.root.id else None,
        )
        self.menus[ref.id] = node
        logger.debug("Menu registered", menu_id=ref.id, parent_id=node.parent_id)
        return node

    def adopt_action(self, node: ActionNode) -> ActionNode:
        """Insert an action if its id is new."""
        existing = self.actions.get(node.id)
        if existing is not None:
            if not same_callable(existing.handler, node.handler):
                self._duplicate("action", node.id)
            return existing

        self.actions[node.id] = node
        logger.debug("Action registered", action_id=node.id, inline=node.inline)
        return node

    def _duplicate(self, kind: str, node_id: str) -> None:
        if self.strict_ids:
            raise DuplicateIdError(f"Duplicate {kind} id {node_id!r}")
        logger.warning(
            "Duplicate id, keeping first registration", kind=kind, node_id=node_id
        )

    def parent_of(self, node_id: str) -> Optional[str]:
        """Back target of a menu (None for the root and orphans)."""
        node = self.menus.get(node_id)
        return node.parent_id if node else None

    def command_targets(self) -> Iterator[tuple[Any, str]]:
        """(node, command) pairs, actions before menus."""
        for node in self._trigger_nodes():
            for command in node.triggers.commands:
                yield node, command

    def word_targets(self) -> Iterator[tuple[Any, str]]:
        for node in self._trigger_nodes():
            for word in node.triggers.words:
                yield node, word

    def regexp_targets(self) -> Iterator[tuple[Any, Pattern[str]]]:
        for node in self._trigger_nodes():
            for pattern in node.triggers.regexps:
                yield node, pattern

    def _trigger_nodes(self) -> Iterator[Any]:
        yield from self.actions.values()
        yield from self.menus.values()

    def bot_commands(self) -> list[str]:
        """Distinct command names declared by triggers, in registry order."""
        seen: list[str] = []
        for _, command in self.command_targets():
            if command not in seen:
                seen.append(command)
        return seen
