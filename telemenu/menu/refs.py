"""Menu and action declarations.

A :class:`MenuRef` wraps a layout builder, an :class:`ActionRef` wraps an
action handler. Both carry optional triggers (commands, literal words,
regular expressions) that open them directly from a chat message.

Ids are stable across restarts: either given explicitly or derived from the
code location of the builder/handler.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Pattern, Union

from ..engine.protocol import validate_id

MenuBuilder = Callable[..., Any]
ActionHandler = Callable[..., Any]
RegexpLike = Union[str, Pattern[str]]


@dataclass(frozen=True)
class Triggers:
    """Ways to open a menu or start an action from a chat message."""

    commands: tuple[str, ...] = ()
    words: tuple[str, ...] = ()
    regexps: tuple[Pattern[str], ...] = ()

    @classmethod
    def build(
        cls,
        commands: Iterable[str] = (),
        words: Iterable[str] = (),
        regexps: Iterable[RegexpLike] = (),
    ) -> "Triggers":
        return cls(
            commands=tuple(c.lstrip("/").lower() for c in commands),
            words=tuple(words),
            regexps=tuple(
                re.compile(r) if isinstance(r, str) else r for r in regexps
            ),
        )

    def __bool__(self) -> bool:
        return bool(self.commands or self.words or self.regexps)


def code_location_id(prefix: str, fn: Callable[..., Any]) -> str:
    """Derive a short deterministic id from where ``fn`` is defined.

    Closures re-created on every render (menus declared inside builders)
    get the same id each time. Use explicit ids for menus created in loops
    or factories, where one code location yields several menus.
    """
    code = getattr(fn, "__code__", None)
    module = getattr(fn, "__module__", "") or ""
    qualname = getattr(fn, "__qualname__", repr(fn))
    line = code.co_firstlineno if code is not None else 0
    digest = hashlib.sha1(f"{module}:{qualname}:{line}".encode("utf-8")).hexdigest()
    return f"{prefix}{digest[:8]}"


@dataclass(eq=False)
class MenuRef:
    """A navigable screen: ``builder(layout, ctx)`` fills in a Layout."""

    builder: MenuBuilder
    id: str = ""
    triggers: Triggers = field(default_factory=Triggers)

    def __post_init__(self) -> None:
        if not self.id:
            self.id = code_location_id("m", self.builder)
        validate_id(self.id, kind="menu id")


@dataclass(eq=False)
class ActionRef:
    """A handler unit: ``handler(action_ctx)``, sync or async."""

    handler: ActionHandler
    id: str = ""
    triggers: Triggers = field(default_factory=Triggers)

    def __post_init__(self) -> None:
        if not self.id:
            self.id = code_location_id("a", self.handler)
        validate_id(self.id, kind="action id")


def menu(
    builder: Optional[MenuBuilder] = None,
    *,
    id: Optional[str] = None,
    commands: Iterable[str] = (),
    words: Iterable[str] = (),
    regexps: Iterable[RegexpLike] = (),
) -> Any:
    """Declare a menu. Usable as ``menu(fn)`` or ``@menu(commands=[...])``."""
    triggers = Triggers.build(commands, words, regexps)

    def wrap(fn: MenuBuilder) -> MenuRef:
        return MenuRef(builder=fn, id=id or "", triggers=triggers)

    if builder is not None:
        return wrap(builder)
    return wrap


def action(
    handler: Optional[ActionHandler] = None,
    *,
    id: Optional[str] = None,
    commands: Iterable[str] = (),
    words: Iterable[str] = (),
    regexps: Iterable[RegexpLike] = (),
) -> Any:
    """Declare an action. Usable as ``action(fn)`` or ``@action(words=[...])``."""
    triggers = Triggers.build(commands, words, regexps)

    def wrap(fn: ActionHandler) -> ActionRef:
        return ActionRef(handler=fn, id=id or "", triggers=triggers)

    if handler is not None:
        return wrap(handler)
    return wrap


class Catalog:
    """Explicit collection of declared menus and actions.

    Everything declared through a catalog is registered even when no button
    links to it, so its triggers keep working.
    """

    def __init__(self) -> None:
        self.menus: list[MenuRef] = []
        self.actions: list[ActionRef] = []

    def menu(self, builder: Optional[MenuBuilder] = None, **kwargs: Any) -> Any:
        if builder is not None:
            return self.add(menu(builder, **kwargs))

        def wrap(fn: MenuBuilder) -> MenuRef:
            return self.add(menu(fn, **kwargs))

        return wrap

    def action(self, handler: Optional[ActionHandler] = None, **kwargs: Any) -> Any:
        if handler is not None:
            return self.add(action(handler, **kwargs))

        def wrap(fn: ActionHandler) -> ActionRef:
            return self.add(action(fn, **kwargs))

        return wrap

    def add(self, ref: Any) -> Any:
        """Record an existing MenuRef/ActionRef."""
        if isinstance(ref, MenuRef):
            self.menus.append(ref)
        elif isinstance(ref, ActionRef):
            self.actions.append(ref)
        else:
            raise TypeError(f"Expected MenuRef or ActionRef, got {type(ref).__name__}")
        return ref

    def __len__(self) -> int:
        return len(self.menus) + len(self.actions)
