"""Declarative layout builder passed to menu builders and action handlers.

Builders only collect descriptions; the render pipeline turns them into a
message and an inline keyboard.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

from .refs import ActionRef, MenuRef

Label = Union[str, Callable[..., Any]]
Guard = Callable[..., Any]

DEFAULT_REFRESH_LABEL = "🔄 Refresh"


@dataclass(frozen=True)
class UrlTarget:
    url: str


@dataclass(frozen=True)
class MenuTarget:
    ref: MenuRef


@dataclass(frozen=True)
class ActionTarget:
    ref: ActionRef


@dataclass(frozen=True)
class InlineTarget:
    """Handler declared directly on a button.

    Plain functions are stateless tab handlers that only change the layout
    being rendered; coroutine functions are resumable actions.
    """

    handler: Callable[..., Any]
    resumable: bool


ButtonTarget = Union[UrlTarget, MenuTarget, ActionTarget, InlineTarget]


class Button:
    """Fluent builder for one inline button."""

    def __init__(self, label: Label) -> None:
        self.label = label
        self.key: Optional[str] = None
        self.target: Optional[ButtonTarget] = None
        self.payload_data: Optional[dict[str, Any]] = None
        self.guard_fn: Optional[Guard] = None
        self.force_new_row = False
        self.is_default_tab = False

    def __repr__(self) -> str:
        return f"Button({self.label!r}, key={self.key!r}, target={self.target!r})"

    def id(self, value: str) -> "Button":
        """Set a stable id used in callback data instead of the position."""
        self.key = str(value)
        return self

    def url(self, value: str) -> "Button":
        self.target = UrlTarget(value)
        return self

    def menu(self, ref: MenuRef) -> "Button":
        if not isinstance(ref, MenuRef):
            raise TypeError(f"menu() expects a MenuRef, got {type(ref).__name__}")
        self.target = MenuTarget(ref)
        return self

    navigate = menu

    def action(self, handler: Union[ActionRef, Callable[..., Any]]) -> "Button":
        """Attach an ActionRef, a coroutine handler or a plain tab handler."""
        if isinstance(handler, ActionRef):
            self.target = ActionTarget(handler)
        elif callable(handler):
            self.target = InlineTarget(
                handler=handler,
                resumable=inspect.iscoroutinefunction(handler),
            )
        else:
            raise TypeError(f"action() expects a callable, got {type(handler).__name__}")
        return self

    def payload(self, data: dict[str, Any]) -> "Button":
        self.payload_data = dict(data)
        return self

    def guard(self, fn: Guard) -> "Button":
        """Only show the button when ``fn(ctx)`` is truthy (sync or async)."""
        self.guard_fn = fn
        return self

    def row(self) -> "Button":
        """Start a new keyboard row with this button."""
        self.force_new_row = True
        return self

    def default(self) -> "Button":
        """Run this tab handler before the menu is rendered."""
        self.is_default_tab = True
        return self

    def resolved_key(self, index: int) -> str:
        return self.key if self.key is not None else str(index)


@dataclass
class TextBlock:
    content: str
    parse_mode: Optional[str] = None
    variables: Optional[dict[str, Any]] = None

    def parse_as(self, mode: Optional[str]) -> "TextBlock":
        self.parse_mode = mode
        return self

    def replace(self, **variables: Any) -> "TextBlock":
        """Set interpolation variables passed to the translator."""
        self.variables = variables
        return self


@dataclass
class ImageBlock:
    url: str


@dataclass
class RefreshBlock:
    label: str = DEFAULT_REFRESH_LABEL


@dataclass
class ListBlock:
    """Paginated list of buttons rendered from ``items``."""

    items: list[Any]
    items_per_page: Optional[int] = None
    column_count: Optional[int] = None
    render_fn: Optional[Callable[[Any], Any]] = None
    default_action: Optional[Union[ActionRef, Callable[..., Any]]] = None

    def per_page(self, count: int) -> "ListBlock":
        if count <= 0:
            raise ValueError("per_page must be positive")
        self.items_per_page = count
        return self

    def columns(self, count: int) -> "ListBlock":
        if count <= 0:
            raise ValueError("columns must be positive")
        self.column_count = count
        return self

    def render(self, fn: Callable[[Any], Any]) -> "ListBlock":
        """``fn(item)`` returns a Button (or a label string)."""
        self.render_fn = fn
        return self

    def action(self, handler: Union[ActionRef, Callable[..., Any]]) -> "ListBlock":
        """Action applied to rendered items that have no target of their own."""
        self.default_action = handler
        return self

    def render_item(self, item: Any) -> Button:
        rendered = self.render_fn(item) if self.render_fn else str(item)
        button = rendered if isinstance(rendered, Button) else Button(str(rendered))
        if button.target is None and self.default_action is not None:
            button.action(self.default_action)
        return button


LayoutElement = Union[TextBlock, ImageBlock, Button, ListBlock, RefreshBlock]


@dataclass
class Layout:
    """Ordered collection of layout elements."""

    elements: list[LayoutElement] = field(default_factory=list)
    row_limit: int = 0

    def text(self, content: str) -> TextBlock:
        """Set the message text; the last call wins."""
        block = TextBlock(content)
        self.elements.append(block)
        return block

    def image(self, url: str) -> ImageBlock:
        block = ImageBlock(url)
        self.elements.append(block)
        return block

    def button(self, label: Label) -> Button:
        button = Button(label)
        self.elements.append(button)
        return button

    def list(
        self,
        items: Iterable[Any],
        action: Optional[Union[ActionRef, Callable[..., Any]]] = None,
    ) -> ListBlock:
        block = ListBlock(items=list(items), default_action=action)
        self.elements.append(block)
        return block

    def max_per_row(self, count: int) -> None:
        """Maximum buttons per row; 0 means unlimited."""
        if count < 0:
            raise ValueError("max_per_row must be >= 0")
        self.row_limit = count

    def refresh_button(self, label: str = DEFAULT_REFRESH_LABEL) -> RefreshBlock:
        block = RefreshBlock(label)
        self.elements.append(block)
        return block

    @property
    def is_empty(self) -> bool:
        return not self.elements

    def buttons(self) -> list[Button]:
        """Top-level buttons in declaration order."""
        return [el for el in self.elements if isinstance(el, Button)]

    def lists(self) -> list[ListBlock]:
        return [el for el in self.elements if isinstance(el, ListBlock)]


class PromptKeyboard:
    """Keyboard builder for conversation prompts (``ask`` choices, ``say``)."""

    def __init__(self) -> None:
        self.buttons: list[Button] = []
        self.row_limit = 0

    def button(self, label: str) -> Button:
        button = Button(label)
        self.buttons.append(button)
        return button

    def max_per_row(self, count: int) -> None:
        self.row_limit = max(0, count)
