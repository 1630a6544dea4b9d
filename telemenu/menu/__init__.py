"""Declarative menu surface."""

from .layout import (
    ActionTarget,
    Button,
    ButtonTarget,
    ImageBlock,
    InlineTarget,
    Layout,
    ListBlock,
    MenuTarget,
    PromptKeyboard,
    RefreshBlock,
    TextBlock,
    UrlTarget,
)
from .refs import ActionRef, Catalog, MenuRef, Triggers, action, menu

__all__ = [
    "ActionRef",
    "ActionTarget",
    "Button",
    "ButtonTarget",
    "Catalog",
    "ImageBlock",
    "InlineTarget",
    "Layout",
    "ListBlock",
    "MenuRef",
    "MenuTarget",
    "PromptKeyboard",
    "RefreshBlock",
    "TextBlock",
    "Triggers",
    "UrlTarget",
    "action",
    "menu",
]
