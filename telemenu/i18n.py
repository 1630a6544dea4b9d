"""Localization hook for user-facing strings."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

import structlog

from .engine.context import MenuContext

logger = structlog.get_logger()

BACK = "telemenu.back"
CANCEL = "telemenu.cancel"
USE_BUTTONS = "telemenu.use_buttons"
TEXT_ERROR = "telemenu.text_error"
NUMBER_ERROR = "telemenu.number_error"
PHOTO_ERROR = "telemenu.photo_error"
INVALID_ERROR = "telemenu.invalid_error"
FINISH_FIRST = "telemenu.finish_first"
MENU_FALLBACK = "telemenu.menu_fallback"
ACTION_UNAVAILABLE = "telemenu.action_unavailable"
PREVIOUS_PAGE = "telemenu.previous_page"
NEXT_PAGE = "telemenu.next_page"

DEFAULT_STRINGS: dict[str, str] = {
    BACK: "◀️ Back",
    CANCEL: "🚫 Cancel",
    USE_BUTTONS: "Please use the buttons above.",
    TEXT_ERROR: "Please send a text message.",
    NUMBER_ERROR: "Please send a valid number.",
    PHOTO_ERROR: "Please send a photo.",
    INVALID_ERROR: "Invalid input. Try again.",
    FINISH_FIRST: "Please finish or cancel the current step first.",
    MENU_FALLBACK: "Menu",
    ACTION_UNAVAILABLE: "This button has expired.",
    PREVIOUS_PAGE: "⬅️",
    NEXT_PAGE: "➡️",
}


class Translator(Protocol):
    def translate(
        self,
        key: str,
        ctx: Optional[MenuContext],
        variables: Optional[Mapping[str, Any]] = None,
    ) -> str:
        ...


class DefaultTranslator:
    """Dictionary-backed translator.

    Unknown keys are returned as-is, so literal labels pass through. When
    variables are given, ``{name}`` placeholders are substituted.
    """

    def __init__(self, strings: Optional[Mapping[str, str]] = None) -> None:
        self.strings = dict(DEFAULT_STRINGS)
        if strings:
            self.strings.update(strings)

    def translate(
        self,
        key: str,
        ctx: Optional[MenuContext],
        variables: Optional[Mapping[str, Any]] = None,
    ) -> str:
        text = self.strings.get(key, key)
        if not variables:
            return text
        try:
            return text.format_map(dict(variables))
        except (KeyError, IndexError, ValueError) as e:
            logger.warning("Translation formatting failed", key=key, error=str(e))
            return text
