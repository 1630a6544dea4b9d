"""Convert engine keyboards into python-telegram-bot markup."""

from __future__ import annotations

from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from ...engine.transport import Keyboard, KeyboardButton


def build_button(button: KeyboardButton) -> InlineKeyboardButton:
    if button.url is not None:
        return InlineKeyboardButton(button.text, url=button.url)
    return InlineKeyboardButton(button.text, callback_data=button.callback_data)


def build_reply_markup(keyboard: Optional[Keyboard]) -> Optional[InlineKeyboardMarkup]:
    """Build inline keyboard markup; None for an empty keyboard."""
    if not keyboard:
        return None

    rows = [[build_button(button) for button in row] for row in keyboard if row]
    if not rows:
        return None
    return InlineKeyboardMarkup(rows)
