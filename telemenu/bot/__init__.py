"""python-telegram-bot integration."""

from .core import MenuBot
from .transport import TelegramTransport
from .updates import event_from_update

__all__ = ["MenuBot", "TelegramTransport", "event_from_update"]
