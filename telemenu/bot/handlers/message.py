"""Handle commands, text and photo messages."""

import structlog
from telegram import Update
from telegram.ext import ContextTypes

from ...engine.dispatcher import Dispatcher
from ..updates import event_from_update

logger = structlog.get_logger()


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Forward a chat message to the menu dispatcher."""
    event = event_from_update(update)
    if event is None:
        logger.debug(
            "Ignoring unsupported message update",
            update_id=getattr(update, "update_id", None),
        )
        return

    dispatcher: Dispatcher = context.bot_data["dispatcher"]
    await dispatcher.dispatch(event)
