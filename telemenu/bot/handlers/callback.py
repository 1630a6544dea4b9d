"""Handle inline keyboard callbacks."""

import structlog
from telegram import Update
from telegram.ext import ContextTypes

from ...engine.dispatcher import Dispatcher
from ..updates import event_from_update

logger = structlog.get_logger()


async def handle_callback_query(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Route a button press to the menu dispatcher."""
    query = update.callback_query
    if query is None:
        logger.warning("Callback handler called without callback_query payload")
        return

    if not isinstance(query.data, str) or not query.data.strip():
        logger.warning(
            "Callback query payload has invalid data",
            user_id=getattr(query.from_user, "id", None),
            data_type=type(query.data).__name__,
        )
        await query.answer()
        return

    event = event_from_update(update)
    if event is None:
        logger.debug("Callback query without chat, answering only")
        await query.answer()
        return

    dispatcher: Dispatcher = context.bot_data["dispatcher"]
    await dispatcher.dispatch(event)
