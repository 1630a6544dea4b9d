"""Telegram bot wiring for a MenuApp.

Features:
- Update guard (duplicate update ids)
- Catch-all handlers feeding the menu dispatcher
- Command menu from trigger declarations
- Polling or webhook mode with graceful shutdown
"""

import asyncio
import time
from typing import Any, Callable, Optional

import structlog
from telegram import BotCommand, Update
from telegram.ext import (
    Application,
    ApplicationHandlerStop,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    TypeHandler,
    filters,
)

from ..app import MenuApp
from ..config.settings import Settings
from ..exceptions import ConfigurationError, TelemenuError
from .transport import TelegramTransport
from .utils.update_dedupe import UpdateDedupeCache

logger = structlog.get_logger()

_RUN_LOOP_INTERVAL_SECONDS = 1.0
_POLLING_ERROR_LOG_INTERVAL_SECONDS = 30.0

START_COMMAND_DESCRIPTION = "Open the main menu"


class MenuBot:
    """Run a MenuApp as a Telegram bot."""

    def __init__(self, settings: Settings, menu_app: MenuApp):
        self.settings = settings
        self.menu_app = menu_app
        self.app: Optional[Application] = None
        self.is_running = False
        self._update_dedupe_cache = UpdateDedupeCache(ttl_seconds=300, max_size=5000)
        self._polling_error_count = 0
        self._last_polling_error_log = 0.0

    def _require_app(self) -> Application:
        """Return initialized Telegram application or raise."""
        if self.app is None:
            raise TelemenuError("Telegram application is not initialized")
        return self.app

    async def initialize(self) -> None:
        """Build the PTB application and the menu engine."""
        logger.info("Initializing Telegram bot")

        builder = Application.builder()
        builder.token(self.settings.telegram_token_str)
        builder.connect_timeout(30)
        builder.read_timeout(30)
        builder.write_timeout(30)
        builder.pool_timeout(30)
        # Chats are serialized by the dispatcher; different chats run in parallel.
        builder.concurrent_updates(True)

        self.app = builder.build()
        app = self._require_app()

        dispatcher = await self.menu_app.build(TelegramTransport(app.bot))
        app.bot_data["dispatcher"] = dispatcher
        app.bot_data["settings"] = self.settings

        await self._set_bot_commands()
        self._register_handlers()
        app.add_error_handler(self._error_handler)

        logger.info("Bot initialization complete")

    def build_bot_commands(self) -> list[BotCommand]:
        """``/start`` plus every command declared by a menu or action trigger."""
        commands = [BotCommand("start", START_COMMAND_DESCRIPTION)]
        registry = self.menu_app.registry
        if registry is None:
            return commands
        for name in registry.bot_commands():
            if name != "start":
                commands.append(BotCommand(name, name))
        return commands

    async def _set_bot_commands(self) -> None:
        """Publish the command menu (non-fatal on failure)."""
        app = self._require_app()
        try:
            commands = self.build_bot_commands()
            await app.bot.set_my_commands(commands)
            logger.info("Bot commands set", commands=[cmd.command for cmd in commands])
        except Exception as e:
            logger.warning(
                "Failed to set bot commands, will retry on next startup",
                error=str(e),
                error_type=type(e).__name__,
            )

    def _register_handlers(self) -> None:
        """Register the update guard and the catch-all handlers."""
        from .handlers import callback, message

        app = self._require_app()

        app.add_handler(
            TypeHandler(Update, self._handle_update_guard),
            group=-10,
        )

        app.add_handler(
            MessageHandler(
                filters.TEXT | filters.PHOTO | filters.COMMAND,
                self._inject_deps(message.handle_message),
            ),
            group=10,
        )
        app.add_handler(
            CallbackQueryHandler(self._inject_deps(callback.handle_callback_query))
        )

        logger.info("Bot handlers registered")

    async def _handle_update_guard(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Drop duplicate updates before they reach the dispatcher."""
        update_id = getattr(update, "update_id", None)
        if not isinstance(update_id, int):
            return

        if self._update_dedupe_cache.check_and_mark(update_id):
            logger.debug("Skipping duplicate Telegram update", update_id=update_id)
            raise ApplicationHandlerStop

    def _inject_deps(self, handler: Callable) -> Callable:
        """Make sure handlers see the current dispatcher and settings."""

        async def wrapped(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Any:
            context.bot_data["dispatcher"] = self.menu_app.dispatcher
            context.bot_data["settings"] = self.settings
            return await handler(update, context)

        return wrapped

    async def start(self) -> None:
        """Start the bot and block until stop() is called."""
        if self.is_running:
            logger.warning("Bot is already running")
            return

        await self.initialize()

        logger.info(
            "Starting bot", mode="webhook" if self.settings.webhook_url else "polling"
        )

        try:
            self.is_running = True
            app = self._require_app()
            await app.initialize()
            await app.start()

            updater = app.updater
            if updater is None:
                raise TelemenuError("Telegram updater is not available")

            if self.settings.webhook_url:
                await updater.start_webhook(
                    listen="0.0.0.0",
                    port=self.settings.webhook_port,
                    url_path=self.settings.webhook_path.lstrip("/"),
                    webhook_url=self.settings.webhook_url,
                    drop_pending_updates=self.settings.drop_pending_updates,
                    allowed_updates=Update.ALL_TYPES,
                )
            else:
                await updater.start_polling(
                    allowed_updates=Update.ALL_TYPES,
                    drop_pending_updates=self.settings.drop_pending_updates,
                    bootstrap_retries=10,
                    error_callback=self._polling_error_callback,
                )

            while self.is_running:
                await asyncio.sleep(_RUN_LOOP_INTERVAL_SECONDS)
        except Exception as e:
            logger.error("Error running bot", error=str(e))
            raise TelemenuError(f"Failed to start bot: {str(e)}") from e
        finally:
            self.is_running = False

    async def stop(self) -> None:
        """Gracefully stop the bot."""
        if self.app is None:
            logger.warning("Bot is not running")
            return

        logger.info("Stopping bot")
        self.is_running = False

        try:
            app = self._require_app()
            updater = app.updater
            if updater and updater.running:
                await updater.stop()
            if app.running:
                await app.stop()
            await app.shutdown()
            logger.info("Bot stopped successfully")
        except Exception as e:
            logger.error("Error stopping bot", error=str(e))
            raise TelemenuError(f"Failed to stop bot: {str(e)}") from e

    def _polling_error_callback(self, error: Exception) -> None:
        """Log polling network errors at most once per interval (PTB retries)."""
        self._polling_error_count += 1
        now = time.monotonic()
        if now - self._last_polling_error_log < _POLLING_ERROR_LOG_INTERVAL_SECONDS:
            return

        self._last_polling_error_log = now
        log_fn = logger.error if self._polling_error_count > 5 else logger.warning
        log_fn(
            "Polling network error (PTB will retry automatically)",
            error=str(error),
            error_type=type(error).__name__,
            error_count=self._polling_error_count,
        )

    async def _error_handler(
        self, update: object, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle errors that escaped the dispatcher."""
        error = context.error
        update_obj = update if isinstance(update, Update) else None
        logger.error(
            "Global error handler triggered",
            error=str(error),
            error_type=type(error).__name__,
            update_id=update_obj.update_id if update_obj else None,
            chat_id=(
                update_obj.effective_chat.id
                if update_obj and update_obj.effective_chat
                else None
            ),
        )

        error_messages: list[tuple[type[BaseException], str]] = [
            (
                ConfigurationError,
                "⚙️ Configuration error. Please contact the administrator.",
            ),
            (
                asyncio.TimeoutError,
                "⏰ Operation timed out. Please try again.",
            ),
        ]
        user_message = "❌ An unexpected error occurred. Please try again."
        if isinstance(error, BaseException):
            for match_type, text in error_messages:
                if isinstance(error, match_type):
                    user_message = text
                    break

        if update_obj and update_obj.effective_chat:
            try:
                await context.bot.send_message(
                    chat_id=update_obj.effective_chat.id, text=user_message
                )
            except Exception:
                logger.exception("Failed to send error message to user")
