"""Command line entry point: run a menu bot."""

import argparse
import asyncio
import importlib
import logging
import re
import signal
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

from telemenu import __version__
from telemenu.app import MenuApp
from telemenu.bot.core import MenuBot
from telemenu.config.loader import load_config
from telemenu.config.settings import Settings
from telemenu.exceptions import ConfigurationError
from telemenu.menu.refs import MenuRef

_TELEGRAM_BOT_TOKEN_IN_URL_RE = re.compile(
    r"(https?://api\.telegram\.org/(?:file/)?bot)([^/\s]+)"
)
_TELEGRAM_BOT_TOKEN_RAW_RE = re.compile(r"\b\d{6,}:[A-Za-z0-9_-]{20,}\b")


def redact_sensitive_text(text: str) -> str:
    """Redact bot tokens from log text."""
    redacted = _TELEGRAM_BOT_TOKEN_IN_URL_RE.sub(r"\1<redacted>", text)
    redacted = _TELEGRAM_BOT_TOKEN_RAW_RE.sub("<redacted_token>", redacted)
    return redacted


class SensitiveLogFilter(logging.Filter):
    """Filter log records to avoid leaking secrets."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_sensitive_text(message)
        if redacted != message:
            # Keep a pre-formatted safe message to avoid re-inserting args.
            record.msg = redacted
            record.args = ()
        return True


def setup_logging(debug: bool = False, level_name: Optional[str] = None) -> None:
    """Configure structured logging."""
    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stdout,
        force=True,
    )
    sensitive_filter = SensitiveLogFilter()
    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        handler.addFilter(sensitive_filter)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            (
                structlog.processors.JSONRenderer()
                if not debug
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run a telemenu button-menu bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version", action="version", version=f"telemenu {__version__}"
    )

    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    parser.add_argument("--config-file", type=Path, help="Path to configuration file")

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--app",
        metavar="MODULE:ATTR",
        help="Root MenuRef or MenuApp to serve, e.g. mybot.menus:root",
    )
    source.add_argument(
        "--demo", action="store_true", help="Serve the bundled demo menus"
    )

    return parser.parse_args(argv)


def load_target(spec: str) -> Any:
    """Import ``module:attr`` and return the attribute."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(f"Expected MODULE:ATTR, got {spec!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import {module_name!r}: {e}") from e
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise ConfigurationError(f"{module_name!r} has no attribute {attr!r}") from e


def create_menu_app(args: argparse.Namespace, config: Settings) -> MenuApp:
    """Resolve the menu app selected on the command line."""
    if args.demo:
        from telemenu import demo

        return MenuApp(demo.root, catalog=demo.catalog, settings=config)

    target = load_target(args.app)
    if isinstance(target, MenuApp):
        if target.settings is None:
            target.settings = config
        return target
    if isinstance(target, MenuRef):
        return MenuApp(target, settings=config)
    raise ConfigurationError(
        f"{args.app} is a {type(target).__name__}, expected MenuRef or MenuApp"
    )


async def run_application(bot: MenuBot) -> None:
    """Run the bot with graceful shutdown handling."""
    logger = structlog.get_logger()

    shutdown_event = asyncio.Event()

    def signal_handler(signum: int, frame: Any) -> None:
        logger.info("Shutdown signal received", signal=signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        bot_task = asyncio.create_task(bot.start())
        shutdown_task = asyncio.create_task(shutdown_event.wait())

        done, pending = await asyncio.wait(
            [bot_task, shutdown_task], return_when=asyncio.FIRST_COMPLETED
        )

        for task in pending:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        # Surface bot failures so the process exits non-zero.
        if bot_task in done and not bot_task.cancelled():
            exc = bot_task.exception()
            if exc is not None:
                raise exc

    except Exception as e:
        logger.error("Application error", error=str(e))
        raise
    finally:
        logger.info("Shutting down application")
        try:
            await bot.stop()
        except Exception as e:
            logger.error("Error during shutdown", error=str(e))
        logger.info("Application shutdown complete")


async def main(argv: Optional[list[str]] = None) -> None:
    """Main application entry point."""
    args = parse_args(argv)
    setup_logging(debug=args.debug)

    logger = structlog.get_logger()
    logger.info("Starting telemenu", version=__version__)

    try:
        config = load_config(config_file=args.config_file)
        if not args.debug:
            setup_logging(debug=config.debug, level_name=config.log_level)

        logger.info(
            "Configuration loaded",
            environment="production" if config.is_production else "development",
            debug=config.debug,
            mode="webhook" if config.webhook_url else "polling",
        )

        menu_app = create_menu_app(args, config)
        await run_application(MenuBot(config, menu_app))

    except ConfigurationError as e:
        logger.error("Configuration error", error=str(e))
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error", error=str(e))
        sys.exit(1)


def run() -> None:
    """Synchronous entry point for setuptools."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        sys.exit(0)


if __name__ == "__main__":
    run()
