"""Load settings from the environment and an optional env file."""

from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .settings import Settings

logger = structlog.get_logger()


def load_config(config_file: Optional[Path] = None, **overrides: Any) -> Settings:
    """Build Settings, reading ``config_file`` instead of ``.env`` when given."""
    kwargs: dict[str, Any] = dict(overrides)
    if config_file is not None:
        if not config_file.is_file():
            raise ConfigurationError(f"Config file not found: {config_file}")
        kwargs["_env_file"] = config_file

    try:
        settings = Settings(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    logger.debug(
        "Settings loaded",
        config_file=str(config_file) if config_file else None,
        callback_data_limit=settings.callback_data_limit,
        session_storage_dir=(
            str(settings.session_storage_dir) if settings.session_storage_dir else None
        ),
    )
    return settings
