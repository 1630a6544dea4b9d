"""Configuration management using Pydantic Settings.

Features:
- Environment variable loading
- Type validation
- Default values
- Computed properties
"""

from pathlib import Path
from typing import Any, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CALLBACK_DATA_LIMIT = 64
DEFAULT_ITEMS_PER_PAGE = 10
DEFAULT_COLUMNS = 1


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Bot settings
    telegram_bot_token: SecretStr = Field(
        ..., description="Telegram bot token from BotFather"
    )

    # Menu engine
    callback_data_limit: Optional[int] = Field(
        DEFAULT_CALLBACK_DATA_LIMIT,
        description="Max UTF-8 bytes of callback data (unset disables the check)",
        ge=1,
        le=4096,
    )
    default_items_per_page: int = Field(
        DEFAULT_ITEMS_PER_PAGE,
        description="Items per page for lists that do not set per_page()",
        ge=1,
        le=100,
    )
    default_columns: int = Field(
        DEFAULT_COLUMNS,
        description="Columns for lists that do not set columns()",
        ge=1,
        le=8,
    )
    strict_ids: Optional[bool] = Field(
        None,
        description="Raise on duplicate menu/action ids (defaults to debug)",
    )

    # Storage
    session_storage_dir: Optional[Path] = Field(
        None,
        description="Directory for per-chat conversation state (memory if unset)",
    )

    # Monitoring
    log_level: str = Field("INFO", description="Logging level")

    # Development
    debug: bool = Field(False, description="Enable debug mode")
    development_mode: bool = Field(False, description="Enable development features")

    # Polling / webhook
    drop_pending_updates: bool = Field(
        True, description="Discard updates queued while the bot was offline"
    )
    webhook_url: Optional[str] = Field(None, description="Webhook URL for bot")
    webhook_port: int = Field(8443, description="Webhook port")
    webhook_path: str = Field("/webhook", description="Webhook path")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    @field_validator("callback_data_limit", mode="before")
    @classmethod
    def parse_callback_data_limit(cls, v: Any) -> Optional[int]:
        """Treat empty/none/0 as 'no limit'."""
        if v is None:
            return None
        if isinstance(v, str):
            stripped = v.strip().lower()
            if stripped in ("", "none", "0", "off"):
                return None
            return int(stripped)
        if v == 0:
            return None
        return v  # type: ignore[no-any-return]

    @field_validator("session_storage_dir", mode="before")
    @classmethod
    def validate_session_storage_dir(cls, v: Any) -> Optional[Path]:
        """Resolve storage directory; it must not point at a file."""
        if not v:
            return None
        if isinstance(v, str):
            v = Path(v)
        path = v.expanduser().resolve()
        if path.exists() and not path.is_dir():
            raise ValueError(f"Session storage path is not a directory: {path}")
        return path  # type: ignore[no-any-return]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: Any) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()  # type: ignore[no-any-return]

    @model_validator(mode="after")
    def validate_cross_field_dependencies(self) -> "Settings":
        """Validate dependencies between fields."""
        if self.webhook_url and not self.webhook_path.startswith("/"):
            raise ValueError("webhook_path must start with '/'")
        if self.strict_ids is None:
            self.strict_ids = self.debug
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not (self.debug or self.development_mode)

    @property
    def telegram_token_str(self) -> str:
        """Get Telegram token as string."""
        return self.telegram_bot_token.get_secret_value()
