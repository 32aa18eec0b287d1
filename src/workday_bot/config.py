"""Configuration management using Pydantic Settings."""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Security: the bot token is stored as SecretStr to prevent accidental logging.
    Use .get_secret_value() to access the actual token when needed.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )

    # Telegram
    telegram_bot_token: SecretStr = Field(
        ...,
        description="Telegram Bot API token from @BotFather",
    )
    bot_username: str | None = Field(
        default=None,
        description="Bot username used to strip mentions (fetched via getMe when unset)",
    )

    def __repr__(self) -> str:
        """Safe representation that hides secrets."""
        return (
            f"Settings(telegram_bot_token=SecretStr('***'), "
            f"owner_user_id={self.owner_user_id!r}, "
            f"sessions_file='{self.sessions_file}', "
            f"app_version='{self.app_version}')"
        )

    # Workspace owner (may run owner-only commands)
    owner_user_id: str | None = Field(
        default=None,
        description="User ID of the workspace owner",
    )

    # Persistence
    sessions_file: str = Field(
        default="data/workdays.json",
        description="Path of the JSON file holding work sessions",
    )

    # External command modules
    command_modules: dict[str, str] = Field(
        default_factory=dict,
        description="Command name to 'package.module:attribute' of an external command module",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    # Shutdown
    shutdown_timeout: int = Field(
        default=30,
        description="Timeout in seconds for graceful shutdown",
    )

    # Telegram Retry Settings
    telegram_max_retries: int = Field(
        default=3,
        description="Maximum retry attempts for Telegram API calls",
    )
    telegram_retry_base_delay: float = Field(
        default=1.0,
        description="Base delay in seconds for exponential backoff",
    )

    # Application
    app_name: str = Field(
        default="Workday Bot",
        description="Application name",
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version",
    )


def get_settings() -> Settings:
    """Get a settings instance.

    Settings are loaded from environment variables and .env file.
    """
    return Settings()  # type: ignore[call-arg]
