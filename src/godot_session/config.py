"""Configuration management using pydantic-settings.

Key patterns:
1. Multiple env files (.env, .env.local) - local overrides shared
2. validation_alias for explicit env var names
3. Startup warning when the Godot path is left to auto-detection
4. Singleton instance for easy import

Usage:
    from godot_session.config import settings
    print(settings.receiver_port)
"""

import logging
from typing import Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Session settings loaded from environment variables.

    ``GODOT_PATH`` and ``DEBUG`` use the names the rest of the Godot
    tooling already understands; everything else is prefixed ``GODOT_``.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def warn_missing_godot_path(self) -> Self:
        """Note at startup when the executable will be auto-detected."""
        if not self.godot_path:
            logger.info("GODOT_PATH not set, Godot will be auto-detected")
        return self

    # ==========================================================================
    # RUNTIME
    # ==========================================================================

    godot_path: str | None = Field(
        default=None,
        validation_alias="GODOT_PATH",
        description="Path to the Godot executable (None = auto-detect)",
    )

    force_windowed: bool = Field(
        default=True,
        validation_alias="GODOT_FORCE_WINDOWED",
        description="Rewrite fullscreen window modes to windowed while a session runs",
    )

    # ==========================================================================
    # RECEIVER CONNECTION
    # ==========================================================================

    receiver_host: str = Field(
        default="127.0.0.1",
        validation_alias="GODOT_RECEIVER_HOST",
        description="Host the in-game receiver listens on",
    )

    receiver_port: int = Field(
        default=9876,
        validation_alias="GODOT_RECEIVER_PORT",
        description="Port the in-game receiver listens on",
    )

    # ==========================================================================
    # TIMING
    # ==========================================================================

    command_timeout_seconds: float = Field(
        default=5.0,
        validation_alias="GODOT_COMMAND_TIMEOUT",
        description="Seconds to wait for a reply to one command",
    )

    connect_timeout_seconds: float = Field(
        default=5.0,
        validation_alias="GODOT_CONNECT_TIMEOUT",
        description="Seconds to wait for the receiver connection to open",
    )

    launch_grace_seconds: float = Field(
        default=2.0,
        validation_alias="GODOT_LAUNCH_GRACE",
        description="Seconds to wait after launch before the receiver is used",
    )

    stop_timeout_seconds: float = Field(
        default=3.0,
        validation_alias="GODOT_STOP_TIMEOUT",
        description="Seconds to wait after SIGTERM before killing Godot",
    )

    # ==========================================================================
    # OUTPUT
    # ==========================================================================

    log_capacity: int = Field(
        default=10_000,
        validation_alias="GODOT_LOG_CAPACITY",
        description="Maximum stdout/stderr lines kept per stream",
    )

    debug: bool = Field(
        default=False,
        validation_alias="DEBUG",
        description="Enable debug logging",
    )


# Singleton instance
settings = Settings.model_validate({})
