"""Engine configuration using Pydantic Settings.

Configuration is loaded from environment variables prefixed with
``POLICY_ENGINE_``. Optionally, point ``ENV_FILE`` at a local env file
(for development); nothing is loaded from disk unless it is set.
"""

import os
from enum import Enum

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MAX_DEPTH = 50

# Deeper trees would approach the interpreter recursion limit
MAX_DEPTH_CEILING = 1000

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class AppEnvironment(str, Enum):
    """Application environment values."""

    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class EngineSettings(BaseSettings):
    """
    Engine settings with type validation.

    Only the lenient (UI) evaluation mode is configurable here. Policy
    evaluation always runs with strict field access regardless of
    ``strict_field_access``.
    """

    model_config = SettingsConfigDict(
        env_file=os.getenv("ENV_FILE") or None, env_prefix="POLICY_ENGINE_", extra="ignore"
    )

    app_env: AppEnvironment = AppEnvironment.LOCAL

    # Logging
    log_level: str = "INFO"
    structured_logs: bool = True

    # Evaluation
    max_depth: int = DEFAULT_MAX_DEPTH
    strict_field_access: bool = False

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        """Validate and parse app_env to AppEnvironment enum."""
        if isinstance(v, AppEnvironment):
            return v
        try:
            return AppEnvironment(str(v).lower())
        except ValueError:
            raise ValueError(
                f"app_env must be one of {[e.value for e in AppEnvironment]}, got '{v}'"
            )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got '{v}'")
        return level

    @model_validator(mode="after")
    def validate_limits(self) -> "EngineSettings":
        if self.max_depth < 1:
            raise ValueError(f"max_depth must be at least 1, got {self.max_depth}")
        if self.max_depth > MAX_DEPTH_CEILING:
            raise ValueError(f"max_depth must not exceed {MAX_DEPTH_CEILING}, got {self.max_depth}")
        return self


def get_settings() -> EngineSettings:
    """Build a fresh settings object from the current environment."""
    return EngineSettings()


settings = EngineSettings()
