"""
Daily Brew Centralized Configuration

Provides validated, type-safe access to all environment variables using Pydantic Settings.

Usage:
    from daily_brew.core.config import get_settings

    settings = get_settings()
    if settings.log_level == "DEBUG":
        ...

Environment Variables:
    BREW_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    BREW_DEBUG: Legacy debug flag (enables DEBUG level if set)
    BREW_LOG_JSON: Output logs as JSON
    BREW_STATE_DIR: Directory for persisted taste / timing state
    BREW_TIMEZONE: Wall-clock timezone for quiet hours and greetings
    BREW_REFRESH_INTERVAL_SECONDS: Refresh tick for decay recomputation
    BREW_MAX_ITEMS: Working set bound per session
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path | None:
    """
    Find the project root by searching upward for pyproject.toml.

    Returns:
        Path to the project root if found, None otherwise
    """
    current = Path(__file__).resolve().parent

    for _ in range(10):  # Limit search depth
        if (current / "pyproject.toml").exists():
            return current
        parent = current.parent
        if parent == current:
            break  # Reached filesystem root
        current = parent

    return None


def _find_project_env_file() -> Path | None:
    """Find .env next to pyproject.toml, if any."""
    root = _find_project_root()
    if root is None:
        return None
    env_file = root / ".env"
    return env_file if env_file.exists() else None


def _default_state_dir() -> Path:
    """State lives under the project root, or the working directory as a fallback."""
    root = _find_project_root() or Path.cwd()
    return root / ".daily-brew"


_ENV_FILE = _find_project_env_file()


class BrewSettings(BaseSettings):
    """
    Daily Brew configuration settings with validation.

    Environment variables are automatically loaded with the BREW_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="BREW_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level for Daily Brew components",
    )

    debug: bool = Field(
        default=False,
        description="Legacy debug flag (enables DEBUG level if set)",
    )

    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format for machine parsing",
    )

    # =========================================================================
    # Session State
    # =========================================================================

    state_dir: Path = Field(
        default_factory=_default_state_dir,
        description="Directory holding the JSON key-value state files",
    )

    timezone: str = Field(
        default="UTC",
        description="Wall-clock timezone for quiet hours, windows and greetings",
    )

    # =========================================================================
    # Engine Tuning
    # =========================================================================

    refresh_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between decay refresh ticks while the stream is displayed",
    )

    max_items: int = Field(
        default=200,
        ge=1,
        description="Maximum notification items held in one session's working set",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        """Reject timezone names zoneinfo cannot resolve."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def effective_log_level(self) -> str:
        """
        Get effective log level, respecting legacy BREW_DEBUG.

        Priority:
        1. Explicit BREW_LOG_LEVEL
        2. BREW_DEBUG=1 -> DEBUG
        3. Default: WARNING
        """
        if self.debug and self.log_level == "WARNING":
            return "DEBUG"
        return self.log_level

    @property
    def log_level_int(self) -> int:
        """Get effective log level as logging constant."""
        return getattr(logging, self.effective_log_level)

    @property
    def zone(self) -> ZoneInfo:
        """Configured timezone as a ZoneInfo."""
        return ZoneInfo(self.timezone)


# =============================================================================
# Singleton Accessor
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> BrewSettings:
    """
    Get the singleton settings instance.

    Settings are validated at first access.
    """
    return BrewSettings()


def reset_settings() -> None:
    """
    Reset the settings cache (for testing).

    After calling this, the next get_settings() call will
    reload settings from environment variables.
    """
    get_settings.cache_clear()


def is_debug_enabled() -> bool:
    """Check if debug logging is enabled."""
    return get_settings().effective_log_level == "DEBUG"


def get_state_dir(override: Optional[Path] = None) -> Path:
    """Resolve the state directory, preferring an explicit override."""
    return override if override is not None else get_settings().state_dir
