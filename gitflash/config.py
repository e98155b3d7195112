"""Configuration loading and management."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from gitflash.constants import (
    DEFAULT_HOME_DIRNAME,
    DEFAULT_MAX_READ_MB,
    DEFAULT_MAX_TURNS,
    DEFAULT_MAX_WRITE_MB,
    DEFAULT_MODEL,
    DEFAULT_OPERATION_TIMEOUT,
    DEFAULT_TRANSPORT,
    SUPPORTED_MODELS,
    TRANSPORTS,
)


class ConfigError(Exception):
    """Raised when configuration values cannot be parsed."""


def default_home() -> Path:
    return Path.home() / DEFAULT_HOME_DIRNAME


@dataclass
class Config:
    """GitFlash configuration.

    Loads from .env in the current directory, then ``$GITFLASH_HOME/.env``
    (the stored credential file), then the process environment, which wins.
    """

    # API Keys
    anthropic_api_key: Optional[str] = None

    # Model settings
    default_model: str = DEFAULT_MODEL

    # Session settings
    operation_timeout: float = DEFAULT_OPERATION_TIMEOUT
    max_turns: int = DEFAULT_MAX_TURNS
    transport: str = DEFAULT_TRANSPORT

    # File limits
    max_read_mb: int = DEFAULT_MAX_READ_MB
    max_write_mb: int = DEFAULT_MAX_WRITE_MB

    # Credentials and run logs live here, never in the working directory
    home: Optional[Path] = None

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from .env files and the environment.

        Returns:
            Config instance

        Raises:
            ConfigError: If a numeric setting is not a number
        """
        # Existing environment variables are never overridden
        load_dotenv()
        home = Path(os.getenv("GITFLASH_HOME") or default_home()).expanduser()
        load_dotenv(home / ".env")

        return cls(
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            default_model=os.getenv("GITFLASH_MODEL", DEFAULT_MODEL),
            operation_timeout=_number("GITFLASH_TIMEOUT", DEFAULT_OPERATION_TIMEOUT, float),
            max_turns=_number("GITFLASH_MAX_TURNS", DEFAULT_MAX_TURNS, int),
            transport=os.getenv("GITFLASH_TRANSPORT", DEFAULT_TRANSPORT),
            max_read_mb=_number("GITFLASH_MAX_READ_MB", DEFAULT_MAX_READ_MB, int),
            max_write_mb=_number("GITFLASH_MAX_WRITE_MB", DEFAULT_MAX_WRITE_MB, int),
            home=home,
        )

    @property
    def home_dir(self) -> Path:
        return self.home or default_home()

    def validate(self, require_api_key: bool = True) -> list[str]:
        """Validate configuration and return list of errors.

        Args:
            require_api_key: Whether a missing API key counts as an error

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if require_api_key and not self.anthropic_api_key:
            errors.append("No API key found. Set ANTHROPIC_API_KEY or add it to "
                          f"{self.home_dir / '.env'}")

        if self.default_model not in SUPPORTED_MODELS:
            errors.append(f"Unsupported model: {self.default_model}")

        if self.operation_timeout <= 0:
            errors.append("operation_timeout must be positive")

        if self.max_turns <= 0:
            errors.append("max_turns must be positive")

        if self.transport not in TRANSPORTS:
            errors.append(f"transport must be one of: {', '.join(TRANSPORTS)}")

        if self.max_read_mb <= 0:
            errors.append("max_read_mb must be positive")

        if self.max_write_mb <= 0:
            errors.append("max_write_mb must be positive")

        return errors

    def to_dict(self) -> dict:
        """Convert config to dictionary (for logging/display)."""
        return {
            "default_model": self.default_model,
            "operation_timeout": self.operation_timeout,
            "max_turns": self.max_turns,
            "transport": self.transport,
            "max_read_mb": self.max_read_mb,
            "max_write_mb": self.max_write_mb,
            "home": str(self.home_dir),
            "has_anthropic_key": bool(self.anthropic_api_key),
        }


def _number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
