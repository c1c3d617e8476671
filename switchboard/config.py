"""
Configuration management for Switchboard.

Reads configuration from a .env file and environment variables with sensible
defaults. Values already present in the environment win over the .env file.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Default .env file location (relative to the working directory)
DEFAULT_ENV_FILE = Path(".env")

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

logger = logging.getLogger(__name__)


def _load_env_file():
    """Load environment variables from .env file if it exists."""
    env_path = Path(os.getenv("SWITCHBOARD_ENV_FILE", str(DEFAULT_ENV_FILE)))
    if env_path.exists():
        load_dotenv(env_path, override=False)


def _get_int(name: str, default: str) -> int:
    value = os.getenv(name, default)
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: {value} (must be an integer)")


def _get_optional_float(name: str, default: Optional[str]) -> Optional[float]:
    value = os.getenv(name, default)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"Invalid {name}: {value} (must be a number)")


@dataclass
class SwitchboardConfig:
    """Switchboard configuration loaded from .env file and environment variables."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 4221

    # Storage behind /files/
    files_dir: str = "files"

    # Connection timeouts (seconds); None disables the timeout
    idle_timeout_sec: Optional[float] = 30.0
    ws_idle_timeout_sec: Optional[float] = None

    # Largest accepted WebSocket frame payload (bytes)
    ws_max_payload: int = 16 * 1024 * 1024

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def load_config(cls) -> "SwitchboardConfig":
        """
        Load configuration from environment variables.

        Returns:
            SwitchboardConfig instance with loaded values

        Raises:
            ValueError: If configuration is invalid
        """
        _load_env_file()

        log_file = os.getenv("SWITCHBOARD_LOG_FILE") or None

        config = cls(
            host=os.getenv("SWITCHBOARD_HOST", "0.0.0.0"),
            port=_get_int("SWITCHBOARD_PORT", "4221"),
            files_dir=os.getenv("SWITCHBOARD_FILES_DIR", "files"),
            idle_timeout_sec=_get_optional_float("SWITCHBOARD_IDLE_TIMEOUT_SEC", "30"),
            ws_idle_timeout_sec=_get_optional_float("SWITCHBOARD_WS_IDLE_TIMEOUT_SEC", None),
            ws_max_payload=_get_int("SWITCHBOARD_WS_MAX_PAYLOAD", str(16 * 1024 * 1024)),
            log_level=os.getenv("SWITCHBOARD_LOG_LEVEL", "INFO"),
            log_file=log_file,
        )

        config.validate()
        return config

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        # Port 0 lets the OS pick a free port
        if self.port < 0 or self.port > 65535:
            raise ValueError(f"Invalid port: {self.port} (must be 0-65535)")

        if not self.files_dir:
            raise ValueError("Files directory cannot be empty")

        if self.idle_timeout_sec is not None and self.idle_timeout_sec <= 0:
            raise ValueError(f"Invalid idle timeout: {self.idle_timeout_sec} (must be > 0)")

        if self.ws_idle_timeout_sec is not None and self.ws_idle_timeout_sec <= 0:
            raise ValueError(f"Invalid WebSocket idle timeout: {self.ws_idle_timeout_sec} (must be > 0)")

        if self.ws_max_payload <= 0:
            raise ValueError(f"Invalid WebSocket max payload: {self.ws_max_payload} (must be > 0)")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {self.log_level} "
                f"(must be one of: {', '.join(VALID_LOG_LEVELS)})"
            )


def load_config() -> SwitchboardConfig:
    """
    Load and validate Switchboard configuration from environment variables.

    Raises:
        ValueError: If configuration is invalid
    """
    try:
        return SwitchboardConfig.load_config()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        raise
