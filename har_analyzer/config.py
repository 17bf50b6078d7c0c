"""
Runtime configuration, read from the environment (and an optional .env file).
"""

import os
import logging
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _env_number(name: str, default, cast):
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return cast(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


class HarAnalyzerConfig:
    """Default HAR analyzer configuration."""
    SESSIONS_DIR = Path.home() / ".har-analyzer" / "sessions"
    SESSION_TTL_HOURS = 24.0
    PREVIEW_THRESHOLD = 1000  # chars; shorter content is shown verbatim
    PREVIEW_LENGTH = 200
    LOG_LEVEL = "INFO"

    def __init__(
        self,
        sessions_dir: Optional[Path] = None,
        session_ttl_hours: Optional[float] = None,
        preview_threshold: Optional[int] = None,
        preview_length: Optional[int] = None,
        log_level: Optional[str] = None,
    ):
        self.sessions_dir = Path(sessions_dir) if sessions_dir else self.SESSIONS_DIR
        self.session_ttl_hours = self.SESSION_TTL_HOURS if session_ttl_hours is None else session_ttl_hours
        self.preview_threshold = self.PREVIEW_THRESHOLD if preview_threshold is None else preview_threshold
        self.preview_length = self.PREVIEW_LENGTH if preview_length is None else preview_length
        self.log_level = (log_level or self.LOG_LEVEL).upper()

        if self.preview_length > self.preview_threshold:
            raise ValueError("preview_length must not exceed preview_threshold")

    @classmethod
    def from_env(cls, env_path: Optional[str] = None) -> "HarAnalyzerConfig":
        """
        Build configuration from environment variables.

        Args:
            env_path: Optional .env file to load first (defaults to the
                      python-dotenv search from the current directory)

        Returns:
            HarAnalyzerConfig

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        load_dotenv(env_path)

        sessions_dir = os.getenv("HAR_ANALYZER_SESSIONS_DIR")
        config = cls(
            sessions_dir=Path(sessions_dir).expanduser() if sessions_dir else None,
            session_ttl_hours=_env_number("HAR_ANALYZER_SESSION_TTL_HOURS", None, float),
            preview_threshold=_env_number("HAR_ANALYZER_PREVIEW_THRESHOLD", None, int),
            preview_length=_env_number("HAR_ANALYZER_PREVIEW_LENGTH", None, int),
            log_level=os.getenv("HAR_ANALYZER_LOG_LEVEL"),
        )
        logger.debug(f"Loaded config: sessions_dir={config.sessions_dir}, ttl={config.session_ttl_hours}h")
        return config
