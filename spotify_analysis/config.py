"""
Configuration module for Spotify Analysis project.

Handles configuration settings including the analysis database location
and the statement timeout.

Environment Variables:
    SPOTIFY_ANALYSIS_DB_DIR: Directory holding the analysis database
    SPOTIFY_ANALYSIS_DB_NAME: Database file name
    SPOTIFY_ANALYSIS_TIMEOUT: Statement timeout in seconds
    SPOTIFY_ANALYSIS_DB_PATH: Full database path (read by the API)
"""

import os
from pathlib import Path
from typing import Optional
import logging

from spotify_analysis.database import store_path

logger = logging.getLogger(__name__)


class Config:
    """Configuration class for Spotify Analysis."""

    DEFAULT_DB_DIR = Path.home() / ".spotify_analysis"
    DEFAULT_DB_NAME = "spotify.db"
    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        source_dir: Optional[str] = None,
        db_dir: Optional[str] = None,
        db_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        """
        Initialize configuration.

        Explicit arguments win over environment variables, which win over
        defaults.

        Args:
            source_dir: Optional export folder to import from.
            db_dir: Optional directory of the analysis database.
            db_name: Optional database file name.
            timeout: Optional statement timeout in seconds.
        """
        self._source_dir: Optional[Path] = Path(source_dir).expanduser() if source_dir else None

        env_dir = os.getenv("SPOTIFY_ANALYSIS_DB_DIR")
        self._db_dir = Path(db_dir or env_dir or self.DEFAULT_DB_DIR).expanduser()

        self._db_name = db_name or os.getenv("SPOTIFY_ANALYSIS_DB_NAME") or self.DEFAULT_DB_NAME

        self._timeout = timeout if timeout is not None else self._env_timeout()

    def _env_timeout(self) -> float:
        raw = os.getenv("SPOTIFY_ANALYSIS_TIMEOUT")
        if not raw:
            return self.DEFAULT_TIMEOUT
        try:
            value = float(raw)
        except ValueError:
            logger.warning(f"Invalid SPOTIFY_ANALYSIS_TIMEOUT {raw!r}, using {self.DEFAULT_TIMEOUT}")
            return self.DEFAULT_TIMEOUT
        return value if value > 0 else self.DEFAULT_TIMEOUT

    @property
    def source_dir(self) -> Optional[Path]:
        """Get the export folder to import from."""
        return self._source_dir

    @property
    def db_dir(self) -> Path:
        return self._db_dir

    @property
    def db_name(self) -> str:
        return self._db_name

    @property
    def db_path(self) -> Path:
        """Get the analysis database file path."""
        return store_path(self._db_dir, self._db_name)

    @property
    def timeout(self) -> float:
        """Get the statement timeout in seconds."""
        return self._timeout

    def validate(self) -> bool:
        """
        Validate that the source folder exists and is readable.

        Returns:
            True if a source folder is set and readable, False otherwise.
        """
        if not self._source_dir:
            return False
        return self._source_dir.is_dir() and os.access(self._source_dir, os.R_OK)

    def ensure_db_dir(self) -> None:
        """Create the database directory if it doesn't exist."""
        self._db_dir.mkdir(parents=True, exist_ok=True)


# Global configuration instance
_config: Optional[Config] = None


def get_config(source_dir: Optional[str] = None) -> Config:
    """
    Get or create the global configuration instance.

    Args:
        source_dir: Optional export folder.

    Returns:
        Config instance.
    """
    global _config
    if _config is None or source_dir is not None:
        _config = Config(source_dir)
    return _config


def set_config(config: Config) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Config instance to use.
    """
    global _config
    _config = config
