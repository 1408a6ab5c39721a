"""
Logger configuration. Build in code or from env.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

_TRUE = ("1", "true", "yes")


@dataclass(frozen=True)
class LoggerConfig:
    """
    Configuration for the advisor logger.

    Use LoggerConfig.from_env() for env-based config, or build explicitly.
    """

    # Level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    level: str = "INFO"
    # Log directory for rotating file (if None, file handler is skipped)
    log_dir: Optional[str] = None
    # Basename for log file (e.g. "advisor" -> advisor.log)
    log_file_basename: str = "advisor"
    max_bytes: int = 5 * 1024 * 1024  # 5 MB
    backup_count: int = 5
    # Root logger name (handlers attached here; children inherit)
    root_name: str = "advisor"
    console: bool = True
    # Only effective when log_dir is set
    file_rotating: bool = True
    # Include the bound session id in console lines
    console_session_id: bool = True

    @classmethod
    def from_env(cls) -> "LoggerConfig":
        """Build config from LOG_* environment variables."""
        return cls(
            level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            log_dir=os.environ.get("LOG_DIR") or None,
            log_file_basename=os.environ.get("LOG_FILE_BASENAME", "advisor"),
            max_bytes=int(os.environ.get("LOG_MAX_BYTES", "5242880")),
            backup_count=int(os.environ.get("LOG_BACKUP_COUNT", "5")),
            root_name=os.environ.get("LOG_ROOT_NAME", "advisor"),
            console=os.environ.get("LOG_CONSOLE", "true").lower() in _TRUE,
            file_rotating=os.environ.get("LOG_FILE_ROTATING", "true").lower() in _TRUE,
            console_session_id=os.environ.get("LOG_CONSOLE_SESSION_ID", "true").lower() in _TRUE,
        )
