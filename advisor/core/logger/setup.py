"""
Logger setup: console and rotating JSON file handlers on the package root logger.
"""
from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from advisor.core.logger.config import LoggerConfig
from advisor.core.logger.context import SessionContextFilter
from advisor.core.logger.formatters import JsonFormatter, PlainConsoleFormatter


def _level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def configure(config: Optional[LoggerConfig] = None) -> logging.Logger:
    """
    Attach handlers to the package root logger (``advisor`` by default) and
    return it. Safe to call again; existing handlers are replaced.
    """
    config = config or LoggerConfig.from_env()
    root = logging.getLogger(config.root_name or "advisor")
    root.setLevel(_level(config.level))
    root.handlers.clear()

    if config.console:
        root.addHandler(build_console_handler(config.level, with_session_id=config.console_session_id))

    if config.file_rotating and config.log_dir and config.log_dir.strip():
        try:
            root.addHandler(
                build_rotating_file_handler(
                    config.log_dir,
                    basename=config.log_file_basename,
                    max_bytes=config.max_bytes,
                    backup_count=config.backup_count,
                    level=config.level,
                )
            )
        except OSError as exc:
            root.warning("Logger: cannot write to %s (%s); file logging disabled", config.log_dir, exc)

    root.propagate = False
    return root


def build_rotating_file_handler(
    log_dir: str,
    basename: str = "advisor",
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 5,
    level: str = "INFO",
) -> RotatingFileHandler:
    os.makedirs(log_dir, exist_ok=True)
    handler = RotatingFileHandler(
        os.path.join(log_dir, f"{basename}.log"),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(_level(level))
    handler.setFormatter(JsonFormatter())
    handler.addFilter(SessionContextFilter())
    return handler


def build_console_handler(level: str = "INFO", *, with_session_id: bool = False) -> logging.StreamHandler:
    handler = logging.StreamHandler()
    handler.setLevel(_level(level))
    handler.setFormatter(PlainConsoleFormatter(with_session_id=with_session_id))
    handler.addFilter(SessionContextFilter())
    return handler
