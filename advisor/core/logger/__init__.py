"""
Project logger: console + optional rotating JSON file, tagged with the active session.

Usage:
    from advisor.core.logger import LoggerConfig, configure, bind_session

    # Once at startup; from env: LOG_LEVEL, LOG_DIR, LOG_FILE_BASENAME, LOG_MAX_BYTES, ...
    configure(LoggerConfig.from_env())

    # Modules keep using the stdlib: logging.getLogger(__name__)

    # Tag every record emitted while handling one conversation turn
    with bind_session("session-1712345678901-ab12cd34ef56"):
        logger.info("Orchestrator: turn started")
"""
from advisor.core.logger.config import LoggerConfig
from advisor.core.logger.context import SessionContextFilter, bind_session, current_session_id
from advisor.core.logger.formatters import JsonFormatter, PlainConsoleFormatter
from advisor.core.logger.setup import build_console_handler, build_rotating_file_handler, configure

__all__ = [
    "LoggerConfig",
    "JsonFormatter",
    "PlainConsoleFormatter",
    "SessionContextFilter",
    "bind_session",
    "current_session_id",
    "configure",
    "build_rotating_file_handler",
    "build_console_handler",
]
