"""
Formatters: JSON Lines for the log file, plain text for the console.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Attributes every LogRecord has; anything else came from ``extra=``.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "session_id"}


class JsonFormatter(logging.Formatter):
    """
    One JSON object per record.

    The bound session id is written under ``session_id`` so one conversation
    can be pulled out of the file with a single grep. Values passed through
    ``extra=`` (e.g. ``extra={"error": exc.to_dict()}``) are nested under
    ``extra``.
    """

    def __init__(self, *, include_extra: bool = True) -> None:
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        out: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.lineno}",
        }
        session_id = getattr(record, "session_id", None)
        if session_id and session_id != "-":
            out["session_id"] = session_id
        if record.exc_info:
            out["exception"] = self.formatException(record.exc_info)
        if self.include_extra:
            extra = {k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS}
            if extra:
                out["extra"] = extra
        return json.dumps(out, default=str, ensure_ascii=False)


class PlainConsoleFormatter(logging.Formatter):
    """``time | LEVEL | logger | [session |] message``"""

    DEFAULT_FMT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    SESSION_FMT = "%(asctime)s | %(levelname)-8s | %(name)s | %(session_id)s | %(message)s"

    def __init__(
        self,
        fmt: Optional[str] = None,
        datefmt: str = "%Y-%m-%d %H:%M:%S",
        *,
        with_session_id: bool = False,
    ) -> None:
        super().__init__(
            fmt=fmt or (self.SESSION_FMT if with_session_id else self.DEFAULT_FMT),
            datefmt=datefmt,
        )
