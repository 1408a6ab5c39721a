"""
Per-turn logging context.

The orchestrator binds the active session id for the duration of a turn; the
filter copies it onto every record so both handlers can emit it.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_session_id: ContextVar[Optional[str]] = ContextVar("advisor_session_id", default=None)


def current_session_id() -> Optional[str]:
    return _session_id.get()


@contextmanager
def bind_session(session_id: Optional[str]) -> Iterator[None]:
    """Bind *session_id* to log records emitted inside the block."""
    token = _session_id.set(session_id)
    try:
        yield
    finally:
        _session_id.reset(token)


class SessionContextFilter(logging.Filter):
    """Attach ``record.session_id`` ("-" when no turn is active)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session_id"):
            record.session_id = _session_id.get() or "-"
        return True
