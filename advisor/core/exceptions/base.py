"""
Base exception type for the advisor package.

Every error carries a machine-readable code and an HTTP status so the API
layer can render it without knowing the concrete class. Only errors marked
``user_facing`` expose their message (and details) to the caller; the rest
are reported as a generic internal error and logged in full.
"""
from __future__ import annotations

import traceback
from typing import Any, Dict, Optional


class ProjectError(Exception):
    """
    Base exception for all advisor errors.

    Attributes:
        message: Human-readable description.
        code: Machine-readable slug (class ``default_code`` unless overridden).
        http_status: Status the API responds with.
        details: Extra context, e.g. the offending slot and value.
        cause: Underlying exception, if any.
    """

    default_code: str = "ERROR"
    default_http_status: int = 500
    user_facing: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        http_status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.http_status = http_status or self.default_http_status
        self.details: Dict[str, Any] = details or {}
        self.cause = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Full record for logs, including the cause traceback."""
        out: Dict[str, Any] = {"code": self.code, "message": self.message, "http_status": self.http_status}
        if self.details:
            out["details"] = self.details
        if self.cause is not None:
            out["cause"] = repr(self.cause)
            out["cause_traceback"] = "".join(
                traceback.format_exception(type(self.cause), self.cause, self.cause.__traceback__)
            )
        return out

    def public_dict(self) -> Dict[str, Any]:
        """Body for API responses."""
        if not self.user_facing:
            return {"code": self.code, "message": "Internal error"}
        out: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            out["details"] = self.details
        return out
