"""
Project exception system.

Usage:
    from advisor.core.exceptions import ValidationError

    raise ValidationError(
        "Your allocation adds up to 120%, which is more than 100%.",
        details={"slot": "allocation", "total": 120.0},
    )
"""
from advisor.core.exceptions.base import ProjectError
from advisor.core.exceptions.errors import (
    ConfigurationError,
    ExternalServiceError,
    ExtractionError,
    NotFoundError,
    PersistenceError,
    SessionNotFoundError,
    UnauthorizedError,
    UnknownStageError,
    ValidationError,
)

__all__ = [
    "ProjectError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "UnauthorizedError",
    "ExternalServiceError",
    "ExtractionError",
    "PersistenceError",
    "UnknownStageError",
    "SessionNotFoundError",
]
