"""
Concrete exception types raised across the advisor package.
"""
from __future__ import annotations

from advisor.core.exceptions.base import ProjectError


class ConfigurationError(ProjectError):
    """Invalid or missing configuration."""

    default_code = "CONFIGURATION_ERROR"
    default_http_status = 500


class ValidationError(ProjectError):
    """User-supplied value failed validation (bad allocation, currency, email)."""

    default_code = "VALIDATION_ERROR"
    default_http_status = 400
    user_facing = True


class NotFoundError(ProjectError):
    """Requested resource not found."""

    default_code = "NOT_FOUND"
    default_http_status = 404
    user_facing = True


class UnauthorizedError(ProjectError):
    """Authentication required or failed."""

    default_code = "UNAUTHORIZED"
    default_http_status = 401
    user_facing = True


class ExternalServiceError(ProjectError):
    """External service (LLM, DB) failed."""

    default_code = "EXTERNAL_SERVICE_ERROR"
    default_http_status = 502


class ExtractionError(ProjectError):
    """Slot extraction failed (timeout, transport error, unparseable output)."""

    default_code = "EXTRACTION_ERROR"
    default_http_status = 422


class PersistenceError(ExternalServiceError):
    """Writing a conversation turn to the datastore failed."""

    default_code = "PERSISTENCE_ERROR"


class UnknownStageError(ConfigurationError):
    """A session reached a stage with no registered handler.

    Programming error: never converted into a user-facing reply.
    """

    default_code = "UNKNOWN_STAGE"


class SessionNotFoundError(NotFoundError):
    """Session id is unknown or has expired."""

    default_code = "SESSION_NOT_FOUND"
