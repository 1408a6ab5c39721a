"""
advisor.config.postgres – PostgreSQL connection config (dataclass + validators).

Env vars: DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_TIMEOUT, DB_POOL_RECYCLE,
DB_ECHO, DB_APPLICATION_NAME, PERSISTENCE_ENABLED.

Persistence is optional: without DATABASE_URL (or with PERSISTENCE_ENABLED=false)
the API runs with an in-memory session store and a null event sink.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from advisor.core.exceptions import ConfigurationError

_TRUE = ("1", "true", "yes")


def _validate_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        raise ConfigurationError("DATABASE_URL is required and must be non-empty")
    if not (
        url.startswith("postgresql://")
        or url.startswith("postgres://")
        or ("+asyncpg" in url and "postgresql" in url)
    ):
        raise ConfigurationError(
            "DATABASE_URL must start with postgresql:// or postgres:// "
            "(or postgresql+asyncpg://)",
            details={"url_scheme": url.split(":", 1)[0]},
        )
    return url


def _validate_int(value: int, name: str, min_val: int) -> int:
    if not isinstance(value, int) or value < min_val:
        raise ConfigurationError(
            f"{name} must be an integer >= {min_val}, got {value!r}",
            details={"field": name},
        )
    return value


@dataclass(frozen=True)
class PostgresConfig:
    """
    PostgreSQL connection and pool configuration for the transcript store.

    All fields are validated on construction.
    """

    url: str
    """DSN (postgresql:// or postgres://). Converted to postgresql+asyncpg in engine."""

    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    """Seconds after which a connection is recycled."""

    echo: bool = False
    application_name: str = "portfolio-advisor"

    def __post_init__(self) -> None:
        _validate_url(self.url)
        _validate_int(self.pool_size, "pool_size", 1)
        _validate_int(self.max_overflow, "max_overflow", 0)
        _validate_int(self.pool_timeout, "pool_timeout", 1)
        _validate_int(self.pool_recycle, "pool_recycle", 1)
        if not isinstance(self.echo, bool):
            raise ConfigurationError("echo must be a boolean")
        if not isinstance(self.application_name, str) or not self.application_name.strip():
            raise ConfigurationError("application_name must be a non-empty string")

    @classmethod
    def from_env(cls, **overrides: object) -> "PostgresConfig":
        """
        Build config from environment variables. Overrides take precedence over env.

        Raises ConfigurationError when DATABASE_URL is missing or malformed.
        """
        raw_url = overrides.get("url") or os.environ.get("DATABASE_URL", "")
        url = _validate_url(str(raw_url))

        def _int(attr: str, env: str, default: int) -> int:
            v = overrides.get(attr)
            if v is not None:
                return int(v)  # type: ignore[arg-type]
            return int(os.environ.get(env, default))

        echo = overrides.get("echo")
        if echo is None:
            echo = os.environ.get("DB_ECHO", "").strip().lower() in _TRUE
        app_name = overrides.get("application_name") or os.environ.get(
            "DB_APPLICATION_NAME", "portfolio-advisor"
        )
        return cls(
            url=url,
            pool_size=_int("pool_size", "DB_POOL_SIZE", 5),
            max_overflow=_int("max_overflow", "DB_MAX_OVERFLOW", 10),
            pool_timeout=_int("pool_timeout", "DB_POOL_TIMEOUT", 30),
            pool_recycle=_int("pool_recycle", "DB_POOL_RECYCLE", 1800),
            echo=bool(echo),
            application_name=str(app_name),
        )


def persistence_enabled() -> bool:
    """True when DATABASE_URL is set and PERSISTENCE_ENABLED is not switched off."""
    if os.environ.get("PERSISTENCE_ENABLED", "true").strip().lower() not in _TRUE:
        return False
    return bool(os.environ.get("DATABASE_URL", "").strip())


def load_postgres_config(**overrides: object) -> Optional[PostgresConfig]:
    """
    Load and validate PostgreSQL config from environment (with optional overrides).

    Returns None when persistence is disabled and no url override is given.
    """
    if not overrides.get("url") and not persistence_enabled():
        return None
    return PostgresConfig.from_env(**overrides)
