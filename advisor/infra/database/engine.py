"""
Async SQLAlchemy engine for the transcript store.

The engine and session factory are process-wide singletons created at API
startup and disposed on shutdown. Only the persistence bridge and the
transcript endpoint touch the database; the conversation itself never does.
"""
from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple
from urllib.parse import urlparse, urlunparse

import asyncpg
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# Importing the package registers every model with Base.metadata
import advisor.infra.database.models  # noqa: F401
from advisor.core.exceptions import ConfigurationError, PersistenceError
from advisor.infra.database.models.base import Base

if TYPE_CHECKING:
    from advisor.config import PostgresConfig

logger = logging.getLogger(__name__)

_SAFE_DBNAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

# Columns added after the first release; each statement is idempotent.
_SCHEMA_UPGRADES: Tuple[str, ...] = (
    "ALTER TABLE messages ADD COLUMN IF NOT EXISTS turn_index INTEGER NOT NULL DEFAULT 0",
    "ALTER TABLE conversations ADD COLUMN IF NOT EXISTS flow VARCHAR(32) NOT NULL DEFAULT 'standard'",
)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _config_or_env(config: Optional["PostgresConfig"]) -> "PostgresConfig":
    if config is not None:
        return config
    from advisor.config import load_postgres_config

    loaded = load_postgres_config()
    if loaded is None:
        raise ConfigurationError("Persistence is disabled: DATABASE_URL is not set")
    return loaded


def asyncpg_url(url: str) -> str:
    """``postgres://`` / ``postgresql://`` DSN rewritten for the asyncpg dialect."""
    if "+asyncpg" in url:
        return url
    scheme, sep, rest = url.partition("://")
    if scheme in ("postgres", "postgresql") and sep:
        return f"postgresql+asyncpg://{rest}"
    return url


def split_maintenance_url(url: str) -> Tuple[str, str]:
    """Return ``(target database name, DSN of the "postgres" maintenance database)``."""
    parsed = urlparse(url.replace("+asyncpg", ""))
    dbname = (parsed.path or "").strip("/") or "postgres"
    maintenance = urlunparse(parsed._replace(path="/postgres"))
    return dbname, maintenance


async def ensure_database_exists(config: Optional["PostgresConfig"] = None) -> bool:
    """Create the transcript database on first run. Returns True when it was created.

    An unreachable server is not an error here; ``init_db`` reports it.
    """
    config = _config_or_env(config)
    dbname, maintenance_url = split_maintenance_url(config.url)
    if dbname == "postgres":
        return False
    if not _SAFE_DBNAME.match(dbname):
        logger.warning("Database: refusing to create database with unsafe name %r", dbname)
        return False
    try:
        conn = await asyncpg.connect(maintenance_url)
    except (OSError, asyncpg.PostgresError) as exc:
        logger.debug("Database: maintenance connection failed (%s); not creating %s", exc, dbname)
        return False
    try:
        if await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", dbname):
            return False
        await conn.execute(f'CREATE DATABASE "{dbname}"')
        logger.info("Database: created %s", dbname)
        return True
    finally:
        await conn.close()


def _engine_kwargs(config: "PostgresConfig", echo: Optional[bool]) -> Dict[str, Any]:
    return {
        "echo": config.echo if echo is None else echo,
        "pool_size": config.pool_size,
        "max_overflow": config.max_overflow,
        "pool_timeout": config.pool_timeout,
        "pool_recycle": config.pool_recycle,
        "pool_pre_ping": True,
        "connect_args": {"server_settings": {"application_name": config.application_name}},
    }


def build_engine(config: Optional["PostgresConfig"] = None, *, echo: Optional[bool] = None) -> AsyncEngine:
    """Create (once) and return the shared async engine."""
    global _engine
    if _engine is None:
        config = _config_or_env(config)
        _engine = create_async_engine(asyncpg_url(config.url), **_engine_kwargs(config, echo))
        logger.info(
            "Database: engine ready (pool_size=%d, max_overflow=%d)",
            config.pool_size,
            config.max_overflow,
        )
    return _engine


def build_session_factory(engine: Optional[AsyncEngine] = None) -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            engine or build_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def _upgrade_schema(conn: AsyncConnection) -> None:
    for stmt in _SCHEMA_UPGRADES:
        await conn.execute(text(stmt))


async def init_db(config: Optional["PostgresConfig"] = None, *, drop_all: bool = False) -> None:
    """Create the conversation tables and apply column upgrades.

    Raises PersistenceError when the database cannot be reached.
    """
    engine = build_engine(_config_or_env(config))
    try:
        async with engine.begin() as conn:
            if drop_all:
                logger.warning("Database: dropping all tables")
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
            await _upgrade_schema(conn)
    except (OSError, SQLAlchemyError) as exc:
        raise PersistenceError("Could not initialise the transcript database", cause=exc) from exc
    logger.info("Database: schema ready")


async def close_engine() -> None:
    """Dispose the pool. Call on shutdown."""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Database: engine disposed")
