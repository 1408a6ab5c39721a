"""Portfolio advisor FastAPI application: entry point.

Start with:
    uvicorn advisor.api.main:app --reload --host 0.0.0.0 --port 8000

The LLM client is resolved from env (OPENAI_API_KEY or GEMINI_API_KEY) and
falls back to a no-op client, so the conversation runs on deterministic
parsing without any key. Persistence is enabled when DATABASE_URL is set.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from advisor.api.routers import chat as chat_router
from advisor.clients.llm.registry import build_llm_client_from_env
from advisor.config import load_postgres_config
from advisor.core.exceptions import PersistenceError, ProjectError, UnauthorizedError
from advisor.core.logger import LoggerConfig, configure
from advisor.infra.database.engine import (
    build_engine,
    build_session_factory,
    close_engine,
    ensure_database_exists,
    init_db,
)
from advisor.orchestrator.events import NullEventSink
from advisor.orchestrator.orchestrator import Orchestrator
from advisor.orchestrator.session_store import InMemorySessionStore
from advisor.orchestrator.types import OrchestratorConfig
from advisor.services.persistence_bridge import PersistenceBridge

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ──────────────────────────────────────────────────
    configure(LoggerConfig.from_env())

    llm_client = build_llm_client_from_env()
    app.state.llm_client = llm_client

    sink = NullEventSink()
    app.state.session_factory = None
    pg_config = load_postgres_config()
    if pg_config is not None:
        await ensure_database_exists(pg_config)
        try:
            await init_db(pg_config)
        except PersistenceError as exc:
            logger.error("API: %s; continuing without persistence", exc.message, extra={"error": exc.to_dict()})
            await close_engine()
            pg_config = None
        else:
            session_factory = build_session_factory(build_engine(pg_config))
            app.state.session_factory = session_factory
            sink = PersistenceBridge(session_factory)
            logger.info("API: persistence enabled")
    else:
        logger.info("API: DATABASE_URL not set; conversations are not persisted")
    app.state.event_sink = sink

    orch_config = OrchestratorConfig.from_env()
    store = InMemorySessionStore(
        ttl_seconds=orch_config.session_ttl_seconds, default_flow=orch_config.flow,
    )
    app.state.orchestrator = Orchestrator(llm_client, orch_config, store=store, sink=sink)
    logger.info("API: orchestrator ready (%s)", orch_config.to_dict())

    yield

    # ── Shutdown ─────────────────────────────────────────────────
    if isinstance(sink, PersistenceBridge):
        await sink.drain()
    if pg_config is not None:
        await close_engine()


app = FastAPI(
    title="Portfolio Advisor API",
    version="1.0.0",
    description="Stage-based portfolio intake conversation with AI slot filling.",
    lifespan=lifespan,
)

# Per-client limit on the chat endpoint (CHAT_RATE_LIMIT, default 30/minute)
app.state.limiter = chat_router.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

_allowed_origins = os.environ.get(
    "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Optional API key authentication ──────────────────────────────
# Set ADMIN_API_KEY env var to protect all /api/v1/* endpoints.
# Requests must then include the header:  X-Api-Key: <value>
_ADMIN_API_KEY = os.environ.get("ADMIN_API_KEY", "").strip() or None


@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    if _ADMIN_API_KEY and request.url.path.startswith("/api/v1"):
        provided = request.headers.get("X-Api-Key")
        if provided != _ADMIN_API_KEY:
            exc = UnauthorizedError("Missing or invalid X-Api-Key header")
            return JSONResponse(status_code=exc.http_status, content=exc.public_dict())
    return await call_next(request)


@app.exception_handler(ProjectError)
async def project_error_handler(request: Request, exc: ProjectError):
    if exc.user_facing:
        logger.info("API: %s on %s: %s", exc.code, request.url.path, exc.message)
    else:
        logger.error("API: %s on %s", exc.code, request.url.path, extra={"error": exc.to_dict()})
    return JSONResponse(status_code=exc.http_status, content=exc.public_dict())


# ── Routers ───────────────────────────────────────────────────────
app.include_router(chat_router.router, prefix="/api/v1")


@app.get("/health", tags=["health"])
async def health(request: Request):
    orch = getattr(request.app.state, "orchestrator", None)
    store = orch.store if orch is not None else None
    return {
        "status": "ok" if orch is not None else "starting",
        "flow": orch.config.flow.value if orch is not None else None,
        "active_sessions": await store.count() if store is not None else 0,
        "persistence": getattr(request.app.state, "session_factory", None) is not None,
    }
