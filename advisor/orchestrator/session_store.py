"""
Session store: lifecycle of per-conversation state plus per-id locking.

The store knows nothing about stages; it creates, returns, updates and
evicts ``Session`` values. Expiry is checked on read and swept
opportunistically on create. Sessions whose lock is held are never evicted.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import fields
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, List, Optional

from advisor.orchestrator.session_rules import DEFAULT_TTL_SECONDS, generate_session_id, is_expired
from advisor.orchestrator.stages import get_flow
from advisor.orchestrator.types import FlowName, Session, utcnow

logger = logging.getLogger(__name__)

_IMMUTABLE = frozenset({"session_id", "created_at"})
_UPDATABLE = frozenset(f.name for f in fields(Session)) - _IMMUTABLE


class SessionStore(ABC):
    """Async session storage contract used by the orchestrator."""

    @abstractmethod
    async def create(self, session_id: Optional[str] = None, *, flow: Optional[FlowName] = None) -> Session:
        ...

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]:
        ...

    @abstractmethod
    async def update(self, session_id: str, **changes: object) -> Optional[Session]:
        ...

    @abstractmethod
    async def clear(self, session_id: str) -> bool:
        ...

    @abstractmethod
    async def cleanup_expired(self) -> int:
        ...

    @abstractmethod
    async def count(self) -> int:
        ...

    @abstractmethod
    def lock(self, session_id: str):
        """Async context manager serializing turns for one session id."""


class InMemorySessionStore(SessionStore):
    """Process-local store. Single event loop; not shared across workers."""

    def __init__(
        self,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
        default_flow: FlowName = FlowName.STANDARD,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._default_flow = default_flow
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        # tasks holding or waiting on each lock
        self._lock_users: Dict[str, int] = {}

    async def create(self, session_id: Optional[str] = None, *, flow: Optional[FlowName] = None) -> Session:
        await self.cleanup_expired()
        now = self._clock()
        if not session_id or session_id in self._sessions:
            if session_id:
                logger.info("SessionStore: id %s already taken, generating a new one", session_id)
            session_id = generate_session_id(now)
            while session_id in self._sessions:
                session_id = generate_session_id(now)
        flow = FlowName(flow or self._default_flow)
        session = Session(
            session_id=session_id,
            stage=get_flow(flow).initial,
            flow=flow,
            created_at=now,
            updated_at=now,
        )
        self._sessions[session_id] = session
        logger.debug("SessionStore: created %s (flow=%s)", session_id, flow.value)
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if is_expired(session, self._clock(), self._ttl_seconds):
            logger.info("SessionStore: session %s expired", session_id)
            self._evict(session_id)
            return None
        return session

    async def update(self, session_id: str, **changes: object) -> Optional[Session]:
        """Shallow-merge *changes* into the stored session and refresh ``updated_at``."""
        unknown = set(changes) - _UPDATABLE
        if unknown:
            raise TypeError(f"Cannot update session fields: {sorted(unknown)}")
        session = self._sessions.get(session_id)
        if session is None:
            return None
        for name, value in changes.items():
            setattr(session, name, value)
        session.updated_at = self._clock()
        return session

    async def clear(self, session_id: str) -> bool:
        existed = self._sessions.pop(session_id, None) is not None
        self._drop_idle_lock(session_id)
        return existed

    async def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [
            sid for sid, s in self._sessions.items()
            if is_expired(s, now, self._ttl_seconds) and not self.is_locked(sid)
        ]
        for sid in expired:
            self._evict(sid)
        if expired:
            logger.info("SessionStore: evicted %d expired session(s)", len(expired))
        return len(expired)

    async def count(self) -> int:
        return len(self._sessions)

    def active_ids(self) -> List[str]:
        return list(self._sessions)

    def is_locked(self, session_id: str) -> bool:
        return self._lock_users.get(session_id, 0) > 0

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[session_id] -= 1
            if session_id not in self._sessions:
                self._drop_idle_lock(session_id)

    def _evict(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._drop_idle_lock(session_id)

    def _drop_idle_lock(self, session_id: str) -> None:
        if self._lock_users.get(session_id, 0) == 0:
            self._locks.pop(session_id, None)
            self._lock_users.pop(session_id, None)
