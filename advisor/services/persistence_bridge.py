"""
PersistenceBridge: TurnEventSink that writes turns to Postgres in the background.

``publish`` schedules a task and returns immediately. Writes for the same
session run one after another; failures are logged and swallowed so the
conversation never notices the datastore.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, Optional, Set

from advisor.orchestrator.events import TurnEvent, TurnEventSink
from advisor.services.conversation_service import ConversationService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

TurnWriter = Callable[[TurnEvent], Awaitable[None]]


class PersistenceBridge(TurnEventSink):
    def __init__(
        self,
        session_factory: "async_sessionmaker[AsyncSession]",
        *,
        writer: Optional[TurnWriter] = None,
    ) -> None:
        self._session_factory = session_factory
        self._writer = writer or self._write_with_service
        self._tasks: Set[asyncio.Task] = set()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._inflight: Dict[str, int] = {}

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def publish(self, event: TurnEvent) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("PersistenceBridge: no running event loop; dropping turn for %s", event.session_id)
            return
        task = loop.create_task(self._write(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for every scheduled write (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _write(self, event: TurnEvent) -> None:
        sid = event.session_id
        lock = self._locks.setdefault(sid, asyncio.Lock())
        self._inflight[sid] = self._inflight.get(sid, 0) + 1
        try:
            async with lock:
                await self._writer(event)
        except Exception as exc:
            logger.error(
                "PersistenceBridge: failed to persist turn %d of %s: %s",
                event.turn_index,
                event.session_id,
                exc,
                exc_info=True,
            )
        finally:
            self._inflight[sid] -= 1
            if not self._inflight[sid]:
                del self._inflight[sid]
                self._locks.pop(sid, None)

    async def _write_with_service(self, event: TurnEvent) -> None:
        async with self._session_factory() as db:
            try:
                await ConversationService(db).record_turn(event)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
