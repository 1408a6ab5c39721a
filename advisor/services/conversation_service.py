"""ConversationService: high-level API for conversation tracking."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional

from advisor.infra.database.repositories.conversation import (
    ConversationRepository,
    MessageRepository,
    UserDataRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from advisor.infra.database.models.conversation import Conversation, Message
    from advisor.orchestrator.events import TurnEvent

logger = logging.getLogger(__name__)


class ConversationService:
    """Persists conversation turns.

    Used by the persistence bridge, never on the response path: the
    orchestrator only publishes ``TurnEvent`` values.
    """

    def __init__(self, session: "AsyncSession") -> None:
        self._session = session
        self._conv_repo = ConversationRepository(session)
        self._msg_repo = MessageRepository(session)
        self._data_repo = UserDataRepository(session)

    # ── Turn recording ────────────────────────────────────────────

    async def record_turn(self, event: "TurnEvent") -> "Conversation":
        """Upsert the conversation, append both transcript messages, upsert payloads."""
        status = "completed" if event.stage == "end" else "active"
        conv = await self._conv_repo.upsert_by_session_id(
            event.session_id,
            stage=event.stage,
            flow=event.flow,
            status=status,
            contact_email=event.contact_email,
            session_meta=event.session_meta,
        )
        if event.user_message:
            await self._msg_repo.add_user_message(
                conv.id, event.user_message, stage=event.stage, turn_index=event.turn_index,
            )
        await self._msg_repo.add_assistant_message(
            conv.id,
            event.assistant_text,
            stage=event.stage,
            turn_index=event.turn_index,
            display_spec=event.display_spec,
            llm_calls_count=event.llm_calls,
            total_ms=event.total_ms,
        )
        await self._conv_repo.increment_message_count(conv.id, by=2 if event.user_message else 1)
        await self._data_repo.upsert_for_conversation(
            conv.id,
            goals=event.goals or None,
            portfolio_data=event.portfolio or None,
            analysis_results=event.analysis_result,
        )
        logger.debug(
            "Turn recorded: conversation=%s session=%s turn=%d", conv.id, event.session_id, event.turn_index,
        )
        return conv

    # ── Queries ───────────────────────────────────────────────────

    async def get_by_session_id(self, session_id: str) -> Optional["Conversation"]:
        return await self._conv_repo.get_by_session_id(session_id)

    async def get_transcript(self, session_id: str, *, limit: Optional[int] = None) -> List["Message"]:
        conv = await self.get_by_session_id(session_id)
        if conv is None:
            return []
        return await self._msg_repo.list_for_conversation(conv.id, limit=limit)
