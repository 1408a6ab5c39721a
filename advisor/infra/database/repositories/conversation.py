"""Repositories for Conversation, Message and UserData."""
from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert

from advisor.infra.database.models.conversation import Conversation, Message, UserData
from advisor.infra.database.repositories.base import BaseRepository


class ConversationRepository(BaseRepository[Conversation]):
    model: ClassVar[type] = Conversation

    async def get_by_session_id(self, session_id: str) -> Optional[Conversation]:
        return await self.get_one_by(session_id=session_id)

    async def upsert_by_session_id(
        self,
        session_id: str,
        *,
        stage: str,
        flow: str,
        status: str = "active",
        contact_email: Optional[str] = None,
        session_meta: Optional[Dict[str, Any]] = None,
    ) -> Conversation:
        """Insert or update the conversation row for *session_id*.

        contact_email is only overwritten with a non-null value.
        """
        values: Dict[str, Any] = {
            "session_id": session_id,
            "stage": stage,
            "flow": flow,
            "status": status,
            "contact_email": contact_email,
            "session_meta": session_meta,
        }
        set_: Dict[str, Any] = {
            "stage": stage,
            "flow": flow,
            "status": status,
            "session_meta": session_meta,
            "updated_at": func.now(),
        }
        if contact_email:
            set_["contact_email"] = contact_email
        stmt = (
            pg_insert(Conversation)
            .values(**values)
            .on_conflict_do_update(index_elements=["session_id"], set_=set_)
            .returning(Conversation)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def increment_message_count(self, conversation_id: UUID, by: int = 1) -> None:
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(
                message_count=Conversation.message_count + by,
                last_message_at=func.now(),
                updated_at=func.now(),
            )
        )
        await self.session.execute(stmt)


class MessageRepository(BaseRepository[Message]):
    model: ClassVar[type] = Message

    async def add_user_message(
        self,
        conversation_id: UUID,
        content: str,
        *,
        stage: Optional[str] = None,
        turn_index: int = 0,
    ) -> Message:
        return await self.create({
            "conversation_id": conversation_id,
            "role": "user",
            "content": content,
            "stage": stage,
            "turn_index": turn_index,
        })

    async def add_assistant_message(
        self,
        conversation_id: UUID,
        content: str,
        *,
        stage: Optional[str] = None,
        turn_index: int = 0,
        display_spec: Optional[Dict[str, Any]] = None,
        llm_calls_count: int = 0,
        total_ms: Optional[float] = None,
    ) -> Message:
        return await self.create({
            "conversation_id": conversation_id,
            "role": "assistant",
            "content": content,
            "stage": stage,
            "turn_index": turn_index,
            "display_spec": display_spec,
            "llm_calls_count": llm_calls_count,
            "total_ms": total_ms,
        })

    async def list_for_conversation(
        self,
        conversation_id: UUID,
        *,
        limit: Optional[int] = None,
    ) -> List[Message]:
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.turn_index, Message.created_at)
        )
        if limit:
            stmt = stmt.limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class UserDataRepository(BaseRepository[UserData]):
    model: ClassVar[type] = UserData

    async def upsert_for_conversation(
        self,
        conversation_id: UUID,
        *,
        goals: Optional[Dict[str, Any]] = None,
        portfolio_data: Optional[Dict[str, Any]] = None,
        analysis_results: Optional[Dict[str, Any]] = None,
    ) -> UserData:
        """Insert or update the payload row; None payloads leave stored values untouched."""
        payload = {
            "goals": goals,
            "portfolio_data": portfolio_data,
            "analysis_results": analysis_results,
        }
        set_: Dict[str, Any] = {k: v for k, v in payload.items() if v is not None}
        set_["updated_at"] = func.now()
        stmt = (
            pg_insert(UserData)
            .values(conversation_id=conversation_id, **payload)
            .on_conflict_do_update(index_elements=["conversation_id"], set_=set_)
            .returning(UserData)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()
