"""Conversation, Message and UserData ORM models: the transcript of an intake session."""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from advisor.infra.database.models.base import Base, TimestampMixin, _uuid_pk


class Conversation(Base, TimestampMixin):
    """One intake session, keyed by the orchestrator's opaque session id."""

    __tablename__ = "conversations"
    __table_args__ = (
        Index("ix_conversations_session_id", "session_id", unique=True),
        Index("ix_conversations_stage", "stage"),
        Index("ix_conversations_status", "status"),
        Index("ix_conversations_last_message_at", "last_message_at"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()

    session_id: Mapped[str] = mapped_column(String(128), nullable=False)
    stage: Mapped[str] = mapped_column(String(32), nullable=False, server_default="qualify")
    flow: Mapped[str] = mapped_column(String(32), nullable=False, server_default="standard")

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, server_default="active",
    )
    """Lifecycle: active | completed."""

    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    message_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0",
    )
    last_message_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    session_meta: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    """Slot progress snapshot: completed_slots, missing_slots, key_facts."""

    messages: Mapped[List["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
        lazy="selectin",
    )
    user_data: Mapped[Optional["UserData"]] = relationship(
        "UserData",
        back_populates="conversation",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"Conversation(session_id={self.session_id!r}, stage={self.stage!r}, "
            f"status={self.status!r}, msgs={self.message_count})"
        )


class Message(Base):
    """Append-only transcript entry. Assistant messages carry the rendered DisplaySpec."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_id", "conversation_id"),
        Index("ix_messages_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )

    role: Mapped[str] = mapped_column(String(16), nullable=False)
    """user | assistant."""

    content: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    stage: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    turn_index: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    """Orchestrator turn number; orders the transcript independently of write timing."""

    # assistant-only (NULL for user messages)
    display_spec: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    llm_calls_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    total_ms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )

    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="messages",
    )

    def __repr__(self) -> str:
        preview = (self.content or "")[:40]
        return f"Message(id={self.id!r}, role={self.role!r}, content={preview!r})"


class UserData(Base, TimestampMixin):
    """Latest domain payloads collected for a conversation (one row per conversation)."""

    __tablename__ = "user_data"
    __table_args__ = (
        Index("ix_user_data_conversation_id", "conversation_id", unique=True),
    )

    id: Mapped[uuid.UUID] = _uuid_pk()

    conversation_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )

    goals: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    portfolio_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)
    analysis_results: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONB, nullable=True)

    conversation: Mapped["Conversation"] = relationship(
        "Conversation", back_populates="user_data",
    )

    def __repr__(self) -> str:
        return f"UserData(conversation_id={self.conversation_id!r})"
