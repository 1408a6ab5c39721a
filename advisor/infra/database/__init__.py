"""
advisor.infra.database: transcript store (async engine, models, repositories).

Optional at runtime; the API only builds an engine when DATABASE_URL is set.
"""
from advisor.infra.database.engine import (
    build_engine,
    build_session_factory,
    close_engine,
    ensure_database_exists,
    init_db,
)
from advisor.infra.database.models import Base, Conversation, Message, UserData
from advisor.infra.database.repositories import (
    ConversationRepository,
    MessageRepository,
    UserDataRepository,
)

__all__ = [
    "build_engine",
    "build_session_factory",
    "ensure_database_exists",
    "init_db",
    "close_engine",
    "Base",
    "Conversation",
    "Message",
    "UserData",
    "ConversationRepository",
    "MessageRepository",
    "UserDataRepository",
]
