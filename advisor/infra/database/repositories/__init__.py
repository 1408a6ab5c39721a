"""Async repositories over the advisor ORM models."""
from advisor.infra.database.repositories.base import BaseRepository
from advisor.infra.database.repositories.conversation import (
    ConversationRepository,
    MessageRepository,
    UserDataRepository,
)

__all__ = [
    "BaseRepository",
    "ConversationRepository",
    "MessageRepository",
    "UserDataRepository",
]
