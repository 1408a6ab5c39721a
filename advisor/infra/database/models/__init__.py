"""ORM models: import here so Base.metadata sees every table before create_all()."""
from advisor.infra.database.models.base import Base, TimestampMixin
from advisor.infra.database.models.conversation import Conversation, Message, UserData

__all__ = [
    "Base",
    "TimestampMixin",
    "Conversation",
    "Message",
    "UserData",
]
