"""Service layer: conversation tracking and the persistence bridge."""
from advisor.services.conversation_service import ConversationService
from advisor.services.persistence_bridge import PersistenceBridge

__all__ = [
    "ConversationService",
    "PersistenceBridge",
]
