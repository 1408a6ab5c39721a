"""Turn events: what the orchestrator hands to persistence after each turn."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from advisor.orchestrator.types import utcnow


@dataclass
class TurnEvent:
    """Snapshot of one processed message. Values are plain JSON-ready data."""

    session_id: str
    flow: str
    stage: str
    turn_index: int
    user_message: str
    display_spec: Dict[str, Any]
    assistant_text: str
    goals: Dict[str, Any] = field(default_factory=dict)
    portfolio: Dict[str, Any] = field(default_factory=dict)
    analysis_result: Optional[Dict[str, Any]] = None
    contact_email: Optional[str] = None
    session_meta: Dict[str, Any] = field(default_factory=dict)
    llm_calls: int = 0
    total_ms: float = 0.0
    occurred_at: datetime = field(default_factory=utcnow)


class TurnEventSink(ABC):
    @abstractmethod
    def publish(self, event: TurnEvent) -> None:
        """Accept *event* without blocking the caller. Must not raise."""


class NullEventSink(TurnEventSink):
    """Sink used when no datastore is configured."""

    def publish(self, event: TurnEvent) -> None:
        return None
