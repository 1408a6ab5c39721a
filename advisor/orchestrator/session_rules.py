"""Session lifecycle rules: pure functions over a Session value."""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from advisor.orchestrator.stages import Flow, get_flow
from advisor.orchestrator.types import Session, utcnow

DEFAULT_TTL_SECONDS = 24 * 60 * 60


def is_expired(session: Session, now: Optional[datetime] = None, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> bool:
    """True once *ttl_seconds* have passed since the session was created."""
    now = now or utcnow()
    return now - session.created_at >= timedelta(seconds=ttl_seconds)


def is_contaminated(session: Session, flow: Optional[Flow] = None) -> bool:
    """A session past its first stage without a single completed slot.

    Such a state cannot be reached through normal advancement; it is treated
    as corrupted and replaced by a fresh session.
    """
    flow = flow if flow is not None else get_flow(session.flow)
    return session.stage != flow.initial and not session.completed_slots


def generate_session_id(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"session-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:12]}"


def working_header(session: Session, flow: Optional[Flow] = None) -> str:
    """Compact state summary prepended to LLM prompts."""
    flow = flow if flow is not None else get_flow(session.flow)
    descriptor = flow.descriptor(session.stage)
    lines: List[str] = [
        f"Stage: {session.stage.value} ({descriptor.title})",
        "Completed: " + (", ".join(session.completed_slots) or "none"),
        "Missing: " + (", ".join(session.missing_slots) or "none"),
    ]
    if session.key_facts:
        lines.append("Known facts:")
        lines.extend(f"- {fact}" for fact in session.key_facts)
    return "\n".join(lines)
