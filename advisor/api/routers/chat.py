"""Chat router: send messages, reset sessions, read transcripts."""
from __future__ import annotations

import logging
import os

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from advisor.api.dependencies import get_orchestrator, get_session
from advisor.api.schemas.chat import (
    ChatRequest,
    ChatResponse,
    MessageSchema,
    SessionClearedResponse,
    TranscriptResponse,
)
from advisor.core.exceptions import SessionNotFoundError
from advisor.services.conversation_service import ConversationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/chat", tags=["chat"])
limiter = Limiter(key_func=get_remote_address)
_CHAT_RATE_LIMIT = os.environ.get("CHAT_RATE_LIMIT", "30/minute")


@router.post("", response_model=ChatResponse, response_model_by_alias=True)
@limiter.limit(_CHAT_RATE_LIMIT)
async def chat(request: Request, body: ChatRequest):
    orch = get_orchestrator(request)
    result = await orch.process(body.message, session_id=body.session_id)
    return ChatResponse.model_validate(result.to_dict())


@router.delete("/sessions/{session_id}", response_model=SessionClearedResponse)
async def clear_session(session_id: str, request: Request):
    orch = get_orchestrator(request)
    if not await orch.clear(session_id):
        raise SessionNotFoundError(
            f"Session {session_id} not found", details={"session_id": session_id},
        )
    return SessionClearedResponse(session_id=session_id, cleared=True)


@router.get("/sessions/{session_id}/messages", response_model=TranscriptResponse)
async def get_transcript(
    session_id: str,
    limit: int = 200,
    session: AsyncSession = Depends(get_session),
):
    """Persisted transcript of a session (requires DATABASE_URL)."""
    svc = ConversationService(session)
    messages = await svc.get_transcript(session_id, limit=limit)
    if not messages:
        raise SessionNotFoundError(
            f"No transcript for session {session_id}", details={"session_id": session_id},
        )
    return TranscriptResponse(
        session_id=session_id,
        messages=[MessageSchema.model_validate(m) for m in messages],
    )
