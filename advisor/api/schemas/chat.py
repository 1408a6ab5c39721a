"""Pydantic v2 schemas for the Chat API."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=8000)
    session_id: Optional[str] = Field(default=None, max_length=128)


class BlockSchema(BaseModel):
    type: str
    content: str


class DisplaySpecSchema(BaseModel):
    blocks: List[BlockSchema]


class SessionViewSchema(BaseModel):
    id: str
    stage: str
    completed_slots: List[str] = []
    missing_slots: List[str] = []
    key_facts: List[str] = []


class UsageSchema(BaseModel):
    llm_calls: int = 0
    total_ms: float = 0.0


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    display_spec: DisplaySpecSchema = Field(..., alias="displaySpec")
    session: SessionViewSchema
    usage: Optional[UsageSchema] = None


class SessionClearedResponse(BaseModel):
    session_id: str
    cleared: bool


class MessageSchema(BaseModel):
    role: str
    content: str
    stage: Optional[str] = None
    turn_index: int = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TranscriptResponse(BaseModel):
    session_id: str
    messages: List[MessageSchema]
