from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from docchat.conversations.store import CONVERSATION_ID_MAX_LENGTH


class ChatRequest(BaseModel):
    message: str | None = None
    conversation_id: str | None = Field(default=None, max_length=CONVERSATION_ID_MAX_LENGTH)


class ChatResponse(BaseModel):
    status: Literal["success"] = "success"
    response: str
    conversation_id: str
    timestamp: str


class ErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    message: str


class HealthResponse(BaseModel):
    status: str
    initialized: bool


class TurnOut(BaseModel):
    role: str
    content: str
    timestamp: datetime


class ConversationOut(BaseModel):
    conversation_id: str
    messages: list[TurnOut]
    context: str
    created_at: datetime
    updated_at: datetime


class ConversationResponse(BaseModel):
    status: Literal["success"] = "success"
    chat: ConversationOut


class ConversationSummaryOut(BaseModel):
    conversation_id: str
    created_at: datetime
    updated_at: datetime
    preview: str | None = None


class ConversationListResponse(BaseModel):
    status: Literal["success"] = "success"
    chats: list[ConversationSummaryOut]


class ReprocessResponse(BaseModel):
    status: Literal["success"] = "success"
    documents: int
    chunks: int
