from __future__ import annotations

"""Core data types for documents, retrieval and conversations."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class Document:
    """Raw document text with metadata."""
    doc_id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Chunk:
    """Bounded slice of a document, the unit of embedding and retrieval."""
    doc_id: str
    content: str
    chunk_index: int
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchResult:
    """Search result with similarity score."""
    chunk: Chunk
    score: float


@dataclass(frozen=True)
class ChatMessage:
    """Role-tagged message sent to the generative model."""
    role: Role
    content: str

    def as_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class Turn:
    """One persisted message of a conversation."""
    role: str
    content: str
    timestamp: datetime


@dataclass
class Conversation:
    """Ordered turns stored under one conversation identifier."""
    conversation_id: str
    turns: list[Turn]
    context: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ConversationSummary:
    """Listing entry for a conversation."""
    conversation_id: str
    created_at: datetime
    updated_at: datetime
    preview: str | None


@dataclass(frozen=True)
class TurnResult:
    """Answer produced for a single user turn."""
    content: str
    conversation_id: str
    timestamp: str
    context_used: bool = True
