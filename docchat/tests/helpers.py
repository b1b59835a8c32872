from __future__ import annotations

"""Fakes and builders shared by the test modules."""

import asyncio
import dataclasses
from datetime import datetime, timedelta, timezone
from dataclasses import dataclass, field
from typing import Sequence

from docchat.app.dependencies import build_engine
from docchat.app.settings import Settings
from docchat.conversations.store import ConversationStore, InMemoryConversationStore
from docchat.rag.embeddings import Embedder, HashEmbedder
from docchat.rag.errors import GenerationError, PersistenceError
from docchat.rag.llm import SamplingParams
from docchat.rag.pipeline import ChatEngine
from docchat.rag.types import ChatMessage, Conversation, ConversationSummary, Turn


@dataclass
class ScriptedModel:
    """Generative model returning canned replies and recording requests."""
    replies: list[str] = field(default_factory=lambda: ["Happy to help!"])
    failures: int = 0
    delay: float = 0.0
    calls: list[list[ChatMessage]] = field(default_factory=list)
    params: list[SamplingParams] = field(default_factory=list)

    async def complete(self, messages: Sequence[ChatMessage], params: SamplingParams) -> str:
        self.calls.append(list(messages))
        self.params.append(params)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise GenerationError("upstream timeout")
        index = min(len(self.calls) - 1, len(self.replies) - 1)
        return self.replies[index]


TICK_START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class TickingClock:
    """Clock advancing one minute per reading."""

    def __init__(self) -> None:
        self.current = TICK_START

    def __call__(self) -> datetime:
        self.current += timedelta(minutes=1)
        return self.current


class BrokenStore:
    """Conversation store whose every operation fails."""

    def get(self, conversation_id: str) -> Conversation | None:
        raise PersistenceError("database unavailable")

    def append_turns(
        self, conversation_id: str, turns: Sequence[Turn], context: str
    ) -> Conversation:
        raise PersistenceError("database unavailable")

    def list_summaries(self) -> list[ConversationSummary]:
        raise PersistenceError("database unavailable")


def make_settings(**overrides: object) -> Settings:
    base = Settings(
        embedding_provider="hash",
        embedding_dimension=256,
        llm_provider="ollama",
        retry_attempts=3,
        retry_initial_wait=0.0,
        retry_max_wait=0.0,
        conversation_db_uri=None,
        max_history_turns=None,
        max_history_chars=None,
    )
    return dataclasses.replace(base, **overrides)


def make_engine(
    *,
    model: ScriptedModel | None = None,
    store: ConversationStore | None = None,
    embedder: Embedder | None = None,
    **overrides: object,
) -> ChatEngine:
    return build_engine(
        make_settings(**overrides),
        embedder=embedder or HashEmbedder(),
        model=model or ScriptedModel(),
        store=store or InMemoryConversationStore(),
    )
