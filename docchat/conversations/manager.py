from __future__ import annotations

"""Multi-turn conversation handling on top of retrieval and generation."""

import asyncio
import logging
import uuid
import weakref
from dataclasses import dataclass, field
from typing import Callable, Sequence

from docchat.conversations.store import Clock, ConversationStore, utc_now
from docchat.rag.assembler import ContextAssembler
from docchat.rag.errors import EmptyInputError, PersistenceError
from docchat.rag.llm import GenerativeModel, SamplingParams
from docchat.rag.retriever import Retriever
from docchat.rag.retry import NO_RETRY, RetryPolicy
from docchat.rag.types import Turn, TurnResult

logger = logging.getLogger(__name__)


def new_conversation_id() -> str:
    return str(uuid.uuid4())


@dataclass
class ConversationManager:
    """Answers one user message per call and records the exchange.

    Any retrieval failure degrades to an empty context and persistence failures
    are logged; generation failures propagate to the caller. With `serialize_turns`
    set, turns for the same conversation id run one at a time.
    """
    retriever: Retriever
    model: GenerativeModel
    store: ConversationStore
    assembler: ContextAssembler = field(default_factory=ContextAssembler)
    params: SamplingParams = field(default_factory=SamplingParams)
    retry: RetryPolicy = NO_RETRY
    serialize_turns: bool = True
    id_factory: Callable[[], str] = new_conversation_id
    clock: Clock = utc_now
    _locks: weakref.WeakValueDictionary = field(
        default_factory=weakref.WeakValueDictionary, init=False, repr=False
    )

    async def handle_turn(
        self,
        message: str,
        history: Sequence[Turn] | None = None,
        conversation_id: str | None = None,
    ) -> TurnResult:
        """Generate an answer for `message` within a (new or existing) conversation."""
        if not message or not message.strip():
            raise EmptyInputError("Message cannot be empty")
        if not conversation_id:
            return await self._run_turn(message, history or [], self.id_factory())
        if not self.serialize_turns:
            return await self._run_turn(message, history, conversation_id)
        async with self._lock_for(conversation_id):
            return await self._run_turn(message, history, conversation_id)

    async def _run_turn(
        self,
        message: str,
        history: Sequence[Turn] | None,
        conversation_id: str,
    ) -> TurnResult:
        received_at = self.clock()
        if history is None:
            history = await asyncio.to_thread(self._load_history, conversation_id)
        context = await self._retrieve_context(message)
        messages = self.assembler.assemble(context, history, message)
        content = await self.retry.call_async(self.model.complete, messages, self.params)
        answered_at = self.clock()
        await asyncio.to_thread(
            self._persist,
            conversation_id,
            [
                Turn(role="user", content=message, timestamp=received_at),
                Turn(role="assistant", content=content, timestamp=answered_at),
            ],
            context,
        )
        return TurnResult(
            content=content,
            conversation_id=conversation_id,
            timestamp=answered_at.isoformat(),
            context_used=bool(context),
        )

    async def _retrieve_context(self, message: str) -> str:
        try:
            return await asyncio.to_thread(self.retriever.retrieve, message)
        except Exception as exc:
            logger.warning(
                "context_retrieval_failed",
                extra={"error": type(exc).__name__, "detail": str(exc)},
            )
            return ""

    def _load_history(self, conversation_id: str) -> list[Turn]:
        try:
            conversation = self.store.get(conversation_id)
        except PersistenceError as exc:
            logger.error(
                "conversation_load_failed",
                extra={"conversation_id": conversation_id, "detail": str(exc)},
            )
            return []
        return list(conversation.turns) if conversation else []

    def _persist(self, conversation_id: str, turns: list[Turn], context: str) -> None:
        try:
            self.store.append_turns(conversation_id, turns, context)
        except PersistenceError as exc:
            logger.error(
                "conversation_persist_failed",
                extra={"conversation_id": conversation_id, "detail": str(exc)},
            )

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock
