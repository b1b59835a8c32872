from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from docchat.conversations.manager import ConversationManager
from docchat.loaders.chunking import LengthFunction, split_documents
from docchat.rag.retriever import Retriever
from docchat.rag.types import Document, Turn, TurnResult
from docchat.vectorstore.inmemory import InMemoryVectorStore

logger = logging.getLogger(__name__)


@dataclass
class ChatEngine:
    vectorstore: InMemoryVectorStore
    retriever: Retriever
    conversations: ConversationManager
    chunk_size: int = 1000
    chunk_overlap: int = 200
    separators: Sequence[str] | None = None
    length_function: LengthFunction = len

    @property
    def initialized(self) -> bool:
        return self.vectorstore.initialized

    def process_documents(self, documents: Iterable[Document]) -> int:
        """Chunk documents, build a fresh index and publish it."""
        chunks = split_documents(
            documents,
            max_size=self.chunk_size,
            overlap=self.chunk_overlap,
            separators=self.separators,
            length_function=self.length_function,
        )
        count = self.vectorstore.rebuild(chunks)
        logger.info("documents_processed", extra={"chunks": count})
        return count

    def retrieve(self, query: str, k: int | None = None) -> str:
        return self.retriever.retrieve(query, k)

    async def handle_turn(
        self,
        message: str,
        history: Sequence[Turn] | None = None,
        conversation_id: str | None = None,
    ) -> TurnResult:
        return await self.conversations.handle_turn(
            message, history=history, conversation_id=conversation_id
        )
