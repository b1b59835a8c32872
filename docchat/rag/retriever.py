from __future__ import annotations

"""Query-time retrieval: embed the query, search the index, join chunk text."""

import logging
from dataclasses import dataclass

from docchat.rag.embeddings import Embedder, embed_one
from docchat.rag.errors import EmptyQueryError
from docchat.rag.retry import NO_RETRY, RetryPolicy
from docchat.rag.types import SearchResult
from docchat.vectorstore.inmemory import InMemoryVectorStore

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n"


@dataclass
class Retriever:
    """Fetch the most similar chunks for a query from the published index."""
    embedder: Embedder
    vectorstore: InMemoryVectorStore
    top_k: int = 3
    retry: RetryPolicy = NO_RETRY

    def search(self, query: str, k: int | None = None) -> list[SearchResult]:
        """Return scored chunks for a query, best first."""
        if not query or not query.strip():
            raise EmptyQueryError("Query cannot be empty")
        # Raises IndexNotInitializedError before any embedding call.
        index = self.vectorstore.index
        query_vector = self.retry.call(embed_one, self.embedder, query)
        results = index.search(query_vector, self.top_k if k is None else k)
        logger.info(
            "retrieval_complete",
            extra={
                "results": len(results),
                "query_length": len(query),
                "top_scores": [round(result.score, 4) for result in results[:5]],
            },
        )
        return results

    def retrieve(self, query: str, k: int | None = None) -> str:
        """Return the top-k chunk texts joined by blank lines."""
        results = self.search(query, k)
        return CONTEXT_SEPARATOR.join(result.chunk.content for result in results)
