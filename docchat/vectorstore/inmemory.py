from __future__ import annotations

"""In-memory vector index with exact cosine search and atomic publishing."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from docchat.rag.embeddings import Embedder, l2_normalize, validate_vector
from docchat.rag.errors import (
    DimensionMismatchError,
    EmbeddingServiceError,
    EmptyInputError,
    IndexNotInitializedError,
    InvalidArgumentError,
)
from docchat.rag.retry import NO_RETRY, RetryPolicy
from docchat.rag.types import Chunk, SearchResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VectorIndex:
    """Immutable set of chunks and their unit-length vectors."""
    chunks: tuple[Chunk, ...]
    vectors: tuple[tuple[float, ...], ...]
    dimension: int

    def __len__(self) -> int:
        return len(self.chunks)

    @classmethod
    def build(
        cls,
        chunks: Iterable[Chunk],
        embedder: Embedder,
        batch_size: int = 64,
        retry: RetryPolicy = NO_RETRY,
    ) -> "VectorIndex":
        """Embed every chunk and return a ready-to-query index."""
        chunks = tuple(chunks)
        if not chunks:
            raise EmptyInputError("Cannot build an index without chunks")
        if batch_size <= 0:
            raise InvalidArgumentError(f"batch_size must be positive, got {batch_size}")
        dimension = embedder.dimension
        vectors: list[tuple[float, ...]] = []
        for start in range(0, len(chunks), batch_size):
            batch = chunks[start : start + batch_size]
            embedded = retry.call(embedder.embed, [chunk.content for chunk in batch])
            if len(embedded) != len(batch):
                raise EmbeddingServiceError(
                    f"Embedder returned {len(embedded)} vectors for {len(batch)} texts"
                )
            for chunk, vector in zip(batch, embedded):
                if len(vector) != dimension:
                    raise DimensionMismatchError(
                        f"Chunk {chunk.chunk_index} embedded with dimension "
                        f"{len(vector)}, expected {dimension}"
                    )
                vectors.append(tuple(l2_normalize(validate_vector(vector, dimension))))
        return cls(chunks=chunks, vectors=tuple(vectors), dimension=dimension)

    def search(self, query_vector: Sequence[float], k: int) -> list[SearchResult]:
        """Return up to k chunks by descending cosine similarity."""
        if k <= 0:
            raise InvalidArgumentError(f"k must be positive, got {k}")
        if len(query_vector) != self.dimension:
            raise InvalidArgumentError(
                f"Query dimension {len(query_vector)} does not match index dimension "
                f"{self.dimension}"
            )
        query = l2_normalize(query_vector)
        scored = [
            SearchResult(chunk=chunk, score=_dot(query, vector))
            for chunk, vector in zip(self.chunks, self.vectors)
        ]
        scored.sort(key=lambda item: (-item.score, item.chunk.chunk_index))
        return scored[:k]


def _dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


@dataclass
class InMemoryVectorStore:
    """Holds the published index; rebuilds replace it in one swap."""
    embedder: Embedder
    batch_size: int = 64
    retry: RetryPolicy = NO_RETRY
    _index: VectorIndex | None = field(default=None, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def initialized(self) -> bool:
        return self._index is not None

    @property
    def index(self) -> VectorIndex:
        index = self._index
        if index is None:
            raise IndexNotInitializedError("Vector index has not been built yet")
        return index

    def rebuild(self, chunks: Iterable[Chunk]) -> int:
        """Build a new index from chunks and publish it; returns the chunk count."""
        index = VectorIndex.build(
            chunks, self.embedder, batch_size=self.batch_size, retry=self.retry
        )
        with self._lock:
            self._index = index
        logger.info("index_published", extra=self.stats())
        return len(index)

    def search(self, query_vector: Sequence[float], k: int) -> list[SearchResult]:
        """Search the currently published index."""
        return self.index.search(query_vector, k)

    def stats(self) -> dict[str, int | bool]:
        """Size and dimension of the published index, logged on every publish."""
        index = self._index
        return {
            "initialized": index is not None,
            "chunk_count": len(index) if index is not None else 0,
            "embedding_dimension": self.embedder.dimension,
        }
