from __future__ import annotations

"""Embedding providers behind a batch `Embedder` protocol."""

import hashlib
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from openai import OpenAI, OpenAIError

from docchat.rag.errors import ConfigurationError, EmbeddingServiceError

_WORD_RE = re.compile(r"[a-z0-9]+")

# Published output sizes of the OpenAI embedding models.
_OPENAI_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class Embedder(Protocol):
    """Maps texts to fixed-dimension vectors, one per text, in input order."""
    dimension: int

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        raise NotImplementedError


def embed_one(embedder: Embedder, text: str) -> list[float]:
    vectors = embedder.embed([text])
    if len(vectors) != 1:
        raise EmbeddingServiceError(f"Expected 1 embedding, got {len(vectors)}")
    return vectors[0]


def validate_vector(vector: Sequence[float], dimension: int) -> list[float]:
    """Return the vector as floats, rejecting wrong sizes and non-finite values."""
    if len(vector) != dimension:
        raise EmbeddingServiceError(
            f"Expected a {dimension}-dimensional embedding, got {len(vector)} values"
        )
    try:
        values = [float(value) for value in vector]
    except (TypeError, ValueError) as exc:
        raise EmbeddingServiceError("Embedding holds non-numeric values") from exc
    if not all(math.isfinite(value) for value in values):
        raise EmbeddingServiceError("Embedding holds NaN or infinite values")
    return values


def l2_normalize(vector: Sequence[float]) -> list[float]:
    """Scale a vector to unit length; zero vectors are returned unchanged."""
    magnitude = math.hypot(*vector)
    if magnitude == 0.0:
        return list(vector)
    return [value / magnitude for value in vector]


@dataclass
class HashEmbedder:
    """Offline embedder: bag of lowercase words hashed into fixed buckets.

    Identical texts always map to identical vectors, which keeps tests and local
    runs reproducible without an embedding service.
    """
    dimension: int = 256

    def __post_init__(self) -> None:
        if self.dimension <= 0:
            raise ConfigurationError(
                f"Hash embeddings need a positive dimension, got {self.dimension}"
            )

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        return [self._bucketize(text) for text in texts]

    def _bucketize(self, text: str) -> list[float]:
        buckets = [0.0] * self.dimension
        for word, count in Counter(_WORD_RE.findall(text.lower())).items():
            digest = hashlib.sha256(word.encode("utf-8")).digest()
            buckets[int.from_bytes(digest[:4], "big") % self.dimension] += count
        return l2_normalize(buckets)


@dataclass
class OpenAIEmbedder:
    """Batch embeddings through the OpenAI SDK.

    A `dimension` of 0 is resolved from the model name; an explicit dimension must
    agree with the model when the model is known.
    """
    api_key: str
    model: str
    dimension: int = 0
    timeout: float = 30.0
    client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY must be set to use OpenAI embeddings")
        if not self.model:
            raise ConfigurationError("OPENAI_EMBEDDING_MODEL must name an embedding model")
        known = _OPENAI_DIMENSIONS.get(self.model)
        if self.dimension <= 0 and known is None:
            raise ConfigurationError(
                f"Unknown embedding model {self.model}; set EMBEDDING_DIMENSION explicitly"
            )
        if self.dimension <= 0:
            self.dimension = known
        elif known is not None and known != self.dimension:
            raise ConfigurationError(
                f"{self.model} produces {known}-dimensional vectors, "
                f"EMBEDDING_DIMENSION is {self.dimension}"
            )
        # Retries are handled by RetryPolicy, not the SDK.
        self.client = OpenAI(api_key=self.api_key, timeout=self.timeout, max_retries=0)

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            response = self.client.embeddings.create(model=self.model, input=list(texts))
        except OpenAIError as exc:
            raise EmbeddingServiceError(f"{type(exc).__name__}: {exc}") from exc
        items = sorted(response.data, key=lambda item: item.index)
        if len(items) != len(texts):
            raise EmbeddingServiceError(
                f"OpenAI returned {len(items)} embeddings for {len(texts)} inputs"
            )
        return [validate_vector(item.embedding, self.dimension) for item in items]
