from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import pytest

from docchat.loaders.chunking import split_documents
from docchat.rag.embeddings import HashEmbedder
from docchat.rag.errors import (
    EmbeddingServiceError,
    EmptyQueryError,
    IndexNotInitializedError,
    InvalidArgumentError,
)
from docchat.rag.retriever import Retriever
from docchat.rag.retry import RetryPolicy
from docchat.rag.types import Document
from docchat.vectorstore.inmemory import InMemoryVectorStore


@dataclass
class FlakyEmbedder:
    """Hash embedder that fails a set number of calls before recovering."""
    failures: int = 0
    dimension: int = 256
    inner: HashEmbedder = field(default_factory=HashEmbedder)

    def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if self.failures > 0:
            self.failures -= 1
            raise EmbeddingServiceError("connection reset")
        return self.inner.embed(texts)


def build_retriever(documents: list[str], embedder=None, retry=None) -> Retriever:
    embedder = embedder or HashEmbedder()
    vectorstore = InMemoryVectorStore(embedder=embedder)
    if documents:
        chunks = split_documents(
            [Document(doc_id=f"doc-{idx}", content=text) for idx, text in enumerate(documents)]
        )
        vectorstore.rebuild(chunks)
    retriever = Retriever(embedder=embedder, vectorstore=vectorstore)
    if retry is not None:
        retriever.retry = retry
    return retriever


def test_return_policy_scenario() -> None:
    retriever = build_retriever(["Our return policy allows refunds within 30 days."])

    context = retriever.retrieve("How long do I have to return an item?")

    assert "30 days" in context
    assert context == "Our return policy allows refunds within 30 days."


def test_context_joins_chunks_with_blank_lines_best_first() -> None:
    retriever = build_retriever(
        [
            "Shipping takes five business days.",
            "Refunds are issued to the original payment method.",
            "Support is open on weekdays.",
        ]
    )

    results = retriever.search("How are refunds issued?", k=2)
    context = retriever.retrieve("How are refunds issued?", k=2)

    assert results[0].chunk.content.startswith("Refunds")
    assert context == "\n\n".join(result.chunk.content for result in results)


def test_exact_chunk_text_round_trips() -> None:
    texts = [
        "Gift cards never expire.",
        "Warranty claims need a receipt.",
        "Orders over fifty dollars ship free.",
    ]
    retriever = build_retriever(texts)

    for text in texts:
        assert retriever.retrieve(text, k=1) == text


@pytest.mark.parametrize("query", ["", "   ", "\n\t"])
def test_blank_query_is_rejected(query: str) -> None:
    retriever = build_retriever(["Anything at all."])

    with pytest.raises(EmptyQueryError):
        retriever.retrieve(query)


def test_unbuilt_index_fails() -> None:
    retriever = build_retriever([])

    with pytest.raises(IndexNotInitializedError):
        retriever.retrieve("hello")


def test_transient_embedding_failure_is_retried() -> None:
    embedder = FlakyEmbedder()
    retriever = build_retriever(
        ["Stores open at nine."],
        embedder=embedder,
        retry=RetryPolicy(attempts=3, initial_wait=0.0, max_wait=0.0),
    )
    embedder.failures = 2

    assert retriever.retrieve("When do stores open?") == "Stores open at nine."


def test_persistent_embedding_failure_propagates() -> None:
    embedder = FlakyEmbedder()
    retriever = build_retriever(
        ["Stores open at nine."],
        embedder=embedder,
        retry=RetryPolicy(attempts=2, initial_wait=0.0, max_wait=0.0),
    )
    embedder.failures = 5

    with pytest.raises(EmbeddingServiceError):
        retriever.retrieve("When do stores open?")
    assert embedder.failures == 3


def test_k_is_clamped_but_must_be_positive() -> None:
    retriever = build_retriever(["Stores open at nine.", "Parking is free."])

    assert len(retriever.search("parking", k=10)) == 2
    with pytest.raises(InvalidArgumentError):
        retriever.search("parking", k=0)
