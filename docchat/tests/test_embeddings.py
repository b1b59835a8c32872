from __future__ import annotations

"""Embedding provider and token-length tests."""

from dataclasses import dataclass, field
from types import SimpleNamespace

import pytest
import tiktoken
from openai import OpenAIError

from docchat.app.dependencies import build_length_function
from docchat.loaders.chunking import split_text, token_length
from docchat.rag.embeddings import HashEmbedder, OpenAIEmbedder, embed_one
from docchat.rag.errors import ConfigurationError, EmbeddingServiceError
from docchat.rag.types import Document
from docchat.tests.helpers import make_engine, make_settings


@dataclass
class StubEmbeddingsAPI:
    """Stands in for `client.embeddings`, answering in reverse index order."""
    vectors: dict[str, list[float]] = field(default_factory=dict)
    error: Exception | None = None
    drop_last: bool = False
    requests: list[dict] = field(default_factory=list)

    def create(self, model: str, input: list[str]):
        self.requests.append({"model": model, "input": input})
        if self.error is not None:
            raise self.error
        data = [
            SimpleNamespace(index=idx, embedding=self.vectors[text])
            for idx, text in enumerate(input)
        ]
        if self.drop_last:
            data = data[:-1]
        return SimpleNamespace(data=list(reversed(data)))


class WordEncoding:
    """Offline stand-in for a tiktoken encoding: one token per word."""

    def encode(self, text: str) -> list[str]:
        return text.split()


def stubbed_embedder(api: StubEmbeddingsAPI) -> OpenAIEmbedder:
    embedder = OpenAIEmbedder(api_key="sk-test", model="custom-embed", dimension=3)
    embedder.client = SimpleNamespace(embeddings=api)
    return embedder


@pytest.fixture
def word_tokens(monkeypatch):
    monkeypatch.setattr(tiktoken, "get_encoding", lambda name: WordEncoding())


def test_hash_embedder_is_deterministic_and_unit_length() -> None:
    embedder = HashEmbedder(dimension=32)

    first, second, other = embedder.embed(["Refund policy", "refund POLICY", "Shipping"])

    assert first == second
    assert first != other
    assert sum(value * value for value in first) == pytest.approx(1.0)


def test_embed_one_returns_the_single_vector() -> None:
    embedder = HashEmbedder(dimension=16)

    assert embed_one(embedder, "opening hours") == embedder.embed(["opening hours"])[0]


def test_hash_embedder_rejects_non_positive_dimension() -> None:
    with pytest.raises(ConfigurationError):
        HashEmbedder(dimension=0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"api_key": "", "model": "text-embedding-3-small"},
        {"api_key": "sk-test", "model": ""},
        {"api_key": "sk-test", "model": "custom-embed"},
        {"api_key": "sk-test", "model": "text-embedding-3-small", "dimension": 512},
    ],
)
def test_openai_embedder_configuration_errors(kwargs) -> None:
    with pytest.raises(ConfigurationError):
        OpenAIEmbedder(**kwargs)


def test_openai_embedder_resolves_known_model_dimension() -> None:
    embedder = OpenAIEmbedder(api_key="sk-test", model="text-embedding-3-large")

    assert embedder.dimension == 3072


def test_openai_embedder_restores_input_order() -> None:
    api = StubEmbeddingsAPI(
        vectors={"refunds": [1.0, 0.0, 0.0], "shipping": [0.0, 1.0, 0.0], "hours": [0, 0, 2]}
    )
    embedder = stubbed_embedder(api)

    vectors = embedder.embed(["refunds", "shipping", "hours"])

    assert vectors == [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 2.0]]
    assert api.requests == [{"model": "custom-embed", "input": ["refunds", "shipping", "hours"]}]


def test_openai_embedder_skips_empty_batches() -> None:
    api = StubEmbeddingsAPI()

    assert stubbed_embedder(api).embed([]) == []
    assert api.requests == []


def test_openai_errors_become_embedding_service_errors() -> None:
    embedder = stubbed_embedder(StubEmbeddingsAPI(error=OpenAIError("quota exceeded")))

    with pytest.raises(EmbeddingServiceError, match="quota exceeded"):
        embedder.embed(["refunds"])


def test_openai_embedder_rejects_missing_embeddings() -> None:
    api = StubEmbeddingsAPI(
        vectors={"refunds": [1.0, 0.0, 0.0], "shipping": [0.0, 1.0, 0.0]}, drop_last=True
    )

    with pytest.raises(EmbeddingServiceError):
        stubbed_embedder(api).embed(["refunds", "shipping"])


def test_openai_embedder_rejects_wrong_dimension() -> None:
    api = StubEmbeddingsAPI(vectors={"refunds": [1.0, 0.0]})

    with pytest.raises(EmbeddingServiceError):
        stubbed_embedder(api).embed(["refunds"])


def test_token_length_counts_encoded_tokens(word_tokens) -> None:
    length = token_length("cl100k_base")

    assert length("refunds within thirty days") == 4


def test_token_unit_chunks_respect_token_budget(word_tokens) -> None:
    length = build_length_function(make_settings(chunk_unit="tokens"))
    text = " ".join(f"word{idx}" for idx in range(40))

    chunks = split_text(text, max_size=10, overlap=2, length_function=length)

    assert len(chunks) > 1
    assert all(length(chunk) <= 10 for chunk in chunks)
    assert chunks[0].split()[-2:] == chunks[1].split()[:2]


def test_engine_chunks_by_tokens(word_tokens) -> None:
    engine = make_engine(chunk_unit="tokens", chunk_size=10, chunk_overlap=0)

    count = engine.process_documents(
        [Document(doc_id="faq", content=" ".join(["refund"] * 25))]
    )

    assert count == 3


def test_unknown_chunk_unit_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        build_length_function(make_settings(chunk_unit="paragraphs"))
