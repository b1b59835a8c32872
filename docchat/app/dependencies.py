from __future__ import annotations

from fastapi import Request

from docchat.app.settings import Settings
from docchat.conversations.manager import ConversationManager
from docchat.conversations.store import (
    ConversationStore,
    InMemoryConversationStore,
    SQLConversationStore,
)
from docchat.loaders.chunking import LengthFunction, token_length, validate_chunk_settings
from docchat.rag.assembler import ContextAssembler
from docchat.rag.embeddings import Embedder, HashEmbedder, OpenAIEmbedder
from docchat.rag.errors import ConfigurationError
from docchat.rag.llm import GenerativeModel, SamplingParams, build_generative_model
from docchat.rag.pipeline import ChatEngine
from docchat.rag.retriever import Retriever
from docchat.rag.retry import RetryPolicy
from docchat.vectorstore.inmemory import InMemoryVectorStore


def get_engine(request: Request) -> ChatEngine:
    return request.app.state.engine


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def build_embedder(settings: Settings) -> Embedder:
    provider = settings.embedding_provider.lower().strip()
    if provider == "hash":
        return HashEmbedder(dimension=settings.embedding_dimension)
    if provider == "openai":
        return OpenAIEmbedder(
            api_key=settings.openai_api_key or "",
            model=settings.openai_embedding_model or "",
            dimension=settings.embedding_dimension,
            timeout=settings.embedding_timeout,
        )
    raise ConfigurationError(f"Unsupported embedding provider: {provider}")


def build_model(settings: Settings) -> GenerativeModel:
    return build_generative_model(
        settings.llm_provider,
        openai_api_key=settings.openai_api_key,
        openai_base_url=settings.openai_base_url,
        openai_model=settings.openai_chat_model,
        ollama_base_url=settings.ollama_base_url,
        ollama_model=settings.ollama_model,
        timeout=settings.llm_timeout,
    )


def build_conversation_store(settings: Settings) -> ConversationStore:
    if settings.conversation_db_uri:
        return SQLConversationStore(settings.conversation_db_uri)
    return InMemoryConversationStore()


def build_length_function(settings: Settings) -> LengthFunction:
    unit = settings.chunk_unit.lower().strip()
    if unit == "chars":
        return len
    if unit == "tokens":
        return token_length(settings.tokenizer_encoding)
    raise ConfigurationError(f"Unsupported RAG_CHUNK_UNIT: {settings.chunk_unit}")


def build_engine(
    settings: Settings,
    *,
    embedder: Embedder | None = None,
    model: GenerativeModel | None = None,
    store: ConversationStore | None = None,
) -> ChatEngine:
    """Wire the chat engine from settings; collaborators may be injected."""
    validate_chunk_settings(settings.chunk_size, settings.chunk_overlap)
    embedder = embedder or build_embedder(settings)
    model = model or build_model(settings)
    store = store or build_conversation_store(settings)
    retry = RetryPolicy(
        attempts=settings.retry_attempts,
        initial_wait=settings.retry_initial_wait,
        max_wait=settings.retry_max_wait,
    )
    vectorstore = InMemoryVectorStore(
        embedder=embedder, batch_size=settings.embed_batch_size, retry=retry
    )
    retriever = Retriever(
        embedder=embedder, vectorstore=vectorstore, top_k=settings.top_k, retry=retry
    )
    conversations = ConversationManager(
        retriever=retriever,
        model=model,
        store=store,
        assembler=ContextAssembler(
            max_history_turns=settings.max_history_turns,
            max_history_chars=settings.max_history_chars,
        ),
        params=SamplingParams(
            temperature=settings.temperature,
            top_p=settings.top_p,
            max_tokens=settings.max_tokens,
            frequency_penalty=settings.frequency_penalty,
            presence_penalty=settings.presence_penalty,
        ),
        retry=retry,
        serialize_turns=settings.serialize_turns,
    )
    return ChatEngine(
        vectorstore=vectorstore,
        retriever=retriever,
        conversations=conversations,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        length_function=build_length_function(settings),
    )
