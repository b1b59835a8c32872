from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    return int(raw)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    documents_dir: str = os.getenv("RAG_DOCUMENTS_DIR", "data/company_docs")
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "1000"))
    chunk_overlap: int = int(os.getenv("RAG_CHUNK_OVERLAP", "200"))
    chunk_unit: str = os.getenv("RAG_CHUNK_UNIT", "chars")
    tokenizer_encoding: str = os.getenv("RAG_TOKENIZER_ENCODING", "cl100k_base")
    top_k: int = int(os.getenv("RAG_TOP_K", "3"))
    embed_batch_size: int = int(os.getenv("RAG_EMBED_BATCH_SIZE", "64"))
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "hash")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "256"))
    embedding_timeout: float = float(os.getenv("EMBEDDING_TIMEOUT", "30"))
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_embedding_model: str | None = os.getenv(
        "OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"
    )
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_chat_model: str | None = os.getenv("OPENAI_CHAT_MODEL", "gpt-4")
    llm_provider: str = os.getenv("RAG_LLM_PROVIDER", "openai")
    llm_timeout: float = float(os.getenv("RAG_LLM_TIMEOUT", "60"))
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "llama3.1")
    temperature: float = float(os.getenv("RAG_TEMPERATURE", "0.7"))
    top_p: float = float(os.getenv("RAG_TOP_P", "0.9"))
    max_tokens: int = int(os.getenv("RAG_MAX_TOKENS", "200"))
    frequency_penalty: float = float(os.getenv("RAG_FREQUENCY_PENALTY", "0.5"))
    presence_penalty: float = float(os.getenv("RAG_PRESENCE_PENALTY", "0.3"))
    retry_attempts: int = int(os.getenv("RAG_RETRY_ATTEMPTS", "3"))
    retry_initial_wait: float = float(os.getenv("RAG_RETRY_INITIAL_WAIT", "0.5"))
    retry_max_wait: float = float(os.getenv("RAG_RETRY_MAX_WAIT", "8"))
    max_history_turns: int | None = _optional_int("RAG_MAX_HISTORY_TURNS")
    max_history_chars: int | None = _optional_int("RAG_MAX_HISTORY_CHARS")
    conversation_db_uri: str | None = os.getenv("RAG_CONVERSATION_DB_URI")
    serialize_turns: bool = _flag("RAG_SERIALIZE_TURNS", "true")
    cors_origins_raw: str = os.getenv("RAG_CORS_ORIGINS", "*")
    metrics_enabled: bool = _flag("RAG_METRICS_ENABLED", "true")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    port: int = int(os.getenv("PORT", "5001"))

    @property
    def cors_origins(self) -> list[str]:
        return [value.strip() for value in self.cors_origins_raw.split(",") if value.strip()]


settings = Settings()
