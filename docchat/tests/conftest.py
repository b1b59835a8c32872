from __future__ import annotations

"""Shared pytest setup and test environment defaults."""

import os
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["EMBEDDING_PROVIDER"] = "hash"
os.environ["EMBEDDING_DIMENSION"] = "256"
os.environ["RAG_LLM_PROVIDER"] = "ollama"
os.environ["RAG_RETRY_INITIAL_WAIT"] = "0"
os.environ["RAG_RETRY_MAX_WAIT"] = "0"
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("RAG_CONVERSATION_DB_URI", None)
os.environ.pop("RAG_MAX_HISTORY_TURNS", None)
os.environ.pop("RAG_MAX_HISTORY_CHARS", None)


import pytest


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
