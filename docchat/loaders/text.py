from __future__ import annotations

"""Plain text and Markdown loaders for the documents directory."""

import logging
from pathlib import Path

from docchat.rag.types import Document

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".txt", ".md")


def load_text_file(path: Path, doc_id: str | None = None) -> Document:
    """Load a text file from disk into a Document."""
    content = path.read_text(encoding="utf-8")
    return Document(
        doc_id=doc_id or path.stem,
        content=content,
        metadata={"source": str(path)},
    )


def load_documents_dir(directory: Path) -> list[Document]:
    """Load every .txt/.md file in a directory, creating the directory if needed.

    Files that cannot be read are logged and skipped.
    """
    directory.mkdir(parents=True, exist_ok=True)
    documents: list[Document] = []
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix.lower() not in SUPPORTED_SUFFIXES:
            continue
        try:
            documents.append(load_text_file(path))
        except (OSError, UnicodeDecodeError) as exc:
            logger.error(
                "document_load_failed",
                extra={"path": str(path), "error": type(exc).__name__},
            )
            continue
        logger.info("document_loaded", extra={"path": str(path)})
    return documents
