from __future__ import annotations

"""Recursive separator-based chunking with overlap (char or token lengths)."""

import logging
from typing import Callable, Iterable, Sequence

import tiktoken

from docchat.rag.errors import ConfigurationError, EmptyInputError, NoChunksProducedError
from docchat.rag.types import Chunk, Document

logger = logging.getLogger(__name__)

DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ".", "!", "?", ",", " ", "")

LengthFunction = Callable[[str], int]


def token_length(encoding_name: str = "cl100k_base") -> LengthFunction:
    """Return a length function counting tokens of the given encoding."""
    encoding = tiktoken.get_encoding(encoding_name)

    def _length(text: str) -> int:
        return len(encoding.encode(text))

    return _length


def validate_chunk_settings(max_size: int, overlap: int) -> None:
    """Reject chunk sizes that cannot make progress."""
    if max_size <= 0:
        raise ConfigurationError(f"Chunk size must be positive, got {max_size}")
    if overlap < 0:
        raise ConfigurationError(f"Chunk overlap must not be negative, got {overlap}")
    if overlap >= max_size:
        raise ConfigurationError(
            f"Chunk overlap ({overlap}) must be smaller than chunk size ({max_size})"
        )


def split_text(
    text: str,
    max_size: int = 1000,
    overlap: int = 200,
    separators: Sequence[str] | None = None,
    length_function: LengthFunction = len,
) -> list[str]:
    """Split text into chunks no longer than max_size, preferring early separators."""
    validate_chunk_settings(max_size, overlap)
    if not text.strip():
        return []
    if length_function(text) <= max_size:
        return [text]
    resolved = list(DEFAULT_SEPARATORS if separators is None else separators)
    return _split_recursive(text, resolved, max_size, overlap, length_function)


def split_documents(
    documents: Iterable[Document],
    max_size: int = 1000,
    overlap: int = 200,
    separators: Sequence[str] | None = None,
    length_function: LengthFunction = len,
) -> list[Chunk]:
    """Chunk documents, numbering chunks in build order and copying metadata."""
    validate_chunk_settings(max_size, overlap)
    documents = list(documents)
    if not documents or all(not document.content.strip() for document in documents):
        raise EmptyInputError("No documents provided")

    chunks: list[Chunk] = []
    for document in documents:
        pieces = split_text(
            document.content,
            max_size=max_size,
            overlap=overlap,
            separators=separators,
            length_function=length_function,
        )
        total = len(pieces)
        for number, piece in enumerate(pieces, start=1):
            metadata = dict(document.metadata)
            metadata.update({"chunk_number": number, "chunk_count": total})
            chunks.append(
                Chunk(
                    doc_id=document.doc_id,
                    content=piece,
                    chunk_index=len(chunks),
                    metadata=metadata,
                )
            )
    if not chunks:
        raise NoChunksProducedError(
            f"Splitting {len(documents)} documents produced no chunks"
        )
    logger.info(
        "documents_split",
        extra={"documents": len(documents), "chunks": len(chunks), "max_size": max_size},
    )
    return chunks


def _split_recursive(
    text: str,
    separators: list[str],
    max_size: int,
    overlap: int,
    length: LengthFunction,
) -> list[str]:
    """Split on the first separator present, recursing into oversized pieces."""
    separator: str | None = None
    remaining: list[str] = []
    for idx, candidate in enumerate(separators):
        if candidate == "" or candidate in text:
            separator = candidate
            remaining = separators[idx + 1 :]
            break
    if separator is None:
        return _hard_cut(text, max_size, overlap, length)

    chunks: list[str] = []
    pending: list[str] = []
    for piece in _split_keeping_separator(text, separator):
        if length(piece) < max_size:
            pending.append(piece)
            continue
        if pending:
            chunks.extend(_merge_pieces(pending, max_size, overlap, length))
            pending = []
        if remaining:
            chunks.extend(_split_recursive(piece, remaining, max_size, overlap, length))
        else:
            chunks.extend(_hard_cut(piece, max_size, overlap, length))
    if pending:
        chunks.extend(_merge_pieces(pending, max_size, overlap, length))
    return chunks


def _split_keeping_separator(text: str, separator: str) -> list[str]:
    """Split text, leaving each separator at the end of the piece before it."""
    if not separator:
        return list(text)
    parts = text.split(separator)
    pieces = [part + separator for part in parts[:-1]]
    pieces.append(parts[-1])
    return [piece for piece in pieces if piece]


def _merge_pieces(
    pieces: list[str],
    max_size: int,
    overlap: int,
    length: LengthFunction,
) -> list[str]:
    """Greedily pack small pieces, carrying up to `overlap` trailing units forward."""
    chunks: list[str] = []
    window: list[str] = []
    total = 0
    for piece in pieces:
        piece_length = length(piece)
        if window and total + piece_length > max_size:
            _append_chunk(chunks, "".join(window))
            while window and (total > overlap or total + piece_length > max_size):
                total -= length(window.pop(0))
        window.append(piece)
        total += piece_length
    if window:
        _append_chunk(chunks, "".join(window))
    return chunks


def _hard_cut(text: str, max_size: int, overlap: int, length: LengthFunction) -> list[str]:
    """Cut text into fixed windows when no separator helps."""
    chunks: list[str] = []
    step = max_size - overlap
    start = 0
    while start < len(text):
        window = text[start : start + max_size]
        while length(window) > max_size and len(window) > 1:
            window = window[:-1]
        _append_chunk(chunks, window)
        if start + len(window) >= len(text):
            break
        start += min(step, len(window))
    return chunks


def _append_chunk(chunks: list[str], text: str) -> None:
    cleaned = text.strip()
    if cleaned:
        chunks.append(cleaned)
