from __future__ import annotations

"""Exception hierarchy shared by the retrieval and conversation layers."""


class DocchatError(RuntimeError):
    """Base class for errors raised by the chat engine."""
    pass


class ConfigurationError(DocchatError):
    """Raised when settings or wiring make the engine unusable."""
    pass


class DimensionMismatchError(ConfigurationError):
    """Raised when embedding vectors disagree on dimension."""
    pass


class EmptyInputError(DocchatError):
    """Raised when there is nothing to chunk or index."""
    pass


class NoChunksProducedError(DocchatError):
    """Raised when non-empty input produced no chunks."""
    pass


class InvalidArgumentError(DocchatError):
    """Raised for out-of-range call arguments."""
    pass


class EmptyQueryError(InvalidArgumentError):
    """Raised when a retrieval query is blank."""
    pass


class IndexNotInitializedError(DocchatError):
    """Raised when searching before any index was published."""
    pass


class EmbeddingServiceError(DocchatError):
    """Raised when embeddings fail or are invalid."""
    pass


class GenerationError(DocchatError):
    """Raised when generative model requests fail or responses are invalid."""
    pass


class PersistenceError(DocchatError):
    """Raised when conversation persistence fails."""
    pass
