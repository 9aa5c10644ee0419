"""Exception hierarchy for ingestion, embedding, storage and retrieval.

Ingestion errors always reach the caller.  :class:`RetrievalBackendError`
is raised by the chunk store adapter but recovered inside the retriever,
which falls back to plain vector search.
"""

from __future__ import annotations


class KnowledgeRagError(Exception):
    """Base class for every error raised by this package."""


# ── Ingestion ─────────────────────────────────────────────────────────


class IngestionError(KnowledgeRagError):
    """A document could not be ingested."""


class EmptyContentError(IngestionError):
    """Chunking produced nothing; no rows were written."""


class DocumentCreationError(IngestionError):
    """The store rejected the document insert."""


class ChunkPersistenceError(IngestionError):
    """The chunk batch insert failed; the document row has been rolled back."""


class EmbeddingDimensionError(IngestionError):
    """A vector's length disagrees with the configured dimensionality."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Embedding has {actual} dimensions, expected {expected}")
        self.expected = expected
        self.actual = actual


# ── Embedding ─────────────────────────────────────────────────────────


class EmbeddingError(KnowledgeRagError):
    """An embedding could not be produced."""


class MissingCredentialError(EmbeddingError):
    """A remote provider was selected without an API key."""


class UnsupportedProviderError(EmbeddingError):
    """The provider tag does not match any known backend."""

    def __init__(self, provider: object, kind: str = "embedding") -> None:
        super().__init__(f"Unsupported {kind} provider: {provider}")
        self.provider = provider


class EmbeddingProviderError(EmbeddingError):
    """A remote embedding backend returned an error or timed out."""


# ── Storage / lookup ──────────────────────────────────────────────────


class StoreError(KnowledgeRagError):
    """The persistence backend failed."""


class RetrievalBackendError(StoreError):
    """Hybrid search failed at the store."""


class KnowledgeBaseNotFoundError(KnowledgeRagError):
    """The knowledge base does not exist, is deleted, or is not owned by the caller."""


class DocumentNotFoundError(KnowledgeRagError):
    """The document does not exist or is not visible to the caller."""
