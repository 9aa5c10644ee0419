"""Domain models for knowledge bases, documents, chunks and embedding configs."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class EmbeddingProvider(str, Enum):
    """Closed set of embedding backends."""

    LOCAL = "local"
    OPENAI = "openai"
    GOOGLE = "google"
    OPENROUTER = "openrouter"


class EmbeddingModelInfo(BaseModel):
    id: str
    name: str
    dimensions: int
    free: bool = False


class EmbeddingProviderInfo(BaseModel):
    name: str
    requires_key: bool
    models: list[EmbeddingModelInfo]


EMBEDDING_PROVIDERS: dict[EmbeddingProvider, EmbeddingProviderInfo] = {
    EmbeddingProvider.LOCAL: EmbeddingProviderInfo(
        name="Local sentence-transformer (free)",
        requires_key=False,
        models=[
            EmbeddingModelInfo(
                id="sentence-transformers/all-MiniLM-L6-v2",
                name="all-MiniLM-L6-v2",
                dimensions=384,
                free=True,
            ),
        ],
    ),
    EmbeddingProvider.OPENAI: EmbeddingProviderInfo(
        name="OpenAI",
        requires_key=True,
        models=[
            EmbeddingModelInfo(id="text-embedding-3-small", name="text-embedding-3-small", dimensions=1536),
            EmbeddingModelInfo(id="text-embedding-3-large", name="text-embedding-3-large", dimensions=3072),
        ],
    ),
    EmbeddingProvider.GOOGLE: EmbeddingProviderInfo(
        name="Google Gemini",
        requires_key=True,
        models=[
            EmbeddingModelInfo(id="text-embedding-004", name="text-embedding-004", dimensions=768),
        ],
    ),
    EmbeddingProvider.OPENROUTER: EmbeddingProviderInfo(
        name="OpenRouter",
        requires_key=True,
        models=[
            EmbeddingModelInfo(
                id="openai/text-embedding-3-small",
                name="text-embedding-3-small (via OpenRouter)",
                dimensions=1536,
            ),
        ],
    ),
}

DEFAULT_EMBEDDING_DIMENSIONS = 384


def get_embedding_dimensions(provider: EmbeddingProvider | str, model: str) -> int:
    """Look up the output size of *model*; unknown models default to 384."""
    try:
        info = EMBEDDING_PROVIDERS[EmbeddingProvider(provider)]
    except ValueError:
        return DEFAULT_EMBEDDING_DIMENSIONS
    for m in info.models:
        if m.id == model:
            return m.dimensions
    return DEFAULT_EMBEDDING_DIMENSIONS


class EmbeddingConfig(BaseModel):
    """Which backend and model produce vectors, and how long they are.

    ``provider`` is kept as a plain string so that an unknown tag reaches the
    dispatch layer and fails there with ``UnsupportedProviderError``.
    """

    provider: str
    model: str
    dimensions: int = Field(gt=0)
    api_key: str | None = Field(default=None, repr=False)


class KnowledgeBase(BaseModel):
    id: str
    user_id: str
    name: str
    description: str | None = None
    embedding_provider: str
    embedding_model: str
    embedding_dimensions: int
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None

    def embedding_config(self, api_key: str | None = None) -> EmbeddingConfig:
        """Return the (immutable) embedding space of this knowledge base."""
        return EmbeddingConfig(
            provider=self.embedding_provider,
            model=self.embedding_model,
            dimensions=self.embedding_dimensions,
            api_key=api_key,
        )


class Document(BaseModel):
    id: str
    knowledge_base_id: str
    title: str
    content: str = ""
    source_url: str | None = None
    file_path: str | None = None
    file_type: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


class Chunk(BaseModel):
    id: str
    document_id: str
    chunk_text: str
    chunk_index: int = Field(ge=0)
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class SourceMetadata(BaseModel):
    """Provenance of an ingested document."""

    title: str
    source_url: str | None = None
    file_path: str | None = None
    file_type: str | None = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title must not be empty")
        return v
