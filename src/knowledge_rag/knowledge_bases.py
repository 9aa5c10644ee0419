"""Knowledge-base lifecycle: creation, listing, updates and soft deletion."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from knowledge_rag.config import settings
from knowledge_rag.errors import DocumentNotFoundError, KnowledgeBaseNotFoundError
from knowledge_rag.ingestion.embedder import resolve_provider
from knowledge_rag.models import (
    EMBEDDING_PROVIDERS,
    Document,
    EmbeddingProvider,
    KnowledgeBase,
    get_embedding_dimensions,
)
from knowledge_rag.retrieval.chunk_store import ChunkStoreAdapter
from knowledge_rag.storage.base import (
    CONVERSATIONS,
    DOCUMENTS,
    KNOWLEDGE_BASES,
    RowFilter,
    StoreBase,
)

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

_MUTABLE_FIELDS = frozenset({"name", "description"})
_EMBEDDING_FIELDS = frozenset({"embedding_provider", "embedding_model", "embedding_dimensions"})


def _clean_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise ValueError("Knowledge base name must not be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValueError(f"Knowledge base name must be at most {MAX_NAME_LENGTH} characters")
    return name


def _clean_description(description: str | None) -> str | None:
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValueError(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters")
    return description


def _default_model(provider: EmbeddingProvider) -> str:
    if provider.value == settings.embedding_provider:
        return settings.embedding_model
    return EMBEDDING_PROVIDERS[provider].models[0].id


def _dimensions(provider: EmbeddingProvider, model: str) -> int:
    if provider.value == settings.embedding_provider and model == settings.embedding_model:
        return settings.embedding_dimensions
    return get_embedding_dimensions(provider, model)


class KnowledgeBaseService:
    """Owner-scoped operations on knowledge bases and their documents.

    Parameters
    ----------
    store:
        Persistence backend.
    """

    def __init__(self, store: StoreBase) -> None:
        self._store = store
        self._chunks = ChunkStoreAdapter(store)

    @staticmethod
    def _live(owner_id: str, kb_id: str) -> list[RowFilter]:
        return [
            RowFilter.equals("id", kb_id),
            RowFilter.equals("user_id", owner_id),
            RowFilter.is_null("deleted_at"),
        ]

    # -- knowledge bases ------------------------------------------------------

    async def create_knowledge_base(
        self,
        owner_id: str,
        name: str,
        description: str | None = None,
        embedding_provider: str | None = None,
        embedding_model: str | None = None,
    ) -> KnowledgeBase:
        """Create a knowledge base whose embedding space is fixed from now on."""
        provider = resolve_provider(embedding_provider or settings.embedding_provider)
        model = embedding_model or _default_model(provider)

        rows = await self._store.insert(
            KNOWLEDGE_BASES,
            [
                {
                    "user_id": owner_id,
                    "name": _clean_name(name),
                    "description": _clean_description(description),
                    "embedding_provider": provider.value,
                    "embedding_model": model,
                    "embedding_dimensions": _dimensions(provider, model),
                    "deleted_at": None,
                }
            ],
        )
        kb = KnowledgeBase(**rows[0])
        logger.info(
            "Created knowledge base %s (%s/%s, dim=%d)",
            kb.id,
            kb.embedding_provider,
            kb.embedding_model,
            kb.embedding_dimensions,
        )
        return kb

    async def get_knowledge_bases(self, owner_id: str) -> list[KnowledgeBase]:
        """All live knowledge bases of *owner_id*, newest first."""
        rows = await self._store.select(
            KNOWLEDGE_BASES,
            [RowFilter.equals("user_id", owner_id), RowFilter.is_null("deleted_at")],
            order_by="created_at",
            descending=True,
        )
        return [KnowledgeBase(**r) for r in rows]

    async def get_knowledge_base(self, owner_id: str, kb_id: str) -> KnowledgeBase:
        rows = await self._store.select(KNOWLEDGE_BASES, self._live(owner_id, kb_id), limit=1)
        if not rows:
            raise KnowledgeBaseNotFoundError(f"Knowledge base {kb_id} not found")
        return KnowledgeBase(**rows[0])

    async def verify_ownership(self, owner_id: str, kb_id: str) -> bool:
        """Return ``True`` if *owner_id* owns the live knowledge base *kb_id*."""
        rows = await self._store.select(KNOWLEDGE_BASES, self._live(owner_id, kb_id), limit=1)
        return bool(rows)

    async def update_knowledge_base(
        self, owner_id: str, kb_id: str, **changes: Any
    ) -> KnowledgeBase:
        """Apply name/description changes.

        Embedding provider, model and dimensions are immutable; attempts to
        change them are ignored.
        """
        await self.get_knowledge_base(owner_id, kb_id)

        ignored = sorted(k for k in changes if k in _EMBEDDING_FIELDS)
        if ignored:
            logger.info("Ignoring immutable embedding fields %s for knowledge base %s", ignored, kb_id)
        unknown = sorted(k for k in changes if k not in _MUTABLE_FIELDS | _EMBEDDING_FIELDS)
        if unknown:
            raise ValueError(f"Unknown knowledge base fields: {', '.join(unknown)}")

        values: dict[str, Any] = {}
        if changes.get("name") is not None:
            values["name"] = _clean_name(changes["name"])
        if "description" in changes:
            values["description"] = _clean_description(changes["description"])
        if values:
            await self._store.update(KNOWLEDGE_BASES, values, self._live(owner_id, kb_id))
        return await self.get_knowledge_base(owner_id, kb_id)

    async def delete_knowledge_base(self, owner_id: str, kb_id: str) -> None:
        """Soft-delete a knowledge base with its documents and conversations.

        All three receive the same ``deleted_at`` timestamp.
        """
        await self.get_knowledge_base(owner_id, kb_id)
        deleted_at = datetime.now(timezone.utc)
        tombstone = {"deleted_at": deleted_at}

        docs = await self._store.update(
            DOCUMENTS,
            tombstone,
            [RowFilter.equals("knowledge_base_id", kb_id), RowFilter.is_null("deleted_at")],
        )
        conversations = await self._store.update(
            CONVERSATIONS,
            tombstone,
            [RowFilter.equals("knowledge_base_id", kb_id), RowFilter.is_null("deleted_at")],
        )
        await self._store.update(KNOWLEDGE_BASES, tombstone, [RowFilter.equals("id", kb_id)])
        logger.info(
            "Soft-deleted knowledge base %s (%d documents, %d conversations)",
            kb_id,
            docs,
            conversations,
        )

    # -- documents ------------------------------------------------------------

    async def get_documents(self, kb_id: str) -> list[Document]:
        """Live documents of *kb_id*, newest first."""
        rows = await self._store.select(
            DOCUMENTS,
            [RowFilter.equals("knowledge_base_id", kb_id), RowFilter.is_null("deleted_at")],
            order_by="created_at",
            descending=True,
        )
        return [Document(**r) for r in rows]

    async def get_document(self, owner_id: str, document_id: str) -> Document:
        """Return a live document whose knowledge base *owner_id* owns."""
        doc = await self._chunks.get_document(document_id)
        if (
            doc is None
            or doc.deleted_at is not None
            or not await self.verify_ownership(owner_id, doc.knowledge_base_id)
        ):
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return doc

    async def delete_document(self, document_id: str) -> None:
        """Hard-delete a document and every chunk it owns."""
        if not await self._chunks.delete_document(document_id):
            raise DocumentNotFoundError(f"Document {document_id} not found")
