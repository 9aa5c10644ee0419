"""Ingestion pipeline — chunk, embed and persist one document.

Steps::

    documents ──chunk──▶ texts ──insert──▶ document row
                                   │
                                   └──embed (concurrent)──▶ chunk rows

Embedding happens between the document insert and the chunk insert and
involves remote calls, so there is no database transaction around the
whole thing.  Instead, any failure after the document row exists deletes
that row before the error propagates.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from knowledge_rag.errors import (
    ChunkPersistenceError,
    DocumentCreationError,
    EmbeddingDimensionError,
    EmptyContentError,
)
from knowledge_rag.ingestion.chunker import ChunkingPolicy, chunk_text, resolve_chunk_spec
from knowledge_rag.ingestion.embedder import default_api_key, embed_many
from knowledge_rag.knowledge_bases import KnowledgeBaseService
from knowledge_rag.models import EmbeddingConfig, SourceMetadata
from knowledge_rag.retrieval.chunk_store import ChunkStoreAdapter
from knowledge_rag.storage.base import StoreBase

if TYPE_CHECKING:
    from langchain_core.documents import Document

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Turns plain-text documents into a stored, searchable document.

    Parameters
    ----------
    store:
        Persistence backend.
    policy:
        Named chunking policy (``"standard"`` = 1000/200, ``"large"`` =
        1500/300).  Defaults to ``settings.chunk_policy``.
    chunk_size / chunk_overlap:
        Explicit overrides of the policy values.
    """

    def __init__(
        self,
        store: StoreBase,
        *,
        policy: ChunkingPolicy | str | None = None,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> None:
        self._chunks = ChunkStoreAdapter(store)
        self._knowledge_bases = KnowledgeBaseService(store)
        self.chunk_size, self.chunk_overlap = resolve_chunk_spec(policy, chunk_size, chunk_overlap)

    def split(self, documents: list[Document]) -> list[tuple[str, dict[str, Any]]]:
        """Chunk every document and flatten, preserving order.

        Each chunk is paired with a copy of its source document's metadata.
        """
        pieces: list[tuple[str, dict[str, Any]]] = []
        for doc in documents:
            for text in chunk_text(doc.page_content, self.chunk_size, self.chunk_overlap):
                pieces.append((text, dict(doc.metadata or {})))
        return pieces

    async def add_documents(
        self,
        owner_id: str,
        kb_id: str,
        documents: list[Document],
        source_metadata: SourceMetadata,
        embedding_config: EmbeddingConfig | None = None,
    ) -> str:
        """Ingest *documents* into knowledge base *kb_id* as one document.

        Parameters
        ----------
        owner_id:
            Caller; must own *kb_id*.
        kb_id:
            Target knowledge base.
        documents:
            Extracted text, e.g. one LangChain ``Document`` per PDF page.
        source_metadata:
            Title and provenance stored on the document row.
        embedding_config:
            Per-request override (e.g. with a user's API key).  Its
            dimensionality must match the knowledge base's.

        Returns
        -------
        str
            The new document id.

        Raises
        ------
        KnowledgeBaseNotFoundError
            *kb_id* is missing, deleted or not owned by *owner_id*.
        EmptyContentError
            No chunks were produced; nothing was written.
        DocumentCreationError
            The document insert failed; nothing was written.
        ChunkPersistenceError
            The chunk insert failed; the document row was removed.
        EmbeddingError, EmbeddingDimensionError
            Embedding failed; the document row was removed.
        """
        kb = await self._knowledge_bases.get_knowledge_base(owner_id, kb_id)
        config = embedding_config or kb.embedding_config(
            api_key=default_api_key(kb.embedding_provider)
        )
        if config.dimensions != kb.embedding_dimensions:
            raise EmbeddingDimensionError(kb.embedding_dimensions, config.dimensions)

        pieces = self.split(documents)
        texts = [text for text, _ in pieces]
        if not texts:
            raise EmptyContentError(
                f"No content extracted from {source_metadata.title!r}; nothing to ingest"
            )

        try:
            doc = await self._chunks.insert_document(
                {
                    "knowledge_base_id": kb_id,
                    "title": source_metadata.title,
                    "content": "\n\n".join(d.page_content for d in documents),
                    "source_url": source_metadata.source_url,
                    "file_path": source_metadata.file_path,
                    "file_type": source_metadata.file_type,
                    "deleted_at": None,
                }
            )
        except Exception as exc:
            logger.error("Error creating document %r: %s", source_metadata.title, exc)
            raise DocumentCreationError("Failed to create document") from exc

        try:
            logger.info("Generating embeddings for %d chunks...", len(texts))
            vectors = await embed_many(texts, config)
            for vector in vectors:
                if len(vector) != kb.embedding_dimensions:
                    raise EmbeddingDimensionError(kb.embedding_dimensions, len(vector))

            rows = [
                {
                    "document_id": doc.id,
                    "chunk_text": text,
                    "chunk_index": index,
                    "embedding": vector,
                    "metadata": metadata,
                }
                for index, ((text, metadata), vector) in enumerate(zip(pieces, vectors))
            ]
            try:
                stored = await self._chunks.insert_chunks(rows)
            except Exception as exc:
                raise ChunkPersistenceError("Failed to insert document chunks") from exc
        except Exception:
            logger.error("Ingestion of document %s failed; rolling back", doc.id, exc_info=True)
            await self._rollback(doc.id)
            raise

        logger.info("Successfully added %d chunks to document %s", len(stored), doc.id)
        return doc.id

    async def _rollback(self, document_id: str) -> None:
        try:
            await self._chunks.delete_document(document_id)
        except Exception:
            # The ingestion error propagates, not this one.
            logger.exception("Rollback of document %s failed", document_id)
