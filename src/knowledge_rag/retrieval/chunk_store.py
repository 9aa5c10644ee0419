"""Chunk store adapter — documents, chunks and the two search procedures.

Everything the ingestion pipeline and the retriever need from the store
goes through :class:`ChunkStoreAdapter`, which turns raw rows into domain
models and store failures into the package's error types.
"""

from __future__ import annotations

import logging
from typing import Any

from knowledge_rag.errors import RetrievalBackendError, StoreError
from knowledge_rag.models import Chunk, Document
from knowledge_rag.retrieval.models import RetrievalResult
from knowledge_rag.storage.base import (
    DOCUMENT_CHUNKS,
    DOCUMENTS,
    HYBRID_SEARCH_CHUNKS,
    MATCH_DOCUMENT_CHUNKS,
    RowFilter,
    StoreBase,
)

logger = logging.getLogger(__name__)


class ChunkStoreAdapter:
    """Query contract over a :class:`StoreBase` backend.

    Parameters
    ----------
    store:
        Concrete persistence backend.
    """

    def __init__(self, store: StoreBase) -> None:
        self._store = store

    @property
    def store(self) -> StoreBase:
        return self._store

    # -- search ---------------------------------------------------------------

    async def vector_search(
        self,
        query_embedding: list[float],
        kb_id: str | None,
        *,
        threshold: float,
        limit: int,
    ) -> list[RetrievalResult]:
        """Chunks with cosine similarity ≥ *threshold*, best first."""
        if limit <= 0:
            return []
        try:
            rows = await self._store.rpc(
                MATCH_DOCUMENT_CHUNKS,
                {
                    "query_embedding": query_embedding,
                    "match_threshold": threshold,
                    "match_count": limit,
                    "kb_id": kb_id,
                },
            )
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(f"Failed to perform similarity search: {exc}") from exc

        results = [RetrievalResult.from_vector_row(r) for r in rows or []]
        # Backends may return rows below the threshold.
        results = [r for r in results if r.similarity >= threshold]
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:limit]

    async def hybrid_search(
        self,
        query_text: str,
        query_embedding: list[float],
        kb_id: str | None,
        *,
        limit: int,
    ) -> list[RetrievalResult]:
        """Vector + keyword candidates ordered by the store's blended score.

        Raises
        ------
        RetrievalBackendError
            The procedure is missing or failed.
        """
        if limit <= 0:
            return []
        try:
            rows = await self._store.rpc(
                HYBRID_SEARCH_CHUNKS,
                {
                    "query_text": query_text,
                    "query_embedding": query_embedding,
                    "kb_id": kb_id,
                    "match_count": limit,
                },
            )
            return [RetrievalResult.from_hybrid_row(r) for r in rows or []]
        except Exception as exc:
            raise RetrievalBackendError(f"Hybrid search failed: {exc}") from exc

    # -- documents ------------------------------------------------------------

    async def document_titles(self, document_ids: list[str]) -> dict[str, str]:
        """Resolve titles for *document_ids* in a single query."""
        unique = list(dict.fromkeys(document_ids))
        if not unique:
            return {}
        rows = await self._store.select(DOCUMENTS, [RowFilter.one_of("id", unique)])
        return {str(r["id"]): r.get("title") or "" for r in rows}

    async def get_document(self, document_id: str) -> Document | None:
        rows = await self._store.select(DOCUMENTS, [RowFilter.equals("id", document_id)], limit=1)
        return Document(**rows[0]) if rows else None

    async def insert_document(self, values: dict[str, Any]) -> Document:
        rows = await self._store.insert(DOCUMENTS, [values])
        if not rows:
            raise StoreError("document insert returned no row")
        return Document(**rows[0])

    async def insert_chunks(self, rows: list[dict[str, Any]]) -> list[Chunk]:
        """Insert all *rows* in one batch."""
        stored = await self._store.insert(DOCUMENT_CHUNKS, rows)
        return [Chunk(**r) for r in stored]

    async def delete_document(self, document_id: str) -> bool:
        """Hard-delete a document together with all of its chunks."""
        removed_chunks = await self._store.delete(
            DOCUMENT_CHUNKS, [RowFilter.equals("document_id", document_id)]
        )
        removed = await self._store.delete(DOCUMENTS, [RowFilter.equals("id", document_id)])
        logger.info("Deleted document %s (%d chunks)", document_id, removed_chunks)
        return removed > 0
