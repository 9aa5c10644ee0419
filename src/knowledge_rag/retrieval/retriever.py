"""Context retriever — hybrid search, re-ranking and cited context assembly.

This module is the **primary public interface** for retrieval.  Callers
that feed an LLM with citations use :meth:`ContextRetriever.get_context_with_sources`;
callers that only need text use :meth:`ContextRetriever.get_context`.

Usage::

    from knowledge_rag.retrieval.retriever import ContextRetriever
    from knowledge_rag.storage import InMemoryStore

    retriever = ContextRetriever(InMemoryStore())
    result = await retriever.get_context_with_sources("What jumps?", kb_id, max_chunks=5)
    for source in result.sources:
        print(source.index, source.title, source.similarity)
"""

from __future__ import annotations

import logging

from knowledge_rag.config import settings
from knowledge_rag.errors import KnowledgeBaseNotFoundError, RetrievalBackendError
from knowledge_rag.ingestion.embedder import default_api_key, embed
from knowledge_rag.models import EmbeddingConfig, KnowledgeBase
from knowledge_rag.retrieval.chunk_store import ChunkStoreAdapter
from knowledge_rag.retrieval.models import ContextWithSources, RetrievalResult, Source
from knowledge_rag.retrieval.reranker import RerankWeights, rerank
from knowledge_rag.storage.base import KNOWLEDGE_BASES, RowFilter, StoreBase

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"
UNKNOWN_TITLE = "Untitled document"


class ContextRetriever:
    """High-level retriever over a :class:`StoreBase`.

    Parameters
    ----------
    store:
        Persistence backend (or an already wrapped adapter).
    match_threshold:
        Default minimum similarity for plain vector search.
    fallback_threshold:
        Minimum similarity used when hybrid search is unavailable.  It is
        lower than *match_threshold* because the keyword signal is missing.
    candidate_multiplier:
        How many candidates per requested chunk to fetch before re-ranking.
    rerank_weights:
        Bonus weights for :func:`~knowledge_rag.retrieval.reranker.rerank`.
    """

    def __init__(
        self,
        store: StoreBase | ChunkStoreAdapter,
        *,
        match_threshold: float | None = None,
        fallback_threshold: float | None = None,
        candidate_multiplier: int | None = None,
        rerank_weights: RerankWeights | None = None,
    ) -> None:
        self._chunks = store if isinstance(store, ChunkStoreAdapter) else ChunkStoreAdapter(store)
        self.match_threshold = settings.match_threshold if match_threshold is None else match_threshold
        self.fallback_threshold = (
            settings.fallback_match_threshold if fallback_threshold is None else fallback_threshold
        )
        self.candidate_multiplier = candidate_multiplier or settings.candidate_multiplier
        self.rerank_weights = rerank_weights or RerankWeights.from_settings()

    # -- embedding ------------------------------------------------------------

    async def resolve_embedding_config(
        self, kb_id: str, embedding_config: EmbeddingConfig | None = None
    ) -> EmbeddingConfig:
        """Use the caller's config, else the knowledge base's own."""
        if embedding_config is not None:
            return embedding_config
        rows = await self._chunks.store.select(
            KNOWLEDGE_BASES,
            [RowFilter.equals("id", kb_id), RowFilter.is_null("deleted_at")],
            limit=1,
        )
        if not rows:
            raise KnowledgeBaseNotFoundError(f"Knowledge base {kb_id} not found")
        kb = KnowledgeBase(**rows[0])
        return kb.embedding_config(api_key=default_api_key(kb.embedding_provider))

    async def _query_vector(
        self, query: str, kb_id: str, embedding_config: EmbeddingConfig | None
    ) -> list[float]:
        config = await self.resolve_embedding_config(kb_id, embedding_config)
        return await embed(query, config)

    # -- search ---------------------------------------------------------------

    async def similarity_search(
        self,
        query: str,
        kb_id: str,
        *,
        embedding_config: EmbeddingConfig | None = None,
        threshold: float | None = None,
        count: int = 5,
        query_embedding: list[float] | None = None,
    ) -> list[RetrievalResult]:
        """Plain vector search; every result has similarity ≥ *threshold*."""
        vector = query_embedding or await self._query_vector(query, kb_id, embedding_config)
        return await self._chunks.vector_search(
            vector,
            kb_id,
            threshold=self.match_threshold if threshold is None else threshold,
            limit=count,
        )

    async def hybrid_search(
        self,
        query: str,
        kb_id: str,
        *,
        embedding_config: EmbeddingConfig | None = None,
        count: int = 10,
        query_embedding: list[float] | None = None,
    ) -> list[RetrievalResult]:
        """Vector + keyword search, degrading to vector-only on backend failure.

        Fallback results carry ``keyword_rank == 0`` and
        ``combined_score == similarity``.
        """
        vector = query_embedding or await self._query_vector(query, kb_id, embedding_config)
        try:
            return await self._chunks.hybrid_search(query, vector, kb_id, limit=count)
        except RetrievalBackendError:
            logger.warning(
                "Hybrid search unavailable for knowledge base %s; "
                "falling back to vector search at threshold %.2f",
                kb_id,
                self.fallback_threshold,
                exc_info=True,
            )
        return await self._chunks.vector_search(
            vector, kb_id, threshold=self.fallback_threshold, limit=count
        )

    # -- context assembly -----------------------------------------------------

    async def get_context(
        self,
        query: str,
        kb_id: str,
        max_chunks: int | None = None,
        embedding_config: EmbeddingConfig | None = None,
        threshold: float | None = None,
    ) -> str:
        """Return matching chunks as one text block, without citations.

        No re-ranking is applied.  An empty string means nothing matched.
        """
        if max_chunks is None:
            max_chunks = settings.max_chunks
        results = await self.similarity_search(
            query,
            kb_id,
            embedding_config=embedding_config,
            threshold=threshold,
            count=max_chunks,
        )
        return CONTEXT_SEPARATOR.join(
            f"[Source {i}] (Similarity: {r.similarity:.2f})\n{r.chunk_text}"
            for i, r in enumerate(results[:max_chunks], start=1)
        )

    async def get_context_with_sources(
        self,
        query: str,
        kb_id: str,
        max_chunks: int | None = None,
        embedding_config: EmbeddingConfig | None = None,
    ) -> ContextWithSources:
        """Retrieve, re-rank and format context with numbered sources.

        Steps: embed the query, over-fetch ``candidate_multiplier ×
        max_chunks`` hybrid candidates (vector-only fallback on failure),
        re-rank lexically, keep the best *max_chunks*, then resolve the
        document titles in one lookup.

        Returns
        -------
        ContextWithSources
            ``context`` entries look like
            ``[1] text\\n(Source: "title", Similarity: 0.87)``; source
            ``index`` matches the ``[n]`` marker.  Both are empty when no
            candidate survives.
        """
        if max_chunks is None:
            max_chunks = settings.max_chunks
        candidates = await self.hybrid_search(
            query,
            kb_id,
            embedding_config=embedding_config,
            count=max_chunks * self.candidate_multiplier,
        )
        if not candidates:
            logger.info("No relevant content for query in knowledge base %s", kb_id)
            return ContextWithSources()

        top = rerank(query, candidates, top_k=max_chunks, weights=self.rerank_weights)
        titles = await self._chunks.document_titles([r.document_id for r in top])

        blocks: list[str] = []
        sources: list[Source] = []
        for index, result in enumerate(top, start=1):
            title = titles.get(result.document_id) or UNKNOWN_TITLE
            blocks.append(
                f"[{index}] {result.chunk_text}\n"
                f'(Source: "{title}", Similarity: {result.similarity:.2f})'
            )
            sources.append(Source(index=index, title=title, similarity=result.similarity))

        logger.debug("Assembled %d of %d candidates for knowledge base %s", len(top), len(candidates), kb_id)
        return ContextWithSources(context=CONTEXT_SEPARATOR.join(blocks), sources=sources)
