"""
Retrieval — hybrid search, re-ranking, and context assembly.

This module wraps the store behind a clean interface so that the chat
layer never needs to know which database is backing retrieval.

Public surface
--------------
- :class:`ContextRetriever` — main entry point for retrieval with citations.
- :class:`ChunkStoreAdapter` — query contract over a store backend.
- :class:`RetrievalResult`, :class:`Source`, :class:`ContextWithSources` — data models.
- :func:`rerank` — lexical re-ranking of candidates.
"""

from knowledge_rag.retrieval.chunk_store import ChunkStoreAdapter
from knowledge_rag.retrieval.models import ContextWithSources, RetrievalResult, Source
from knowledge_rag.retrieval.reranker import RerankWeights, rerank
from knowledge_rag.retrieval.retriever import ContextRetriever

__all__ = [
    "ChunkStoreAdapter",
    "ContextRetriever",
    "ContextWithSources",
    "RerankWeights",
    "RetrievalResult",
    "Source",
    "rerank",
]
