"""
knowledge_rag — retrieval engine for knowledge-base grounded chat.

Subpackages
-----------
- :mod:`knowledge_rag.ingestion` — chunking, embedding, document ingestion.
- :mod:`knowledge_rag.retrieval` — hybrid search, re-ranking, cited context.
- :mod:`knowledge_rag.storage` — persistence interface and in-memory store.
- :mod:`knowledge_rag.generation` — prompts and chat-model factory.
- :mod:`knowledge_rag.serving` — FastAPI application.
"""

__version__ = "0.1.0"
