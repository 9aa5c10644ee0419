"""
Storage — the persistence interface the engine consumes, plus an
in-process implementation for development and tests.
"""

from knowledge_rag.storage.base import RowFilter, StoreBase
from knowledge_rag.storage.memory import InMemoryStore

__all__ = ["InMemoryStore", "RowFilter", "StoreBase"]
