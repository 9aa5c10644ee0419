"""Abstract persistence interface consumed by ingestion and retrieval.

The engine treats the relational store as a generic row store with two
remote procedures for similarity and hybrid search.  Adding a backend
(Postgres/pgvector, Supabase, …) only requires subclassing
:class:`StoreBase` and implementing the abstract methods.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

# Table names
KNOWLEDGE_BASES = "knowledge_bases"
DOCUMENTS = "documents"
DOCUMENT_CHUNKS = "document_chunks"
CONVERSATIONS = "conversations"

# Remote procedures
MATCH_DOCUMENT_CHUNKS = "match_document_chunks"
HYBRID_SEARCH_CHUNKS = "hybrid_search_chunks"

FILTER_OPERATORS = frozenset({"eq", "ne", "gt", "gte", "lt", "lte", "in", "nin", "is"})


class RowFilter(BaseModel):
    """Declarative column filter for store queries.

    Attributes
    ----------
    field:
        Column name (e.g. ``"knowledge_base_id"``).
    operator:
        One of ``eq``, ``ne``, ``gt``, ``gte``, ``lt``, ``lte``, ``in``,
        ``nin`` or ``is`` (``is`` only tests against ``None``).
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    # -- helpers for common filters ------------------------------------------

    @classmethod
    def equals(cls, field: str, value: Any) -> RowFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> RowFilter:
        return cls(field=field, operator="in", value=values)

    @classmethod
    def is_null(cls, field: str) -> RowFilter:
        return cls(field=field, operator="is", value=None)


class StoreBase(ABC):
    """Backend-agnostic row store.

    Rows are plain dicts.  Every method is a coroutine because every call
    is a round-trip to the database.
    """

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    async def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert *rows* and return them as stored.

        Returned rows carry store-generated columns (``id``, ``created_at``,
        ``updated_at``).  A batch is all-or-nothing.
        """
        ...

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: list[RowFilter] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Return rows of *table* matching every filter."""
        ...

    @abstractmethod
    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: list[RowFilter],
    ) -> int:
        """Set *values* on matching rows; return the number updated."""
        ...

    @abstractmethod
    async def delete(self, table: str, filters: list[RowFilter]) -> int:
        """Delete matching rows; return the number deleted."""
        ...

    @abstractmethod
    async def rpc(self, name: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        """Call a stored procedure.

        Two procedures are required:

        * ``match_document_chunks(query_embedding, match_threshold,
          match_count, kb_id)`` → rows with ``id``, ``document_id``,
          ``chunk_text`` and ``similarity``, best first.
        * ``hybrid_search_chunks(query_text, query_embedding, kb_id,
          match_count)`` → the same plus ``keyword_rank`` and
          ``combined_score``, best first.
        """
        ...

    # -- optional overrides ---------------------------------------------------

    async def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        return True
