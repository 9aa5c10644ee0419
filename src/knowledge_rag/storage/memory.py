"""In-process implementation of the store interface.

Used for local development and tests.  It mirrors the behaviour of the
Postgres functions the production store exposes: cosine similarity over
stored vectors, a keyword rank, and a weighted blend of the two.
"""

from __future__ import annotations

import copy
import logging
import operator
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

import numpy as np

from knowledge_rag.errors import StoreError
from knowledge_rag.storage.base import (
    DOCUMENT_CHUNKS,
    DOCUMENTS,
    FILTER_OPERATORS,
    HYBRID_SEARCH_CHUNKS,
    MATCH_DOCUMENT_CHUNKS,
    RowFilter,
    StoreBase,
)

logger = logging.getLogger(__name__)

VECTOR_WEIGHT = 0.7
KEYWORD_WEIGHT = 0.3

_WORD_RE = re.compile(r"\w+")

_OP_MAP: dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "in": lambda actual, values: actual in values,
    "nin": lambda actual, values: actual not in values,
}


def _check_filters(filters: list[RowFilter]) -> None:
    for f in filters:
        if f.operator not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        if f.operator == "is" and f.value is not None:
            raise ValueError("The 'is' operator only compares against None")


def _matches(row: dict[str, Any], filters: list[RowFilter]) -> bool:
    for f in filters:
        actual = row.get(f.field)
        if f.operator == "is":
            if actual is not None:
                return False
            continue
        # NULL matches no comparison, as in SQL.
        if actual is None:
            return False
        if not _OP_MAP[f.operator](actual, f.value):
            return False
    return True


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of *a* and *b*, clipped to ``[0, 1]``."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        raise StoreError(f"different vector dimensions {va.shape[0]} and {vb.shape[0]}")
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denom, 0.0, 1.0))


def keyword_rank(query_text: str, chunk_text: str) -> float:
    """Fraction of distinct query words that occur in *chunk_text*."""
    terms = set(_WORD_RE.findall(query_text.lower()))
    if not terms:
        return 0.0
    words = set(_WORD_RE.findall(chunk_text.lower()))
    return len(terms & words) / len(terms)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryStore(StoreBase):
    """Dict-backed store.

    Parameters
    ----------
    fail_inserts:
        Table names whose inserts raise :class:`StoreError`.
    fail_rpcs:
        Procedure names that raise :class:`StoreError`.
    """

    def __init__(
        self,
        *,
        fail_inserts: set[str] | None = None,
        fail_rpcs: set[str] | None = None,
    ) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.fail_inserts: set[str] = set(fail_inserts or ())
        self.fail_rpcs: set[str] = set(fail_rpcs or ())

    def _table(self, name: str) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault(name, {})

    def _rows(self, table: str, filters: list[RowFilter] | None) -> list[dict[str, Any]]:
        filters = filters or []
        _check_filters(filters)
        return [row for row in self._table(table).values() if _matches(row, filters)]

    # -- StoreBase overrides --------------------------------------------------

    async def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        if table in self.fail_inserts:
            raise StoreError(f"insert into {table} rejected")

        now = _now()
        stored: list[dict[str, Any]] = []
        for row in rows:
            new = copy.deepcopy(row)
            new.setdefault("id", str(uuid.uuid4()))
            new.setdefault("created_at", now)
            new.setdefault("updated_at", now)
            stored.append(new)

        target = self._table(table)
        duplicates = [r["id"] for r in stored if r["id"] in target]
        if duplicates:
            raise StoreError(f"duplicate key in {table}: {duplicates[0]}")
        for new in stored:
            target[new["id"]] = new
        return copy.deepcopy(stored)

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
        rows = self._rows(table, filters)
        if order_by is not None:
            present = [r for r in rows if r.get(order_by) is not None]
            missing = [r for r in rows if r.get(order_by) is None]
            present.sort(key=lambda r: r[order_by], reverse=descending)
            rows = present + missing
        rows = rows[offset:]
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: list[RowFilter],
    ) -> int:
        rows = self._rows(table, filters)
        now = _now()
        for row in rows:
            row.update(copy.deepcopy(values))
            row["updated_at"] = now
        return len(rows)

    async def delete(self, table: str, filters: list[RowFilter]) -> int:
        rows = self._rows(table, filters)
        target = self._table(table)
        for row in rows:
            del target[row["id"]]
        return len(rows)

    async def rpc(self, name: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        if name in self.fail_rpcs:
            raise StoreError(f"function {name} does not exist")
        if name == MATCH_DOCUMENT_CHUNKS:
            rows = self._match_document_chunks(**params)
        elif name == HYBRID_SEARCH_CHUNKS:
            rows = self._hybrid_search_chunks(**params)
        else:
            raise StoreError(f"Unknown procedure: {name}")
        logger.debug("%s returned %d rows", name, len(rows))
        return rows

    # -- procedures -----------------------------------------------------------

    def _searchable_chunks(self, kb_id: str | None) -> list[dict[str, Any]]:
        doc_filters = [RowFilter.is_null("deleted_at")]
        if kb_id is not None:
            doc_filters.append(RowFilter.equals("knowledge_base_id", kb_id))
        doc_ids = {d["id"] for d in self._rows(DOCUMENTS, doc_filters)}
        return [
            c
            for c in self._table(DOCUMENT_CHUNKS).values()
            if c.get("document_id") in doc_ids and c.get("embedding") is not None
        ]

    def _match_document_chunks(
        self,
        query_embedding: list[float],
        match_threshold: float,
        match_count: int,
        kb_id: str | None = None,
    ) -> list[dict[str, Any]]:
        hits: list[dict[str, Any]] = []
        for chunk in self._searchable_chunks(kb_id):
            similarity = cosine_similarity(query_embedding, chunk["embedding"])
            if similarity >= match_threshold:
                hits.append(
                    {
                        "id": chunk["id"],
                        "document_id": chunk["document_id"],
                        "chunk_text": chunk["chunk_text"],
                        "similarity": similarity,
                    }
                )
        hits.sort(key=lambda h: h["similarity"], reverse=True)
        return hits[:match_count]

    def _hybrid_search_chunks(
        self,
        query_text: str,
        query_embedding: list[float],
        kb_id: str | None,
        match_count: int,
    ) -> list[dict[str, Any]]:
        hits: list[dict[str, Any]] = []
        for chunk in self._searchable_chunks(kb_id):
            similarity = cosine_similarity(query_embedding, chunk["embedding"])
            rank = keyword_rank(query_text, chunk["chunk_text"])
            if similarity <= 0.0 and rank <= 0.0:
                continue
            hits.append(
                {
                    "id": chunk["id"],
                    "document_id": chunk["document_id"],
                    "chunk_text": chunk["chunk_text"],
                    "similarity": similarity,
                    "keyword_rank": rank,
                    "combined_score": VECTOR_WEIGHT * similarity + KEYWORD_WEIGHT * rank,
                }
            )
        hits.sort(key=lambda h: h["combined_score"], reverse=True)
        return hits[:match_count]
