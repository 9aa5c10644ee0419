"""Domain models for retrieval results and source attribution."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


def _unit_interval(value: Any) -> float:
    """Clamp a store-reported similarity into ``[0, 1]``.

    Backends computing ``1 - cosine_distance`` can drift slightly outside
    the range through floating-point error.
    """
    return min(max(float(value), 0.0), 1.0)


class RetrievalResult(BaseModel):
    """A candidate chunk returned by the store for one query.

    Attributes
    ----------
    id:
        Chunk identifier.
    document_id:
        Owning document.
    chunk_text:
        The chunk's text.
    similarity:
        Cosine similarity to the query, in ``[0, 1]``.
    keyword_rank:
        Full-text relevance; ``0`` when only vector search was used.
    combined_score:
        Ordering key.  Starts as the store's blend and is raised by
        re-ranking bonuses, so it may exceed ``1``.
    """

    id: str
    document_id: str
    chunk_text: str
    similarity: float = Field(ge=0.0, le=1.0)
    keyword_rank: float = 0.0
    combined_score: float = 0.0

    @classmethod
    def from_vector_row(cls, row: dict[str, Any]) -> RetrievalResult:
        """Build a result from a plain similarity row (no keyword signal)."""
        similarity = _unit_interval(row["similarity"])
        return cls(
            id=str(row["id"]),
            document_id=str(row["document_id"]),
            chunk_text=row.get("chunk_text") or "",
            similarity=similarity,
            keyword_rank=0.0,
            combined_score=similarity,
        )

    @classmethod
    def from_hybrid_row(cls, row: dict[str, Any]) -> RetrievalResult:
        similarity = _unit_interval(row["similarity"])
        return cls(
            id=str(row["id"]),
            document_id=str(row["document_id"]),
            chunk_text=row.get("chunk_text") or "",
            similarity=similarity,
            keyword_rank=float(row.get("keyword_rank") or 0.0),
            combined_score=float(row.get("combined_score", similarity)),
        )

    def __str__(self) -> str:  # noqa: D105
        return f"[{self.combined_score:.3f}] {self.chunk_text[:120]}…"


class Source(BaseModel):
    """Maps citation marker ``[index]`` back to a document."""

    index: int = Field(ge=1)
    title: str
    similarity: float


class ContextWithSources(BaseModel):
    """Citation-indexed context for the LLM plus the matching source list.

    An empty ``context`` with no ``sources`` means nothing relevant was
    found; it is a normal outcome, not a failure.
    """

    context: str = ""
    sources: list[Source] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.sources
