"""Lexical re-ranking applied on top of the store's combined score."""

from __future__ import annotations

from typing import NamedTuple

from knowledge_rag.config import settings
from knowledge_rag.retrieval.models import RetrievalResult


class RerankWeights(NamedTuple):
    exact_match: float = 0.3
    term_density: float = 0.2
    position: float = 0.1

    @classmethod
    def from_settings(cls) -> RerankWeights:
        return cls(
            exact_match=settings.rerank_exact_match_bonus,
            term_density=settings.rerank_term_density_weight,
            position=settings.rerank_position_weight,
        )


def query_terms(query: str) -> list[str]:
    """Lower-cased whitespace tokens longer than two characters."""
    return [t for t in query.lower().split() if len(t) > 2]


def lexical_bonus(query: str, text: str, weights: RerankWeights | None = None) -> float:
    """Score adjustment for *text* given *query*.

    * exact, case-insensitive occurrence of the whole query;
    * share of query terms found anywhere in the text;
    * how early the first query term appears.
    """
    weights = weights or RerankWeights()
    haystack = text.lower()
    needle = query.lower().strip()
    bonus = 0.0

    if needle and needle in haystack:
        bonus += weights.exact_match

    terms = query_terms(query)
    if terms and haystack:
        found = [t for t in terms if t in haystack]
        bonus += weights.term_density * (len(found) / len(terms))
        if found:
            first = min(haystack.index(t) for t in found)
            bonus += weights.position * (1 - first / len(haystack))

    return bonus


def rerank(
    query: str,
    candidates: list[RetrievalResult],
    top_k: int | None = None,
    weights: RerankWeights | None = None,
) -> list[RetrievalResult]:
    """Re-rank *candidates* for *query* and return the best *top_k*.

    Each candidate's ``combined_score`` is raised by :func:`lexical_bonus`;
    the list is then sorted by the adjusted score, highest first.  The sort
    is stable, so ties keep the store's order.  Inputs are not mutated.
    """
    weights = weights or RerankWeights.from_settings()
    adjusted = [
        c.model_copy(update={"combined_score": c.combined_score + lexical_bonus(query, c.chunk_text, weights)})
        for c in candidates
    ]
    adjusted.sort(key=lambda c: c.combined_score, reverse=True)
    return adjusted if top_k is None else adjusted[:top_k]
