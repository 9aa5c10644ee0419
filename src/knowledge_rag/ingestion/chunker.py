"""Text chunking policy."""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple

from langchain_text_splitters import RecursiveCharacterTextSplitter

from knowledge_rag.config import settings

# Paragraph, line, sentence end, clause, word, then a hard character cut.
SEPARATORS: list[str] = ["\n\n", "\n", ". ", "? ", "! ", "; ", ", ", " ", ""]


class ChunkSpec(NamedTuple):
    size: int
    overlap: int


class ChunkingPolicy(Enum):
    """The two size/overlap pairs the system has shipped with."""

    STANDARD = ChunkSpec(1000, 200)
    LARGE = ChunkSpec(1500, 300)

    @property
    def size(self) -> int:
        return self.value.size

    @property
    def overlap(self) -> int:
        return self.value.overlap


def resolve_chunk_spec(
    policy: ChunkingPolicy | str | None = None,
    chunk_size: int | None = None,
    chunk_overlap: int | None = None,
) -> ChunkSpec:
    """Combine a named policy with explicit overrides.

    Anything left as ``None`` is taken from :data:`settings`.
    """
    if policy is None:
        policy = settings.chunk_policy
    if isinstance(policy, str):
        try:
            policy = ChunkingPolicy[policy.upper()]
        except KeyError:
            raise ValueError(f"Unknown chunking policy: {policy!r}") from None

    size = chunk_size if chunk_size is not None else settings.chunk_size or policy.size
    overlap = chunk_overlap if chunk_overlap is not None else settings.chunk_overlap
    if overlap is None:
        overlap = policy.overlap
    return ChunkSpec(size, overlap)


def chunk_text(
    text: str,
    chunk_size: int = ChunkingPolicy.STANDARD.size,
    chunk_overlap: int = ChunkingPolicy.STANDARD.overlap,
) -> list[str]:
    """Split *text* into ordered, overlapping chunks.

    Parameters
    ----------
    text:
        Plain document text.
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Number of trailing characters of a chunk that may be repeated at
        the start of the next one.

    Returns
    -------
    list[str]
        Chunks in document order.  Empty or whitespace-only text yields
        an empty list; text shorter than *chunk_size* yields one chunk.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError(
            f"chunk_overlap ({chunk_overlap}) must be >= 0 and < chunk_size ({chunk_size})"
        )
    if not text or not text.strip():
        return []

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size,
        chunk_overlap=chunk_overlap,
        length_function=len,
        separators=SEPARATORS,
    )
    return splitter.split_text(text)
