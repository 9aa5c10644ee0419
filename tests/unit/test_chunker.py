"""Unit tests for the chunker module."""

import pytest

from knowledge_rag.ingestion.chunker import (
    SEPARATORS,
    ChunkingPolicy,
    ChunkSpec,
    chunk_text,
    resolve_chunk_spec,
)


def _numbered_words(n: int) -> str:
    return " ".join(f"w{i}" for i in range(n))


def test_chunk_text_splits_long_text() -> None:
    """Text longer than chunk_size should be split."""
    chunks = chunk_text("word " * 500, chunk_size=256, chunk_overlap=32)
    assert len(chunks) > 1


def test_chunks_respect_size_limit() -> None:
    chunks = chunk_text(_numbered_words(600), chunk_size=200, chunk_overlap=40)
    assert all(len(c) <= 200 for c in chunks)


def test_short_text_yields_single_chunk() -> None:
    text = "The quick brown fox jumps over the lazy dog. Foxes are wild canids."
    assert chunk_text(text, chunk_size=1000, chunk_overlap=200) == [text]


def test_empty_text_yields_no_chunks() -> None:
    assert chunk_text("") == []


def test_whitespace_only_text_yields_no_chunks() -> None:
    assert chunk_text("   \n\n  \t ") == []


def test_consecutive_chunks_overlap() -> None:
    """The first word of each chunk was already present in the previous chunk."""
    chunks = chunk_text(_numbered_words(400), chunk_size=120, chunk_overlap=30)
    assert len(chunks) > 2
    for prev, cur in zip(chunks, chunks[1:]):
        assert cur.split()[0] in prev.split()


def test_no_overlap_when_disabled() -> None:
    chunks = chunk_text(_numbered_words(400), chunk_size=120, chunk_overlap=0)
    for prev, cur in zip(chunks, chunks[1:]):
        assert cur.split()[0] not in prev.split()


def test_chunks_cover_every_word_in_order() -> None:
    words = _numbered_words(300).split()
    chunks = chunk_text(" ".join(words), chunk_size=100, chunk_overlap=20)

    seen: list[str] = []
    for chunk in chunks:
        for word in chunk.split():
            if not seen or int(word[1:]) > int(seen[-1][1:]):
                seen.append(word)
    assert seen == words


def test_paragraph_breaks_preferred() -> None:
    para_a = "Alpha sentence one. Alpha sentence two."
    para_b = "Beta sentence one. Beta sentence two."
    chunks = chunk_text(f"{para_a}\n\n{para_b}", chunk_size=50, chunk_overlap=0)
    assert chunks == [para_a, para_b]


def test_unsplittable_run_is_hard_cut() -> None:
    chunks = chunk_text("x" * 2500, chunk_size=1000, chunk_overlap=200)
    assert len(chunks) >= 3
    assert all(len(c) <= 1000 for c in chunks)


def test_separator_preference_order() -> None:
    assert SEPARATORS[:2] == ["\n\n", "\n"]
    assert SEPARATORS.index(". ") < SEPARATORS.index("; ") < SEPARATORS.index(" ")
    assert SEPARATORS[-1] == ""


@pytest.mark.parametrize(("size", "overlap"), [(100, 100), (100, 150), (0, 0), (100, -1)])
def test_invalid_sizes_rejected(size: int, overlap: int) -> None:
    with pytest.raises(ValueError):
        chunk_text("some text", chunk_size=size, chunk_overlap=overlap)


class TestChunkingPolicy:
    def test_policies(self) -> None:
        assert ChunkingPolicy.STANDARD.value == ChunkSpec(1000, 200)
        assert ChunkingPolicy.LARGE.size == 1500
        assert ChunkingPolicy.LARGE.overlap == 300

    def test_resolve_by_name(self) -> None:
        assert resolve_chunk_spec("large") == ChunkSpec(1500, 300)

    def test_explicit_values_override_policy(self) -> None:
        assert resolve_chunk_spec("standard", chunk_size=500, chunk_overlap=50) == ChunkSpec(500, 50)

    def test_unknown_policy(self) -> None:
        with pytest.raises(ValueError, match="Unknown chunking policy"):
            resolve_chunk_spec("gigantic")
