"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import hashlib
import math
import re

import pytest

from knowledge_rag.ingestion import embedder
from knowledge_rag.storage.memory import InMemoryStore

LOCAL_DIM = 384


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


class HashingEmbeddings:
    """Deterministic stand-in for ``HuggingFaceEmbeddings``.

    Bag-of-words hashed into 384 buckets and L2-normalised, so texts that
    share words have positive cosine similarity.
    """

    instances = 0

    def __init__(self, model_name: str = "", **kwargs: object) -> None:
        type(self).instances += 1
        self.model_name = model_name

    def embed_query(self, text: str) -> list[float]:
        vector = [0.0] * LOCAL_DIM
        for word in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % LOCAL_DIM
            vector[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector] if norm else vector


@pytest.fixture()
def fake_local_model(monkeypatch: pytest.MonkeyPatch) -> type[HashingEmbeddings]:
    """Replace the sentence-transformer with :class:`HashingEmbeddings`."""
    HashingEmbeddings.instances = 0
    monkeypatch.setattr(embedder, "HuggingFaceEmbeddings", HashingEmbeddings)
    monkeypatch.setattr(embedder, "_local_model", None)
    return HashingEmbeddings


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()
