"""Unit tests for the ingestion pipeline and its rollback behaviour."""

from __future__ import annotations

import pytest
from langchain_core.documents import Document as LCDocument

from knowledge_rag.errors import (
    ChunkPersistenceError,
    DocumentCreationError,
    EmbeddingDimensionError,
    EmptyContentError,
    KnowledgeBaseNotFoundError,
    MissingCredentialError,
)
from knowledge_rag.ingestion.pipeline import IngestionPipeline
from knowledge_rag.knowledge_bases import KnowledgeBaseService
from knowledge_rag.models import EmbeddingConfig, SourceMetadata
from knowledge_rag.storage.base import DOCUMENT_CHUNKS, DOCUMENTS, RowFilter
from knowledge_rag.storage.memory import InMemoryStore

OWNER = "user-1"
SOURCE = SourceMetadata(title="Handbook", source_url="https://example.com/handbook.pdf", file_type="pdf")


async def _kb(store: InMemoryStore, provider: str = "local") -> str:
    kb = await KnowledgeBaseService(store).create_knowledge_base(OWNER, "Docs", embedding_provider=provider)
    return kb.id


def _pages(*texts: str) -> list[LCDocument]:
    return [LCDocument(page_content=t, metadata={"page": i}) for i, t in enumerate(texts)]


class TestSplit:
    def test_metadata_follows_each_chunk(self, store: InMemoryStore) -> None:
        pipeline = IngestionPipeline(store, chunk_size=50, chunk_overlap=0)
        pieces = pipeline.split(_pages("short page", "word " * 40))
        assert pieces[0] == ("short page", {"page": 0})
        assert len(pieces) > 2
        assert all(meta == {"page": 1} for _, meta in pieces[1:])

    def test_policy_selection(self, store: InMemoryStore) -> None:
        pipeline = IngestionPipeline(store, policy="large")
        assert (pipeline.chunk_size, pipeline.chunk_overlap) == (1500, 300)


class TestAddDocuments:
    @pytest.mark.asyncio
    async def test_success_writes_document_and_ordered_chunks(
        self, store: InMemoryStore, fake_local_model
    ) -> None:
        kb_id = await _kb(store)
        pipeline = IngestionPipeline(store, chunk_size=60, chunk_overlap=10)

        doc_id = await pipeline.add_documents(OWNER, kb_id, _pages("alpha beta gamma " * 20), SOURCE)

        [doc] = await store.select(DOCUMENTS, [RowFilter.equals("id", doc_id)])
        assert doc["title"] == "Handbook"
        assert doc["knowledge_base_id"] == kb_id
        assert doc["source_url"] == SOURCE.source_url

        chunks = await store.select(
            DOCUMENT_CHUNKS, [RowFilter.equals("document_id", doc_id)], order_by="chunk_index"
        )
        assert len(chunks) > 1
        assert [c["chunk_index"] for c in chunks] == list(range(len(chunks)))
        assert all(len(c["embedding"]) == 384 for c in chunks)
        assert all(c["metadata"] == {"page": 0} for c in chunks)

    @pytest.mark.asyncio
    async def test_rollback_when_chunk_insert_fails(self, fake_local_model) -> None:
        store = InMemoryStore(fail_inserts={DOCUMENT_CHUNKS})
        kb_id = await _kb(store)

        with pytest.raises(ChunkPersistenceError, match="Failed to insert document chunks"):
            await IngestionPipeline(store).add_documents(OWNER, kb_id, _pages("some content"), SOURCE)

        assert await store.select(DOCUMENTS) == []
        assert await store.select(DOCUMENT_CHUNKS) == []

    @pytest.mark.asyncio
    async def test_rollback_when_embedding_fails(self, store: InMemoryStore) -> None:
        kb_id = await _kb(store, provider="openai")
        config = EmbeddingConfig(provider="openai", model="text-embedding-3-small", dimensions=1536, api_key=None)

        with pytest.raises(MissingCredentialError):
            await IngestionPipeline(store).add_documents(OWNER, kb_id, _pages("content"), SOURCE, config)

        assert await store.select(DOCUMENTS) == []

    @pytest.mark.asyncio
    async def test_rollback_failure_keeps_original_error(
        self, fake_local_model, caplog: pytest.LogCaptureFixture
    ) -> None:
        store = InMemoryStore(fail_inserts={DOCUMENT_CHUNKS})
        kb_id = await _kb(store)

        async def broken_delete(table, filters):
            raise RuntimeError("connection lost")

        store.delete = broken_delete  # type: ignore[method-assign]
        with pytest.raises(ChunkPersistenceError):
            await IngestionPipeline(store).add_documents(OWNER, kb_id, _pages("content"), SOURCE)
        assert "Rollback of document" in caplog.text

    @pytest.mark.asyncio
    async def test_empty_content_writes_nothing(self, store: InMemoryStore, fake_local_model) -> None:
        kb_id = await _kb(store)
        with pytest.raises(EmptyContentError):
            await IngestionPipeline(store).add_documents(OWNER, kb_id, _pages("", "   \n"), SOURCE)
        assert await store.select(DOCUMENTS) == []

    @pytest.mark.asyncio
    async def test_document_insert_failure(self, fake_local_model) -> None:
        store = InMemoryStore(fail_inserts={DOCUMENTS})
        kb_id = await _kb(store)
        with pytest.raises(DocumentCreationError, match="Failed to create document"):
            await IngestionPipeline(store).add_documents(OWNER, kb_id, _pages("content"), SOURCE)
        assert await store.select(DOCUMENT_CHUNKS) == []

    @pytest.mark.asyncio
    async def test_unknown_knowledge_base(self, store: InMemoryStore) -> None:
        with pytest.raises(KnowledgeBaseNotFoundError):
            await IngestionPipeline(store).add_documents(OWNER, "missing", _pages("content"), SOURCE)

    @pytest.mark.asyncio
    async def test_other_owner_cannot_ingest(self, store: InMemoryStore) -> None:
        kb_id = await _kb(store)
        with pytest.raises(KnowledgeBaseNotFoundError):
            await IngestionPipeline(store).add_documents("intruder", kb_id, _pages("content"), SOURCE)

    @pytest.mark.asyncio
    async def test_config_dimension_mismatch(self, store: InMemoryStore) -> None:
        kb_id = await _kb(store)
        config = EmbeddingConfig(provider="openai", model="text-embedding-3-small", dimensions=1536, api_key="k")
        with pytest.raises(EmbeddingDimensionError):
            await IngestionPipeline(store).add_documents(OWNER, kb_id, _pages("content"), SOURCE, config)
        assert await store.select(DOCUMENTS) == []
