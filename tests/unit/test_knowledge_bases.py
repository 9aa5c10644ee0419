"""Unit tests for knowledge-base lifecycle and document management."""

from __future__ import annotations

import pytest
from langchain_core.documents import Document as LCDocument

from knowledge_rag.errors import (
    DocumentNotFoundError,
    KnowledgeBaseNotFoundError,
    UnsupportedProviderError,
)
from knowledge_rag.ingestion.pipeline import IngestionPipeline
from knowledge_rag.knowledge_bases import KnowledgeBaseService
from knowledge_rag.models import SourceMetadata
from knowledge_rag.storage.base import CONVERSATIONS, DOCUMENT_CHUNKS, DOCUMENTS, KNOWLEDGE_BASES, RowFilter
from knowledge_rag.storage.memory import InMemoryStore

OWNER = "user-1"


@pytest.fixture()
def service(store: InMemoryStore) -> KnowledgeBaseService:
    return KnowledgeBaseService(store)


class TestCreate:
    @pytest.mark.asyncio
    async def test_defaults_to_local_provider(self, service: KnowledgeBaseService) -> None:
        kb = await service.create_knowledge_base(OWNER, "  Research  ", "Papers")
        assert kb.name == "Research"
        assert kb.embedding_provider == "local"
        assert kb.embedding_model == "sentence-transformers/all-MiniLM-L6-v2"
        assert kb.embedding_dimensions == 384

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("provider", "model", "dim"),
        [
            ("openai", None, 1536),
            ("openai", "text-embedding-3-large", 3072),
            ("google", None, 768),
            ("openrouter", None, 1536),
        ],
    )
    async def test_dimensions_from_catalogue(
        self, service: KnowledgeBaseService, provider: str, model: str | None, dim: int
    ) -> None:
        kb = await service.create_knowledge_base(OWNER, "KB", embedding_provider=provider, embedding_model=model)
        assert kb.embedding_dimensions == dim

    @pytest.mark.asyncio
    async def test_unknown_provider(self, service: KnowledgeBaseService) -> None:
        with pytest.raises(UnsupportedProviderError):
            await service.create_knowledge_base(OWNER, "KB", embedding_provider="cohere")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    async def test_invalid_name(self, service: KnowledgeBaseService, name: str) -> None:
        with pytest.raises(ValueError):
            await service.create_knowledge_base(OWNER, name)

    @pytest.mark.asyncio
    async def test_description_too_long(self, service: KnowledgeBaseService) -> None:
        with pytest.raises(ValueError, match="500"):
            await service.create_knowledge_base(OWNER, "KB", "d" * 501)


class TestReadAndUpdate:
    @pytest.mark.asyncio
    async def test_listing_is_owner_scoped(self, service: KnowledgeBaseService) -> None:
        a = await service.create_knowledge_base(OWNER, "A")
        b = await service.create_knowledge_base(OWNER, "B")
        await service.create_knowledge_base("someone-else", "C")

        listed = await service.get_knowledge_bases(OWNER)
        assert {kb.id for kb in listed} == {a.id, b.id}

    @pytest.mark.asyncio
    async def test_get_requires_ownership(self, service: KnowledgeBaseService) -> None:
        kb = await service.create_knowledge_base(OWNER, "A")
        assert await service.verify_ownership(OWNER, kb.id)
        assert not await service.verify_ownership("intruder", kb.id)
        with pytest.raises(KnowledgeBaseNotFoundError):
            await service.get_knowledge_base("intruder", kb.id)

    @pytest.mark.asyncio
    async def test_update_name_and_description(self, service: KnowledgeBaseService) -> None:
        kb = await service.create_knowledge_base(OWNER, "Old", "old description")
        updated = await service.update_knowledge_base(OWNER, kb.id, name="New", description=None)
        assert updated.name == "New"
        assert updated.description is None

    @pytest.mark.asyncio
    async def test_embedding_fields_are_immutable(self, service: KnowledgeBaseService) -> None:
        kb = await service.create_knowledge_base(OWNER, "KB")
        updated = await service.update_knowledge_base(
            OWNER,
            kb.id,
            embedding_provider="openai",
            embedding_model="text-embedding-3-large",
            embedding_dimensions=3072,
        )
        assert updated.embedding_config() == kb.embedding_config()

    @pytest.mark.asyncio
    async def test_unknown_field(self, service: KnowledgeBaseService) -> None:
        kb = await service.create_knowledge_base(OWNER, "KB")
        with pytest.raises(ValueError, match="Unknown knowledge base fields: colour"):
            await service.update_knowledge_base(OWNER, kb.id, colour="blue")


class TestDelete:
    @pytest.mark.asyncio
    async def test_soft_delete_cascades_with_one_timestamp(
        self, store: InMemoryStore, service: KnowledgeBaseService
    ) -> None:
        kb = await service.create_knowledge_base(OWNER, "KB")
        await store.insert(DOCUMENTS, [{"id": "d1", "knowledge_base_id": kb.id, "title": "t", "deleted_at": None}])
        await store.insert(CONVERSATIONS, [{"id": "c1", "knowledge_base_id": kb.id, "deleted_at": None}])

        await service.delete_knowledge_base(OWNER, kb.id)

        [kb_row] = await store.select(KNOWLEDGE_BASES, [RowFilter.equals("id", kb.id)])
        [doc_row] = await store.select(DOCUMENTS)
        [conv_row] = await store.select(CONVERSATIONS)
        assert kb_row["deleted_at"] is not None
        assert kb_row["deleted_at"] == doc_row["deleted_at"] == conv_row["deleted_at"]
        assert await service.get_knowledge_bases(OWNER) == []
        with pytest.raises(KnowledgeBaseNotFoundError):
            await service.get_knowledge_base(OWNER, kb.id)

    @pytest.mark.asyncio
    async def test_delete_unknown(self, service: KnowledgeBaseService) -> None:
        with pytest.raises(KnowledgeBaseNotFoundError):
            await service.delete_knowledge_base(OWNER, "missing")


class TestDocuments:
    @pytest.mark.asyncio
    async def test_document_lifecycle(
        self, store: InMemoryStore, service: KnowledgeBaseService, fake_local_model
    ) -> None:
        kb = await service.create_knowledge_base(OWNER, "KB")
        doc_id = await IngestionPipeline(store).add_documents(
            OWNER, kb.id, [LCDocument(page_content="Some text to keep.")], SourceMetadata(title="Notes")
        )

        [listed] = await service.get_documents(kb.id)
        assert listed.id == doc_id
        assert (await service.get_document(OWNER, doc_id)).title == "Notes"
        with pytest.raises(DocumentNotFoundError):
            await service.get_document("intruder", doc_id)

        await service.delete_document(doc_id)
        assert await service.get_documents(kb.id) == []
        assert await store.select(DOCUMENT_CHUNKS, [RowFilter.equals("document_id", doc_id)]) == []
        with pytest.raises(DocumentNotFoundError):
            await service.delete_document(doc_id)

    @pytest.mark.asyncio
    async def test_documents_hidden_after_kb_delete(
        self, store: InMemoryStore, service: KnowledgeBaseService
    ) -> None:
        kb = await service.create_knowledge_base(OWNER, "KB")
        await store.insert(DOCUMENTS, [{"id": "d1", "knowledge_base_id": kb.id, "title": "t", "deleted_at": None}])
        await service.delete_knowledge_base(OWNER, kb.id)

        assert await service.get_documents(kb.id) == []
        with pytest.raises(DocumentNotFoundError):
            await service.get_document(OWNER, "d1")
