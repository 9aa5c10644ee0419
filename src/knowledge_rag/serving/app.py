"""FastAPI application exposing ingestion and retrieval as a REST API.

The caller's identity arrives as an opaque ``X-User-Id`` header set by
the authenticating proxy in front of this service.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from langchain_core.documents import Document as LCDocument
from pydantic import BaseModel, Field, ValidationError

from knowledge_rag.config import settings
from knowledge_rag.errors import (
    DocumentNotFoundError,
    EmbeddingDimensionError,
    EmbeddingProviderError,
    EmptyContentError,
    KnowledgeBaseNotFoundError,
    KnowledgeRagError,
    MissingCredentialError,
    UnsupportedProviderError,
)
from knowledge_rag.ingestion.pipeline import IngestionPipeline
from knowledge_rag.knowledge_bases import KnowledgeBaseService
from knowledge_rag.models import Document, KnowledgeBase, SourceMetadata
from knowledge_rag.retrieval.models import ContextWithSources
from knowledge_rag.retrieval.retriever import ContextRetriever
from knowledge_rag.storage.base import StoreBase
from knowledge_rag.storage.memory import InMemoryStore

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Knowledge RAG API",
    version="0.1.0",
    description="Knowledge-base ingestion and cited context retrieval.",
)
# Deployments replace this with a database-backed StoreBase at startup.
app.state.store = InMemoryStore()


# ── Request / Response schemas ────────────────────────────────────────
class KnowledgeBaseCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    embedding_provider: str | None = None
    embedding_model: str | None = None


class KnowledgeBaseUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    embedding_provider: str | None = None
    embedding_model: str | None = None


class IngestRequest(BaseModel):
    """Already-extracted document text plus provenance."""

    title: str = Field(min_length=1)
    texts: list[str] = Field(min_length=1)
    source_url: str | None = None
    file_path: str | None = None
    file_type: str | None = None
    embedding_api_key: str | None = None


class IngestResponse(BaseModel):
    document_id: str


class ContextRequest(BaseModel):
    query: str = Field(min_length=1, max_length=10000)
    max_chunks: int = Field(default=settings.max_chunks, ge=1, le=50)
    embedding_api_key: str | None = None


# ── Error mapping ─────────────────────────────────────────────────────
_ERROR_STATUS: list[tuple[type[Exception], int, str]] = [
    (KnowledgeBaseNotFoundError, 404, "NOT_FOUND"),
    (DocumentNotFoundError, 404, "NOT_FOUND"),
    (EmptyContentError, 400, "VALIDATION_ERROR"),
    (MissingCredentialError, 400, "VALIDATION_ERROR"),
    (UnsupportedProviderError, 400, "VALIDATION_ERROR"),
    (EmbeddingDimensionError, 400, "VALIDATION_ERROR"),
    (EmbeddingProviderError, 502, "PROVIDER_ERROR"),
]


def _error(message: str, code: str, status: int) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message, "code": code})


@app.exception_handler(KnowledgeRagError)
async def _domain_error(request: Request, exc: KnowledgeRagError) -> JSONResponse:
    for exc_type, status, code in _ERROR_STATUS:
        if isinstance(exc, exc_type):
            return _error(str(exc), code, status)
    logger.error("Unhandled %s on %s: %s", type(exc).__name__, request.url.path, exc)
    return _error(str(exc), "INTERNAL_ERROR", 500)


@app.exception_handler(ValueError)
async def _value_error(request: Request, exc: ValueError) -> JSONResponse:
    return _error(str(exc), "VALIDATION_ERROR", 400)


@app.exception_handler(ValidationError)
async def _model_error(request: Request, exc: ValidationError) -> JSONResponse:
    # Request bodies are validated by FastAPI; this is a server-side model failure.
    logger.error("Invalid %s built on %s: %s", exc.title, request.url.path, exc)
    return _error("Internal server error", "INTERNAL_ERROR", 500)


# ── Dependencies ──────────────────────────────────────────────────────
def get_store(request: Request) -> StoreBase:
    return request.app.state.store


def current_user(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


def get_service(store: StoreBase = Depends(get_store)) -> KnowledgeBaseService:
    return KnowledgeBaseService(store)


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health(store: StoreBase = Depends(get_store)) -> JSONResponse:
    """Readiness probe; 503 when the store is unreachable."""
    if not await store.health_check():
        logger.warning("Store health check failed")
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return JSONResponse(content={"status": "ok"})


@app.post("/knowledge-bases", status_code=201, response_model=KnowledgeBase)
async def create_knowledge_base(
    body: KnowledgeBaseCreate,
    user_id: str = Depends(current_user),
    service: KnowledgeBaseService = Depends(get_service),
) -> KnowledgeBase:
    return await service.create_knowledge_base(
        user_id,
        body.name,
        body.description,
        embedding_provider=body.embedding_provider,
        embedding_model=body.embedding_model,
    )


@app.get("/knowledge-bases", response_model=list[KnowledgeBase])
async def list_knowledge_bases(
    user_id: str = Depends(current_user),
    service: KnowledgeBaseService = Depends(get_service),
) -> list[KnowledgeBase]:
    return await service.get_knowledge_bases(user_id)


@app.patch("/knowledge-bases/{kb_id}", response_model=KnowledgeBase)
async def update_knowledge_base(
    kb_id: str,
    body: KnowledgeBaseUpdate,
    user_id: str = Depends(current_user),
    service: KnowledgeBaseService = Depends(get_service),
) -> KnowledgeBase:
    changes: dict[str, Any] = body.model_dump(exclude_unset=True)
    return await service.update_knowledge_base(user_id, kb_id, **changes)


@app.delete("/knowledge-bases/{kb_id}")
async def delete_knowledge_base(
    kb_id: str,
    user_id: str = Depends(current_user),
    service: KnowledgeBaseService = Depends(get_service),
) -> dict[str, bool]:
    await service.delete_knowledge_base(user_id, kb_id)
    return {"success": True}


@app.get("/knowledge-bases/{kb_id}/documents", response_model=list[Document])
async def list_documents(
    kb_id: str,
    user_id: str = Depends(current_user),
    service: KnowledgeBaseService = Depends(get_service),
) -> list[Document]:
    await service.get_knowledge_base(user_id, kb_id)
    return await service.get_documents(kb_id)


@app.post("/knowledge-bases/{kb_id}/documents", status_code=201, response_model=IngestResponse)
async def ingest_document(
    kb_id: str,
    body: IngestRequest,
    user_id: str = Depends(current_user),
    store: StoreBase = Depends(get_store),
    service: KnowledgeBaseService = Depends(get_service),
) -> IngestResponse:
    config = None
    if body.embedding_api_key:
        kb = await service.get_knowledge_base(user_id, kb_id)
        config = kb.embedding_config(api_key=body.embedding_api_key)

    source = SourceMetadata(
        title=body.title,
        source_url=body.source_url,
        file_path=body.file_path,
        file_type=body.file_type,
    )
    docs = [
        LCDocument(page_content=text, metadata={"source": body.source_url or body.title})
        for text in body.texts
    ]
    document_id = await IngestionPipeline(store).add_documents(user_id, kb_id, docs, source, config)
    return IngestResponse(document_id=document_id)


@app.delete("/documents/{document_id}")
async def delete_document(
    document_id: str,
    user_id: str = Depends(current_user),
    service: KnowledgeBaseService = Depends(get_service),
) -> dict[str, bool]:
    await service.get_document(user_id, document_id)
    await service.delete_document(document_id)
    return {"success": True}


@app.post("/knowledge-bases/{kb_id}/context", response_model=ContextWithSources)
async def retrieve_context(
    kb_id: str,
    body: ContextRequest,
    user_id: str = Depends(current_user),
    store: StoreBase = Depends(get_store),
    service: KnowledgeBaseService = Depends(get_service),
) -> ContextWithSources:
    """Cited context for *query*; empty when nothing relevant exists."""
    kb = await service.get_knowledge_base(user_id, kb_id)
    config = kb.embedding_config(api_key=body.embedding_api_key) if body.embedding_api_key else None
    return await ContextRetriever(store).get_context_with_sources(
        body.query, kb_id, max_chunks=body.max_chunks, embedding_config=config
    )
