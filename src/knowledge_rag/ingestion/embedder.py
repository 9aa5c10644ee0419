"""Embedding generation over local and remote providers.

The local backend is a HuggingFace sentence-transformer that is loaded on
first use and then shared by the whole process.  Remote backends are plain
HTTP calls through ``httpx`` and hold no state between calls.

Usage::

    from knowledge_rag.ingestion.embedder import embed, embed_many
    from knowledge_rag.models import EmbeddingConfig

    config = EmbeddingConfig(provider="openai", model="text-embedding-3-small",
                             dimensions=1536, api_key="sk-...")
    vector = await embed("hello", config)
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine
from typing import Any

import httpx
from langchain_huggingface import HuggingFaceEmbeddings

from knowledge_rag.config import settings
from knowledge_rag.errors import (
    EmbeddingDimensionError,
    EmbeddingError,
    EmbeddingProviderError,
    MissingCredentialError,
    UnsupportedProviderError,
)
from knowledge_rag.models import EmbeddingConfig, EmbeddingProvider

logger = logging.getLogger(__name__)

LOCAL_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"

OPENAI_EMBEDDINGS_URL = "https://api.openai.com/v1/embeddings"
OPENROUTER_EMBEDDINGS_URL = "https://openrouter.ai/api/v1/embeddings"
GOOGLE_EMBEDDINGS_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:embedContent"

# provider -> (error label, credential hint)
_LABELS: dict[EmbeddingProvider, tuple[str, str]] = {
    EmbeddingProvider.OPENAI: ("OpenAI", "OpenAI API key is required for OpenAI embeddings"),
    EmbeddingProvider.GOOGLE: ("Google", "Google API key is required for Gemini embeddings"),
    EmbeddingProvider.OPENROUTER: (
        "OpenRouter",
        "OpenRouter API key is required for OpenRouter embeddings",
    ),
}


# ---------------------------------------------------------------------------
# Local model (process-wide, initialised once)
# ---------------------------------------------------------------------------

_local_model: HuggingFaceEmbeddings | None = None
_local_model_lock = threading.Lock()


def get_local_model() -> HuggingFaceEmbeddings:
    """Return the shared local embedding model, loading it on first call.

    Loading is guarded by a lock with a second check inside it, so callers
    racing on first use (from any thread or event loop) get one instance.
    """
    global _local_model
    if _local_model is None:
        with _local_model_lock:
            if _local_model is None:
                logger.info("Loading local embedding model %s", LOCAL_MODEL_NAME)
                _local_model = HuggingFaceEmbeddings(
                    model_name=LOCAL_MODEL_NAME,
                    encode_kwargs={"normalize_embeddings": True},
                )
    return _local_model


async def _local_embed(text: str, model: str) -> list[float]:
    if model != LOCAL_MODEL_NAME:
        raise EmbeddingError(f"Unsupported local embedding model: {model}")
    embedder = await asyncio.to_thread(get_local_model)
    return await asyncio.to_thread(embedder.embed_query, text)


# ---------------------------------------------------------------------------
# Remote providers
# ---------------------------------------------------------------------------


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.http_timeout_seconds)


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return response.reason_phrase or f"HTTP {response.status_code}"


async def _post_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    label: str,
    headers: dict[str, str],
    payload: dict[str, Any],
) -> dict[str, Any]:
    try:
        response = await client.post(url, headers=headers, json=payload)
    except httpx.TimeoutException as exc:
        raise EmbeddingProviderError(f"{label} embedding error: request timed out") from exc
    except httpx.HTTPError as exc:
        raise EmbeddingProviderError(f"{label} embedding error: {exc}") from exc

    if response.is_error:
        raise EmbeddingProviderError(f"{label} embedding error: {_error_message(response)}")
    try:
        return response.json()
    except ValueError as exc:
        raise EmbeddingProviderError(f"{label} embedding error: invalid JSON response") from exc


async def _openai_style_embed(
    client: httpx.AsyncClient,
    url: str,
    label: str,
    text: str,
    config: EmbeddingConfig,
    api_key: str,
) -> list[float]:
    payload: dict[str, Any] = {"input": text, "model": config.model}
    # Only the text-embedding-3 family accepts a target size.
    if config.model.rsplit("/", 1)[-1].startswith("text-embedding-3"):
        payload["dimensions"] = config.dimensions
    data = await _post_json(
        client,
        url,
        label=label,
        headers={"Authorization": f"Bearer {api_key}"},
        payload=payload,
    )
    try:
        return data["data"][0]["embedding"]
    except (KeyError, IndexError, TypeError) as exc:
        raise EmbeddingProviderError(f"{label} embedding error: unexpected response shape") from exc


async def _google_embed(
    client: httpx.AsyncClient,
    text: str,
    config: EmbeddingConfig,
    api_key: str,
) -> list[float]:
    data = await _post_json(
        client,
        GOOGLE_EMBEDDINGS_URL.format(model=config.model),
        label="Google",
        headers={"x-goog-api-key": api_key},
        payload={
            "content": {"parts": [{"text": text}]},
            "outputDimensionality": config.dimensions,
        },
    )
    try:
        return data["embedding"]["values"]
    except (KeyError, TypeError) as exc:
        raise EmbeddingProviderError("Google embedding error: unexpected response shape") from exc


async def _remote_embed(
    provider: EmbeddingProvider,
    client: httpx.AsyncClient,
    text: str,
    config: EmbeddingConfig,
    api_key: str,
) -> list[float]:
    if provider is EmbeddingProvider.OPENAI:
        return await _openai_style_embed(client, OPENAI_EMBEDDINGS_URL, "OpenAI", text, config, api_key)
    elif provider is EmbeddingProvider.OPENROUTER:
        return await _openai_style_embed(
            client, OPENROUTER_EMBEDDINGS_URL, "OpenRouter", text, config, api_key
        )
    elif provider is EmbeddingProvider.GOOGLE:
        return await _google_embed(client, text, config, api_key)
    else:
        raise UnsupportedProviderError(provider.value)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def resolve_provider(tag: str | EmbeddingProvider) -> EmbeddingProvider:
    """Map a provider tag onto :class:`EmbeddingProvider` or fail."""
    try:
        return EmbeddingProvider(tag)
    except ValueError:
        raise UnsupportedProviderError(tag) from None


def default_api_key(provider: str | EmbeddingProvider) -> str | None:
    """Server-side key for *provider* from settings, if one is configured."""
    keys = {
        EmbeddingProvider.OPENAI.value: settings.openai_api_key,
        EmbeddingProvider.GOOGLE.value: settings.google_api_key,
        EmbeddingProvider.OPENROUTER.value: settings.openrouter_api_key,
    }
    tag = provider.value if isinstance(provider, EmbeddingProvider) else provider
    return keys.get(tag) or None


def _require_key(provider: EmbeddingProvider, api_key: str | None) -> str:
    if not api_key or not api_key.strip():
        raise MissingCredentialError(_LABELS[provider][1])
    return api_key


def check_dimensions(vector: list[float], expected: int) -> list[float]:
    if len(vector) != expected:
        raise EmbeddingDimensionError(expected, len(vector))
    return vector


async def embed(
    text: str,
    config: EmbeddingConfig,
    *,
    client: httpx.AsyncClient | None = None,
) -> list[float]:
    """Embed a single string.

    Parameters
    ----------
    text:
        Text to embed.
    config:
        Provider, model, expected dimensionality and (for remote
        providers) the API key.
    client:
        Optional HTTP client to reuse; a short-lived one with the
        configured timeout is created otherwise.

    Raises
    ------
    UnsupportedProviderError
        Unknown ``config.provider``.
    MissingCredentialError
        Remote provider without an API key (no request is sent).
    EmbeddingProviderError
        The remote backend failed or timed out.
    EmbeddingDimensionError
        The vector length differs from ``config.dimensions``.
    """
    provider = resolve_provider(config.provider)

    if provider is EmbeddingProvider.LOCAL:
        vector = await _local_embed(text, config.model)
    else:
        api_key = _require_key(provider, config.api_key)
        if client is None:
            async with _http_client() as owned:
                vector = await _remote_embed(provider, owned, text, config, api_key)
        else:
            vector = await _remote_embed(provider, client, text, config, api_key)

    return check_dimensions(list(vector), config.dimensions)


async def embed_many(
    texts: list[str],
    config: EmbeddingConfig,
    *,
    client: httpx.AsyncClient | None = None,
    max_concurrency: int | None = None,
) -> list[list[float]]:
    """Embed *texts* concurrently; ``result[i]`` belongs to ``texts[i]``."""
    if not texts:
        return []

    provider = resolve_provider(config.provider)
    if provider is not EmbeddingProvider.LOCAL:
        _require_key(provider, config.api_key)

    semaphore = asyncio.Semaphore(max_concurrency or settings.embedding_max_concurrency)

    async def _one(text: str, http: httpx.AsyncClient | None) -> list[float]:
        async with semaphore:
            return await embed(text, config, client=http)

    logger.info("Embedding %d texts with %s/%s", len(texts), provider.value, config.model)
    if provider is not EmbeddingProvider.LOCAL and client is None:
        async with _http_client() as owned:
            return await _gather_or_cancel([_one(t, owned) for t in texts])
    return await _gather_or_cancel([_one(t, client) for t in texts])


async def _gather_or_cancel(coros: list[Coroutine[Any, Any, list[float]]]) -> list[list[float]]:
    """Run *coros* concurrently; on the first failure cancel and await the rest."""
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
