"""LLM initialisation — single place to swap chat providers.

Every supported provider exposes an OpenAI-compatible
``/v1/chat/completions`` endpoint, so ``ChatOpenAI`` is used for all of
them with a provider-specific base URL.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

from langchain_openai import ChatOpenAI

from knowledge_rag.config import settings
from knowledge_rag.errors import MissingCredentialError, UnsupportedProviderError
from knowledge_rag.generation.prompts import build_messages

logger = logging.getLogger(__name__)

# provider -> (display name, base URL; None means the OpenAI default)
LLM_PROVIDERS: dict[str, tuple[str, str | None]] = {
    "openai": ("OpenAI", None),
    "openrouter": ("OpenRouter", "https://openrouter.ai/api/v1"),
    "xai": ("xAI", "https://api.x.ai/v1"),
}


def _default_key(provider: str) -> str:
    return {
        "openai": settings.openai_api_key,
        "openrouter": settings.openrouter_api_key,
        "xai": settings.xai_api_key,
    }.get(provider, "")


def get_chat_model(
    provider: str | None = None,
    model: str | None = None,
    api_key: str | None = None,
    temperature: float | None = None,
    *,
    streaming: bool = True,
) -> ChatOpenAI:
    """Return the configured chat model.

    Anything not given is taken from :data:`settings`.  The request
    timeout is ``settings.http_timeout_seconds``.
    """
    provider = provider or settings.llm_provider
    if provider not in LLM_PROVIDERS:
        raise UnsupportedProviderError(provider, kind="LLM")
    name, base_url = LLM_PROVIDERS[provider]

    key = api_key or _default_key(provider)
    if not key:
        raise MissingCredentialError(f"{name} API key is required")

    kwargs: dict[str, Any] = {
        "model": model or settings.llm_model_name,
        "temperature": settings.llm_temperature if temperature is None else temperature,
        "api_key": key,
        "timeout": settings.http_timeout_seconds,
        "streaming": streaming,
    }
    if base_url:
        logger.info("Using %s endpoint: %s", name, base_url)
        kwargs["base_url"] = base_url
    return ChatOpenAI(**kwargs)


async def stream_answer(
    history: list[dict[str, Any]],
    context: str,
    llm: ChatOpenAI | None = None,
) -> AsyncIterator[str]:
    """Yield answer tokens for the last user turn in *history*, grounded in *context*."""
    llm = llm or get_chat_model()
    async for chunk in llm.astream(build_messages(history, context)):
        if chunk.content:
            yield chunk.content
