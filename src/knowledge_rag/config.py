"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Provider credentials (server-side defaults; per-request keys take precedence)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    google_api_key: str = Field(default="", description="Google Generative Language API key")
    xai_api_key: str = Field(default="", description="xAI API key")

    # LLM
    llm_provider: str = "openrouter"
    llm_model_name: str = Field(
        default="meta-llama/llama-3.2-3b-instruct:free",
        description="Chat model identifier passed to the provider",
    )
    llm_temperature: float = 0.7

    # Embedding defaults applied to newly created knowledge bases
    embedding_provider: str = "local"
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dimensions: int = 384
    embedding_max_concurrency: int = Field(
        default=16,
        ge=1,
        description="Upper bound on in-flight embedding calls during a batch",
    )

    # Chunking
    chunk_policy: str = Field(
        default="standard",
        description="Named chunking policy: 'standard' (1000/200) or 'large' (1500/300)",
    )
    chunk_size: int | None = Field(default=None, description="Overrides the policy chunk size")
    chunk_overlap: int | None = Field(default=None, description="Overrides the policy overlap")

    # Retrieval
    match_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    fallback_match_threshold: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Vector-only threshold used when hybrid search is unavailable",
    )
    candidate_multiplier: int = Field(default=3, ge=1)
    max_chunks: int = Field(default=5, ge=1)

    # Re-ranking bonuses
    rerank_exact_match_bonus: float = 0.3
    rerank_term_density_weight: float = 0.2
    rerank_position_weight: float = 0.1

    # Outbound HTTP
    http_timeout_seconds: float = 15.0

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton: import `settings` wherever needed.
settings = Settings()
