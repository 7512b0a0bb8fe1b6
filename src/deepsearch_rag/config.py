"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Embedding
    embedding_provider: Literal["huggingface", "openai", "google"] = "huggingface"
    embedding_model: str = "sentence-transformers/all-mpnet-base-v2"
    embedding_dimension: int = Field(default=768, gt=0, description="Vector dimension D")
    embedding_timeout_seconds: float = 30.0
    embedding_concurrency: int = Field(default=4, ge=1)

    # Provider credentials
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    google_api_key: str = ""

    # LLM
    llm_provider: Literal["openai", "google"] = "openai"
    llm_model_name: str = Field(default="gpt-4o-mini", description="LLM model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible API. Leave empty to use OpenAI cloud. "
            "Set to a vLLM endpoint for self-hosted reasoning models."
        ),
    )
    llm_temperature: float = 0.0
    generation_timeout_seconds: float = 60.0

    # Vector store
    vector_backend: Literal["chroma", "pinecone"] = "chroma"
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "deepsearch_chunks"
    pinecone_api_key: str = ""
    pinecone_index_name: str = "deepsearch"
    pinecone_cloud: str = "aws"
    pinecone_region: str = "us-west-2"
    index_timeout_seconds: float = 15.0

    # Index writes
    write_max_attempts: int = Field(default=3, ge=1)
    write_backoff_seconds: float = 0.5
    verify_max_attempts: int = Field(default=3, ge=1)
    verify_backoff_seconds: float = 1.0

    # Chunking
    chunk_size: int = Field(default=200, gt=0, description="Target chunk size in whitespace tokens")
    chunk_overlap: int = Field(default=40, ge=0, description="Overlap between chunks in tokens")

    # Retrieval / answering
    default_top_k: int = Field(default=5, ge=1)
    allow_unfiltered_fallback: bool = Field(
        default=False,
        description="Enable the unfiltered last-resort retrieval tier (results are flagged degraded).",
    )
    context_char_budget: int = Field(default=12_000, gt=0)

    # Entity extraction
    extract_entities: bool = True
    entity_text_limit: int = 10_000
    entity_max_items: int = 50

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import `settings` wherever needed.
settings = Settings()


def configure_logging(level: str | None = None) -> None:
    """Install a basic root handler at ``level`` (defaults to ``settings.log_level``)."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
