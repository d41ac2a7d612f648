"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    llm_model_name: str = Field(default="gpt-4o-mini", description="LLM model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible chat API. Leave empty to use "
            "OpenAI cloud."
        ),
    )
    llm_temperature: float = 1.0
    llm_timeout_seconds: float = 120.0
    llm_json_mode: bool = True

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "documents"

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_dim: int = 384
    embedding_workers: int = 4

    # Parser (marker) service
    parser_url: str = "http://localhost:8001/marker/upload"
    parser_timeout_seconds: float = 3600.0

    # Chunking
    chunk_size: int = 512
    chunk_overlap: int = 30
    chunk_lookahead: int = 50
    chunk_lookback: int = 20

    # Indexing / retrieval
    index_batch_size: int = 100
    top_k: int = 5

    # Collaborator retry policy
    retry_attempts: int = 3
    retry_min_wait: float = 1.0
    retry_max_wait: float = 10.0

    # Ingestion workers
    ingestion_workers: int = 2
    max_job_attempts: int = 3
    processing_timeout_seconds: float = 6 * 3600.0
    reap_interval_seconds: float = 300.0

    # Relational store (empty URL: in-memory)
    database_url: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Shared instance; import `settings` wherever needed.
settings = Settings()
