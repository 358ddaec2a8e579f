"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Document state
    database_url: str = Field(
        default="sqlite:///./semantic_index.db",
        description="SQLAlchemy URL of the database holding document index state",
    )
    database_echo: bool = False

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_content_collection: str = "document_embeddings"
    chroma_title_collection: str = "document_title_embeddings"

    # Embedding
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    normalize_embeddings: bool = True

    # Chunking
    chunk_strategy: Literal["paragraph", "heading"] = Field(
        default="paragraph",
        description="Structural chunker used by the indexing pipeline",
    )
    chunk_max_size: int = 500
    chunk_min_size: int = 50
    chunk_overlap_size: int = 100
    fallback_chunk_max_size: int = 300

    # Search
    search_min_similarity: float = Field(
        default=0.3,
        description="Per-chunk similarity floor applied to search results at the call site",
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton — import `settings` wherever needed.
settings = Settings()
