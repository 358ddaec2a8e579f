"""Domain models for vector-store records and search results."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

SearchStrategy = Literal["title_first", "content_first", "both"]


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"document_id"``).
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    # -- helpers for common filters ------------------------------------------

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def not_equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="ne", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)


class VectorRecord(BaseModel):
    """A row written to a vector store: text, its embedding, flat metadata."""

    id: str
    content: str
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class ContentChunkHit(BaseModel):
    """A stored chunk matched by a content probe.

    ``similarity`` is ``1 - distance`` (cosine).
    """

    document_id: str
    content: str
    similarity: float
    distance: float
    chunk_index: int | None = None
    heading: str | None = None
    header_breadcrumb: str | None = None

    @classmethod
    def from_hit(cls, hit: dict[str, Any]) -> ContentChunkHit:
        meta = hit.get("metadata", {})
        return cls(
            document_id=meta.get("document_id", ""),
            content=hit.get("content", ""),
            similarity=hit["score"],
            distance=hit["distance"],
            chunk_index=meta.get("chunk_index"),
            heading=meta.get("heading"),
            header_breadcrumb=meta.get("header_breadcrumb"),
        )


class DocumentSearchResult(BaseModel):
    """One document in a (hybrid) search result, with its matching chunks."""

    search_type: Literal["title_match", "content_match"]
    document_id: str
    document_title: str
    document_slug: str
    title_similarity: float | None = None
    content_chunks: list[ContentChunkHit] = Field(default_factory=list)


class DocumentMatch(BaseModel):
    """A document matched as a whole (title search, related documents)."""

    id: str
    title: str
    slug: str
    similarity: float
    created_at: datetime | None = None
    updated_at: datetime | None = None
