"""Domain models produced and consumed by the indexing pipeline."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from semantic_index.retrieval.models import VectorRecord


class BlockChunk(BaseModel):
    """A chunk built from whole heading blocks (heading-aware and plain modes).

    Attributes
    ----------
    content:
        Rendered chunk text submitted to the embedding function.
    heading:
        Text of the heading the chunk sits under, if any.
    level:
        Level (1–6) of that heading.
    index:
        0-based position within one chunking run.
    section_key:
        Key of the level-1/2 section the chunk belongs to.
    """

    kind: Literal["block"] = "block"
    content: str
    heading: str | None = None
    level: int | None = Field(default=None, ge=1, le=6)
    index: int = Field(ge=0)
    section_key: str | None = None

    def record_metadata(self) -> dict[str, Any]:
        return {
            "heading": self.heading,
            "heading_level": self.level,
            "header_breadcrumb": None,
            "section_key": self.section_key,
        }


class ParagraphChunk(BaseModel):
    """A paragraph-granular chunk carrying its full heading breadcrumb.

    ``header_path`` and ``header_levels`` are parallel lists, most distant
    ancestor first; ``header_breadcrumb`` is ``header_path`` joined by ``" > "``.
    """

    kind: Literal["paragraph"] = "paragraph"
    content: str
    header_breadcrumb: str = ""
    header_path: list[str] = Field(default_factory=list)
    header_levels: list[int] = Field(default_factory=list)
    index: int = Field(ge=0)
    section_key: str | None = None

    def record_metadata(self) -> dict[str, Any]:
        return {
            "heading": self.header_path[-1] if self.header_path else None,
            "heading_level": self.header_levels[-1] if self.header_levels else None,
            "header_breadcrumb": self.header_breadcrumb or None,
            "section_key": self.section_key,
        }


Chunk = Annotated[BlockChunk | ParagraphChunk, Field(discriminator="kind")]


class IndexedChunkRecord(BaseModel):
    """One persisted content-embedding row.

    ``generation`` identifies the indexing run that wrote the row; only rows
    of the document's active generation are visible to search.
    """

    document_id: str
    organization_id: str
    generation: str
    chunk_index: int
    content: str
    embedding: list[float]
    heading: str | None = None
    heading_level: int | None = None
    header_breadcrumb: str | None = None
    section_key: str | None = None

    @classmethod
    def from_chunk(
        cls,
        chunk: BlockChunk | ParagraphChunk,
        embedding: list[float],
        *,
        document_id: str,
        organization_id: str,
        generation: str,
    ) -> IndexedChunkRecord:
        return cls(
            document_id=document_id,
            organization_id=organization_id,
            generation=generation,
            chunk_index=chunk.index,
            content=chunk.content,
            embedding=embedding,
            **chunk.record_metadata(),
        )

    def to_vector_record(self) -> VectorRecord:
        return VectorRecord(
            id=f"{self.document_id}:{self.generation}:{self.chunk_index}",
            content=self.content,
            embedding=self.embedding,
            metadata={
                "document_id": self.document_id,
                "organization_id": self.organization_id,
                "generation": self.generation,
                "chunk_index": self.chunk_index,
                "heading": self.heading,
                "heading_level": self.heading_level,
                "header_breadcrumb": self.header_breadcrumb,
                "section_key": self.section_key,
            },
        )


class TitleEmbeddingRecord(BaseModel):
    """The single title-embedding row kept per document."""

    document_id: str
    organization_id: str
    title: str
    embedding: list[float]

    def to_vector_record(self) -> VectorRecord:
        return VectorRecord(
            id=self.document_id,
            content=self.title,
            embedding=self.embedding,
            metadata={
                "document_id": self.document_id,
                "organization_id": self.organization_id,
                "title": self.title,
            },
        )


class ProcessingResult(BaseModel):
    """Outcome of one :meth:`DocumentIndexer.process_document_embedding` call."""

    skipped: bool
    reason: str | None = None
    chunk_count: int = 0
    title_updated: bool = False
