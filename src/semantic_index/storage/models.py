"""Document state ORM model.

The content itself lives with the document storage layer; this table
holds only what the indexing pipeline and search need: ownership and
visibility flags, the index status, and the change-detection state
(section hashes, last indexed content hash and title).
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from semantic_index.storage.db import Base, TimestampMixin


class IndexStatus(str, enum.Enum):
    """Index lifecycle of a document.

    PENDING: never indexed (or re-queued after an edit)
    INDEXING: a pipeline run is in flight
    INDEXED: chunk and title embeddings reflect the current content
    FAILED: the last run failed; safe to re-trigger
    """

    PENDING = "pending"
    INDEXING = "indexing"
    INDEXED = "indexed"
    FAILED = "failed"


class DocumentModel(Base, TimestampMixin):
    """Per-document index state.

    Attributes:
        id: Document identifier (owned by the document storage layer)
        organization_id: Tenant the document belongs to; every search is scoped to one
        title / slug: Display fields returned with search results
        published: Only published documents appear as related documents
        deleted_at: Soft-delete marker; deleted documents never appear in results
        index_status: Current :class:`IndexStatus`
        section_hashes: ``{section key: hash}`` from the last successful run
        last_indexed_content_hash: Whole-document plain-text hash from the last run
        last_indexed_title: Title embedded by the last run
        index_generation: Token of the indexing run whose chunk rows are live
        content_updated_at: When the content was last edited (set by the storage layer)
    """

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    title: Mapped[str] = mapped_column(Text, default="", nullable=False)
    slug: Mapped[str] = mapped_column(String(512), default="", nullable=False)
    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    index_status: Mapped[IndexStatus] = mapped_column(
        Enum(
            IndexStatus,
            native_enum=False,
            length=16,
            values_callable=lambda members: [m.value for m in members],
        ),
        default=IndexStatus.PENDING,
        nullable=False,
    )
    section_hashes: Mapped[dict[str, str] | None] = mapped_column(JSON, nullable=True)
    last_indexed_content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_indexed_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    index_generation: Mapped[str | None] = mapped_column(String(32), nullable=True)
    content_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<DocumentModel id={self.id!r} status={self.index_status.value}>"
