"""Exception hierarchy for the indexing and search layers.

Every error carries an optional ``details`` dict so log lines and API
responses can include context without string parsing.
"""

from __future__ import annotations

from typing import Any


class SemanticIndexError(Exception):
    """Base class for all errors raised by :mod:`semantic_index`."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ContentDecodeError(SemanticIndexError, ValueError):
    """Raised when a stored content state cannot be decoded into a content tree."""


class ChunkingError(SemanticIndexError, ValueError):
    """Raised by the structural chunkers on a malformed node shape.

    The indexing pipeline never lets this escape: it downgrades to the
    plain-text chunker instead.
    """


class DocumentNotFoundError(SemanticIndexError, LookupError):
    """Raised when no document state row exists for an id."""

    def __init__(self, document_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["document_id"] = document_id
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}", details)


class EmbeddingError(SemanticIndexError):
    """Raised when the embedding function returns an unusable batch."""
