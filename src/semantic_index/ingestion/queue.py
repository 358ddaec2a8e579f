"""Embedding queue consumer.

The indexing pipeline is only correct when at most one run per document is
in flight.  Feeding it from a single consumer that drains messages one at
a time provides that guarantee.  Messages are produced by whatever stores
document edits; each carries the content snapshot taken when it was queued.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from semantic_index.exceptions import DocumentNotFoundError
from semantic_index.ingestion.pipeline import DocumentIndexer
from semantic_index.storage.repository import DocumentRepository

logger = logging.getLogger(__name__)


class EmbeddingQueueMessage(BaseModel):
    """One request to (re)index a document."""

    document_id: str
    queued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    content_state: Any = None


class MessageOutcome(BaseModel):
    document_id: str
    success: bool
    reason: str | None = None
    error: str | None = None


class BatchResult(BaseModel):
    """Per-message outcomes; ``failed_document_ids`` should be redelivered."""

    outcomes: list[MessageOutcome] = Field(default_factory=list)

    @property
    def failed_document_ids(self) -> list[str]:
        return [o.document_id for o in self.outcomes if not o.success]

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class EmbeddingQueueConsumer:
    """Drain embedding requests sequentially through a :class:`DocumentIndexer`."""

    def __init__(self, indexer: DocumentIndexer, repository: DocumentRepository) -> None:
        self._indexer = indexer
        self._repository = repository

    def handle_batch(self, messages: list[EmbeddingQueueMessage]) -> BatchResult:
        """Process *messages* in order; one failure never stops the batch."""
        logger.info("Processing %d message(s) from embedding queue", len(messages))
        result = BatchResult()
        for message in messages:
            result.outcomes.append(self.handle(message))

        logger.info(
            "Completed batch: %d successful, %d failed",
            result.success_count,
            len(result.failed_document_ids),
        )
        return result

    def handle(self, message: EmbeddingQueueMessage) -> MessageOutcome:
        document_id = message.document_id
        document = self._repository.get(document_id)
        if document is None:
            logger.warning("Document %s not found, skipping", document_id)
            return MessageOutcome(document_id=document_id, success=False, reason="not_found")

        # A later edit means a newer message is on its way with fresher content.
        if document.content_updated_at is not None and _as_utc(document.content_updated_at) > _as_utc(
            message.queued_at
        ):
            logger.info("Document %s was modified after message was queued, skipping", document_id)
            return MessageOutcome(document_id=document_id, success=True, reason="superseded")

        try:
            outcome = self._indexer.process_document_embedding(document_id, message.content_state)
        except DocumentNotFoundError:
            logger.warning("Document %s disappeared before indexing", document_id)
            return MessageOutcome(document_id=document_id, success=False, reason="not_found")
        except Exception as exc:
            logger.error("Error processing embedding for document %s: %s", document_id, exc)
            return MessageOutcome(document_id=document_id, success=False, error=str(exc))

        return MessageOutcome(document_id=document_id, success=True, reason=outcome.reason)
