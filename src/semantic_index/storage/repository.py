"""Document state persistence.

Every public method runs in its own short transaction unless a session is
passed in, so a status write can be committed independently of (and
survive the rollback of) a failed indexing transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from semantic_index.exceptions import DocumentNotFoundError
from semantic_index.storage.db import utcnow
from semantic_index.storage.models import DocumentModel, IndexStatus

logger = logging.getLogger(__name__)


class DocumentRepository:
    """Read and update :class:`DocumentModel` rows.

    Parameters
    ----------
    session_factory:
        Factory from :func:`semantic_index.storage.db.get_session_factory`.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session whose work commits on exit and rolls back on error."""
        with self._session_factory.begin() as session:
            yield session

    # -- reads ----------------------------------------------------------------

    def get(self, document_id: str) -> DocumentModel | None:
        with self._session_factory() as session:
            return session.get(DocumentModel, document_id)

    def require(self, document_id: str) -> DocumentModel:
        document = self.get(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    def get_many(self, document_ids: Iterable[str]) -> dict[str, DocumentModel]:
        ids = list(dict.fromkeys(document_ids))
        if not ids:
            return {}
        with self._session_factory() as session:
            rows = session.scalars(select(DocumentModel).where(DocumentModel.id.in_(ids)))
            return {row.id: row for row in rows}

    # -- writes ---------------------------------------------------------------

    def add(self, document: DocumentModel) -> DocumentModel:
        with self.transaction() as session:
            session.add(document)
        return document

    def set_status(self, document_id: str, status: IndexStatus) -> None:
        """Commit *status* for *document_id* in a transaction of its own."""
        with self.transaction() as session:
            document = self._load(session, document_id)
            document.index_status = status
        logger.debug("Document %s status → %s", document_id, status.value)

    def mark_indexed(
        self,
        session: Session,
        document_id: str,
        *,
        section_hashes: dict[str, str],
        content_hash: str,
        title: str,
        generation: str,
    ) -> None:
        """Record a successful run inside the caller's *session*.

        Switching ``index_generation`` here makes the run's chunk rows the
        live ones in the same commit that records the new hashes.
        """
        document = self._load(session, document_id)
        document.index_status = IndexStatus.INDEXED
        document.section_hashes = dict(section_hashes)
        document.last_indexed_content_hash = content_hash
        document.last_indexed_title = title
        document.index_generation = generation
        document.updated_at = utcnow()

    def mark_failed(self, document_id: str) -> None:
        """Commit ``failed`` and forget the last run's hashes, forcing a full reindex next time."""
        with self.transaction() as session:
            document = self._load(session, document_id)
            document.index_status = IndexStatus.FAILED
            document.section_hashes = None
            document.last_indexed_content_hash = None
        logger.debug("Document %s status → %s", document_id, IndexStatus.FAILED.value)

    def mark_title_indexed(self, session: Session, document_id: str, title: str) -> None:
        document = self._load(session, document_id)
        document.last_indexed_title = title

    def record_content_change(self, document_id: str, when: datetime | None = None) -> None:
        """Note a content edit; queued runs older than *when* are superseded."""
        with self.transaction() as session:
            document = self._load(session, document_id)
            document.content_updated_at = when or utcnow()

    def soft_delete(self, document_id: str) -> None:
        with self.transaction() as session:
            document = self._load(session, document_id)
            document.deleted_at = utcnow()

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _load(session: Session, document_id: str) -> DocumentModel:
        document = session.get(DocumentModel, document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document
