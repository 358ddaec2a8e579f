"""Indexing pipeline: keeps a document's embeddings in step with its content.

One run of :meth:`DocumentIndexer.process_document_embedding`:

1. decode the content state (empty → empty document);
2. extract sections and diff their hashes against the persisted ones
   (documents without sections fall back to a whole-document hash);
3. skip when nothing changed;
4. otherwise mark the document ``indexing``, re-chunk the **whole**
   document, embed every chunk in one batch, and write the chunk rows
   under a fresh generation token (plus the title row when the title
   changed);
5. in one transaction record ``indexed``, the new section hashes and the
   new generation, then delete the document's rows of other generations.

Search only reads rows of a document's committed generation, so readers
see the previous chunk set or the new one, never a mix.  Any failure
after step 3 leaves the previous generation live, marks the document
``failed`` and clears its hashes in a separate transaction, and
re-raises; the next run is then a full reindex.  Retrying is the
caller's business.  The pipeline assumes at most one run per document is
in flight; :mod:`semantic_index.ingestion.queue` provides that guarantee.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from semantic_index.config import settings
from semantic_index.content import ContentNode, content_hash, decode_content_state, render_plain_text
from semantic_index.ingestion.chunker import ChunkStrategy, chunk_document
from semantic_index.ingestion.embedder import embed_batch
from semantic_index.ingestion.models import Chunk, IndexedChunkRecord, ProcessingResult, TitleEmbeddingRecord
from semantic_index.ingestion.sections import extract_sections, find_changed_sections, sections_to_hash_map
from semantic_index.retrieval.models import MetadataFilter, VectorRecord
from semantic_index.storage.models import DocumentModel, IndexStatus

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from semantic_index.retrieval.base import VectorStoreBase
    from semantic_index.storage.repository import DocumentRepository

logger = logging.getLogger(__name__)

SKIP_CONTENT_UNCHANGED = "content_unchanged"

T = TypeVar("T")


class DocumentIndexer:
    """Incremental embedding indexer for one corpus.

    Parameters
    ----------
    repository:
        Document state store (status, section hashes, titles).
    content_store:
        Vector store holding one row per chunk.
    title_store:
        Vector store holding one title row per document.
    embeddings:
        Embedding function; ``embed_documents`` must preserve input order.
    chunk_strategy:
        Structural chunker, ``"paragraph"`` or ``"heading"``.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        content_store: VectorStoreBase,
        title_store: VectorStoreBase,
        embeddings: Embeddings,
        *,
        chunk_strategy: ChunkStrategy = settings.chunk_strategy,
        max_chunk_size: int = settings.chunk_max_size,
        min_chunk_size: int = settings.chunk_min_size,
        overlap_size: int = settings.chunk_overlap_size,
        fallback_max_chunk_size: int = settings.fallback_chunk_max_size,
    ) -> None:
        self._repository = repository
        self._content_store = content_store
        self._title_store = title_store
        self._embeddings = embeddings
        self.chunk_strategy = chunk_strategy
        self.max_chunk_size = max_chunk_size
        self.min_chunk_size = min_chunk_size
        self.overlap_size = overlap_size
        self.fallback_max_chunk_size = fallback_max_chunk_size

    # -- public API -----------------------------------------------------------

    def process_document_embedding(self, document_id: str, content_state: Any) -> ProcessingResult:
        """Bring the embeddings of *document_id* up to date with *content_state*.

        Returns
        -------
        ProcessingResult
            ``skipped=True, reason="content_unchanged"`` when the content
            matches the last run (a changed title is still re-embedded);
            otherwise ``skipped=False`` with the number of chunks stored.

        Raises
        ------
        DocumentNotFoundError
            No state row exists for *document_id*.
        ContentDecodeError
            *content_state* is present but not a content tree.
        """
        document = self._repository.require(document_id)
        doc = decode_content_state(content_state)

        plain_text = render_plain_text(doc)
        whole_hash = content_hash(plain_text)
        title_changed = document.last_indexed_title != document.title

        sections = extract_sections(doc)
        if not sections:
            new_hashes: dict[str, str] = {}
            content_changed = whole_hash != document.last_indexed_content_hash
            logger.debug("Document %s has no sections; whole-document hash changed=%s", document_id, content_changed)
        else:
            new_hashes = sections_to_hash_map(sections)
            diff = find_changed_sections(document.section_hashes, sections)
            content_changed = diff.has_changes
            logger.debug(
                "Document %s: %d changed, %d unchanged, %d deleted sections (full=%s)",
                document_id,
                len(diff.changed_sections),
                len(diff.unchanged_section_keys),
                len(diff.deleted_section_keys),
                diff.is_full_reindex,
            )

        if document.index_status == IndexStatus.FAILED:
            content_changed = True

        if not content_changed:
            if title_changed:
                self._run_guarded(document, lambda: self._refresh_title_only(document))
            if document.index_status != IndexStatus.INDEXED:
                self._repository.set_status(document_id, IndexStatus.INDEXED)
            logger.info("Document %s content unchanged, skipping", document_id)
            return ProcessingResult(skipped=True, reason=SKIP_CONTENT_UNCHANGED, title_updated=title_changed)

        self._repository.set_status(document_id, IndexStatus.INDEXING)
        chunk_count = self._run_guarded(
            document,
            lambda: self._reindex(document, doc, new_hashes, whole_hash, title_changed),
        )
        logger.info("Indexed document %s: %d chunks (title updated: %s)", document_id, chunk_count, title_changed)
        return ProcessingResult(skipped=False, chunk_count=chunk_count, title_updated=title_changed)

    def remove_document(self, document_id: str) -> None:
        """Drop every chunk and title row stored for *document_id*."""
        by_document = [MetadataFilter.equals("document_id", document_id)]
        self._content_store.delete_where(by_document)
        self._title_store.delete_where(by_document)
        logger.info("Removed embeddings for document %s", document_id)

    # -- internals ------------------------------------------------------------

    def _run_guarded(self, document: DocumentModel, work: Callable[[], T]) -> T:
        try:
            return work()
        except Exception:
            logger.exception("Indexing failed for document %s", document.id)
            # Outside the failed transaction, so this write survives its rollback.
            self._repository.mark_failed(document.id)
            raise

    def _chunk(self, doc: ContentNode, title: str) -> list[Chunk]:
        return chunk_document(
            doc,
            strategy=self.chunk_strategy,
            title=title,
            max_chunk_size=self.max_chunk_size,
            min_chunk_size=self.min_chunk_size,
            overlap_size=self.overlap_size,
            fallback_max_chunk_size=self.fallback_max_chunk_size,
        )

    def _reindex(
        self,
        document: DocumentModel,
        doc: ContentNode,
        section_hashes: dict[str, str],
        whole_hash: str,
        title_changed: bool,
    ) -> int:
        chunks = self._chunk(doc, document.title)
        vectors = embed_batch(self._embeddings, [chunk.content for chunk in chunks])
        generation = uuid.uuid4().hex
        records = [
            IndexedChunkRecord.from_chunk(
                chunk,
                vector,
                document_id=document.id,
                organization_id=document.organization_id,
                generation=generation,
            ).to_vector_record()
            for chunk, vector in zip(chunks, vectors)
        ]
        title_records = self._title_records(document) if title_changed else None

        # Invisible to search until the generation below commits.
        self._content_store.upsert(records)
        if title_records is not None:
            self._title_store.replace_document(document.id, title_records)
        with self._repository.transaction() as session:
            self._repository.mark_indexed(
                session,
                document.id,
                section_hashes=section_hashes,
                content_hash=whole_hash,
                title=document.title,
                generation=generation,
            )
        self._content_store.delete_where(
            [
                MetadataFilter.equals("document_id", document.id),
                MetadataFilter.not_equals("generation", generation),
            ]
        )
        return len(records)

    def _refresh_title_only(self, document: DocumentModel) -> None:
        records = self._title_records(document)
        with self._repository.transaction() as session:
            self._title_store.replace_document(document.id, records)
            self._repository.mark_title_indexed(session, document.id, document.title)
        logger.info("Updated title embedding for document %s", document.id)

    def _title_records(self, document: DocumentModel) -> list[VectorRecord]:
        # A blank title keeps no title row at all.
        if not document.title.strip():
            return []
        record = TitleEmbeddingRecord(
            document_id=document.id,
            organization_id=document.organization_id,
            title=document.title,
            embedding=list(self._embeddings.embed_query(document.title)),
        )
        return [record.to_vector_record()]
