"""Hybrid search over title and content vector probes merged into one result list.

Usage::

    engine  = HybridSearchEngine(content_store, title_store, repository, embeddings)
    results = engine.hybrid_search_documents("matcha brewing", org_id, limit=5)
    results = filter_results(results, limit=5)

Distance thresholds are loose; callers apply a similarity floor with
:func:`filter_results`.  Every probe is ordered by
ascending cosine distance and the merge never re-ranks: title matches
come first, content-only matches after them.  Chunk rows count only when
their ``generation`` matches the document's committed one.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar, get_args

from semantic_index.retrieval.models import (
    ContentChunkHit,
    DocumentMatch,
    DocumentSearchResult,
    MetadataFilter,
    SearchStrategy,
)

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

    from semantic_index.retrieval.base import VectorStoreBase
    from semantic_index.storage.models import DocumentModel
    from semantic_index.storage.repository import DocumentRepository

logger = logging.getLogger(__name__)

TITLE_MAX_DISTANCE = 0.7
DOCUMENT_CONTENT_MAX_DISTANCE = 0.6
CONTENT_MAX_DISTANCE = 0.5
RELATED_TITLE_MAX_DISTANCE = 0.8
RELATED_CONTENT_MAX_DISTANCE = 0.6

MAX_TITLE_MATCHES = 5
MAX_CHUNKS_PER_DOCUMENT = 3
CONTENT_OVERFETCH = 3
RELATED_OVERFETCH = 3
RELATED_CONTENT_OVERFETCH = 10
MIN_SIMILARITY = 0.3

F = TypeVar("F", bound=Callable)


def _logged(func: F) -> F:
    """Log and re-raise any failure of a public query method."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception:
            logger.exception("Error in %s", func.__name__)
            raise

    return wrapper  # type: ignore[return-value]


class HybridSearchEngine:
    """Read-only semantic search over title and content embeddings.

    Parameters
    ----------
    content_store:
        Vector store with one row per chunk (``document_id``,
        ``organization_id``, ``chunk_index`` … metadata).
    title_store:
        Vector store with one title row per document.
    repository:
        Document state, used to resolve titles / slugs and to drop deleted
        (and, for related documents, unpublished) documents.
    embeddings:
        Embedding function used for queries.
    """

    def __init__(
        self,
        content_store: VectorStoreBase,
        title_store: VectorStoreBase,
        repository: DocumentRepository,
        embeddings: Embeddings,
    ) -> None:
        self._content_store = content_store
        self._title_store = title_store
        self._repository = repository
        self._embeddings = embeddings

    # -- public API -----------------------------------------------------------

    @_logged
    def search_documents(self, query: str, organization_id: str, limit: int = 5) -> list[DocumentSearchResult]:
        """Content-only search, grouped by document (at most 3 chunks each)."""
        return self._content_matches(self._embed(query), organization_id, limit)

    @_logged
    def search_documents_by_title(self, query: str, organization_id: str, limit: int = 10) -> list[DocumentMatch]:
        """Documents whose title embedding is within distance 0.7 of *query*."""
        return self._title_matches(self._embed(query), organization_id, limit)

    @_logged
    def search_documents_in_specific_document(
        self,
        query: str,
        document_id: str,
        limit: int = 3,
    ) -> list[ContentChunkHit]:
        """Chunks of one document within distance 0.6 of *query*."""
        document = self._repository.get(document_id)
        if document is None:
            return []
        return self._document_chunks(self._embed(query), document, limit)

    @_logged
    def hybrid_search_documents(
        self,
        query: str,
        organization_id: str,
        strategy: SearchStrategy = "both",
        limit: int = 5,
    ) -> list[DocumentSearchResult]:
        """Title-anchored and/or content search merged by document.

        ``title_first`` / ``both`` probe titles first and attach each title
        match's best chunks.  ``content_first`` / ``both`` then fill the
        remaining slots from a corpus-wide content probe; a document already
        present gets the extra chunks appended.
        """
        if strategy not in get_args(SearchStrategy):
            raise ValueError(f"Unsupported search strategy: {strategy!r}")

        embedding = self._embed(query)
        results: list[DocumentSearchResult] = []

        if strategy in ("title_first", "both"):
            for document, similarity in self._title_hits(embedding, organization_id, min(limit, MAX_TITLE_MATCHES)):
                results.append(
                    DocumentSearchResult(
                        search_type="title_match",
                        document_id=document.id,
                        document_title=document.title,
                        document_slug=document.slug,
                        title_similarity=similarity,
                        content_chunks=self._document_chunks(
                            embedding, document, min(MAX_CHUNKS_PER_DOCUMENT, limit)
                        ),
                    )
                )

        if strategy in ("content_first", "both") and len(results) < limit:
            by_document = {result.document_id: result for result in results}
            for content_result in self._content_matches(embedding, organization_id, limit - len(results)):
                existing = by_document.get(content_result.document_id)
                if existing is not None:
                    existing.content_chunks.extend(content_result.content_chunks)
                else:
                    results.append(content_result)
                    by_document[content_result.document_id] = content_result

        return results[:limit]

    @_logged
    def find_related_documents(self, document_id: str, organization_id: str, limit: int = 5) -> list[DocumentMatch]:
        """Published documents whose titles resemble *document_id*'s title.

        Falls back to :meth:`find_related_documents_by_content` when the
        document has no title embedding.
        """
        rows = self._title_store.get(
            filters=[MetadataFilter.equals("document_id", document_id)],
            limit=1,
            include_embeddings=True,
        )
        if not rows:
            return self.find_related_documents_by_content(document_id, organization_id, limit)

        hits = self._title_store.similarity_search(
            rows[0]["embedding"],
            k=limit * RELATED_OVERFETCH,
            filters=self._others_in_organization(document_id, organization_id),
            max_distance=RELATED_TITLE_MAX_DISTANCE,
        )
        documents = self._resolve(hit["metadata"].get("document_id") for hit in hits)

        related: list[DocumentMatch] = []
        for hit in hits:
            document = documents.get(hit["metadata"].get("document_id"))
            if document is None or not document.published:
                continue
            related.append(self._match(document, hit["score"]))
        return related[:limit]

    @_logged
    def find_related_documents_by_content(
        self,
        document_id: str,
        organization_id: str,
        limit: int = 5,
    ) -> list[DocumentMatch]:
        """Published documents with chunks close to *document_id*'s first chunk."""
        source = self._repository.get(document_id)
        if source is None:
            return []
        rows = self._content_store.get(
            filters=self._live_filters(source, MetadataFilter.equals("chunk_index", 0)),
            include_embeddings=True,
        )
        rows = [row for row in rows if self._is_live(row, source)]
        if not rows:
            return []

        hits = self._content_store.similarity_search(
            rows[0]["embedding"],
            k=limit * RELATED_CONTENT_OVERFETCH,
            filters=self._others_in_organization(document_id, organization_id),
            max_distance=RELATED_CONTENT_MAX_DISTANCE,
        )
        documents = self._resolve(hit["metadata"].get("document_id") for hit in hits)

        best: dict[str, float] = {}
        for hit in hits:
            other = documents.get(hit["metadata"].get("document_id"))
            if other is None or not other.published or not self._is_live(hit, other):
                continue
            best[other.id] = max(best.get(other.id, hit["score"]), hit["score"])

        related = [self._match(documents[other_id], similarity) for other_id, similarity in best.items()]
        related.sort(key=lambda match: match.similarity, reverse=True)
        return related[:limit]

    # -- probes (take a pre-computed embedding) -------------------------------

    def _title_hits(
        self,
        embedding: list[float],
        organization_id: str,
        limit: int,
    ) -> list[tuple[DocumentModel, float]]:
        hits = self._title_store.similarity_search(
            embedding,
            k=limit,
            filters=[MetadataFilter.equals("organization_id", organization_id)],
            max_distance=TITLE_MAX_DISTANCE,
        )
        documents = self._resolve(hit["metadata"].get("document_id") for hit in hits)
        pairs: list[tuple[DocumentModel, float]] = []
        for hit in hits:
            document = documents.get(hit["metadata"].get("document_id"))
            if document is not None:
                pairs.append((document, hit["score"]))
        return pairs

    def _title_matches(self, embedding: list[float], organization_id: str, limit: int) -> list[DocumentMatch]:
        pairs = self._title_hits(embedding, organization_id, limit)
        return [self._match(document, score) for document, score in pairs]

    def _document_chunks(self, embedding: list[float], document: DocumentModel, limit: int) -> list[ContentChunkHit]:
        hits = self._content_store.similarity_search(
            embedding,
            k=limit,
            filters=self._live_filters(document),
            max_distance=DOCUMENT_CONTENT_MAX_DISTANCE,
        )
        return [ContentChunkHit.from_hit(hit) for hit in hits if self._is_live(hit, document)]

    def _content_matches(
        self,
        embedding: list[float],
        organization_id: str,
        limit: int,
    ) -> list[DocumentSearchResult]:
        hits = self._content_store.similarity_search(
            embedding,
            k=limit * CONTENT_OVERFETCH,
            filters=[MetadataFilter.equals("organization_id", organization_id)],
            max_distance=CONTENT_MAX_DISTANCE,
        )
        documents = self._resolve(hit["metadata"].get("document_id") for hit in hits)

        grouped: dict[str, DocumentSearchResult] = {}
        for hit in hits:
            chunk = ContentChunkHit.from_hit(hit)
            document = documents.get(chunk.document_id)
            if document is None or not self._is_live(hit, document):
                continue
            result = grouped.get(document.id)
            if result is None:
                result = grouped[document.id] = DocumentSearchResult(
                    search_type="content_match",
                    document_id=document.id,
                    document_title=document.title,
                    document_slug=document.slug,
                )
            if len(result.content_chunks) < MAX_CHUNKS_PER_DOCUMENT:
                result.content_chunks.append(chunk)

        return list(grouped.values())[:limit]

    # -- internals ------------------------------------------------------------

    def _embed(self, query: str) -> list[float]:
        return list(self._embeddings.embed_query(query))

    def _resolve(self, document_ids) -> dict[str, DocumentModel]:  # noqa: ANN001
        """Look up document rows, dropping unknown and soft-deleted ones."""
        documents = self._repository.get_many(i for i in document_ids if i)
        return {doc_id: doc for doc_id, doc in documents.items() if not doc.is_deleted}

    @staticmethod
    def _is_live(row: dict, document: DocumentModel) -> bool:
        """True for chunk rows written by the document's committed indexing run."""
        return row["metadata"].get("generation") == document.index_generation

    @staticmethod
    def _live_filters(document: DocumentModel, *extra: MetadataFilter) -> list[MetadataFilter]:
        filters = [MetadataFilter.equals("document_id", document.id), *extra]
        if document.index_generation is not None:
            filters.append(MetadataFilter.equals("generation", document.index_generation))
        return filters

    @staticmethod
    def _others_in_organization(document_id: str, organization_id: str) -> list[MetadataFilter]:
        return [
            MetadataFilter.equals("organization_id", organization_id),
            MetadataFilter.not_equals("document_id", document_id),
        ]

    @staticmethod
    def _match(document: DocumentModel, similarity: float) -> DocumentMatch:
        return DocumentMatch(
            id=document.id,
            title=document.title,
            slug=document.slug,
            similarity=similarity,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


def filter_results(
    results: list[DocumentSearchResult],
    *,
    min_similarity: float = MIN_SIMILARITY,
    limit: int | None = None,
    exclude_document_id: str | None = None,
) -> list[DocumentSearchResult]:
    """Apply the call-site relevance floor to engine results.

    Chunks below *min_similarity* are dropped, documents left without chunks
    are dropped, each document keeps at most three chunks, and the list is
    truncated to *limit*.
    """
    filtered: list[DocumentSearchResult] = []
    for result in results:
        if exclude_document_id is not None and result.document_id == exclude_document_id:
            continue
        chunks = [chunk for chunk in result.content_chunks if chunk.similarity >= min_similarity]
        if chunks:
            filtered.append(result.model_copy(update={"content_chunks": chunks[:MAX_CHUNKS_PER_DOCUMENT]}))
    return filtered if limit is None else filtered[:limit]
