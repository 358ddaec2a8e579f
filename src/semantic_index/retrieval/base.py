"""Abstract base class for vector-store backends.

Adding a new backend (pgvector, Qdrant …) only requires subclassing
:class:`VectorStoreBase` and implementing the abstract methods.  The
indexing pipeline and the search engine are backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from semantic_index.retrieval.models import MetadataFilter, VectorRecord


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Distances are cosine distances: ``0`` is identical, lower is closer.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        max_distance: float | None = None,
    ) -> list[dict[str, Any]]:
        """Return up to *k* nearest rows, ordered by ascending distance.

        Each result dict **must** contain:

        * ``"id"`` – row identifier
        * ``"content"`` – the stored text
        * ``"distance"`` – cosine distance to the query
        * ``"score"`` – ``1 - distance``
        * ``"metadata"`` – associated metadata dict

        Parameters
        ----------
        query_embedding:
            Dense vector for the query.
        k:
            Maximum number of results.
        filters:
            Optional metadata filters applied server-side.
        max_distance:
            When set, only rows with ``distance < max_distance`` are returned.
        """
        ...

    @abstractmethod
    def upsert(self, records: list[VectorRecord]) -> None:
        """Insert *records*, overwriting rows that share an id."""
        ...

    @abstractmethod
    def get(
        self,
        *,
        filters: list[MetadataFilter] | None = None,
        limit: int | None = None,
        include_embeddings: bool = False,
    ) -> list[dict[str, Any]]:
        """Fetch rows by metadata (``id``, ``content``, ``metadata`` and optionally ``embedding``)."""
        ...

    @abstractmethod
    def delete_where(self, filters: list[MetadataFilter]) -> None:
        """Delete every row matching *filters*."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...

    # -- optional overrides ---------------------------------------------------

    def delete(self, ids: list[str]) -> None:
        """Delete rows by their IDs.  Optional — raises by default."""
        raise NotImplementedError(f"{type(self).__name__} does not support delete")

    def replace_document(self, document_id: str, records: list[VectorRecord]) -> None:
        """Replace every row of *document_id* with *records*.

        New rows are written before stale ones are removed.  The two steps
        are not atomic: between them a reader can see new rows next to stale
        ones.  Multi-row sets that must switch at once (chunk rows) are
        written under a generation token instead.
        """
        if records:
            self.upsert(records)
        keep = {record.id for record in records}
        existing = self.get(filters=[MetadataFilter.equals("document_id", document_id)])
        stale = [row["id"] for row in existing if row["id"] not in keep]
        if stale:
            self.delete(stale)
