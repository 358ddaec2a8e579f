"""Chroma implementation of the vector-store abstraction."""

from __future__ import annotations

import logging
from typing import Any

import chromadb

from semantic_index.config import settings
from semantic_index.retrieval.base import VectorStoreBase
from semantic_index.retrieval.models import MetadataFilter, VectorRecord

logger = logging.getLogger(__name__)

_OP_MAP = {
    "eq": "$eq",
    "ne": "$ne",
    "gt": "$gt",
    "gte": "$gte",
    "lt": "$lt",
    "lte": "$lte",
    "in": "$in",
    "nin": "$nin",
}


def _clause(metadata_filter: MetadataFilter) -> dict[str, Any]:
    try:
        op = _OP_MAP[metadata_filter.operator]
    except KeyError:
        raise ValueError(f"Unsupported filter operator: {metadata_filter.operator!r}") from None
    return {metadata_filter.field: {op: metadata_filter.value}}


def _build_chroma_where(filters: list[MetadataFilter] | None) -> dict[str, Any] | None:
    """Translate metadata filters into a Chroma ``where`` document.

    Chroma rejects a single-clause ``$and``, so one filter maps to a bare clause.
    """
    clauses = [_clause(f) for f in filters or []]
    if not clauses:
        return None
    return clauses[0] if len(clauses) == 1 else {"$and": clauses}


def _first_query_batch(results: dict[str, Any], key: str) -> list[Any]:
    # query() returns one inner list per query embedding; only one is ever sent.
    batches = results.get(key) or [[]]
    return list(batches[0] or [])


def _flat_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    # Chroma metadata values must be flat str/int/float/bool (no None)
    return {k: v for k, v in metadata.items() if isinstance(v, (str, int, float, bool))}


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed vector store over a cosine-space collection.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    host:
        Chroma server hostname.
    port:
        Chroma server port.
    client:
        Pre-built Chroma client (e.g. ``chromadb.EphemeralClient()``);
        overrides *host* / *port*.
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_content_collection,
        *,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
        client: Any | None = None,
    ) -> None:
        super().__init__(collection_name)
        self._client = client if client is not None else chromadb.HttpClient(host=host, port=port)
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    # -- VectorStoreBase overrides --------------------------------------------

    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        max_distance: float | None = None,
    ) -> list[dict[str, Any]]:
        if k <= 0:
            return []

        results = self._collection.query(
            query_embeddings=[query_embedding],
            n_results=k,
            where=_build_chroma_where(filters),
            include=["documents", "metadatas", "distances"],
        )
        rows = zip(
            _first_query_batch(results, "ids"),
            _first_query_batch(results, "documents"),
            _first_query_batch(results, "metadatas"),
            _first_query_batch(results, "distances"),
        )

        hits: list[dict[str, Any]] = []
        for row_id, text, metadata, raw_distance in rows:
            distance = float(raw_distance)
            if max_distance is not None and distance >= max_distance:
                # ordered by distance
                break
            hits.append(
                {
                    "id": row_id,
                    "content": text or "",
                    "distance": distance,
                    "score": 1.0 - distance,
                    "metadata": dict(metadata or {}),
                }
            )
        return hits

    def upsert(self, records: list[VectorRecord]) -> None:
        if not records:
            return
        self._collection.upsert(
            ids=[r.id for r in records],
            embeddings=[r.embedding for r in records],
            documents=[r.content for r in records],
            metadatas=[_flat_metadata(r.metadata) for r in records],
        )
        logger.debug("Upserted %d rows into %s", len(records), self.collection_name)

    def get(
        self,
        *,
        filters: list[MetadataFilter] | None = None,
        limit: int | None = None,
        include_embeddings: bool = False,
    ) -> list[dict[str, Any]]:
        include = ["documents", "metadatas"]
        if include_embeddings:
            include.append("embeddings")
        results = self._collection.get(
            where=_build_chroma_where(filters),
            limit=limit,
            include=include,
        )

        ids = results.get("ids") or []
        docs = results.get("documents")
        metas = results.get("metadatas")
        embeddings = results.get("embeddings")

        rows: list[dict[str, Any]] = []
        for i, row_id in enumerate(ids):
            row: dict[str, Any] = {
                "id": row_id,
                "content": (docs[i] if docs is not None else None) or "",
                "metadata": (metas[i] if metas is not None else None) or {},
            }
            if include_embeddings and embeddings is not None:
                row["embedding"] = [float(x) for x in embeddings[i]]
            rows.append(row)
        return rows

    def delete_where(self, filters: list[MetadataFilter]) -> None:
        if not filters:
            raise ValueError("delete_where requires at least one filter")
        self._collection.delete(where=_build_chroma_where(filters))

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False

    def delete(self, ids: list[str]) -> None:
        self._collection.delete(ids=ids)
