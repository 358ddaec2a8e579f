"""Shared pytest configuration and fixtures."""

from __future__ import annotations

import hashlib
import math
import re
from collections.abc import Callable
from typing import Any

import pytest
from langchain_core.embeddings import Embeddings
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from semantic_index.retrieval.base import VectorStoreBase
from semantic_index.retrieval.models import MetadataFilter, VectorRecord
from semantic_index.storage import DocumentModel, DocumentRepository, create_tables, get_session_factory

_WORD_RE = re.compile(r"[a-z0-9]+")
_DIMENSIONS = 64


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fake embeddings ─────────────────────────────────────────────────────


class FakeEmbeddings(Embeddings):
    """Deterministic bag-of-words embeddings.

    Texts sharing words land close together in cosine space; ``fixed``
    pins exact vectors for texts where a test needs precise distances.
    """

    def __init__(self, fixed: dict[str, list[float]] | None = None) -> None:
        self.fixed: dict[str, list[float]] = dict(fixed or {})
        self.document_calls: list[list[str]] = []
        self.query_calls: list[str] = []

    def _vector(self, text: str) -> list[float]:
        if text in self.fixed:
            return list(self.fixed[text])
        vector = [0.0] * _DIMENSIONS
        for word in _WORD_RE.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % _DIMENSIONS
            vector[bucket] += 1.0
        norm = math.sqrt(sum(x * x for x in vector)) or 1.0
        return [x / norm for x in vector]

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.document_calls.append(list(texts))
        return [self._vector(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        self.query_calls.append(text)
        return self._vector(text)


# ── In-memory vector store ──────────────────────────────────────────────


def _cosine_distance(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 1.0
    return 1.0 - dot / norm


def _matches(metadata: dict[str, Any], filters: list[MetadataFilter] | None) -> bool:
    for f in filters or []:
        value = metadata.get(f.field)
        if f.operator == "eq" and value != f.value:
            return False
        if f.operator == "ne" and value == f.value:
            return False
        if f.operator == "in" and value not in f.value:
            return False
        if f.operator == "nin" and value in f.value:
            return False
    return True


class InMemoryVectorStore(VectorStoreBase):
    """Cosine-space vector store backed by a dict."""

    def __init__(self, collection_name: str = "test-collection") -> None:
        super().__init__(collection_name)
        self.rows: dict[str, VectorRecord] = {}
        self.fail_on_upsert = False
        self.healthy = True

    def similarity_search(
        self,
        query_embedding: list[float],
        *,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
        max_distance: float | None = None,
    ) -> list[dict[str, Any]]:
        scored = sorted(
            (
                (_cosine_distance(query_embedding, row.embedding), row)
                for row in self.rows.values()
                if _matches(row.metadata, filters)
            ),
            key=lambda pair: pair[0],
        )
        hits = []
        for distance, row in scored[:k]:
            if max_distance is not None and distance >= max_distance:
                break
            hits.append(
                {
                    "id": row.id,
                    "content": row.content,
                    "distance": distance,
                    "score": 1.0 - distance,
                    "metadata": dict(row.metadata),
                }
            )
        return hits

    def upsert(self, records: list[VectorRecord]) -> None:
        if self.fail_on_upsert:
            raise RuntimeError("vector store unavailable")
        for record in records:
            self.rows[record.id] = record

    def get(
        self,
        *,
        filters: list[MetadataFilter] | None = None,
        limit: int | None = None,
        include_embeddings: bool = False,
    ) -> list[dict[str, Any]]:
        rows = []
        for row in self.rows.values():
            if not _matches(row.metadata, filters):
                continue
            item: dict[str, Any] = {"id": row.id, "content": row.content, "metadata": dict(row.metadata)}
            if include_embeddings:
                item["embedding"] = list(row.embedding)
            rows.append(item)
        return rows if limit is None else rows[:limit]

    def delete_where(self, filters: list[MetadataFilter]) -> None:
        for row_id in [r.id for r in self.rows.values() if _matches(r.metadata, filters)]:
            del self.rows[row_id]

    def delete(self, ids: list[str]) -> None:
        for row_id in ids:
            self.rows.pop(row_id, None)

    def health_check(self) -> bool:
        return self.healthy

    def rows_for(self, document_id: str) -> list[VectorRecord]:
        return sorted(
            (r for r in self.rows.values() if r.metadata.get("document_id") == document_id),
            key=lambda r: r.metadata.get("chunk_index", 0),
        )


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture()
def fake_embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()


@pytest.fixture()
def content_store() -> InMemoryVectorStore:
    return InMemoryVectorStore("document_embeddings")


@pytest.fixture()
def title_store() -> InMemoryVectorStore:
    return InMemoryVectorStore("document_title_embeddings")


@pytest.fixture()
def repository() -> DocumentRepository:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    yield DocumentRepository(get_session_factory(engine))
    engine.dispose()


@pytest.fixture()
def add_document(repository: DocumentRepository) -> Callable[..., DocumentModel]:
    """Insert a document state row; keyword arguments override the defaults."""

    def _add(document_id: str, **overrides: Any) -> DocumentModel:
        fields: dict[str, Any] = {
            "id": document_id,
            "organization_id": "org-1",
            "title": f"Document {document_id}",
            "slug": f"document-{document_id}",
            "published": True,
        }
        fields.update(overrides)
        return repository.add(DocumentModel(**fields))

    return _add
