"""
Retrieval — vector stores and hybrid semantic search.

The vector store sits behind a small abstract interface so that the
indexing pipeline and the search engine never need to know which DB is
backing them.

Public surface
--------------
- :class:`HybridSearchEngine` — title, content, hybrid and related-document search.
- :func:`filter_results` — call-site similarity floor and per-document chunk cap.
- :class:`VectorStoreBase` — abstract backend (subclass for pgvector, etc.).
- :class:`ChromaVectorStore` — default Chroma backend.
- :class:`MetadataFilter`, :class:`VectorRecord`, :class:`DocumentSearchResult`,
  :class:`ContentChunkHit`, :class:`DocumentMatch` — data models.
"""

from semantic_index.retrieval.base import VectorStoreBase
from semantic_index.retrieval.models import (
    ContentChunkHit,
    DocumentMatch,
    DocumentSearchResult,
    MetadataFilter,
    SearchStrategy,
    VectorRecord,
)
from semantic_index.retrieval.search import HybridSearchEngine, filter_results

__all__ = [
    "ChromaVectorStore",
    "ContentChunkHit",
    "DocumentMatch",
    "DocumentSearchResult",
    "HybridSearchEngine",
    "MetadataFilter",
    "SearchStrategy",
    "VectorRecord",
    "VectorStoreBase",
    "filter_results",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from semantic_index.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
