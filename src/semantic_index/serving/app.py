"""FastAPI application exposing indexing and search as a REST API."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from semantic_index.config import settings
from semantic_index.exceptions import ContentDecodeError, DocumentNotFoundError
from semantic_index.ingestion.models import ProcessingResult
from semantic_index.ingestion.pipeline import DocumentIndexer
from semantic_index.retrieval import (
    DocumentMatch,
    DocumentSearchResult,
    HybridSearchEngine,
    SearchStrategy,
    VectorStoreBase,
    filter_results,
)
from semantic_index.storage import DocumentRepository, create_db_engine, create_tables, get_session_factory

app = FastAPI(
    title="Semantic Index API",
    version="0.1.0",
    description="Incremental document embedding and hybrid semantic search.",
)


# ── Component wiring ──────────────────────────────────────────────────
@lru_cache(maxsize=1)
def get_repository() -> DocumentRepository:
    engine = create_db_engine()
    create_tables(engine)
    return DocumentRepository(get_session_factory(engine))


@lru_cache(maxsize=1)
def get_content_store() -> VectorStoreBase:
    from semantic_index.retrieval.chroma_store import ChromaVectorStore

    return ChromaVectorStore(settings.chroma_content_collection)


@lru_cache(maxsize=1)
def get_title_store() -> VectorStoreBase:
    from semantic_index.retrieval.chroma_store import ChromaVectorStore

    return ChromaVectorStore(settings.chroma_title_collection)


def get_indexer() -> DocumentIndexer:
    from semantic_index.ingestion.embedder import get_embedding_function

    return DocumentIndexer(get_repository(), get_content_store(), get_title_store(), get_embedding_function())


def get_search_engine() -> HybridSearchEngine:
    from semantic_index.ingestion.embedder import get_embedding_function

    return HybridSearchEngine(get_content_store(), get_title_store(), get_repository(), get_embedding_function())


# ── Request / Response schemas ────────────────────────────────────────
class EmbeddingRequest(BaseModel):
    """Current content state of a document (JSON content tree or its serialisation)."""

    content_state: Any = None


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    organization_id: str
    strategy: SearchStrategy = "both"
    limit: int = Field(default=5, ge=1, le=50)


class SearchResponse(BaseModel):
    results: list[DocumentSearchResult] = []


class RelatedResponse(BaseModel):
    documents: list[DocumentMatch] = []


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
def health(content_store: Annotated[VectorStoreBase, Depends(get_content_store)]) -> dict[str, str]:
    """Liveness probe, with vector-store reachability."""
    return {"status": "ok", "vector_store": "ok" if content_store.health_check() else "unavailable"}


@app.post("/documents/{document_id}/embedding", response_model=ProcessingResult)
def process_embedding(
    document_id: str,
    request: EmbeddingRequest,
    indexer: Annotated[DocumentIndexer, Depends(get_indexer)],
) -> ProcessingResult:
    """Bring a document's embeddings up to date with its content."""
    try:
        return indexer.process_document_embedding(document_id, request.content_state)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except ContentDecodeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


@app.delete("/documents/{document_id}/embedding", status_code=204)
def remove_embedding(document_id: str, indexer: Annotated[DocumentIndexer, Depends(get_indexer)]) -> None:
    indexer.remove_document(document_id)


@app.post("/search", response_model=SearchResponse)
def search(
    request: SearchRequest,
    engine: Annotated[HybridSearchEngine, Depends(get_search_engine)],
) -> SearchResponse:
    """Hybrid search with the configured similarity floor applied."""
    results = engine.hybrid_search_documents(
        request.query,
        request.organization_id,
        strategy=request.strategy,
        limit=request.limit,
    )
    return SearchResponse(
        results=filter_results(results, min_similarity=settings.search_min_similarity, limit=request.limit)
    )


@app.get("/documents/{document_id}/related", response_model=RelatedResponse)
def related(
    document_id: str,
    organization_id: str,
    engine: Annotated[HybridSearchEngine, Depends(get_search_engine)],
    limit: Annotated[int, Query(ge=1, le=50)] = 5,
) -> RelatedResponse:
    return RelatedResponse(documents=engine.find_related_documents(document_id, organization_id, limit=limit))
