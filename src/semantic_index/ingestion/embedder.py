"""Embedding function used for chunks, titles, and queries."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import TYPE_CHECKING

from langchain_huggingface import HuggingFaceEmbeddings

from semantic_index.config import settings
from semantic_index.exceptions import EmbeddingError

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_embedding_function() -> HuggingFaceEmbeddings:
    """Return the configured sentence-transformer embedding function.

    The model is loaded once per process.  Vectors are L2-normalised when
    ``settings.normalize_embeddings`` is set, which keeps cosine distances
    well-behaved in the vector store.
    """
    logger.info("Loading embedding model %s", settings.embedding_model)
    return HuggingFaceEmbeddings(
        model_name=settings.embedding_model,
        encode_kwargs={"normalize_embeddings": settings.normalize_embeddings},
    )


def embed_batch(embeddings: Embeddings, texts: list[str]) -> list[list[float]]:
    """Embed *texts* in one call and check the batch lines up with the input.

    Raises
    ------
    EmbeddingError
        When the embedding function returns a different number of vectors.
    """
    if not texts:
        return []
    vectors = embeddings.embed_documents(texts)
    if len(vectors) != len(texts):
        raise EmbeddingError(
            "Embedding batch size mismatch",
            details={"expected": len(texts), "received": len(vectors)},
        )
    return [list(vector) for vector in vectors]
