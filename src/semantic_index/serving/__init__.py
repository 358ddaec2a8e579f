"""
Serving — FastAPI application for indexing and search.

Exposes the indexing pipeline and the hybrid search engine over HTTP so
they can run as a standalone container next to the document store.
"""
