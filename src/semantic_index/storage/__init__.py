"""
Storage — per-document index state in a relational database (SQLAlchemy).

The vector rows live in the vector store; this package only tracks the
index lifecycle and the change-detection state of each document.
"""

from semantic_index.storage.db import Base, create_db_engine, create_tables, get_session_factory
from semantic_index.storage.models import DocumentModel, IndexStatus
from semantic_index.storage.repository import DocumentRepository

__all__ = [
    "Base",
    "DocumentModel",
    "DocumentRepository",
    "IndexStatus",
    "create_db_engine",
    "create_tables",
    "get_session_factory",
]
