"""
Ingestion — chunking, section change detection, and embedding into the vector store.

Turns a document's content tree into embedded chunks, re-embedding only
when its heading-delimited sections actually changed.
"""
