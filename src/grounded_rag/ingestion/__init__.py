"""
Ingestion — parse, chunk, embed and index uploaded documents.

This package turns a stored upload into page-aware, embedded chunks in
the vector index and drives the document lifecycle
(``pending → processing → {completed, failed}``).
"""
