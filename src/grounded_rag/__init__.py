"""grounded-rag — page-aware document ingestion and cited question answering."""

__version__ = "0.1.0"
