"""
Serving — FastAPI application for uploads and grounded questions.

The HTTP layer is deliberately thin: every route delegates to
:class:`grounded_rag.service.RAGService`.
"""
