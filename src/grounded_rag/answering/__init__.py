"""
Answering — grounded answer synthesis over retrieved chunks.

Public API
----------
- :class:`AnswerSynthesizer` — prompt → LLM → parsed answer with citations.
- :func:`parse_llm_response` / :func:`map_references` — the parsing and
  citation-mapping steps, usable on their own.
"""

from grounded_rag.answering.synthesizer import (
    AnswerSynthesizer,
    LLMAnswer,
    map_references,
    parse_llm_response,
)

__all__ = [
    "AnswerSynthesizer",
    "LLMAnswer",
    "map_references",
    "parse_llm_response",
]
