"""Prompt templates for grounded answer synthesis.

Keeping prompts in one place makes them easy to audit and version.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

    from grounded_rag.retrieval.models import SearchResult

ANSWER_SYSTEM = """\
You are an AI assistant that can answer questions based on the provided texts.
You're given a set of texts from documents and a question. Based on the
provided texts, try to answer the question accurately and concisely.
Do not include justification for your answer. Do not include text index
references in your answer, but include them in the references array.

You MUST respond with JSON of exactly this shape:

  {"text": "The answer to the question", "references": [1, 2, 3]}

"references" holds the numbers of the texts (Text #N) you used.
"""


def format_context(results: Sequence[SearchResult]) -> str:
    """Number the retrieved chunks as ``Text #i.`` (1-based)."""
    return "\n\n".join(
        f"Text #{i}. {result.chunk_text}" for i, result in enumerate(results, 1)
    )


def build_answer_prompt(query: str, results: Sequence[SearchResult]) -> list[BaseMessage]:
    """Assemble the system instruction and the context + question message."""
    context = format_context(results)
    return [
        SystemMessage(content=ANSWER_SYSTEM),
        HumanMessage(content=f"Context: {context}\n\nQuestion: {query}"),
    ]
