"""Grounded answer synthesis with reference-to-source mapping.

The LLM is asked for ``{"text": ..., "references": [...]}`` where each
reference is the 1-based number of a ``Text #N`` context entry.  The
numbers are mapped back to the search results to build citations.
Malformed output never fails the request: the raw text is returned with
no citations.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from grounded_rag.answering.prompts import build_answer_prompt
from grounded_rag.exceptions import AnswerParseFailure
from grounded_rag.retrieval.models import Answer, Citation, SearchResult
from grounded_rag.retry import collaborator_retry

logger = logging.getLogger(__name__)

# A fenced block: optional language tag, then the body up to the closing fence.
_FENCE_RE = re.compile(r"```([\w+-]*)[ \t]*\n?(.*?)```", re.DOTALL)
# Backslash escapes that JSON does not define, e.g. "\_" or "\(".
_INVALID_ESCAPE_RE = re.compile(r"(?<!\\)((?:\\\\)*)\\([^\"\\/bfnrtu])")


class LLMAnswer(BaseModel):
    """The structured JSON payload expected from the LLM."""

    text: str
    references: list[float] = Field(default_factory=list)


def parse_llm_response(raw: str) -> LLMAnswer:
    """Extract the JSON answer from raw LLM output.

    The first ```` ```json ```` block wins, then the first untagged
    fence.  Blocks tagged with another language are ignored.  A bare
    JSON object is accepted when no usable fence is present.

    Raises
    ------
    AnswerParseFailure
        When no JSON answer can be found or it does not validate.
    """
    candidate = _fenced_json(raw)
    if candidate is None:
        stripped = raw.strip()
        if not (stripped.startswith("{") and stripped.endswith("}")):
            raise AnswerParseFailure("No JSON block in LLM output")
        candidate = stripped

    candidate = _INVALID_ESCAPE_RE.sub(r"\1\2", candidate)
    try:
        payload = json.loads(candidate, strict=False)
        return LLMAnswer.model_validate(payload)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise AnswerParseFailure(f"Malformed JSON answer: {exc}") from exc


def _fenced_json(raw: str) -> str | None:
    untagged = None
    for match in _FENCE_RE.finditer(raw):
        tag = match.group(1).lower()
        if tag == "json":
            return match.group(2).strip()
        if not tag and untagged is None:
            untagged = match.group(2).strip()
    return untagged


def map_references(
    references: Sequence[float],
    results: Sequence[SearchResult],
) -> list[Citation]:
    """Turn 1-based reference numbers into citations sorted by page.

    Numbers outside ``1..len(results)``, non-integers and duplicates are
    dropped.
    """
    citations: list[Citation] = []
    seen: set[int] = set()
    for ref in references:
        if not float(ref).is_integer():
            logger.warning("Dropping non-integer reference %r", ref)
            continue
        index = int(ref) - 1
        if not 0 <= index < len(results):
            logger.warning("Dropping out-of-range reference %r (%d results)", ref, len(results))
            continue
        if index in seen:
            continue
        seen.add(index)
        result = results[index]
        citations.append(
            Citation(
                document_id=result.document_id,
                page=result.first_page + 1,
                text=result.chunk_text,
            )
        )
    return sorted(citations, key=lambda c: c.page)


class AnswerSynthesizer:
    """Build a grounded prompt, call the LLM and map its references.

    Parameters
    ----------
    llm:
        A LangChain chat model (anything with ``invoke(messages)``
        returning a message with ``content``).  Defaults to
        :func:`~grounded_rag.answering.llm.get_llm`.
    """

    def __init__(self, llm: Any | None = None) -> None:
        if llm is None:
            from grounded_rag.answering.llm import get_llm

            llm = get_llm()
        self._llm = llm

    def synthesize(self, query: str, search_results: Sequence[SearchResult]) -> Answer:
        """Answer *query* from *search_results* with citations.

        The LLM is invoked even when there are no search results.
        """
        results = list(search_results)
        messages = build_answer_prompt(query, results)
        logger.info("Sending prompt with %d context text(s) to the LLM", len(results))
        raw = self._generate(messages)

        try:
            parsed = parse_llm_response(raw)
        except AnswerParseFailure as exc:
            logger.warning("Could not parse LLM answer, returning raw text: %s", exc)
            return Answer(text=raw, citations=[], search_results=results)

        citations = map_references(parsed.references, results)
        return Answer(text=parsed.text, citations=citations, search_results=results)

    @collaborator_retry()
    def _generate(self, messages: list) -> str:
        response = self._llm.invoke(messages)
        content = getattr(response, "content", response)
        if isinstance(content, list):
            # Some chat models return content blocks instead of a string.
            content = "".join(
                block.get("text", "") if isinstance(block, dict) else str(block)
                for block in content
            )
        return str(content)
