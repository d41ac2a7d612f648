"""Chat-model factory for answer synthesis.

The answer prompt asks for a JSON object, so JSON response mode is
requested from the provider when ``LLM_JSON_MODE`` is on.  Self-hosted
OpenAI-compatible servers are reached through ``LLM_BASE_URL``.
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.runnables import Runnable
from langchain_openai import ChatOpenAI

from grounded_rag.config import settings

logger = logging.getLogger(__name__)


def get_llm(temperature: float | None = None, *, json_mode: bool | None = None) -> Runnable:
    """Build the chat model used by :class:`AnswerSynthesizer`.

    Parameters
    ----------
    temperature:
        Sampling temperature; defaults to ``settings.llm_temperature``.
    json_mode:
        Ask the provider for a JSON object response; defaults to
        ``settings.llm_json_mode``.

    The client's own retries are disabled; calls are retried by
    :func:`grounded_rag.retry.collaborator_retry`.
    """
    json_mode = settings.llm_json_mode if json_mode is None else json_mode
    options: dict[str, Any] = {
        "model": settings.llm_model_name,
        "temperature": settings.llm_temperature if temperature is None else temperature,
        "timeout": settings.llm_timeout_seconds,
        "max_retries": 0,
        "api_key": settings.openai_api_key,
    }
    if settings.llm_base_url:
        options["base_url"] = settings.llm_base_url
        # Local servers accept any key, but the client rejects an empty one.
        options["api_key"] = settings.openai_api_key or "EMPTY"

    logger.info(
        "Chat model %s via %s (json_mode=%s)",
        settings.llm_model_name,
        settings.llm_base_url or "OpenAI",
        json_mode,
    )
    llm = ChatOpenAI(**options)
    if json_mode:
        return llm.bind(response_format={"type": "json_object"})
    return llm
