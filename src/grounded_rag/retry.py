"""Bounded retry with exponential backoff for collaborator calls.

Every call that leaves the process (parser, embedding model, vector store,
LLM) goes through :func:`collaborator_retry` so transient transport errors
are retried a bounded number of times before surfacing.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from grounded_rag.config import settings

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "Retrying %s (attempt %d/%d) after error: %s",
        getattr(state.fn, "__qualname__", state.fn),
        state.attempt_number,
        settings.retry_attempts,
        exc,
    )


def collaborator_retry(
    *exception_types: type[BaseException],
) -> Callable[[F], F]:
    """Return a ``tenacity`` decorator configured from :data:`settings`.

    Parameters
    ----------
    exception_types:
        Exception classes that trigger a retry.  Defaults to ``Exception``.

    The policy is read at decoration time, so tests can shrink waits by
    patching settings before importing the decorated module, or by calling
    ``fn.retry_with(...)``.
    """
    types = exception_types or (Exception,)
    return retry(  # type: ignore[return-value]
        reraise=True,
        stop=stop_after_attempt(max(1, settings.retry_attempts)),
        wait=wait_exponential(
            multiplier=settings.retry_min_wait,
            min=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        retry=retry_if_exception_type(types),
        before_sleep=_log_retry,
    )
