"""HTTP client for the document-to-markdown (marker) parser service."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from grounded_rag.config import settings
from grounded_rag.retry import collaborator_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseResult:
    """Parser response: paginated markdown and a success flag."""

    output: str
    success: bool


class ParserClient:
    """Send raw file bytes to the parser and return paginated markdown.

    The service answers ``{"output": "<markdown>", "success": true}``;
    page boundaries are marked with ``{N}`` followed by 48 hyphens.
    Transport errors are retried and then reported as
    ``ParseResult(success=False)`` rather than raised.

    Parameters
    ----------
    url:
        Upload endpoint of the parser service.
    timeout:
        Per-request timeout in seconds.  OCR of long documents is slow.
    session:
        Optional :class:`requests.Session` (injected in tests).
    """

    def __init__(
        self,
        url: str = settings.parser_url,
        *,
        timeout: float = settings.parser_timeout_seconds,
        session: requests.Session | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def parse(
        self,
        content: bytes,
        filename: str,
        *,
        force_ocr: bool = False,
        mime_type: str = "application/octet-stream",
    ) -> ParseResult:
        """Parse *content* and return the markdown output."""
        logger.info("Parsing %s (%d bytes, force_ocr=%s)", filename, len(content), force_ocr)
        try:
            payload = self._post(content, filename, force_ocr, mime_type)
        except (requests.RequestException, ValueError) as exc:
            logger.error("Parser request for %s failed: %s", filename, exc)
            return ParseResult(output="", success=False)

        if not isinstance(payload, dict):
            logger.error("Parser returned unexpected payload type %s", type(payload).__name__)
            return ParseResult(output="", success=False)

        output = payload.get("output") or ""
        success = bool(payload.get("success")) and isinstance(output, str)
        if not success:
            logger.warning("Parser reported failure for %s: %s", filename, payload.get("error", ""))
        return ParseResult(output=output if isinstance(output, str) else "", success=success)

    @collaborator_retry(requests.RequestException)
    def _post(self, content: bytes, filename: str, force_ocr: bool, mime_type: str) -> object:
        response = self._session.post(
            self.url,
            data={
                "force_ocr": "true" if force_ocr else "false",
                "paginate_output": "true",
                "output_format": "markdown",
            },
            files={"file": (filename, content, mime_type)},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()
