"""Response middleware: block outgoing JSON that contains a personnummer.

This is a last-resort safety net.  No lookup response carries the
identity number it was asked about; if any pattern from
app.core.logging.PII_PATTERNS fires on a JSON response body, the
response is replaced with HTTP 500 and the incident is logged.

The example identifiers published in 400 responses
(``app.personnummer.VALID_EXAMPLES``) are removed before scanning.

Safety note: the matched text span is never logged — only the pattern
index is recorded to avoid leaking identifiers into log output.
"""
from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.core.logging import PII_PATTERNS
from app.personnummer import VALID_EXAMPLES

logger = logging.getLogger(__name__)

# Headers that must not be copied verbatim because their values become
# invalid once we re-buffer the body into a new Response.
_SKIP_HEADERS = frozenset({"content-length", "transfer-encoding"})


def _strip_published_examples(text: str) -> str:
    for example in sorted(VALID_EXAMPLES, key=len, reverse=True):
        text = text.replace(example, "")
    return text


class PIIFilterMiddleware(BaseHTTPMiddleware):
    """Starlette middleware that blocks JSON responses containing identity numbers.

    Only responses with Content-Type: application/json are scanned.
    Other content types are passed through unchanged.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        from app.core.settings import get_settings
        if not get_settings().pii_masking_enabled:
            return response

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            return response

        chunks: list[bytes] = []
        async for chunk in response.body_iterator:
            if isinstance(chunk, str):
                chunk = chunk.encode("utf-8")
            chunks.append(chunk)
        body = b"".join(chunks)
        text = _strip_published_examples(body.decode("utf-8", errors="replace"))

        for idx, pattern in enumerate(PII_PATTERNS):
            if pattern.search(text):
                # SAFETY: log the pattern index only — never the matched text
                logger.error(
                    "PIIFilterMiddleware: identity number detected in response body "
                    "(pattern_index=%d, path=%s). Response blocked.",
                    idx,
                    request.url.path,
                )
                return JSONResponse(
                    status_code=500,
                    content={"error": "Internal error: response blocked by PII filter."},
                )

        safe_headers = {
            k: v for k, v in response.headers.items()
            if k.lower() not in _SKIP_HEADERS
        }
        return Response(
            content=body,
            status_code=response.status_code,
            headers=safe_headers,
            media_type=response.media_type,
        )
