from __future__ import annotations
"""Content fetcher — turns a remote input image reference into inline bytes."""

import base64
import binascii
import logging

import httpx

from app.schemas.job import split_data_url
from app.services.exceptions import InputResolutionError
from app.services.response_normalizer import InlineMedia

logger = logging.getLogger(__name__)

DEFAULT_INPUT_MIME = "image/png"


class ContentFetcher:
    """Fetch input images over HTTP (or decode ``data:`` URIs locally)."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    async def fetch_as_inline(self, ref: str) -> InlineMedia:
        """Retrieve ``ref`` and pair the bytes with their MIME type."""
        if ref.startswith("data:"):
            return self._decode_data_url(ref)

        try:
            response = await self._client.get(ref)
        except httpx.HTTPError as e:
            logger.warning("Input image fetch failed for %s: %s", ref[:120], e)
            raise InputResolutionError(f"Input image unreachable: {e}") from e

        if not response.is_success:
            logger.warning("Input image fetch returned %d for %s", response.status_code, ref[:120])
            raise InputResolutionError(
                f"Input image fetch failed: HTTP {response.status_code}"
            )

        content_type = response.headers.get("content-type", "")
        mime_type = content_type.split(";", 1)[0].strip() or DEFAULT_INPUT_MIME
        logger.info("Fetched input image (%d bytes, %s)", len(response.content), mime_type)
        return InlineMedia(data=response.content, mime_type=mime_type)

    @staticmethod
    def _decode_data_url(ref: str) -> InlineMedia:
        mime_type, b64_str = split_data_url(ref)
        try:
            data = base64.b64decode(b64_str)
        except (binascii.Error, ValueError) as e:
            raise InputResolutionError(f"Input data URI is not valid base64: {e}") from e
        return InlineMedia(data=data, mime_type=mime_type or DEFAULT_INPUT_MIME)

    async def aclose(self) -> None:
        await self._client.aclose()
