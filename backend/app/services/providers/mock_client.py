"""Mock provider for local development (``USE_MOCK_API=true``).

Image models get a rendered placeholder PNG inline; video models get a
``fileData`` handle pointing at a public sample clip.
"""

from __future__ import annotations

import base64
import io
import logging
from typing import Any

import httpx
from PIL import Image, ImageDraw, ImageFont

from app.services.exceptions import MaterializationError
from app.services.model_registry import (
    DEFAULT_MIME_TYPES,
    MEDIA_VIDEO,
    MODEL_REGISTRY,
    ModelRegistry,
)
from app.services.response_normalizer import InlineMedia, RemoteHandle

logger = logging.getLogger(__name__)


def render_placeholder(prompt: str, model: str) -> bytes:
    """Generate a mock placeholder image (solid color PNG with text)."""
    img = Image.new("RGB", (1024, 1024), color=(35, 35, 60))
    draw = ImageDraw.Draw(img)
    font = ImageFont.load_default()

    draw.text((40, 40), f"Model: {model}", fill=(255, 255, 255), font=font)
    wrapped = prompt[:100] + "..." if len(prompt) > 100 else prompt
    draw.text((40, 80), wrapped, fill=(180, 180, 220), font=font)
    draw.text((40, 970), "[MOCK IMAGE - NanoCanvas]", fill=(100, 100, 140), font=font)

    buf = io.BytesIO()
    img.save(buf, "PNG")
    return buf.getvalue()


class MockProviderClient:
    """Drop-in replacement for VertexProviderClient that needs no credentials."""

    def __init__(
        self,
        *,
        video_url: str,
        registry: ModelRegistry = MODEL_REGISTRY,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._video_url = video_url
        self._registry = registry
        self._client = http_client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    def ensure_configured(self) -> None:
        return None

    async def generate(
        self, prompt: str, model: str, input_media: InlineMedia | None = None
    ) -> dict[str, Any]:
        cap = self._registry.resolve(model)
        logger.info("[MOCK] generate model=%s kind=%s", model, cap.media_kind)
        if cap.media_kind == MEDIA_VIDEO:
            part = {"fileData": {"fileUri": self._video_url, "mimeType": "video/mp4"}}
        else:
            png = render_placeholder(prompt, model)
            part = {
                "inlineData": {
                    "mimeType": "image/png",
                    "data": base64.b64encode(png).decode("ascii"),
                }
            }
        return {
            "candidates": [
                {"content": {"role": "model", "parts": [part]}, "finishReason": "STOP"}
            ]
        }

    async def fetch_remote(self, handle: RemoteHandle, media_kind: str) -> InlineMedia:
        try:
            response = await self._client.get(handle.uri)
        except httpx.HTTPError as e:
            raise MaterializationError(f"Fetch generated uri failed: {e}") from e
        if not response.is_success:
            raise MaterializationError(
                f"Fetch generated uri failed: {response.status_code}",
                str(response.status_code),
            )
        return InlineMedia(
            data=response.content,
            mime_type=handle.mime_type or DEFAULT_MIME_TYPES[media_kind],
        )

    async def aclose(self) -> None:
        await self._client.aclose()
