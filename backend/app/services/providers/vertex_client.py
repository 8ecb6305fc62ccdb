"""Vertex AI generateContent provider (Gemini image, Veo video).

One request per attempt; HTTP 429 is retried with fixed escalating waits,
every other non-2xx fails immediately with the upstream status.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from urllib.parse import quote

import httpx

from app.services.credentials import CredentialProvider
from app.services.exceptions import (
    ConfigurationError,
    MaterializationError,
    ProviderError,
    ThrottledError,
)
from app.services.model_registry import (
    DEFAULT_MIME_TYPES,
    MEDIA_IMAGE,
    MEDIA_VIDEO,
    MODEL_REGISTRY,
    ModelRegistry,
)
from app.services.response_normalizer import InlineMedia, RemoteHandle

logger = logging.getLogger(__name__)

DEFAULT_RETRY_WAITS: tuple[float, ...] = (2.0, 5.0)

_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_HARASSMENT",
)


class VertexProviderClient:
    """Authenticated Vertex AI client for media generation."""

    def __init__(
        self,
        *,
        project: str,
        credentials: CredentialProvider | None,
        location: str = "us-east5",
        video_location: str = "us-central1",
        registry: ModelRegistry = MODEL_REGISTRY,
        retry_waits: tuple[float, ...] = DEFAULT_RETRY_WAITS,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 300.0,
    ) -> None:
        self._project = project
        self._credentials = credentials
        self._location = location
        self._video_location = video_location
        self._registry = registry
        self._retry_waits = tuple(retry_waits)
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    def ensure_configured(self) -> None:
        """Raise ConfigurationError when project identity or credentials are missing."""
        if not self._project or self._credentials is None:
            raise ConfigurationError("Vertex AI not configured")

    def endpoint_for(self, model: str) -> str:
        cap = self._registry.resolve(model)
        location = self._video_location if cap.media_kind == MEDIA_VIDEO else self._location
        host = (
            "aiplatform.googleapis.com"
            if location == "global"
            else f"{location}-aiplatform.googleapis.com"
        )
        return (
            f"https://{host}/v1/projects/{self._project}/locations/{location}"
            f"/publishers/google/models/{model}:generateContent"
        )

    def build_request(
        self, prompt: str, model: str, input_media: InlineMedia | None = None
    ) -> dict[str, Any]:
        """Build the request body: optional inline media part, then the text part."""
        parts: list[dict[str, Any]] = []
        if input_media is not None:
            parts.append(input_media.to_part())
        parts.append({"text": prompt})

        generation_config: dict[str, Any] = {
            "maxOutputTokens": 8192,
            "temperature": 0.4,
            "topP": 0.95,
        }
        if self._registry.resolve(model).media_kind == MEDIA_IMAGE:
            generation_config["responseModalities"] = ["TEXT", "IMAGE"]

        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": generation_config,
            "safetySettings": [
                {"category": category, "threshold": "BLOCK_NONE"}
                for category in _SAFETY_CATEGORIES
            ],
        }

    async def generate(
        self, prompt: str, model: str, input_media: InlineMedia | None = None
    ) -> dict[str, Any]:
        """Call generateContent and return the decoded JSON response.

        Raises:
            ThrottledError: still 429 after every retry.
            ProviderError: any other non-2xx status, or transport failure.
        """
        self.ensure_configured()
        token = await self._credentials.get_token()
        url = self.endpoint_for(model)
        body = self.build_request(prompt, model, input_media)
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

        total_attempts = len(self._retry_waits) + 1
        attempt = 1
        while True:
            logger.info(
                "Vertex call model=%s attempt %d/%d (image_input=%s)",
                model, attempt, total_attempts, input_media is not None,
            )
            try:
                response = await self._client.post(url, headers=headers, json=body)
            except httpx.HTTPError as e:
                logger.error("Vertex call transport error model=%s: %s", model, e)
                raise ProviderError(f"Provider unreachable: {e}", "provider_unreachable") from e

            if response.status_code != 429 or attempt == total_attempts:
                break
            wait = self._retry_waits[attempt - 1]
            logger.warning(
                "Vertex rate limited (429) model=%s, retrying in %.1fs", model, wait,
            )
            await asyncio.sleep(wait)
            attempt += 1

        if response.status_code == 429:
            logger.error("Vertex still rate limited after %d attempts model=%s", total_attempts, model)
            raise ThrottledError(
                f"Vertex error: 429 rate limited after {total_attempts} attempts"
            )
        if not response.is_success:
            text = response.text[:2000]
            logger.error(
                "Vertex error model=%s status=%d body=%s", model, response.status_code, text[:300],
            )
            raise ProviderError(
                text or f"Vertex error: {response.status_code} {response.reason_phrase}",
                str(response.status_code),
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Vertex returned invalid JSON: {e}", "invalid_response") from e

    async def fetch_remote(self, handle: RemoteHandle, media_kind: str) -> InlineMedia:
        """Materialize a remote output handle with one authenticated GET."""
        self.ensure_configured()
        token = await self._credentials.get_token()
        url = _download_url(handle.uri)
        logger.info("Fetching generated file %s", handle.uri)
        try:
            response = await self._client.get(
                url, headers={"Authorization": f"Bearer {token}"}, follow_redirects=True,
            )
        except httpx.HTTPError as e:
            raise MaterializationError(f"Fetch generated uri failed: {e}") from e

        if not response.is_success:
            raise MaterializationError(
                response.text[:2000]
                or f"Fetch generated uri failed: {response.status_code} {response.reason_phrase}",
                str(response.status_code),
            )
        return InlineMedia(
            data=response.content,
            mime_type=_pick_mime(response, handle, DEFAULT_MIME_TYPES[media_kind]),
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _download_url(uri: str) -> str:
    """Translate ``gs://bucket/object`` into a GCS JSON API media download URL."""
    if not uri.startswith("gs://"):
        return uri
    bucket, _, obj = uri[len("gs://"):].partition("/")
    return (
        f"https://storage.googleapis.com/storage/v1/b/{bucket}"
        f"/o/{quote(obj, safe='')}?alt=media"
    )


def _pick_mime(response: httpx.Response, handle: RemoteHandle, default_mime: str) -> str:
    content_type = response.headers.get("content-type", "").split(";", 1)[0].strip()
    if content_type and content_type != "application/octet-stream":
        return content_type
    return handle.mime_type or default_mime
