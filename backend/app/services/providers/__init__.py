"""Generation provider clients.

Each client takes a prompt, a model id and optional inline input media,
and returns the raw ``generateContent``-shaped response. Remote output
handles are materialized through the same client that produced them.
"""

from __future__ import annotations

from typing import Any, Protocol

from app.services.response_normalizer import InlineMedia, RemoteHandle


class ProviderClient(Protocol):
    def ensure_configured(self) -> None: ...

    async def generate(
        self, prompt: str, model: str, input_media: InlineMedia | None = None
    ) -> dict[str, Any]: ...

    async def fetch_remote(self, handle: RemoteHandle, media_kind: str) -> InlineMedia: ...

    async def aclose(self) -> None: ...
