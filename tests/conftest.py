"""Pytest configuration helpers.

Puts ``backend/`` on ``sys.path`` so tests can import the ``app`` package
regardless of how pytest is invoked, and provides a throwaway SQLite task
store plus in-memory stand-ins for the network-facing collaborators.
"""
from __future__ import annotations

import asyncio
import base64
import os
import sys
from typing import Any

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from app.database import Base  # noqa: E402
from app.services.exceptions import PublishError  # noqa: E402
from app.services.response_normalizer import InlineMedia, RemoteHandle  # noqa: E402
from app.services.task_store import TaskStore  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def inline_response(data: bytes = PNG_BYTES, mime_type: str = "image/png") -> dict[str, Any]:
    """A generateContent response carrying one inline media part."""
    return {
        "candidates": [
            {
                "content": {
                    "role": "model",
                    "parts": [
                        {"text": "Here you go"},
                        {"inlineData": {
                            "mimeType": mime_type,
                            "data": base64.b64encode(data).decode("ascii"),
                        }},
                    ],
                },
                "finishReason": "STOP",
            }
        ]
    }


def file_response(uri: str, mime_type: str = "video/mp4") -> dict[str, Any]:
    return {
        "candidates": [
            {"content": {"parts": [{"fileData": {"fileUri": uri, "mimeType": mime_type}}]}}
        ]
    }


class StubProvider:
    """In-memory provider; counts calls and can hold them open."""

    def __init__(
        self,
        response: dict[str, Any] | None = None,
        *,
        error: Exception | None = None,
        delay: float = 0.0,
        remote: InlineMedia | Exception | None = None,
    ) -> None:
        self.response = response if response is not None else inline_response()
        self.error = error
        self.delay = delay
        self.remote = remote
        self.configured = True
        self.calls: list[tuple[str, str, InlineMedia | None]] = []
        self.fetches: list[RemoteHandle] = []
        self.closed = False
        self.active = 0
        self.max_active = 0

    def ensure_configured(self) -> None:
        from app.services.exceptions import ConfigurationError

        if not self.configured:
            raise ConfigurationError("Vertex AI not configured")

    async def generate(self, prompt, model, input_media=None):
        self.calls.append((prompt, model, input_media))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        if self.error is not None:
            raise self.error
        return self.response

    async def fetch_remote(self, handle, media_kind):
        self.fetches.append(handle)
        if isinstance(self.remote, Exception):
            raise self.remote
        return self.remote or InlineMedia(data=b"remote-bytes", mime_type="video/mp4")

    async def aclose(self) -> None:
        self.closed = True


class StubPublisher:
    """Records uploads and returns URLs on a fixed CDN domain."""

    domain = "https://cdn.example.com"

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[tuple[bytes, str, str]] = []

    def ensure_configured(self) -> None:
        return None

    async def publish(self, data: bytes, mime_type: str, folder: str) -> str:
        if self.fail:
            raise PublishError("Failed to upload to R2: boom")
        self.published.append((data, mime_type, folder))
        return f"{self.domain}/{folder}/object_{len(self.published)}"


class StubFetcher:
    def __init__(self, media: InlineMedia | None = None, error: Exception | None = None) -> None:
        self.media = media or InlineMedia(data=b"input-bytes", mime_type="image/jpeg")
        self.error = error
        self.refs: list[str] = []
        self.closed = False

    async def fetch_as_inline(self, ref: str) -> InlineMedia:
        self.refs.append(ref)
        if self.error is not None:
            raise self.error
        return self.media

    async def aclose(self) -> None:
        self.closed = True


class FakeS3Client:
    """Minimal boto3 S3 client stand-in (put_object only)."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.objects: dict[str, dict[str, Any]] = {}

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.objects[kwargs["Key"]] = kwargs
        return {"ETag": '"etag"'}


@pytest.fixture
async def session_factory(tmp_path):
    """Async session factory on a fresh SQLite file database."""
    import app.models  # noqa: F401  registers models with Base.metadata

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tasks.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> TaskStore:
    return TaskStore(session_factory)


@pytest.fixture
async def broken_session_factory(tmp_path):
    """Session factory whose database cannot be opened (parent dir is missing)."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'tasks.db'}")
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()
