"""Storage publishers — persist generated media and return a public URL.

Two backends:
  - ``R2StoragePublisher``: Cloudflare R2 through its S3-compatible API (boto3)
  - ``LocalMediaPublisher``: files under MEDIA_VOLUME, served at /media
"""

from __future__ import annotations

import asyncio
import logging
import os
import secrets
import string
import time
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings
from app.services.exceptions import ConfigurationError, PublishError

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=31536000"

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
}

_ALPHABET = string.ascii_lowercase + string.digits


def extension_for(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type.split(";", 1)[0].strip().lower(), "bin")


def generate_object_name(mime_type: str) -> str:
    """``{image_|video_}{epoch_ms}_{random8}.{ext}``; no prefix for other kinds."""
    major = mime_type.split("/", 1)[0].lower()
    prefix = f"{major}_" if major in ("image", "video") else ""
    random_id = "".join(secrets.choice(_ALPHABET) for _ in range(8))
    return f"{prefix}{int(time.time() * 1000)}_{random_id}.{extension_for(mime_type)}"


class StoragePublisher(Protocol):
    def ensure_configured(self) -> None: ...

    async def publish(self, data: bytes, mime_type: str, folder: str) -> str: ...


# ---------------------------------------------------------------------------
# Cloudflare R2
# ---------------------------------------------------------------------------

class R2StoragePublisher:
    """Upload to an R2 bucket; URLs use the public domain when configured."""

    def __init__(self, client: Any | None, bucket: str, public_url: str = "") -> None:
        self._client = client
        self._bucket = bucket
        self._public_url = public_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "R2StoragePublisher":
        if not (
            settings.CLOUDFLARE_R2_ACCOUNT_ID
            and settings.CLOUDFLARE_R2_ACCESS_KEY_ID
            and settings.CLOUDFLARE_R2_SECRET_ACCESS_KEY
        ):
            logger.warning("Cloudflare R2 credentials are not configured")
            return cls(None, settings.CLOUDFLARE_R2_BUCKET_NAME, settings.CLOUDFLARE_R2_PUBLIC_URL)
        client = boto3.client(
            "s3",
            endpoint_url=f"https://{settings.CLOUDFLARE_R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
            aws_access_key_id=settings.CLOUDFLARE_R2_ACCESS_KEY_ID,
            aws_secret_access_key=settings.CLOUDFLARE_R2_SECRET_ACCESS_KEY,
            region_name="auto",
        )
        return cls(client, settings.CLOUDFLARE_R2_BUCKET_NAME, settings.CLOUDFLARE_R2_PUBLIC_URL)

    def ensure_configured(self) -> None:
        if self._client is None:
            raise ConfigurationError("Cloudflare R2 credentials are not configured")
        if not self._bucket:
            raise ConfigurationError("CLOUDFLARE_R2_BUCKET_NAME is not set")

    def public_url_for(self, key: str) -> str:
        if self._public_url:
            return f"{self._public_url}/{key}"
        return f"https://{self._bucket}.r2.cloudflarestorage.com/{key}"

    async def publish(self, data: bytes, mime_type: str, folder: str) -> str:
        key = f"{folder}/{generate_object_name(mime_type)}"
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self._bucket,
                Key=key,
                Body=data,
                ContentType=mime_type,
                CacheControl=CACHE_CONTROL,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("R2 upload failed for %s: %s", key, e)
            raise PublishError(f"Failed to upload to R2: {e}") from e
        logger.info("Uploaded %d bytes to r2://%s/%s", len(data), self._bucket, key)
        return self.public_url_for(key)


# ---------------------------------------------------------------------------
# Local media volume
# ---------------------------------------------------------------------------

class LocalMediaPublisher:
    """Write under the media volume; development and single-host deployments."""

    def __init__(self, media_volume: str, base_url: str) -> None:
        self._media_volume = media_volume
        self._base_url = base_url.rstrip("/")

    def ensure_configured(self) -> None:
        return None

    def _write(self, path: str, data: bytes) -> None:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)

    async def publish(self, data: bytes, mime_type: str, folder: str) -> str:
        name = generate_object_name(mime_type)
        path = os.path.join(self._media_volume, *folder.split("/"), name)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            logger.error("Local media write failed for %s: %s", path, e)
            raise PublishError(f"Failed to write media file: {e}") from e
        logger.info("Saved %d bytes to %s", len(data), path)
        return f"{self._base_url}/{folder}/{name}"


def build_publisher(settings: Settings) -> StoragePublisher:
    """Select the storage backend from STORAGE_BACKEND."""
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "local":
        return LocalMediaPublisher(settings.MEDIA_VOLUME, settings.MEDIA_BASE_URL)
    if backend == "r2":
        return R2StoragePublisher.from_settings(settings)
    raise ConfigurationError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
