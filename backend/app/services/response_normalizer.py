"""Provider response normalization.

A ``generateContent`` response delivers generated media either inline
(base64 bytes) or as a file handle that needs a follow-up fetch. The
result is a tagged variant so a response with neither is a named outcome.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InlineMedia:
    """Media bytes ready for publishing (or for a provider request part)."""
    data: bytes
    mime_type: str

    def to_part(self) -> dict[str, Any]:
        return {
            "inlineData": {
                "mimeType": self.mime_type,
                "data": base64.b64encode(self.data).decode("ascii"),
            }
        }


@dataclass(frozen=True)
class RemoteHandle:
    """Media stored provider-side; requires an authenticated GET."""
    uri: str
    mime_type: str | None = None


@dataclass(frozen=True)
class NoContent:
    """Response carried no usable media part."""
    reason: str = "No media content returned"


ExtractedMedia = Union[InlineMedia, RemoteHandle, NoContent]


def _first(mapping: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in mapping and mapping[key] is not None:
            return mapping[key]
    return None


def _response_parts(response: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = response.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return []
    content = candidates[0].get("content") or {}
    parts = content.get("parts") or []
    return [p for p in parts if isinstance(p, dict)]


def _inline_of_kind(part: dict[str, Any], media_kind: str) -> InlineMedia | None:
    inline = _first(part, "inlineData", "inline_data")
    if not isinstance(inline, dict):
        return None
    mime_type = str(_first(inline, "mimeType", "mime_type") or "")
    if mime_type.split("/", 1)[0] != media_kind:
        return None
    b64_str = inline.get("data") or ""
    try:
        data = base64.b64decode(b64_str, validate=False)
    except (binascii.Error, ValueError):
        logger.warning("Skipping inline %s part with undecodable data", mime_type)
        return None
    if not data:
        return None
    return InlineMedia(data=data, mime_type=mime_type)


def _remote_handle(part: dict[str, Any]) -> RemoteHandle | None:
    file_data = _first(part, "fileData", "file_data")
    if not isinstance(file_data, dict):
        return None
    uri = _first(file_data, "fileUri", "file_uri", "uri")
    if not isinstance(uri, str) or not uri:
        return None
    mime_type = _first(file_data, "mimeType", "mime_type")
    return RemoteHandle(uri=uri, mime_type=mime_type)


def extract_media(response: dict[str, Any], media_kind: str) -> ExtractedMedia:
    """Classify the first media-bearing part of the first candidate.

    Parts are scanned once, in order. An inline part counts only when its
    MIME major type equals ``media_kind`` ("image" / "video").
    """
    parts = _response_parts(response)
    for part in parts:
        inline = _inline_of_kind(part, media_kind)
        if inline is not None:
            return inline
        handle = _remote_handle(part)
        if handle is not None:
            return handle

    finish_reason = None
    candidates = response.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        finish_reason = candidates[0].get("finishReason")
    logger.warning(
        "Provider returned no %s content: parts=%d finish_reason=%s",
        media_kind, len(parts), finish_reason,
    )
    if finish_reason:
        return NoContent(reason=f"No {media_kind} content returned (finish_reason={finish_reason})")
    return NoContent(reason=f"No {media_kind} content returned")
