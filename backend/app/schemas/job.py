from __future__ import annotations
"""Pydantic v2 schemas for generation jobs."""

import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_DATA_URL = re.compile(r"^data:(?P<mime>[^;,]+)?(?:;[^,]*)?,(?P<data>.*)$", re.DOTALL)
_FOLDER = re.compile(r"^[A-Za-z0-9_\-]+(?:/[A-Za-z0-9_\-]+)*$")


def split_data_url(value: str) -> tuple[str | None, str]:
    """Split a ``data:<mime>;base64,<data>`` URL into (mime, data).

    Plain base64 strings come back as (None, value).
    """
    match = _DATA_URL.match(value)
    if not match:
        return None, value
    return match.group("mime"), match.group("data")


def _check_folder(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip().strip("/")
    if not value:
        return None
    if not _FOLDER.match(value):
        raise ValueError("folder must be slash-separated [A-Za-z0-9_-] segments")
    return value


class JobRequest(BaseModel):
    """Immutable job input as persisted under ``payload["request"]``."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    model: str
    image_url: str | None = None
    image_base64: str | None = None
    image_mime_type: str | None = None
    folder: str | None = None

    @field_validator("folder")
    @classmethod
    def _validate_folder(cls, v: str | None) -> str | None:
        return _check_folder(v)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "JobRequest":
        return cls.model_validate(payload)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JobSubmitRequest(BaseModel):
    """Submission body. Accepts the legacy field names as aliases."""

    model_config = ConfigDict(populate_by_name=True)

    prompt: str = Field(min_length=1)
    model: str | None = None
    input_image_ref: str | None = Field(
        default=None,
        validation_alias=AliasChoices("inputImageRef", "imageUrl", "input_image_ref"),
    )
    input_image_inline: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "inputImageInline", "imageDataBase64", "input_image_inline"
        ),
    )
    folder_hint: str | None = Field(
        default=None,
        validation_alias=AliasChoices("folderHint", "folder", "folder_hint"),
    )
    owner_ref: str | None = Field(
        default=None,
        max_length=64,
        validation_alias=AliasChoices("ownerRef", "canvasId", "owner_ref"),
    )

    @field_validator("folder_hint")
    @classmethod
    def _validate_folder(cls, v: str | None) -> str | None:
        return _check_folder(v)

    def to_job_request(self, default_model: str) -> JobRequest:
        mime, data = (None, None)
        if self.input_image_inline:
            mime, data = split_data_url(self.input_image_inline)
        return JobRequest(
            prompt=self.prompt,
            model=self.model or default_model,
            image_url=self.input_image_ref or None,
            image_base64=data or None,
            image_mime_type=mime,
            folder=self.folder_hint,
        )


class JobSubmitResponse(_CamelModel):
    task_id: str


class JobPollResponse(_CamelModel):
    """Poll result — same shape whether the call did work or read cached state."""

    task_id: str
    status: str
    status_code: str | None = None
    result_url: str | None = None
    error: str | None = None
