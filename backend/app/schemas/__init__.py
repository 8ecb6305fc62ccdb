"""Pydantic v2 schemas package."""

from app.schemas.job import (
    JobPollResponse,
    JobRequest,
    JobSubmitRequest,
    JobSubmitResponse,
)

__all__ = [
    "JobRequest",
    "JobSubmitRequest",
    "JobSubmitResponse",
    "JobPollResponse",
]
