from __future__ import annotations
"""Generation job API: submit, poll (which performs the work), list by canvas."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from app.config import get_settings
from app.schemas.job import JobPollResponse, JobSubmitRequest, JobSubmitResponse
from app.services.exceptions import (
    ConfigurationError,
    TaskNotFoundError,
    TaskStoreUnavailableError,
)
from app.services.job_orchestrator import JobOrchestrator, JobView, get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(view: JobView) -> JobPollResponse:
    return JobPollResponse(
        task_id=view.task_id,
        status=view.status,
        status_code=view.status_code,
        result_url=view.result_url,
        error=view.error,
    )


@router.post("", response_model=JobSubmitResponse, status_code=201)
@router.post("/", response_model=JobSubmitResponse, status_code=201, include_in_schema=False)
async def submit_job(
    data: JobSubmitRequest,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """Create a pending job. Generation happens on the first poll."""
    request = data.to_job_request(get_settings().DEFAULT_VIDEO_MODEL)
    try:
        task_id = await orchestrator.submit(request, data.owner_ref)
    except TaskStoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=f"Task store unavailable: {e}")
    return JobSubmitResponse(task_id=task_id)


@router.get("", response_model=list[JobPollResponse], response_model_exclude_none=True)
@router.get(
    "/", response_model=list[JobPollResponse], response_model_exclude_none=True,
    include_in_schema=False,
)
async def list_jobs(
    canvas_id: str = Query(alias="canvasId", max_length=64),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """List a canvas's jobs, newest first. Never triggers generation."""
    try:
        views = await orchestrator.list_for_owner(canvas_id, limit=limit, offset=offset)
    except TaskStoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=f"Task store unavailable: {e}")
    return [_to_response(v) for v in views]


@router.get(
    "/{task_id}", response_model=JobPollResponse, response_model_exclude_none=True,
)
async def poll_job(
    task_id: str,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
):
    """Poll a job. The first poll of a pending job runs the generation."""
    try:
        view = await orchestrator.poll(task_id)
    except TaskNotFoundError:
        raise HTTPException(status_code=404, detail="Task not found")
    except ConfigurationError as e:
        logger.error("Poll %s rejected: %s", task_id[:8], e)
        raise HTTPException(status_code=503, detail=str(e))
    except TaskStoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=f"Task store unavailable: {e}")
    return _to_response(view)
