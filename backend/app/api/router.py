from __future__ import annotations
"""Master API router — mounts all sub-routers."""

from fastapi import APIRouter

from app.api.jobs import router as jobs_router
from app.api.models import router as models_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(jobs_router, prefix="/ai/jobs", tags=["Generation Jobs"])
api_router.include_router(models_router, prefix="/models", tags=["Models"])
