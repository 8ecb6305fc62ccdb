from __future__ import annotations
"""NanoCanvas — FastAPI application entry point.

Mounts the API routes, configures CORS, serves locally published media
and creates tables on startup when AUTO_CREATE_TABLES is on.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from app.api.router import api_router
from app.config import get_settings
from app.database import close_db, init_db
from app.services.job_orchestrator import get_orchestrator

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB on startup, close clients and DB on shutdown."""
    logger.info("NanoCanvas starting up...")
    logger.info("USE_MOCK_API: %s", settings.USE_MOCK_API)
    logger.info("Storage backend: %s", settings.STORAGE_BACKEND)

    if settings.AUTO_CREATE_TABLES:
        await init_db()
    else:
        logger.info("Skipping init_db (tables managed by Alembic)")

    yield

    if get_orchestrator.cache_info().currsize:
        await get_orchestrator().aclose()
    await close_db()
    logger.info("NanoCanvas shut down")


app = FastAPI(
    title="NanoCanvas API",
    description="Canvas media generation jobs: submit, poll, publish",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

# CORS: frontend dev server origins from CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount API routes
app.include_router(api_router)

# Mount media static files (local storage backend)
if settings.STORAGE_BACKEND.lower() == "local":
    os.makedirs(settings.MEDIA_VOLUME, exist_ok=True)
    app.mount("/media", StaticFiles(directory=settings.MEDIA_VOLUME), name="media")


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "NanoCanvas",
        "status": "running",
        "mock_mode": settings.USE_MOCK_API,
    }


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "storage": settings.STORAGE_BACKEND,
        "vertex_configured": bool(settings.GOOGLE_CLOUD_PROJECT),
        "mock_mode": settings.USE_MOCK_API,
    }
