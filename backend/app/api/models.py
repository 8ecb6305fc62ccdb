"""Model listing API — supported generation models and their media kind."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException

from app.services.model_registry import MEDIA_IMAGE, MEDIA_VIDEO, MODEL_REGISTRY

router = APIRouter()


@router.get("")
async def list_models(media_kind: str | None = None) -> dict[str, Any]:
    """List all supported models, optionally filtered by media kind."""
    if media_kind and media_kind not in (MEDIA_IMAGE, MEDIA_VIDEO):
        raise HTTPException(status_code=400, detail=f"Unknown media kind: {media_kind}")
    models = MODEL_REGISTRY.to_dict_list(media_kind)
    return {"models": models, "total": len(models)}


@router.get("/{model_id}")
async def get_model(model_id: str) -> dict[str, Any]:
    """Capability of one model; unregistered ids report the inferred kind."""
    cap = MODEL_REGISTRY.resolve(model_id)
    return {
        "manufacturer": cap.manufacturer,
        "model": cap.model,
        "media_kind": cap.media_kind,
        "image_input": cap.image_input,
        "registered": MODEL_REGISTRY.get_capability(model_id) is not None,
    }
