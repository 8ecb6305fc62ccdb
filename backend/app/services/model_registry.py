"""Declarative generation model capability registry.

Maps a model id to the kind of media it produces, which decides the
expected inline MIME type, the Vertex location and the default folder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


# Output media taxonomy
MEDIA_IMAGE = "image"
MEDIA_VIDEO = "video"

DEFAULT_FOLDERS = {
    MEDIA_IMAGE: "images",
    MEDIA_VIDEO: "videos",
}

DEFAULT_MIME_TYPES = {
    MEDIA_IMAGE: "image/png",
    MEDIA_VIDEO: "video/mp4",
}


@dataclass(frozen=True)
class ModelCapability:
    """Capability descriptor for a single generation model."""
    manufacturer: str
    model: str
    media_kind: str         # image, video
    image_input: bool = True

    @property
    def default_folder(self) -> str:
        return DEFAULT_FOLDERS[self.media_kind]

    @property
    def default_mime_type(self) -> str:
        return DEFAULT_MIME_TYPES[self.media_kind]


class ModelRegistry:
    """In-memory registry of all supported generation models."""

    def __init__(self) -> None:
        self._models: dict[str, ModelCapability] = {}

    def register(self, cap: ModelCapability) -> None:
        self._models[cap.model] = cap

    def get_capability(self, model: str) -> ModelCapability | None:
        return self._models.get(model)

    def resolve(self, model: str) -> ModelCapability:
        """Return the registered capability, or infer one from the model id.

        Unregistered ``veo*`` ids are video models; anything else is
        treated as an image model.
        """
        cap = self._models.get(model)
        if cap is not None:
            return cap
        kind = MEDIA_VIDEO if model.startswith("veo") else MEDIA_IMAGE
        logger.debug("Model %s not registered, inferred media kind=%s", model, kind)
        return ModelCapability("unknown", model, kind)

    def list_models(self, media_kind: str | None = None) -> list[ModelCapability]:
        if media_kind:
            return [cap for cap in self._models.values() if cap.media_kind == media_kind]
        return list(self._models.values())

    def to_dict_list(self, media_kind: str | None = None) -> list[dict[str, Any]]:
        return [
            {
                "manufacturer": cap.manufacturer,
                "model": cap.model,
                "media_kind": cap.media_kind,
                "image_input": cap.image_input,
            }
            for cap in self.list_models(media_kind)
        ]


# ---------------------------------------------------------------------------
# Build the global registry
# ---------------------------------------------------------------------------

MODEL_REGISTRY = ModelRegistry()

# Veo (video)
MODEL_REGISTRY.register(ModelCapability("google", "veo-2.0-generate-001", MEDIA_VIDEO))
MODEL_REGISTRY.register(ModelCapability("google", "veo-3.0-generate-001", MEDIA_VIDEO))
MODEL_REGISTRY.register(ModelCapability("google", "veo-3.0-fast-generate-001", MEDIA_VIDEO))

# Gemini (image)
MODEL_REGISTRY.register(ModelCapability("google", "gemini-2.5-flash-image", MEDIA_IMAGE))
MODEL_REGISTRY.register(ModelCapability("google", "gemini-2.5-flash-image-preview", MEDIA_IMAGE))
MODEL_REGISTRY.register(
    ModelCapability("google", "imagen-3.0-generate-002", MEDIA_IMAGE, image_input=False)
)
