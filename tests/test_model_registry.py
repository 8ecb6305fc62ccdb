from app.services.model_registry import (
    MEDIA_IMAGE,
    MEDIA_VIDEO,
    MODEL_REGISTRY,
    ModelCapability,
    ModelRegistry,
)


def test_registered_models_resolve_to_their_capability() -> None:
    cap = MODEL_REGISTRY.resolve("veo-3.0-generate-001")

    assert cap.media_kind == MEDIA_VIDEO
    assert cap.default_folder == "videos"
    assert cap.default_mime_type == "video/mp4"


def test_unknown_models_are_inferred_from_prefix() -> None:
    assert MODEL_REGISTRY.resolve("veo-4.0-experimental").media_kind == MEDIA_VIDEO
    cap = MODEL_REGISTRY.resolve("m1")
    assert cap.media_kind == MEDIA_IMAGE
    assert cap.manufacturer == "unknown"
    assert cap.default_folder == "images"


def test_list_models_filters_by_kind() -> None:
    registry = ModelRegistry()
    registry.register(ModelCapability("google", "img", MEDIA_IMAGE))
    registry.register(ModelCapability("google", "vid", MEDIA_VIDEO))

    assert [c.model for c in registry.list_models(MEDIA_VIDEO)] == ["vid"]
    assert len(registry.list_models()) == 2
    assert registry.to_dict_list(MEDIA_IMAGE) == [
        {"manufacturer": "google", "model": "img", "media_kind": "image", "image_input": True},
    ]
