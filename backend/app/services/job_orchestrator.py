"""Job orchestrator: submission plus work-on-read polling.

There is no background worker. The first poll of a pending task claims it
with a conditional UPDATE and runs the whole pipeline inline:

    resolve input -> provider call -> normalize -> (fetch handle) -> publish

Every later poll returns the stored terminal result without side effects.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from app.config import Settings, get_settings
from app.database import get_session_factory
from app.models.canvas_task import CanvasTask, TaskStatus
from app.schemas.job import JobRequest
from app.services.content_fetcher import ContentFetcher
from app.services.credentials import credentials_from_settings
from app.services.exceptions import (
    InputResolutionError,
    NoContentError,
    PipelineError,
    TaskNotFoundError,
)
from app.services.model_registry import MODEL_REGISTRY, ModelCapability, ModelRegistry
from app.services.providers import ProviderClient
from app.services.providers.mock_client import MockProviderClient
from app.services.providers.vertex_client import VertexProviderClient
from app.services.response_normalizer import (
    InlineMedia,
    NoContent,
    RemoteHandle,
    extract_media,
)
from app.services.storage_publisher import StoragePublisher, build_publisher
from app.services.task_store import TaskStore

logger = logging.getLogger(__name__)

_ROUTING_DIRECTIVE = re.compile(r"model:\S+\s*")

# Default pipeline bound as a share of the claim lease
WORK_TIMEOUT_SHARE = 0.9


def strip_routing_directives(prompt: str) -> str:
    """Remove ``model:<id>`` tokens the canvas UI embeds in prompts."""
    return _ROUTING_DIRECTIVE.sub("", prompt).strip()


@dataclass(frozen=True)
class JobView:
    """What a poll reports about a task."""

    task_id: str
    status: str
    status_code: str | None = None
    result_url: str | None = None
    error: str | None = None

    @classmethod
    def from_task(cls, task: CanvasTask) -> "JobView":
        result = task.result
        return cls(
            task_id=task.task_id,
            status=task.status,
            status_code=task.status_code,
            result_url=result.get("url") if task.status == TaskStatus.SUCCEEDED.value else None,
            error=result.get("error") if task.status == TaskStatus.FAILED.value else None,
        )


class JobOrchestrator:
    """Coordinates the task store with the provider, fetcher and publisher."""

    def __init__(
        self,
        store: TaskStore,
        provider: ProviderClient,
        fetcher: ContentFetcher,
        publisher: StoragePublisher,
        *,
        registry: ModelRegistry = MODEL_REGISTRY,
        claim_lease_seconds: float = 900.0,
        work_timeout: float | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._fetcher = fetcher
        self._publisher = publisher
        self._registry = registry
        if work_timeout is None:
            work_timeout = claim_lease_seconds * WORK_TIMEOUT_SHARE
        if not 0 < work_timeout < claim_lease_seconds:
            raise ValueError(
                f"work_timeout ({work_timeout}s) must be positive and shorter than "
                f"the claim lease ({claim_lease_seconds}s)"
            )
        self._claim_lease_seconds = claim_lease_seconds
        self._work_timeout = work_timeout

    async def submit(self, request: JobRequest, owner_ref: str | None = None) -> str:
        """Persist a pending task and return its id. Performs no generation."""
        return await self._store.create(request, owner_ref)

    async def poll(self, task_id: str, timeout: float | None = None) -> JobView:
        """Report task status, running the pipeline if this call wins the claim.

        ``timeout`` bounds the pipeline and is capped at the work timeout, which
        is always shorter than the claim lease, so no two pollers run the same
        task at once. On timeout or cancellation after the claim, the lease is
        released and the task stays in_progress for a later poll.
        """
        task = await self._store.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.is_terminal:
            return JobView.from_task(task)

        self._provider.ensure_configured()
        self._publisher.ensure_configured()

        token = await self._store.claim(task_id, lease_seconds=self._claim_lease_seconds)
        if token is None:
            # Another poller holds the claim, or it already finished
            return await self._current_view(task_id)

        logger.info("Task %s claimed (model=%s)", task_id[:8], task.request.get("model"))
        limit = self._work_timeout if timeout is None else min(timeout, self._work_timeout)
        try:
            await asyncio.wait_for(self._execute(task_id, token, task.request), limit)
        except asyncio.TimeoutError:
            logger.warning("Task %s exceeded %.1fs, releasing claim", task_id[:8], limit)
            await asyncio.shield(self._store.release_claim(task_id, token))
            # the terminal write may have landed just before the deadline
            return await self._current_view(task_id)
        except asyncio.CancelledError:
            logger.warning("Task %s poll cancelled, releasing claim", task_id[:8])
            await asyncio.shield(self._store.release_claim(task_id, token))
            raise

        return await self._current_view(task_id)

    async def list_for_owner(
        self, owner_ref: str, *, limit: int = 50, offset: int = 0
    ) -> list[JobView]:
        """Read-only listing; never triggers work."""
        tasks = await self._store.list_by_owner(owner_ref, limit=limit, offset=offset)
        return [JobView.from_task(t) for t in tasks]

    async def aclose(self) -> None:
        await self._provider.aclose()
        await self._fetcher.aclose()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _current_view(self, task_id: str) -> JobView:
        task = await self._store.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return JobView.from_task(task)

    async def _execute(self, task_id: str, token: str, request_payload: dict[str, Any]) -> None:
        """Run the pipeline and write exactly one terminal state."""
        try:
            request = JobRequest.from_payload(request_payload)
            result = await self._run_pipeline(task_id, request)
        except PipelineError as e:
            logger.warning(
                "Task %s failed status_code=%s: %s", task_id[:8], e.status_code, e,
            )
            written = await self._store.mark_failed(
                task_id, token, request_payload, e.status_code, str(e),
            )
        except Exception as e:
            logger.exception("Task %s failed with unexpected error", task_id[:8])
            written = await self._store.mark_failed(
                task_id, token, request_payload, "internal_error",
                str(e) or e.__class__.__name__,
            )
        else:
            logger.info("Task %s succeeded: %s", task_id[:8], result["url"])
            written = await self._store.mark_succeeded(task_id, token, request_payload, result)

        if not written:
            logger.warning("Task %s lease lost before the result was written", task_id[:8])

    async def _run_pipeline(self, task_id: str, request: JobRequest) -> dict[str, Any]:
        cap = self._registry.resolve(request.model)
        input_media = await self._resolve_input(request)
        if input_media is not None and not cap.image_input:
            logger.info("Model %s takes no image input, sending text only", cap.model)
            input_media = None

        prompt = strip_routing_directives(request.prompt)
        response = await self._provider.generate(prompt, request.model, input_media)

        media = extract_media(response, cap.media_kind)
        if isinstance(media, NoContent):
            raise NoContentError(media.reason)
        if isinstance(media, RemoteHandle):
            media = await self._provider.fetch_remote(media, cap.media_kind)

        folder = self._folder_for(request, cap)
        url = await self._publisher.publish(media.data, media.mime_type, folder)
        logger.info(
            "Task %s published %d bytes (%s) to %s",
            task_id[:8], len(media.data), media.mime_type, folder,
        )
        return {"url": url, "mime_type": media.mime_type}

    async def _resolve_input(self, request: JobRequest) -> InlineMedia | None:
        """Inline bytes win over a remote reference; neither means text-only."""
        if request.image_base64:
            try:
                data = base64.b64decode(request.image_base64)
            except (binascii.Error, ValueError) as e:
                raise InputResolutionError(f"Inline image is not valid base64: {e}") from e
            return InlineMedia(data=data, mime_type=request.image_mime_type or "image/png")
        if request.image_url:
            return await self._fetcher.fetch_as_inline(request.image_url)
        return None

    @staticmethod
    def _folder_for(request: JobRequest, cap: ModelCapability) -> str:
        return request.folder or cap.default_folder


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_orchestrator(settings: Settings) -> JobOrchestrator:
    """Assemble the orchestrator from settings (mock or Vertex provider)."""
    if settings.USE_MOCK_API:
        logger.info("USE_MOCK_API is on, generation uses the mock provider")
        provider: ProviderClient = MockProviderClient(
            video_url=settings.MOCK_VIDEO_URL, timeout=settings.FETCH_TIMEOUT,
        )
    else:
        provider = VertexProviderClient(
            project=settings.GOOGLE_CLOUD_PROJECT,
            credentials=credentials_from_settings(settings),
            location=settings.GOOGLE_CLOUD_LOCATION,
            video_location=settings.VIDEO_CLOUD_LOCATION,
            retry_waits=settings.retry_waits,
            timeout=settings.PROVIDER_TIMEOUT,
        )
    return JobOrchestrator(
        store=TaskStore(get_session_factory()),
        provider=provider,
        fetcher=ContentFetcher(timeout=settings.FETCH_TIMEOUT),
        publisher=build_publisher(settings),
        claim_lease_seconds=settings.CLAIM_LEASE_SECONDS,
        work_timeout=settings.poll_work_timeout,
    )


@lru_cache
def get_orchestrator() -> JobOrchestrator:
    """Process-wide orchestrator (FastAPI dependency)."""
    return build_orchestrator(get_settings())
