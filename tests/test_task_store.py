import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import update

from app.models.canvas_task import CanvasTask, TaskStatus, source_statuses
from app.schemas.job import JobRequest
from app.services import task_store as task_store_module
from app.services.exceptions import TaskStoreUnavailableError
from app.services.task_store import TaskStore


def _request(**overrides) -> JobRequest:
    fields = {"prompt": "a red cube", "model": "m1"}
    fields.update(overrides)
    return JobRequest(**fields)


@pytest.mark.asyncio
async def test_create_writes_pending_task_with_request_payload(store: TaskStore) -> None:
    task_id = await store.create(_request(folder="boards/1"), owner_ref="canvas-1")

    task = await store.get(task_id)
    assert task is not None
    assert task.status == TaskStatus.PENDING.value
    assert task.canvas_id == "canvas-1"
    assert task.payload == {
        "request": {"prompt": "a red cube", "model": "m1", "folder": "boards/1"},
        "result": None,
    }
    assert task.status_code is None
    assert task.claim_token is None


@pytest.mark.asyncio
async def test_get_unknown_task_returns_none(store: TaskStore) -> None:
    assert await store.get("does-not-exist") is None


@pytest.mark.asyncio
async def test_claim_is_exclusive(store: TaskStore) -> None:
    task_id = await store.create(_request())

    first = await store.claim(task_id, lease_seconds=900)
    second = await store.claim(task_id, lease_seconds=900)

    assert first is not None
    assert second is None
    task = await store.get(task_id)
    assert task.status == TaskStatus.IN_PROGRESS.value
    assert task.claim_token == first


@pytest.mark.asyncio
async def test_concurrent_claims_have_one_winner(store: TaskStore) -> None:
    task_id = await store.create(_request())

    tokens = await asyncio.gather(
        *(store.claim(task_id, lease_seconds=900) for _ in range(8))
    )

    assert len([t for t in tokens if t is not None]) == 1


@pytest.mark.asyncio
async def test_released_claim_can_be_reclaimed(store: TaskStore) -> None:
    task_id = await store.create(_request())
    token = await store.claim(task_id, lease_seconds=900)

    assert await store.release_claim(task_id, token) is True
    task = await store.get(task_id)
    assert task.status == TaskStatus.IN_PROGRESS.value
    assert task.claim_token is None

    again = await store.claim(task_id, lease_seconds=900)
    assert again is not None and again != token


@pytest.mark.asyncio
async def test_stale_lease_can_be_reclaimed(store: TaskStore, session_factory) -> None:
    task_id = await store.create(_request())
    token = await store.claim(task_id, lease_seconds=900)

    async with session_factory() as session:
        await session.execute(
            update(CanvasTask)
            .where(CanvasTask.task_id == task_id)
            .values(claimed_at=task_store_module._utcnow() - timedelta(seconds=1000))
        )
        await session.commit()

    new_token = await store.claim(task_id, lease_seconds=900)
    assert new_token is not None

    # The previous holder can no longer finish the task
    assert await store.mark_succeeded(task_id, token, {}, {"url": "x", "mime_type": "image/png"}) is False


@pytest.mark.asyncio
async def test_mark_succeeded_is_single_terminal_write(store: TaskStore) -> None:
    request = _request()
    task_id = await store.create(request)
    token = await store.claim(task_id, lease_seconds=900)
    result = {"url": "https://cdn.example.com/images/a.png", "mime_type": "image/png"}

    assert await store.mark_succeeded(task_id, token, request.to_payload(), result) is True
    assert await store.mark_failed(task_id, token, request.to_payload(), "429", "late") is False

    task = await store.get(task_id)
    assert task.status == TaskStatus.SUCCEEDED.value
    assert task.payload == {"request": request.to_payload(), "result": result}
    assert task.claim_token is None
    # Terminal tasks cannot be claimed again
    assert await store.claim(task_id, lease_seconds=0) is None


@pytest.mark.asyncio
async def test_mark_failed_records_status_code_and_error(store: TaskStore) -> None:
    request = _request()
    task_id = await store.create(request)
    token = await store.claim(task_id, lease_seconds=900)

    assert await store.mark_failed(task_id, token, request.to_payload(), "no_content", "empty") is True

    task = await store.get(task_id)
    assert task.status == TaskStatus.FAILED.value
    assert task.status_code == "no_content"
    assert task.result == {"error": "empty"}


@pytest.mark.asyncio
async def test_finish_requires_matching_token(store: TaskStore) -> None:
    task_id = await store.create(_request())
    await store.claim(task_id, lease_seconds=900)

    assert await store.mark_failed(task_id, "not-the-token", {}, "x", "y") is False
    task = await store.get(task_id)
    assert task.status == TaskStatus.IN_PROGRESS.value


@pytest.mark.asyncio
async def test_list_by_owner_filters_on_canvas(store: TaskStore) -> None:
    a = await store.create(_request(), owner_ref="canvas-a")
    b = await store.create(_request(), owner_ref="canvas-a")
    await store.create(_request(), owner_ref="canvas-b")

    tasks = await store.list_by_owner("canvas-a")

    assert {t.task_id for t in tasks} == {a, b}
    assert await store.list_by_owner("canvas-c") == []


def test_update_source_statuses_follow_transition_table() -> None:
    assert source_statuses(TaskStatus.IN_PROGRESS) == ["in_progress", "pending"]
    assert source_statuses(TaskStatus.SUCCEEDED) == ["in_progress"]
    assert source_statuses(TaskStatus.FAILED) == ["in_progress"]
    assert source_statuses(TaskStatus.PENDING) == []


@pytest.mark.parametrize(
    "status, terminal",
    [
        (TaskStatus.PENDING, False),
        (TaskStatus.IN_PROGRESS, False),
        (TaskStatus.SUCCEEDED, True),
        (TaskStatus.FAILED, True),
    ],
)
def test_terminal_statuses(status, terminal) -> None:
    task = CanvasTask(task_id="t", status=status.value, payload={"request": {}, "result": None})

    assert task.is_terminal is terminal


@pytest.mark.asyncio
async def test_terminal_task_cannot_be_finished_again(store: TaskStore, session_factory) -> None:
    task_id = await store.create(_request())
    token = await store.claim(task_id, lease_seconds=60)
    assert await store.mark_failed(task_id, token, {}, "no_content", "empty")

    # force the row back under the same token; terminal rows stay terminal
    async with session_factory() as session:
        await session.execute(
            update(CanvasTask)
            .where(CanvasTask.task_id == task_id)
            .values(claim_token=token)
            .execution_options(synchronize_session=False)
        )
        await session.commit()

    assert await store.mark_succeeded(task_id, token, {}, {"url": "u"}) is False
    assert await store.claim(task_id, lease_seconds=0) is None
    assert (await store.get(task_id)).status == TaskStatus.FAILED.value


@pytest.mark.asyncio
async def test_database_errors_surface_as_store_unavailable(broken_session_factory) -> None:
    broken = TaskStore(broken_session_factory)

    with pytest.raises(TaskStoreUnavailableError):
        await broken.create(_request())
    with pytest.raises(TaskStoreUnavailableError):
        await broken.get("abc")
    with pytest.raises(TaskStoreUnavailableError):
        await broken.list_by_owner("canvas-a")
    with pytest.raises(TaskStoreUnavailableError):
        await broken.claim("abc", lease_seconds=60)
    with pytest.raises(TaskStoreUnavailableError):
        await broken.release_claim("abc", "token")
    with pytest.raises(TaskStoreUnavailableError):
        await broken.mark_succeeded("abc", "token", {}, {"url": "u"})
