from __future__ import annotations
"""Task store — durable CanvasTask records with an atomic claim.

Every method opens its own short session; no transaction is held while a
caller performs network I/O. State changes after submission are single
conditional UPDATE statements, so concurrent pollers are serialized by the
database rather than by this process. The allowed source statuses of each
UPDATE come from ``VALID_TRANSITIONS``.

Any SQLAlchemy failure surfaces as ``TaskStoreUnavailableError``.
"""

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.canvas_task import CanvasTask, TaskStatus, source_statuses
from app.schemas.job import JobRequest
from app.services.exceptions import TaskStoreUnavailableError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Naive UTC timestamp (DateTime columns are timezone-less)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@contextmanager
def _store_errors(operation: str, task_id: str | None = None) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Task store %s failed (task=%s): %s", operation, (task_id or "-")[:8], exc)
        raise TaskStoreUnavailableError(str(exc)) from exc


class TaskStore:
    """SQLAlchemy-backed store for generation tasks."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, request: JobRequest, owner_ref: str | None = None) -> str:
        """Insert a pending task and return its id."""
        task_id = uuid.uuid4().hex
        task = CanvasTask(
            task_id=task_id,
            canvas_id=owner_ref,
            status=TaskStatus.PENDING.value,
            payload={"request": request.to_payload(), "result": None},
        )
        with _store_errors("insert", task_id):
            async with self._session_factory() as session:
                session.add(task)
                await session.commit()
        logger.info("Task %s created (canvas=%s)", task_id[:8], owner_ref)
        return task_id

    async def get(self, task_id: str) -> CanvasTask | None:
        with _store_errors("read", task_id):
            async with self._session_factory() as session:
                return await session.get(CanvasTask, task_id)

    async def list_by_owner(
        self, owner_ref: str, *, limit: int = 50, offset: int = 0
    ) -> list[CanvasTask]:
        """List tasks for a canvas, newest first."""
        with _store_errors("list"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(CanvasTask)
                    .where(CanvasTask.canvas_id == owner_ref)
                    .order_by(CanvasTask.created_at.desc(), CanvasTask.task_id)
                    .limit(limit)
                    .offset(offset)
                )
                return list(result.scalars().all())

    async def claim(self, task_id: str, *, lease_seconds: float) -> str | None:
        """Atomically move a task to in_progress and return the claim token.

        Claimable: ``pending``, or ``in_progress`` whose lease was released or
        is older than ``lease_seconds``. Returns None when another poller
        holds the claim or the task is terminal.
        """
        token = uuid.uuid4().hex
        now = _utcnow()
        stale_before = now - timedelta(seconds=lease_seconds)
        stmt = (
            update(CanvasTask)
            .where(CanvasTask.task_id == task_id)
            .where(CanvasTask.status.in_(source_statuses(TaskStatus.IN_PROGRESS)))
            .where(
                # an in_progress row is only free once its lease is gone
                or_(
                    CanvasTask.status != TaskStatus.IN_PROGRESS.value,
                    CanvasTask.claim_token.is_(None),
                    CanvasTask.claimed_at < stale_before,
                )
            )
            .values(
                status=TaskStatus.IN_PROGRESS.value,
                claim_token=token,
                claimed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        with _store_errors("claim", task_id):
            won = await self._execute_conditional(stmt)
        return token if won else None

    async def release_claim(self, task_id: str, token: str) -> bool:
        """Drop the lease but keep the task in_progress so a later poll re-claims it."""
        stmt = (
            update(CanvasTask)
            .where(
                CanvasTask.task_id == task_id,
                CanvasTask.status == TaskStatus.IN_PROGRESS.value,
                CanvasTask.claim_token == token,
            )
            .values(claim_token=None, claimed_at=None, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        with _store_errors("release", task_id):
            return await self._execute_conditional(stmt)

    async def mark_succeeded(
        self, task_id: str, token: str, request: dict[str, Any], result: dict[str, Any]
    ) -> bool:
        return await self._finish(
            task_id, token, TaskStatus.SUCCEEDED, None, request, result
        )

    async def mark_failed(
        self,
        task_id: str,
        token: str,
        request: dict[str, Any],
        status_code: str,
        error: str,
    ) -> bool:
        return await self._finish(
            task_id, token, TaskStatus.FAILED, status_code, request, {"error": error}
        )

    async def _finish(
        self,
        task_id: str,
        token: str,
        status: TaskStatus,
        status_code: str | None,
        request: dict[str, Any],
        result: dict[str, Any],
    ) -> bool:
        """Single transition into a terminal state, valid only for the lease holder."""
        stmt = (
            update(CanvasTask)
            .where(
                CanvasTask.task_id == task_id,
                CanvasTask.status.in_(source_statuses(status)),
                CanvasTask.claim_token == token,
            )
            .values(
                status=status.value,
                status_code=status_code,
                payload={"request": request, "result": result},
                claim_token=None,
                updated_at=_utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        with _store_errors(f"write {status.value}", task_id):
            return await self._execute_conditional(stmt)

    async def _execute_conditional(self, stmt) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1
