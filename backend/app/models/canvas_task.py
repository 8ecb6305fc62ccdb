from __future__ import annotations
"""CanvasTask ORM model — one durable media-generation job with a forward-only state machine."""

import enum
import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class TaskStatus(str, enum.Enum):
    """Job lifecycle statuses — forward-only."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.SUCCEEDED, TaskStatus.FAILED}
)

# Explicit valid transitions: status -> set of reachable statuses.
# IN_PROGRESS -> IN_PROGRESS is a re-claim of a released or expired lease.
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS},
    TaskStatus.IN_PROGRESS: {
        TaskStatus.IN_PROGRESS,
        TaskStatus.SUCCEEDED,
        TaskStatus.FAILED,
    },
    TaskStatus.SUCCEEDED: set(),  # terminal state
    TaskStatus.FAILED: set(),  # terminal state
}


def source_statuses(target: TaskStatus) -> list[str]:
    """Status values a task may hold when it moves to ``target``."""
    return sorted(
        current.value
        for current, reachable in VALID_TRANSITIONS.items()
        if target in reachable
    )


class CanvasTask(Base):
    """A generation job: immutable request plus its single terminal result."""

    __tablename__ = "canvas_tasks"
    __table_args__ = {
        "mysql_charset": "utf8mb4",
        "mysql_collate": "utf8mb4_unicode_ci",
    }

    task_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: uuid.uuid4().hex,
    )
    canvas_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskStatus.PENDING.value, index=True
    )
    status_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # {"request": {...}, "result": {...} | None}
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Claim lease of an in_progress task
    claim_token: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_terminal(self) -> bool:
        return TaskStatus(self.status) in TERMINAL_STATUSES

    @property
    def request(self) -> dict[str, Any]:
        return dict((self.payload or {}).get("request") or {})

    @property
    def result(self) -> dict[str, Any]:
        return dict((self.payload or {}).get("result") or {})

