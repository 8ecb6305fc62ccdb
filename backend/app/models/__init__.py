"""ORM model package — registers all models with Base.metadata."""

from app.models.canvas_task import (
    TERMINAL_STATUSES,
    VALID_TRANSITIONS,
    CanvasTask,
    TaskStatus,
    source_statuses,
)

__all__ = [
    "CanvasTask",
    "TaskStatus",
    "TERMINAL_STATUSES",
    "VALID_TRANSITIONS",
    "source_statuses",
]
