"""
Base models for lakeplan.

This module provides the status enumeration shared by pipelines and tasks
and the rules that derive a pipeline's terminal status.
"""

import enum
from datetime import UTC, datetime


class TaskStatus(str, enum.Enum):
    """Enumeration of pipeline and task status values."""

    created = "created"
    running = "running"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"
    partially_completed = "partially-completed"

    @property
    def is_terminal(self) -> bool:
        return self in FINISHED_TASK_STATUSES


PENDING_TASK_STATUSES: tuple[TaskStatus, ...] = (TaskStatus.created, TaskStatus.running)

FINISHED_TASK_STATUSES: tuple[TaskStatus, ...] = (
    TaskStatus.completed,
    TaskStatus.failed,
    TaskStatus.cancelled,
    TaskStatus.partially_completed,
)


def resolve_final_status(failed: int, succeeded: int, skip_on_fail: bool) -> TaskStatus:
    """Derive the terminal status of a pipeline from its task outcomes.

    Args:
        failed: Number of failed tasks
        succeeded: Number of completed tasks
        skip_on_fail: Whether the pipeline lets later stages run after failures

    Returns:
        ``completed`` when nothing failed, ``partially-completed`` when
        skip-on-fail let at least one task succeed next to a failure,
        ``failed`` otherwise
    """
    if failed == 0:
        return TaskStatus.completed
    if skip_on_fail and succeeded > 0:
        return TaskStatus.partially_completed
    return TaskStatus.failed


def utcnow() -> datetime:
    return datetime.now(UTC)


def elapsed_seconds(began_at: datetime | None, finished_at: datetime) -> int:
    """Whole seconds between two timestamps; naive values are read as UTC."""
    if began_at is None:
        return 0
    if began_at.tzinfo is None:
        began_at = began_at.replace(tzinfo=UTC)
    if finished_at.tzinfo is None:
        finished_at = finished_at.replace(tzinfo=UTC)
    return max(0, int((finished_at - began_at).total_seconds()))
