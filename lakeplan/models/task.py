"""
Task models for lakeplan.

One task row exists per plan cell. Its status follows the same state
machine as the owning pipeline, at the granularity of a single cell.
"""

from datetime import datetime

from sqlmodel import JSON, Column, Field, SQLModel

from ..types import TaskOptions
from .base import TaskStatus, utcnow


class TaskBase(SQLModel):
    """Base model for task data."""

    pipeline_id: int = Field(foreign_key="pipelines.id", index=True)
    pipeline_row: int
    pipeline_col: int
    plugin: str = Field(max_length=255)
    subtasks: list[str] = Field(default_factory=list)
    options: TaskOptions = Field(default_factory=dict)

    status: TaskStatus = TaskStatus.created
    message: str = ""
    error_name: str = ""
    failed_subtask: str = ""
    progress: float = 0
    began_at: datetime | None = None
    finished_at: datetime | None = None
    spent_seconds: int = 0


class Task(TaskBase, table=True):
    """Stored task row."""

    __tablename__ = "pipeline_tasks"

    id: int | None = Field(default=None, primary_key=True)
    subtasks: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    options: TaskOptions = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})


class TaskRead(TaskBase):
    """Task as handed to task runners and callers."""

    id: int
