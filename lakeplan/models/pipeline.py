"""
Pipeline models for lakeplan.

A pipeline is one execution of a plan. The plan is persisted encrypted in
``Pipeline.plan``; read models carry it decoded. Labels live in their own
table and are attached explicitly when a pipeline is read.
"""

from datetime import datetime

from sqlalchemy import Text
from sqlmodel import Column, Field, SQLModel

from .base import TaskStatus, utcnow
from .plan import PipelinePlan


class PipelineBase(SQLModel):
    """Fields shared by the pipeline table and its read schema."""

    name: str = Field(index=True, max_length=255)
    blueprint_id: int = Field(default=0, index=True)
    total_tasks: int = 0
    finished_tasks: int = 0
    began_at: datetime | None = None
    finished_at: datetime | None = Field(default=None, index=True)
    status: TaskStatus = TaskStatus.created
    message: str = ""
    error_name: str = ""
    spent_seconds: int = 0
    stage: int = 0
    skip_on_fail: bool = False


class Pipeline(PipelineBase, table=True):
    """Stored pipeline row; ``plan`` holds the encrypted plan blob."""

    __tablename__ = "pipelines"

    id: int | None = Field(default=None, primary_key=True)
    plan: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal


class PipelineLabel(SQLModel, table=True):
    """A free-form label attached to a pipeline; unique per pipeline."""

    __tablename__ = "pipeline_labels"

    pipeline_id: int = Field(foreign_key="pipelines.id", primary_key=True)
    name: str = Field(primary_key=True, index=True, max_length=255)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})


class PipelineCreate(SQLModel):
    """Request to create a pipeline from a plan.

    Args:
        name: Display name.
        plan: Plan to execute.
        labels: Free-form labels; duplicates collapse into one label row.
        skip_on_fail: Let later stages run after task failures.
        blueprint_id: Owning blueprint, 0 for ad-hoc pipelines.
    """

    name: str
    plan: PipelinePlan
    labels: list[str] = Field(default_factory=list)
    skip_on_fail: bool = False
    blueprint_id: int = 0


class PipelineRead(PipelineBase):
    """Pipeline with its decoded plan and label names."""

    id: int
    plan: PipelinePlan
    labels: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class PipelineFind(SQLModel):
    """Filter and page for listing pipelines; unset fields do not filter."""

    blueprint_id: int | None = None
    status: TaskStatus | None = None
    pending: bool = False
    label: str | None = None
    skip: int = Field(default=0, ge=0)
    limit: int | None = Field(default=None, ge=1)
