"""
lakeplan data models.

This package contains the plan structures, blueprint inputs and the
SQLModel-based tables that persist pipelines, labels, tasks and scopes.
"""

from .base import (
    FINISHED_TASK_STATUSES,
    PENDING_TASK_STATUSES,
    TaskStatus,
    resolve_final_status,
)
from .blueprint import BlueprintConnection, BlueprintScope, BlueprintSettings, BlueprintSyncPolicy
from .pipeline import Pipeline, PipelineCreate, PipelineFind, PipelineLabel, PipelineRead
from .plan import PipelinePlan, PipelineStage, PipelineTask, PlanCell
from .scope import ProjectMapping, Scope
from .task import Task, TaskRead

__all__ = [
    # Base
    "FINISHED_TASK_STATUSES",
    "PENDING_TASK_STATUSES",
    "TaskStatus",
    "resolve_final_status",
    # Blueprint
    "BlueprintConnection",
    "BlueprintScope",
    "BlueprintSettings",
    "BlueprintSyncPolicy",
    # Pipeline
    "Pipeline",
    "PipelineCreate",
    "PipelineFind",
    "PipelineLabel",
    "PipelineRead",
    # Plan
    "PipelinePlan",
    "PipelineStage",
    "PipelineTask",
    "PlanCell",
    # Scope
    "ProjectMapping",
    "Scope",
    # Task
    "Task",
    "TaskRead",
]
