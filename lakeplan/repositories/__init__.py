"""Repository layer for data access operations."""

from lakeplan.repositories.base import BaseRepository
from lakeplan.repositories.pipeline_repository import PipelineRepository
from lakeplan.repositories.scope_repository import ProjectMappingRepository, ScopeRepository
from lakeplan.repositories.task_repository import TaskRepository

__all__ = [
    "BaseRepository",
    "PipelineRepository",
    "ProjectMappingRepository",
    "ScopeRepository",
    "TaskRepository",
]
