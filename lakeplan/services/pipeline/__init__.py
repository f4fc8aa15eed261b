"""Pipeline coordination: creation, admission control, progress and execution."""

from .locks import BlueprintLocker, blueprint_locker
from .runner import PipelineRunner, TaskRunner
from .service import PipelineService, build_pipeline_service

__all__ = [
    "BlueprintLocker",
    "PipelineRunner",
    "PipelineService",
    "TaskRunner",
    "blueprint_locker",
    "build_pipeline_service",
]
