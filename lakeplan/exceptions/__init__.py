"""Exceptions for lakeplan."""

from .domain import (
    BlueprintRunningError,
    BusinessRuleViolationError,
    DatabaseError,
    EmptyScopesError,
    EncryptionError,
    EntityNotFoundError,
    InvalidPlanError,
    LakeplanError,
    MissingCapabilityError,
    NoTasksError,
    PersistError,
    PipelineFinishedError,
    PipelineNotFoundError,
    PlanCompileError,
    PluginNotFoundError,
    ProgressError,
    TaskNotFoundError,
)

__all__ = [
    "BlueprintRunningError",
    "BusinessRuleViolationError",
    "DatabaseError",
    "EmptyScopesError",
    "EncryptionError",
    "EntityNotFoundError",
    "InvalidPlanError",
    "LakeplanError",
    "MissingCapabilityError",
    "NoTasksError",
    "PersistError",
    "PipelineFinishedError",
    "PipelineNotFoundError",
    "PlanCompileError",
    "PluginNotFoundError",
    "ProgressError",
    "TaskNotFoundError",
]
