"""
Domain exceptions for the plan compiler and pipeline coordinator.

These exceptions are raised by repositories and services to represent
business logic errors without coupling to any transport layer.
"""

from typing import Self


class LakeplanError(Exception):
    """Base exception for all lakeplan-specific errors."""

    def with_context(self, detail: str) -> Self:
        """Add context information to the exception.

        Args:
            detail: Additional details about the error

        Returns:
            Self with updated message
        """
        self.args = (detail,)
        return self


# Base domain exceptions
class EntityNotFoundError(LakeplanError):
    """Raised when an entity is not found in the database."""

    pass


class BusinessRuleViolationError(LakeplanError):
    """Raised when a business rule is violated."""

    pass


# Plan errors
class InvalidPlanError(LakeplanError, ValueError):
    """Raised when a plan is addressed outside its contiguous stage range."""

    pass


class PlanCompileError(LakeplanError):
    """Raised when a blueprint cannot be compiled into a plan.

    Compilation is all-or-nothing: no partial plan is ever returned.
    """

    pass


class PluginNotFoundError(PlanCompileError, EntityNotFoundError):
    """Raised when a plugin name is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Plugin '{name}' not found")
        self.name = name


class MissingCapabilityError(PlanCompileError):
    """Raised when a plugin does not advertise the capability a blueprint needs."""

    def __init__(self, plugin: str, capability: str) -> None:
        super().__init__(f"Plugin {plugin} does not support {capability}")
        self.plugin = plugin
        self.capability = capability


class EmptyScopesError(PlanCompileError):
    """Raised when a connection that requires scopes has none."""

    def __init__(self, index: int) -> None:
        super().__init__(f"connections[{index}].scopes is empty")
        self.index = index


# Pipeline exceptions
class PipelineNotFoundError(EntityNotFoundError):
    """Raised when a pipeline is not found."""

    def __init__(self, pipeline_id: int) -> None:
        super().__init__(f"Pipeline with ID {pipeline_id} not found")


class TaskNotFoundError(EntityNotFoundError):
    """Raised when a pipeline task is not found."""

    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task with ID {task_id} not found")


class BlueprintRunningError(BusinessRuleViolationError):
    """Raised when a blueprint already has a pipeline in a non-terminal status."""

    def __init__(self, blueprint_id: int) -> None:
        super().__init__(f"The blueprint {blueprint_id} is running")
        self.blueprint_id = blueprint_id


class NoTasksError(BusinessRuleViolationError):
    """Raised when a submitted plan flattens to zero tasks."""

    def __init__(self) -> None:
        super().__init__("No task to run")


class PipelineFinishedError(BusinessRuleViolationError):
    """Raised when mutating a pipeline or task that already reached a terminal status."""

    pass


class ProgressError(BusinessRuleViolationError):
    """Raised when a progress update would move a counter backwards or out of range."""

    pass


# Database errors
class DatabaseError(LakeplanError):
    """Raised when there's a database operation error."""

    pass


class PersistError(DatabaseError):
    """Raised when a write fails; the message names the write."""

    pass


# Encryption errors
class EncryptionError(LakeplanError):
    """Raised when a plan blob cannot be encrypted or decrypted."""

    pass
