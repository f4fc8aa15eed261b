"""
Pipeline plan models.

A plan is an ordered list of stages; every stage is an unordered set of
tasks that may run concurrently. Stage N+1 starts only after every task of
stage N reached a terminal state.

Serialized, a plan is a nested JSON array (``[[task, ...], ...]``), the
shape plugins and callers exchange.
"""

from collections.abc import Iterator
from typing import NamedTuple

from pydantic import BaseModel, Field, RootModel

from ..exceptions import InvalidPlanError
from ..types import TaskOptions


class PipelineTask(BaseModel):
    """A single plan cell: which plugin runs which subtasks with what options.

    Args:
        plugin: Plugin name.
        subtasks: Names of the plugin subtasks to run; empty means the plugin default set.
        options: Plugin-specific options, never interpreted by the coordinator.
    """

    plugin: str
    subtasks: list[str] = Field(default_factory=list)
    options: TaskOptions = Field(default_factory=dict)


class PipelineStage(RootModel[list[PipelineTask]]):
    """Barrier-separated group of tasks that may run concurrently."""

    root: list[PipelineTask] = Field(default_factory=list)

    def __iter__(self) -> Iterator[PipelineTask]:  # type: ignore[override]
        return iter(self.root)

    def __getitem__(self, index: int) -> PipelineTask:
        return self.root[index]

    def __len__(self) -> int:
        return len(self.root)

    def append(self, task: PipelineTask) -> None:
        self.root.append(task)

    def extend(self, tasks: list[PipelineTask]) -> None:
        self.root.extend(tasks)


class PlanCell(NamedTuple):
    """A task with its 0-based coordinate inside a plan."""

    stage_index: int
    slot_index: int
    task: PipelineTask

    @property
    def row(self) -> int:
        """1-based stage number."""
        return self.stage_index + 1

    @property
    def col(self) -> int:
        """1-based slot number inside the stage."""
        return self.slot_index + 1


class PipelinePlan(RootModel[list[PipelineStage]]):
    """Ordered stages of unordered tasks.

    Example:
        plan = PipelinePlan.empty(2)
        plan.add_task(0, PipelineTask(plugin="github", subtasks=["collectIssues"]))
        plan.add_task(1, PipelineTask(plugin="dora"))
    """

    root: list[PipelineStage] = Field(default_factory=list)

    @classmethod
    def empty(cls, stage_count: int = 0) -> "PipelinePlan":
        """Create a plan with ``stage_count`` empty stages."""
        if stage_count < 0:
            raise InvalidPlanError(f"Stage count must not be negative, got {stage_count}")
        return cls([PipelineStage() for _ in range(stage_count)])

    def __iter__(self) -> Iterator[PipelineStage]:  # type: ignore[override]
        return iter(self.root)

    def __getitem__(self, index: int) -> PipelineStage:
        return self.root[index]

    def __len__(self) -> int:
        return len(self.root)

    @property
    def stage_count(self) -> int:
        return len(self.root)

    @property
    def task_count(self) -> int:
        """Number of plan cells across all stages."""
        return sum(len(stage) for stage in self.root)

    def stage(self, index: int) -> PipelineStage:
        """Get a stage by its 0-based index.

        Raises:
            InvalidPlanError: If the index is outside the plan
        """
        if index < 0 or index >= len(self.root):
            raise InvalidPlanError(
                f"Stage index {index} is out of range for a plan of {len(self.root)} stages"
            )
        return self.root[index]

    def append_stage(self, stage: PipelineStage | None = None) -> PipelineStage:
        """Append a stage after the last one and return it."""
        stage = stage if stage is not None else PipelineStage()
        self.root.append(stage)
        return stage

    def add_task(self, stage_index: int, task: PipelineTask) -> None:
        """Append a task into a stage, growing the plan by one stage when needed.

        Args:
            stage_index: 0-based stage index, at most the current stage count
            task: Task to add

        Raises:
            InvalidPlanError: If the index is negative or would leave a gap
        """
        if stage_index < 0 or stage_index > len(self.root):
            raise InvalidPlanError(
                f"Cannot add a task to stage {stage_index} of a plan with "
                f"{len(self.root)} stages: stages are addressed contiguously from 0"
            )
        if stage_index == len(self.root):
            self.append_stage()
        self.root[stage_index].append(task)

    def flatten(self) -> list[PlanCell]:
        """List every task with its coordinate, stage by stage."""
        return [
            PlanCell(stage_index, slot_index, task)
            for stage_index, stage in enumerate(self.root)
            for slot_index, task in enumerate(stage)
        ]

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "PipelinePlan":
        return cls.model_validate_json(data)
