"""
Pipeline coordinator.

Persists pipelines, expands their plans into task rows, enforces at most
one active pipeline per blueprint, and keeps the progress bookkeeping that
a runner mutates while it executes tasks.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lakeplan.exceptions import (
    BlueprintRunningError,
    InvalidPlanError,
    NoTasksError,
    PersistError,
    PipelineFinishedError,
    ProgressError,
)
from lakeplan.models.base import TaskStatus, elapsed_seconds, utcnow
from lakeplan.models.pipeline import Pipeline, PipelineCreate, PipelineFind, PipelineRead
from lakeplan.models.plan import PipelinePlan
from lakeplan.models.task import Task, TaskRead
from lakeplan.repositories.pipeline_repository import PipelineRepository
from lakeplan.repositories.task_repository import TaskRepository
from lakeplan.settings import settings
from lakeplan.utils.crypto import decrypt, encrypt
from lakeplan.utils.logger import logger, pipeline_logger

from .locks import BlueprintLocker, blueprint_locker


class PipelineService:
    """Service for pipeline creation, queries and progress bookkeeping."""

    def __init__(
        self,
        pipeline_repo: PipelineRepository,
        task_repo: TaskRepository,
        locker: BlueprintLocker | None = None,
        encryption_secret: str | None = None,
    ):
        """Initialize pipeline service with repositories.

        Args:
            pipeline_repo: Pipeline repository instance
            task_repo: Task repository instance, sharing the pipeline repository's session
            locker: Blueprint admission lock, the process-wide one by default
            encryption_secret: Plan encryption key, from settings by default
        """
        self.pipeline_repo = pipeline_repo
        self.task_repo = task_repo
        self.locker = locker if locker is not None else blueprint_locker
        self.encryption_secret = (
            encryption_secret
            if encryption_secret is not None
            else settings.encryption_secret.get_secret_value()
        )

    @asynccontextmanager
    async def _persisting(self, write: str) -> AsyncIterator[None]:
        """Roll back and raise PersistError naming ``write`` on storage failure."""
        try:
            yield
        except SQLAlchemyError as e:
            await self.pipeline_repo.rollback()
            logger.error(f"{write} failed: {e}")
            raise PersistError(f"{write} failed") from e

    # Creation

    async def create_pipeline(self, new_pipeline: PipelineCreate) -> PipelineRead:
        """Create a pipeline with its labels and one task row per plan cell.

        Pipeline, labels and tasks are written in one transaction: the caller
        gets either a fully created pipeline or nothing at all.

        Args:
            new_pipeline: Plan, name, labels, skip-on-fail flag and owning blueprint

        Returns:
            The created pipeline with its labels

        Raises:
            BlueprintRunningError: If the blueprint has a pipeline in a non-terminal status
            EncryptionError: If the plan cannot be encrypted
            NoTasksError: If the plan holds no task
            PersistError: If any write fails
        """
        blueprint_id = new_pipeline.blueprint_id
        if blueprint_id > 0:
            async with self.locker.hold(blueprint_id):
                async with self._persisting("Query pipelines"):
                    pending = await self.pipeline_repo.count_pending_for_blueprint(blueprint_id)
                if pending > 0:
                    logger.warning(
                        f"Refusing pipeline '{new_pipeline.name}': "
                        f"blueprint {blueprint_id} already has {pending} pending pipeline(s)"
                    )
                    raise BlueprintRunningError(blueprint_id)
                return await self._create_pipeline(new_pipeline)
        return await self._create_pipeline(new_pipeline)

    async def _create_pipeline(self, new_pipeline: PipelineCreate) -> PipelineRead:
        # Encrypt before any write so an unencryptable plan is never stored
        encrypted_plan = encrypt(self.encryption_secret, new_pipeline.plan.to_json())
        labels = list(dict.fromkeys(new_pipeline.labels))

        try:
            async with self._persisting("Create pipeline"):
                pipeline = await self.pipeline_repo.create(
                    Pipeline(
                        name=new_pipeline.name,
                        blueprint_id=new_pipeline.blueprint_id,
                        plan=encrypted_plan,
                        status=TaskStatus.created,
                        finished_tasks=0,
                        skip_on_fail=new_pipeline.skip_on_fail,
                    ),
                    commit=False,
                )
            pipeline_id = pipeline.id
            if pipeline_id is None:
                raise PersistError("Create pipeline failed: no ID assigned")

            async with self._persisting("Create pipeline's labels"):
                await self.pipeline_repo.add_labels(pipeline_id, labels, commit=False)

            tasks = []
            for cell in new_pipeline.plan.flatten():
                logger.debug(f"plan[{cell.stage_index}][{cell.slot_index}] is {cell.task}")
                tasks.append(
                    Task(
                        pipeline_id=pipeline_id,
                        pipeline_row=cell.row,
                        pipeline_col=cell.col,
                        plugin=cell.task.plugin,
                        subtasks=list(cell.task.subtasks),
                        options=cell.task.options,
                    )
                )
            async with self._persisting("Create task for pipeline"):
                await self.task_repo.create_many(tasks, commit=False)
            pipeline.total_tasks = len(tasks)

            if pipeline.total_tasks == 0:
                raise NoTasksError()

            async with self._persisting("Update pipeline state"):
                await self.pipeline_repo.update(
                    pipeline, {"total_tasks": pipeline.total_tasks}, commit=True
                )
        except NoTasksError:
            await self.pipeline_repo.rollback()
            logger.error(f"Pipeline '{new_pipeline.name}' has no task to run, nothing was created")
            raise
        except PersistError:
            await self.pipeline_repo.rollback()
            raise

        logger.info(
            f"Created pipeline {pipeline.id} '{pipeline.name}' "
            f"(blueprint={pipeline.blueprint_id}, tasks={pipeline.total_tasks}, "
            f"stages={new_pipeline.plan.stage_count})"
        )
        return self._to_read(pipeline, labels)

    # Queries

    def decode_plan(self, pipeline: Pipeline) -> PipelinePlan:
        """Decrypt and parse the plan stored on a pipeline row.

        Raises:
            EncryptionError: If the blob cannot be decrypted with the configured key
            InvalidPlanError: If the decrypted blob is not a plan
        """
        plan_json = decrypt(self.encryption_secret, pipeline.plan)
        try:
            return PipelinePlan.from_json(plan_json)
        except PydanticValidationError as e:
            raise InvalidPlanError(f"Pipeline {pipeline.id} holds an invalid plan: {e}") from e

    def _to_read(self, pipeline: Pipeline, labels: list[str]) -> PipelineRead:
        return PipelineRead(
            **pipeline.model_dump(exclude={"plan"}),
            plan=self.decode_plan(pipeline),
            labels=labels,
        )

    async def get_pipeline(self, pipeline_id: int) -> PipelineRead:
        """Get a pipeline with its decoded plan and labels.

        Raises:
            PipelineNotFoundError: If pipeline doesn't exist
        """
        pipeline = await self.pipeline_repo.get(pipeline_id)
        await self.pipeline_repo.refresh(pipeline)
        labels = await self.pipeline_repo.get_labels(pipeline_id)
        return self._to_read(pipeline, labels)

    async def list_pipelines(self, criteria: PipelineFind) -> tuple[list[PipelineRead], int]:
        """List pipelines, most recent first, each with its labels.

        Args:
            criteria: Filters and page; the page size defaults to
                ``settings.default_page_size`` and is capped at ``settings.max_page_size``

        Returns:
            The page of pipelines and the total number of matches
        """
        limit = min(criteria.limit or settings.default_page_size, settings.max_page_size)
        pipelines, total = await self.pipeline_repo.search(criteria, limit=limit)
        labels = await self.pipeline_repo.get_labels_for(
            [pipeline.id for pipeline in pipelines if pipeline.id is not None]
        )
        return [self._to_read(pipeline, labels[pipeline.id]) for pipeline in pipelines], total

    async def get_pipeline_labels(self, pipeline_id: int) -> list[str]:
        await self.pipeline_repo.get(pipeline_id)
        return await self.pipeline_repo.get_labels(pipeline_id)

    async def get_tasks(self, pipeline_id: int) -> list[TaskRead]:
        """List the tasks of a pipeline in plan order."""
        await self.pipeline_repo.get(pipeline_id)
        tasks = await self.task_repo.list_by_pipeline(pipeline_id)
        return [TaskRead.model_validate(task) for task in tasks]

    async def is_cancelled(self, pipeline_id: int) -> bool:
        """Re-read the pipeline status; cancellation arrives from other sessions."""
        pipeline = await self.pipeline_repo.get(pipeline_id)
        await self.pipeline_repo.refresh(pipeline, ["status"])
        return pipeline.status == TaskStatus.cancelled

    # Progress bookkeeping

    @staticmethod
    def _ensure_pending(pipeline: Pipeline) -> None:
        if pipeline.is_finished:
            raise PipelineFinishedError(
                f"Pipeline {pipeline.id} already finished with status '{pipeline.status.value}'"
            )

    async def start_pipeline(self, pipeline_id: int) -> PipelineRead:
        """Move a created pipeline to running.

        Raises:
            PipelineFinishedError: If the pipeline already finished
            ProgressError: If the pipeline is already running
        """
        pipeline = await self.pipeline_repo.get(pipeline_id)
        await self.pipeline_repo.refresh(pipeline)
        self._ensure_pending(pipeline)
        if pipeline.status != TaskStatus.created:
            raise ProgressError(f"Pipeline {pipeline_id} is already running")

        async with self._persisting("Start pipeline"):
            pipeline = await self.pipeline_repo.update(
                pipeline, {"status": TaskStatus.running, "began_at": utcnow()}
            )
        pipeline_logger(pipeline_id).info(f"running {pipeline.total_tasks} tasks")
        return await self.get_pipeline(pipeline_id)

    async def set_stage(self, pipeline_id: int, stage: int) -> None:
        """Record the stage the runner entered; stages only move forward.

        Raises:
            PipelineFinishedError: If the pipeline already finished
            ProgressError: If ``stage`` is lower than the current stage
        """
        pipeline = await self.pipeline_repo.get(pipeline_id)
        self._ensure_pending(pipeline)
        if stage < pipeline.stage:
            raise ProgressError(
                f"Pipeline {pipeline_id} cannot go back from stage {pipeline.stage} to {stage}"
            )
        async with self._persisting("Update pipeline stage"):
            await self.pipeline_repo.update(pipeline, {"stage": stage})

    async def start_task(self, task_id: int) -> TaskRead:
        """Move a created task to running.

        Raises:
            TaskNotFoundError: If task doesn't exist
            ProgressError: If the task already started
        """
        task = await self.task_repo.get(task_id)
        # Another session may have cancelled it since the pipeline was last read
        await self.task_repo.refresh(task, ["status"])
        if task.status != TaskStatus.created:
            raise ProgressError(f"Task {task_id} already started (status '{task.status.value}')")
        async with self._persisting("Start task"):
            task = await self.task_repo.update(
                task, {"status": TaskStatus.running, "began_at": utcnow()}
            )
        return TaskRead.model_validate(task)

    async def finish_task(
        self,
        task_id: int,
        status: TaskStatus,
        message: str = "",
        error_name: str = "",
        failed_subtask: str = "",
    ) -> TaskRead:
        """Record the terminal status of a task and count it on its pipeline.

        The pipeline's ``finished_tasks`` only moves while the pipeline itself
        is not finished, and never beyond ``total_tasks``.

        Raises:
            ProgressError: If ``status`` is not terminal or the counter would overflow
            PipelineFinishedError: If the task already finished
        """
        if not status.is_terminal:
            raise ProgressError(f"Status '{status.value}' is not a terminal task status")
        task = await self.task_repo.get(task_id)
        if task.status.is_terminal:
            raise PipelineFinishedError(
                f"Task {task_id} already finished with status '{task.status.value}'"
            )
        pipeline = await self.pipeline_repo.get(task.pipeline_id)
        await self.pipeline_repo.refresh(pipeline)
        if not pipeline.is_finished and pipeline.finished_tasks >= pipeline.total_tasks:
            raise ProgressError(
                f"Pipeline {pipeline.id} already counts {pipeline.finished_tasks} "
                f"of {pipeline.total_tasks} finished tasks"
            )

        now = utcnow()
        async with self._persisting("Finish task"):
            task = await self.task_repo.update(
                task,
                {
                    "status": status,
                    "message": message,
                    "error_name": error_name,
                    "failed_subtask": failed_subtask,
                    "progress": 1.0 if status == TaskStatus.completed else task.progress,
                    "finished_at": now,
                    "spent_seconds": elapsed_seconds(task.began_at, now),
                },
                commit=False,
            )
            if not pipeline.is_finished:
                pipeline.finished_tasks += 1
            await self.pipeline_repo.commit()
        return TaskRead.model_validate(task)

    async def finish_pipeline(
        self,
        pipeline_id: int,
        status: TaskStatus,
        message: str = "",
        error_name: str = "",
    ) -> PipelineRead:
        """Move a pipeline to a terminal status.

        Tasks that never started are cancelled along with it.

        Raises:
            ProgressError: If ``status`` is not terminal
            PipelineFinishedError: If the pipeline already finished
        """
        if not status.is_terminal:
            raise ProgressError(f"Status '{status.value}' is not a terminal pipeline status")
        pipeline = await self.pipeline_repo.get(pipeline_id)
        await self.pipeline_repo.refresh(pipeline)
        self._ensure_pending(pipeline)
        return await self._finish(pipeline_id, pipeline, status, message, error_name)

    async def _finish(
        self,
        pipeline_id: int,
        pipeline: Pipeline,
        status: TaskStatus,
        message: str,
        error_name: str,
        interrupted: bool = False,
    ) -> PipelineRead:
        now = utcnow()
        async with self._persisting("Finish pipeline"):
            if interrupted:
                await self.task_repo.cancel_unfinished(pipeline_id, commit=False)
            else:
                await self.task_repo.cancel_not_started(pipeline_id, commit=False)
            await self.pipeline_repo.update(
                pipeline,
                {
                    "status": status,
                    "message": message,
                    "error_name": error_name,
                    "finished_at": now,
                    "spent_seconds": elapsed_seconds(pipeline.began_at, now),
                },
                exclude_unset=False,
            )
        pipeline_logger(pipeline_id).info(
            f"finished with status '{status.value}' "
            f"({pipeline.finished_tasks}/{pipeline.total_tasks} tasks in {pipeline.spent_seconds}s)"
        )
        return await self.get_pipeline(pipeline_id)

    async def cancel_pipeline(self, pipeline_id: int) -> PipelineRead:
        """Cancel a pipeline that has not finished yet.

        No stage starts after cancellation; finished tasks are left as they are.

        Raises:
            PipelineFinishedError: If the pipeline already finished
        """
        pipeline_logger(pipeline_id).info("cancellation requested")
        return await self.finish_pipeline(pipeline_id, TaskStatus.cancelled)

    async def abort_pipeline(
        self,
        pipeline_id: int,
        status: TaskStatus,
        message: str = "",
        error_name: str = "",
    ) -> PipelineRead:
        """Finish a pipeline whose run was interrupted.

        Whatever the interrupted run left unflushed is discarded, and tasks
        still created or running are cancelled. A pipeline that already
        finished is returned as it is.

        Raises:
            ProgressError: If ``status`` is not terminal
        """
        if not status.is_terminal:
            raise ProgressError(f"Status '{status.value}' is not a terminal pipeline status")
        await self.pipeline_repo.rollback()
        pipeline = await self.pipeline_repo.get(pipeline_id)
        await self.pipeline_repo.refresh(pipeline)
        if pipeline.is_finished:
            return await self.get_pipeline(pipeline_id)
        pipeline_logger(pipeline_id).warning(f"run interrupted, finishing as '{status.value}'")
        return await self._finish(
            pipeline_id, pipeline, status, message, error_name, interrupted=True
        )


def build_pipeline_service(
    session: AsyncSession,
    locker: BlueprintLocker | None = None,
    encryption_secret: str | None = None,
) -> PipelineService:
    """Wire a PipelineService with repositories bound to one session."""
    return PipelineService(
        PipelineRepository(session),
        TaskRepository(session),
        locker=locker,
        encryption_secret=encryption_secret,
    )
