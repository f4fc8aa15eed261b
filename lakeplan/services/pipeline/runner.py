"""
Stage-barrier pipeline runner.

Tasks of one stage run concurrently; the next stage starts only once every
task of the current stage has reached a terminal status. Task execution
itself is delegated to a ``TaskRunner``.
"""

import asyncio
from collections import defaultdict
from typing import Protocol

from lakeplan.models.base import TaskStatus, resolve_final_status
from lakeplan.models.pipeline import PipelineRead
from lakeplan.models.task import TaskRead
from lakeplan.utils.logger import pipeline_logger

from .service import PipelineService


class TaskRunner(Protocol):
    """Executes one task; raising marks the task failed."""

    async def run_task(self, task: TaskRead) -> None: ...


class PipelineRunner:
    """Drive a created pipeline through its stages.

    Args:
        service: Coordinator used for every status transition.
        task_runner: Executes individual tasks.

    Example:
        runner = PipelineRunner(service, MyTaskRunner())
        pipeline = await runner.run(pipeline_id)
    """

    def __init__(self, service: PipelineService, task_runner: TaskRunner):
        self.service = service
        self.task_runner = task_runner

    async def run(self, pipeline_id: int) -> PipelineRead:
        """Run a pipeline to a terminal status.

        A failed task stops the pipeline after its stage unless the pipeline
        was created with ``skip_on_fail``. A cancellation seen between stages
        stops it before the next stage starts.

        If the run itself is interrupted, by cancellation of the calling task
        or by an error outside task execution, the pipeline is finished as
        ``cancelled`` or ``failed`` before the interruption propagates, so its
        blueprint can admit new pipelines.

        Returns:
            The pipeline in its terminal status
        """
        pipeline = await self.service.start_pipeline(pipeline_id)
        try:
            return await self._run_stages(pipeline)
        except BaseException as exc:
            cancelled = isinstance(exc, asyncio.CancelledError)
            status = TaskStatus.cancelled if cancelled else TaskStatus.failed
            pipeline_logger(pipeline_id).error(f"run interrupted by {type(exc).__name__}: {exc}")
            # Shielded so the pipeline is finished even while this task is being cancelled
            await asyncio.shield(
                self.service.abort_pipeline(
                    pipeline_id, status, message=str(exc), error_name=type(exc).__name__
                )
            )
            raise

    async def _run_stages(self, pipeline: PipelineRead) -> PipelineRead:
        pipeline_id = pipeline.id
        stages: dict[int, list[TaskRead]] = defaultdict(list)
        for task in await self.service.get_tasks(pipeline_id):
            stages[task.pipeline_row].append(task)

        failed = 0
        succeeded = 0
        first_error: BaseException | None = None
        log = pipeline_logger(pipeline_id)

        for row in sorted(stages):
            if await self.service.is_cancelled(pipeline_id):
                log.info(f"cancelled before stage {row}")
                return await self.service.get_pipeline(pipeline_id)

            stage_log = pipeline_logger(pipeline_id, row)
            await self.service.set_stage(pipeline_id, row)
            tasks = stages[row]
            for task in tasks:
                await self.service.start_task(task.id)
            stage_log.info(f"running {len(tasks)} task(s)")

            results = await asyncio.gather(
                *(self.task_runner.run_task(task) for task in tasks), return_exceptions=True
            )

            for task, result in zip(tasks, results, strict=True):
                if isinstance(result, BaseException) and not isinstance(result, Exception):
                    raise result
                if isinstance(result, Exception):
                    failed += 1
                    first_error = first_error or result
                    stage_log.error(f"task {task.id} ({task.plugin}) failed: {result}")
                    await self.service.finish_task(
                        task.id,
                        TaskStatus.failed,
                        message=str(result),
                        error_name=type(result).__name__,
                    )
                else:
                    succeeded += 1
                    await self.service.finish_task(task.id, TaskStatus.completed)

            if failed and not pipeline.skip_on_fail:
                stage_log.warning(f"stopping after {failed} failed task(s)")
                break

        if await self.service.is_cancelled(pipeline_id):
            log.info("cancelled before finishing")
            return await self.service.get_pipeline(pipeline_id)

        status = resolve_final_status(failed, succeeded, pipeline.skip_on_fail)
        return await self.service.finish_pipeline(
            pipeline_id,
            status,
            message=str(first_error) if first_error else "",
            error_name=type(first_error).__name__ if first_error else "",
        )
