"""Integration tests for stage-barrier pipeline execution."""

import asyncio

import pytest

from lakeplan.exceptions import PipelineFinishedError, ProgressError
from lakeplan.models.base import TaskStatus
from lakeplan.models.pipeline import PipelineCreate
from lakeplan.models.plan import PipelinePlan, PipelineStage, PipelineTask
from lakeplan.models.task import TaskRead
from lakeplan.services.pipeline import PipelineRunner, build_pipeline_service


class RecordingTaskRunner:
    """Task runner that records start/end events and fails chosen plugins."""

    def __init__(self, fail_plugins: tuple[str, ...] = (), hooks: dict | None = None):
        self.fail_plugins = fail_plugins
        self.hooks = hooks or {}
        self.events: list[tuple[str, int, str]] = []

    async def run_task(self, task: TaskRead) -> None:
        self.events.append(("start", task.pipeline_row, task.plugin))
        # Let sibling tasks of the stage start before this one ends
        await asyncio.sleep(0.01 * task.pipeline_col)
        if task.plugin in self.hooks:
            await self.hooks[task.plugin](task)
        if task.plugin in self.fail_plugins:
            self.events.append(("fail", task.pipeline_row, task.plugin))
            raise RuntimeError(f"{task.plugin} exploded")
        self.events.append(("end", task.pipeline_row, task.plugin))

    def plugins_run(self) -> list[str]:
        return [plugin for kind, _, plugin in self.events if kind == "start"]


def _plan(*stages: list[str]) -> PipelinePlan:
    return PipelinePlan(
        [PipelineStage([PipelineTask(plugin=plugin) for plugin in stage]) for stage in stages]
    )


async def _create(
    service, plan: PipelinePlan, skip_on_fail: bool = False, blueprint_id: int = 0
) -> int:
    pipeline = await service.create_pipeline(
        PipelineCreate(name="run", plan=plan, skip_on_fail=skip_on_fail, blueprint_id=blueprint_id)
    )
    return pipeline.id


@pytest.mark.asyncio
async def test_all_tasks_succeed(pipeline_service):
    pipeline_id = await _create(pipeline_service, _plan(["github", "gitlab"], ["gitextractor"], ["dora"]))
    task_runner = RecordingTaskRunner()

    result = await PipelineRunner(pipeline_service, task_runner).run(pipeline_id)

    assert result.status == TaskStatus.completed
    assert result.finished_tasks == result.total_tasks == 4
    assert result.stage == 3
    assert result.began_at is not None and result.finished_at is not None
    assert result.message == "" and result.error_name == ""

    tasks = await pipeline_service.get_tasks(pipeline_id)
    assert all(task.status == TaskStatus.completed for task in tasks)
    assert all(task.progress == 1.0 for task in tasks)


@pytest.mark.asyncio
async def test_stage_barrier(pipeline_service):
    pipeline_id = await _create(
        pipeline_service, _plan(["github", "gitlab", "jira"], ["gitextractor", "refdiff"], ["dora"])
    )
    task_runner = RecordingTaskRunner()

    await PipelineRunner(pipeline_service, task_runner).run(pipeline_id)

    rows = [row for _, row, _ in task_runner.events]
    # Once a later stage shows up, no event of an earlier stage follows
    assert rows == sorted(rows)
    for row in (1, 2):
        starts = [i for i, (kind, r, _) in enumerate(task_runner.events) if kind == "start" and r == row]
        ends = [i for i, (kind, r, _) in enumerate(task_runner.events) if kind == "end" and r == row]
        # Tasks of one stage run concurrently
        assert max(starts) < min(ends)


@pytest.mark.asyncio
async def test_failure_stops_later_stages(pipeline_service):
    pipeline_id = await _create(pipeline_service, _plan(["github", "broken"], ["dora"]))
    task_runner = RecordingTaskRunner(fail_plugins=("broken",))

    result = await PipelineRunner(pipeline_service, task_runner).run(pipeline_id)

    assert result.status == TaskStatus.failed
    assert result.message == "broken exploded"
    assert result.error_name == "RuntimeError"
    assert result.finished_tasks == 2
    assert "dora" not in task_runner.plugins_run()

    statuses = {task.plugin: task.status for task in await pipeline_service.get_tasks(pipeline_id)}
    assert statuses == {
        "github": TaskStatus.completed,
        "broken": TaskStatus.failed,
        "dora": TaskStatus.cancelled,
    }
    [broken] = [t for t in await pipeline_service.get_tasks(pipeline_id) if t.plugin == "broken"]
    assert broken.error_name == "RuntimeError"
    assert broken.message == "broken exploded"


@pytest.mark.asyncio
async def test_skip_on_fail_runs_every_stage(pipeline_service):
    pipeline_id = await _create(
        pipeline_service, _plan(["github", "broken"], ["dora"]), skip_on_fail=True
    )
    task_runner = RecordingTaskRunner(fail_plugins=("broken",))

    result = await PipelineRunner(pipeline_service, task_runner).run(pipeline_id)

    assert result.status == TaskStatus.partially_completed
    assert result.finished_tasks == 3
    assert result.error_name == "RuntimeError"
    assert task_runner.plugins_run()[-1] == "dora"


@pytest.mark.asyncio
async def test_skip_on_fail_with_nothing_succeeding(pipeline_service):
    pipeline_id = await _create(pipeline_service, _plan(["broken"], ["broken"]), skip_on_fail=True)

    result = await PipelineRunner(
        pipeline_service, RecordingTaskRunner(fail_plugins=("broken",))
    ).run(pipeline_id)

    assert result.status == TaskStatus.failed
    assert result.finished_tasks == 2


@pytest.mark.asyncio
async def test_cancel_stops_before_next_stage(
    pipeline_service, session_factory, locker, encryption_secret
):
    pipeline_id = await _create(pipeline_service, _plan(["github"], ["dora"]))

    async def cancel_from_elsewhere(task: TaskRead) -> None:
        async with session_factory() as session:
            other = build_pipeline_service(session, locker, encryption_secret)
            await other.cancel_pipeline(task.pipeline_id)

    task_runner = RecordingTaskRunner(hooks={"github": cancel_from_elsewhere})
    result = await PipelineRunner(pipeline_service, task_runner).run(pipeline_id)

    assert result.status == TaskStatus.cancelled
    assert task_runner.plugins_run() == ["github"]
    statuses = {task.plugin: task.status for task in await pipeline_service.get_tasks(pipeline_id)}
    assert statuses == {"github": TaskStatus.completed, "dora": TaskStatus.cancelled}


@pytest.mark.asyncio
async def test_pipeline_runs_only_once(pipeline_service):
    pipeline_id = await _create(pipeline_service, _plan(["github"]))
    runner = PipelineRunner(pipeline_service, RecordingTaskRunner())
    await runner.run(pipeline_id)

    with pytest.raises(PipelineFinishedError):
        await runner.run(pipeline_id)


@pytest.mark.asyncio
async def test_running_pipeline_cannot_be_started_again(pipeline_service):
    pipeline_id = await _create(pipeline_service, _plan(["github"]))
    await pipeline_service.start_pipeline(pipeline_id)

    with pytest.raises(ProgressError):
        await PipelineRunner(pipeline_service, RecordingTaskRunner()).run(pipeline_id)


class Halt(BaseException):
    """Interrupts a run without being an ordinary task failure."""


@pytest.mark.asyncio
async def test_cancelled_run_releases_blueprint(pipeline_service):
    pipeline_id = await _create(pipeline_service, _plan(["github"], ["dora"]), blueprint_id=5)
    started = asyncio.Event()

    async def block(task: TaskRead) -> None:
        started.set()
        await asyncio.sleep(60)

    runner = PipelineRunner(pipeline_service, RecordingTaskRunner(hooks={"github": block}))
    run = asyncio.create_task(runner.run(pipeline_id))
    await started.wait()
    run.cancel()
    with pytest.raises(asyncio.CancelledError):
        await run

    pipeline = await pipeline_service.get_pipeline(pipeline_id)
    assert pipeline.status == TaskStatus.cancelled
    assert pipeline.finished_at is not None
    statuses = {task.plugin: task.status for task in await pipeline_service.get_tasks(pipeline_id)}
    assert statuses == {"github": TaskStatus.cancelled, "dora": TaskStatus.cancelled}

    # The blueprint has no pending pipeline left
    next_id = await _create(pipeline_service, _plan(["github"]), blueprint_id=5)
    assert next_id != pipeline_id


@pytest.mark.asyncio
async def test_interrupted_run_finishes_as_failed(pipeline_service):
    pipeline_id = await _create(pipeline_service, _plan(["github"], ["dora"]), blueprint_id=6)

    async def halt(task: TaskRead) -> None:
        raise Halt("worker shutting down")

    task_runner = RecordingTaskRunner(hooks={"github": halt})
    with pytest.raises(Halt):
        await PipelineRunner(pipeline_service, task_runner).run(pipeline_id)

    pipeline = await pipeline_service.get_pipeline(pipeline_id)
    assert pipeline.status == TaskStatus.failed
    assert pipeline.error_name == "Halt"
    assert pipeline.message == "worker shutting down"
    assert "dora" not in task_runner.plugins_run()
    tasks = await pipeline_service.get_tasks(pipeline_id)
    assert all(task.status == TaskStatus.cancelled for task in tasks)
    await _create(pipeline_service, _plan(["github"]), blueprint_id=6)
