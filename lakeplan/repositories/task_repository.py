"""Repository for pipeline task database operations."""

from collections.abc import Sequence

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from lakeplan.exceptions import TaskNotFoundError
from lakeplan.models.base import TaskStatus, utcnow
from lakeplan.models.task import Task
from lakeplan.repositories.base import BaseRepository


class TaskRepository(BaseRepository[Task]):
    """Repository for Task model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize task repository with session."""
        super().__init__(session, Task)

    async def get(self, task_id: int) -> Task:
        """Get task by ID.

        Raises:
            TaskNotFoundError: If task doesn't exist
        """
        task = await self.session.get(Task, task_id)
        if not task:
            raise TaskNotFoundError(task_id)
        return task

    async def list_by_pipeline(self, pipeline_id: int) -> Sequence[Task]:
        """List the tasks of a pipeline in plan order (row, then column)."""
        statement = (
            select(Task)
            .where(Task.pipeline_id == pipeline_id)
            .order_by(col(Task.pipeline_row), col(Task.pipeline_col))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(statement)
        return result.scalars().all()

    async def cancel_not_started(self, pipeline_id: int, commit: bool = True) -> int:
        """Mark every task of a pipeline that never started as cancelled.

        Returns:
            Number of cancelled tasks
        """
        return await self._cancel(pipeline_id, [TaskStatus.created], commit)

    async def cancel_unfinished(self, pipeline_id: int, commit: bool = True) -> int:
        """Mark every task of a pipeline that is not terminal yet as cancelled.

        Used when a run is interrupted while tasks are still running.

        Returns:
            Number of cancelled tasks
        """
        return await self._cancel(pipeline_id, [TaskStatus.created, TaskStatus.running], commit)

    async def _cancel(self, pipeline_id: int, statuses: list[TaskStatus], commit: bool) -> int:
        now = utcnow()
        statement = (
            update(Task)
            .where(col(Task.pipeline_id) == pipeline_id, col(Task.status).in_(statuses))
            .values(status=TaskStatus.cancelled, finished_at=now, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )
        result = await self.session.execute(statement)
        await self._persist(commit)
        return result.rowcount or 0
