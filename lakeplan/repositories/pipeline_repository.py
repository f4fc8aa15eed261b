"""Repository for pipeline and pipeline label database operations."""

from collections import defaultdict
from collections.abc import Sequence

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from lakeplan.exceptions import PipelineNotFoundError
from lakeplan.models.base import PENDING_TASK_STATUSES
from lakeplan.models.pipeline import Pipeline, PipelineFind, PipelineLabel
from lakeplan.repositories.base import BaseRepository


class PipelineRepository(BaseRepository[Pipeline]):
    """Repository for Pipeline model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize pipeline repository with session."""
        super().__init__(session, Pipeline)

    async def get(self, pipeline_id: int) -> Pipeline:
        """Get pipeline by ID.

        Raises:
            PipelineNotFoundError: If pipeline doesn't exist
        """
        pipeline = await self.session.get(Pipeline, pipeline_id)
        if not pipeline:
            raise PipelineNotFoundError(pipeline_id)
        return pipeline

    async def count_pending_for_blueprint(self, blueprint_id: int) -> int:
        """Count pipelines of a blueprint that have not reached a terminal status."""
        statement = (
            select(func.count())
            .select_from(Pipeline)
            .where(
                Pipeline.blueprint_id == blueprint_id,
                col(Pipeline.status).in_(PENDING_TASK_STATUSES),
            )
        )
        result = await self.session.execute(statement)
        return result.scalar() or 0

    async def search(self, criteria: PipelineFind, limit: int) -> tuple[Sequence[Pipeline], int]:
        """Find pipelines matching the criteria, most recent first.

        Args:
            criteria: Filters plus ``skip``; ``criteria.limit`` is ignored in favour of ``limit``
            limit: Page size

        Returns:
            The page of pipelines and the total number of matches
        """
        statement = select(Pipeline)

        if criteria.blueprint_id:
            statement = statement.where(Pipeline.blueprint_id == criteria.blueprint_id)
        if criteria.status is not None:
            statement = statement.where(Pipeline.status == criteria.status)
        if criteria.pending:
            statement = statement.where(
                col(Pipeline.finished_at).is_(None),
                col(Pipeline.status).in_(PENDING_TASK_STATUSES),
            )
        if criteria.label:
            statement = statement.join(
                PipelineLabel, col(PipelineLabel.pipeline_id) == col(Pipeline.id)
            ).where(PipelineLabel.name == criteria.label)

        count_statement = select(func.count()).select_from(statement.subquery())
        total = (await self.session.execute(count_statement)).scalar() or 0

        statement = statement.order_by(col(Pipeline.id).desc()).offset(criteria.skip).limit(limit)
        result = await self.session.execute(statement)
        return result.scalars().all(), total

    async def add_labels(
        self, pipeline_id: int, names: list[str], commit: bool = True
    ) -> list[PipelineLabel]:
        """Attach labels to a pipeline.

        Args:
            pipeline_id: Pipeline ID
            names: Label names, assumed unique
            commit: Commit immediately, or only flush into the open transaction

        Returns:
            Created label rows
        """
        labels = [PipelineLabel(pipeline_id=pipeline_id, name=name) for name in names]
        if not labels:
            return labels
        self.session.add_all(labels)
        await self._persist(commit)
        return labels

    async def get_labels(self, pipeline_id: int) -> list[str]:
        """Get label names of one pipeline."""
        return (await self.get_labels_for([pipeline_id]))[pipeline_id]

    async def get_labels_for(self, pipeline_ids: list[int]) -> dict[int, list[str]]:
        """Get label names for several pipelines.

        Returns:
            Mapping of every requested pipeline ID to its label names (possibly empty)
        """
        labels: dict[int, list[str]] = defaultdict(list)
        if pipeline_ids:
            statement = (
                select(PipelineLabel)
                .where(col(PipelineLabel.pipeline_id).in_(pipeline_ids))
                .order_by(col(PipelineLabel.pipeline_id), col(PipelineLabel.name))
            )
            result = await self.session.execute(statement)
            for label in result.scalars().all():
                labels[label.pipeline_id].append(label.name)
        return {pipeline_id: labels[pipeline_id] for pipeline_id in pipeline_ids}
