"""Repository for scope storage and project/scope mappings."""

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col

from lakeplan.models.scope import ProjectMapping, Scope
from lakeplan.repositories.base import BaseRepository


class ScopeRepository(BaseRepository[Scope]):
    """Repository for Scope model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize scope repository with session."""
        super().__init__(session, Scope)

    async def upsert(self, scope: Scope, commit: bool = True) -> Scope:
        """Create the scope or update the row with the same (table, id).

        Args:
            scope: Scope reported by a plugin
            commit: Commit immediately, or only flush into the open transaction

        Returns:
            The persistent scope row
        """
        merged = await self.session.merge(scope)
        await self._persist(commit)
        return merged


class ProjectMappingRepository(BaseRepository[ProjectMapping]):
    """Repository for ProjectMapping model operations."""

    def __init__(self, session: AsyncSession):
        """Initialize project mapping repository with session."""
        super().__init__(session, ProjectMapping)

    async def replace_for_project(
        self, project_name: str, scopes: list[Scope], commit: bool = True
    ) -> list[ProjectMapping]:
        """Replace every mapping of a project with mappings to the given scopes.

        Args:
            project_name: Project name
            scopes: Scopes the project now covers
            commit: Commit immediately, or only flush into the open transaction

        Returns:
            The new mapping rows
        """
        await self.session.execute(
            delete(ProjectMapping).where(col(ProjectMapping.project_name) == project_name)
        )
        # Collapse scopes reported twice by different connections
        keys = dict.fromkeys((scope.table_name, scope.scope_id) for scope in scopes)
        mappings = [
            ProjectMapping(project_name=project_name, table_name=table_name, row_id=row_id)
            for table_name, row_id in keys
        ]
        self.session.add_all(mappings)
        await self._persist(commit)
        return mappings
