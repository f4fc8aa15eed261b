"""Generic async repository shared by the pipeline, task and scope repositories."""

from typing import Any, TypeVar

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select
from sqlmodel import SQLModel, select

from lakeplan.exceptions import EntityNotFoundError

ModelT = TypeVar("ModelT", bound=SQLModel)
type FilterValueT = str | int | float | bool


class BaseRepository[ModelT: SQLModel]:
    """Row access for one SQLModel table.

    Every write takes ``commit``. With ``commit=False`` the write is only
    flushed, so several writes can share one transaction that the caller
    ends with :meth:`commit` or :meth:`rollback`.
    """

    def __init__(self, session: AsyncSession, model_class: type[ModelT]):
        self.session = session
        self.model_class = model_class

    async def _persist(self, commit: bool) -> None:
        if commit:
            await self.session.commit()
        else:
            await self.session.flush()

    def _where(self, statement: Select, filters: dict[str, FilterValueT]) -> Select:
        # Unknown columns are ignored
        conditions = [
            getattr(self.model_class, name) == value
            for name, value in filters.items()
            if hasattr(self.model_class, name)
        ]
        return statement.where(*conditions) if conditions else statement

    async def get(self, id: Any) -> ModelT:
        """Load a row by primary key.

        Raises:
            EntityNotFoundError: No row has this key. Subclasses raise a
                more specific subclass.
        """
        entity = await self.get_optional(id)
        if entity is None:
            raise EntityNotFoundError(f"{self.model_class.__name__} with ID {id} not found")
        return entity

    async def get_optional(self, id: Any) -> ModelT | None:
        return await self.session.get(self.model_class, id)

    async def count(self, **filters: FilterValueT) -> int:
        statement = self._where(select(func.count()).select_from(self.model_class), filters)
        result = await self.session.execute(statement)
        return result.scalar_one()

    async def create(self, entity: ModelT, commit: bool = True) -> ModelT:
        """Insert one row and load its generated columns back."""
        self.session.add(entity)
        await self._persist(commit)
        await self.session.refresh(entity)
        return entity

    async def create_many(self, entities: list[ModelT], commit: bool = True) -> list[ModelT]:
        self.session.add_all(entities)
        await self._persist(commit)
        for entity in entities:
            await self.session.refresh(entity)
        return entities

    async def update(
        self,
        entity: ModelT,
        update_data: dict[str, Any],
        exclude_unset: bool = True,
        commit: bool = True,
    ) -> ModelT:
        """Apply ``update_data`` to a row.

        Args:
            entity: Persistent row
            update_data: Column values; names the model lacks are ignored
            exclude_unset: Leave columns alone whose new value is None.
                Pass False to write explicit NULLs.
            commit: Commit, or only flush into the open transaction
        """
        changes = {
            name: value
            for name, value in update_data.items()
            if hasattr(entity, name) and not (exclude_unset and value is None)
        }
        for name, value in changes.items():
            setattr(entity, name, value)
        self.session.add(entity)
        await self._persist(commit)
        await self.session.refresh(entity)
        return entity

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    async def refresh(self, entity: ModelT, attribute_names: list[str] | None = None) -> ModelT:
        """Reload a row, or only the named columns, from the database."""
        await self.session.refresh(entity, attribute_names)
        return entity
