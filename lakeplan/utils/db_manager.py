"""
Async database access for lakeplan.

``DatabaseManager`` owns the async engine built from one ``Settings``
object and hands out sessions bound to it. SQLite runs through aiosqlite
with foreign keys enforced; PostgreSQL runs through asyncpg. Nothing
connects until the engine is first used.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from ..settings import DatabaseDriver, Settings, settings
from ..utils.logger import logger

SQLITE_BUSY_TIMEOUT_MS = 5000


def _enable_sqlite_constraints(dbapi_connection: Any, connection_record: Any) -> None:  # noqa: ARG001
    cursor = dbapi_connection.cursor()
    # Task and label rows reference their pipeline
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


class DatabaseManager:
    """
    Owns the async engine and session factory for one configuration.

    Example:
        manager = DatabaseManager(Settings(database_name="/var/lib/lakeplan/lake"))
        await manager.create_db_and_tables_async()
        async with manager.get_async_session_context() as session:
            service = build_pipeline_service(session)
            await service.create_pipeline(new_pipeline)
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._config = config or settings
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_sqlite(self) -> bool:
        return self._config.database_driver == DatabaseDriver.SQLITE

    @property
    def async_url(self) -> str:
        return self._config.database_url

    def _engine_options(self) -> dict[str, Any]:
        if self.is_sqlite:
            return {"connect_args": {"check_same_thread": False}}
        # The runner keeps one session per pipeline; connections may idle between stages
        return {"pool_size": 20, "max_overflow": 0, "pool_pre_ping": True}

    def _start(self) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
        engine = create_async_engine(self.async_url, echo=self._config.debug, **self._engine_options())
        if self.is_sqlite:
            event.listen(engine.sync_engine, "connect", _enable_sqlite_constraints)
        # Sessions keep loaded attributes after commit: services hand
        # committed rows straight to read models
        sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        logger.info(
            f"Async database engine created for {self._config.database_driver.value} "
            f"database '{self._config.database_name}'"
        )
        return engine, sessions

    @property
    def async_engine(self) -> AsyncEngine:
        """The engine, created on first access."""
        if self._engine is None:
            self._engine, self._sessions = self._start()
        return self._engine

    @property
    def async_session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._sessions is None:
            self._engine, self._sessions = self._start()
        return self._sessions

    async def create_db_and_tables_async(self) -> None:
        """Create the pipeline, task, label and scope tables if missing."""
        # Register every table on SQLModel.metadata
        from .. import models  # noqa: F401

        async with self.async_engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.info(f"Database tables ready: {', '.join(sorted(SQLModel.metadata.tables))}")

    @asynccontextmanager
    async def get_async_session_context(self) -> AsyncGenerator[AsyncSession]:
        """
        Open a session that commits when the block exits cleanly.

        Database errors roll the session back and propagate.
        """
        session = self.async_session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as exc:
            logger.error(f"Database error, rolling back: {exc}")
            await session.rollback()
            raise
        finally:
            await session.close()

    async def close(self) -> None:
        """Dispose the engine; the next use creates a fresh one."""
        if self._engine is None:
            return
        engine, self._engine, self._sessions = self._engine, None, None
        await engine.dispose()
        logger.info("Database engine disposed")

    def __repr__(self) -> str:
        state = "started" if self._engine is not None else "idle"
        return f"<DatabaseManager {self._config.database_driver.value} {state}>"


db_manager = DatabaseManager()
