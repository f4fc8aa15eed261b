"""Global test configuration: file-backed SQLite database and fake plugins."""

from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

# Import all models to ensure metadata is populated
from lakeplan.models import *  # noqa: F403
from lakeplan.models.blueprint import BlueprintScope, BlueprintSyncPolicy
from lakeplan.models.plan import PipelinePlan, PipelineStage, PipelineTask
from lakeplan.models.scope import Scope
from lakeplan.plugins.registry import PluginRegistry
from lakeplan.services.pipeline import BlueprintLocker, PipelineService, build_pipeline_service

TEST_SECRET = "test-encryption-secret"


# ---------------------------------------------------------------------------
# Fake plugins
# ---------------------------------------------------------------------------


class FakeSourcePlanner:
    """Collects every scope in stage one and extracts it in stage two."""

    def __init__(self, plugin: str, table_name: str = "repos"):
        self.plugin = plugin
        self.table_name = table_name
        self.calls: list[tuple[int, list[BlueprintScope], BlueprintSyncPolicy]] = []

    def make_data_source_plan(self, connection_id, scopes, sync_policy):
        self.calls.append((connection_id, scopes, sync_policy))
        plan = PipelinePlan.empty(2) if scopes else PipelinePlan()
        found = []
        for scope in scopes:
            options = {"connectionId": connection_id, "scopeId": scope.id}
            plan.add_task(0, PipelineTask(plugin=self.plugin, subtasks=["collect"], options=options))
            plan.add_task(1, PipelineTask(plugin=self.plugin, subtasks=["extract"], options=options))
            found.append(
                Scope(
                    table_name=self.table_name,
                    scope_id=f"{self.plugin}:{connection_id}:{scope.id}",
                    name=scope.name,
                    plugin=self.plugin,
                    connection_id=connection_id,
                )
            )
        return plan, found


class FakeMetricPlanner:
    """Plans a single-stage metric computation and records its options."""

    def __init__(self, plugin: str):
        self.plugin = plugin
        self.calls: list[tuple[str, dict]] = []

    def make_metric_plan(self, project_name, options):
        self.calls.append((project_name, options))
        task = PipelineTask(plugin=self.plugin, options={"projectName": project_name, **options})
        return PipelinePlan([PipelineStage([task])])


class BrokenPlanner:
    def make_data_source_plan(self, connection_id, scopes, sync_policy):
        raise RuntimeError("upstream API unreachable")

    def make_metric_plan(self, project_name, options):
        raise RuntimeError("metric backend unreachable")


@pytest.fixture
def registry() -> PluginRegistry:
    """Registry with two data sources, a scope-less webhook, and metric plugins."""
    registry = PluginRegistry()
    registry.register("github", data_source=FakeSourcePlanner("github"))
    registry.register("gitlab", data_source=FakeSourcePlanner("gitlab"))
    registry.register("webhook", data_source=FakeSourcePlanner("webhook", table_name="webhooks"))
    registry.register("dora", metric=FakeMetricPlanner("dora"))
    registry.register(
        "refdiff", data_source=FakeSourcePlanner("refdiff"), metric=FakeMetricPlanner("refdiff")
    )
    registry.register("broken", data_source=BrokenPlanner(), metric=BrokenPlanner())
    return registry


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


def build_plan(*stage_sizes: int, plugin: str = "github") -> PipelinePlan:
    """Plan with one stage per size, each holding that many tasks."""
    return PipelinePlan(
        [
            PipelineStage(
                [
                    PipelineTask(plugin=plugin, subtasks=["collect"], options={"slot": slot})
                    for slot in range(size)
                ]
            )
            for size in stage_sizes
        ]
    )


@pytest.fixture
def make_plan() -> Callable[..., PipelinePlan]:
    return build_plan


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create test database engine on a SQLite file private to the test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'lakeplan_test.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def locker() -> BlueprintLocker:
    return BlueprintLocker()


@pytest.fixture
def encryption_secret() -> str:
    return TEST_SECRET


@pytest.fixture
def pipeline_service(test_session, locker, encryption_secret) -> PipelineService:
    return build_pipeline_service(test_session, locker=locker, encryption_secret=encryption_secret)
