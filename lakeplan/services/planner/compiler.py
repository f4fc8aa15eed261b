"""
Blueprint plan compiler.

Turns a blueprint (connections with scopes, plus enabled metric plugins)
into one plan: every connection's sub-plan runs in parallel with the
others, and all metric sub-plans run afterwards, since metrics are computed
from the collected data.

``make_plan_v2`` is pure. ``PlanCompiler`` wraps it and records the scopes
the plan touches together with the project/scope mapping.
"""

from collections.abc import Collection

from sqlalchemy.exc import SQLAlchemyError

from lakeplan.exceptions import EmptyScopesError, LakeplanError, PersistError, PlanCompileError
from lakeplan.models.blueprint import BlueprintSettings, BlueprintSyncPolicy
from lakeplan.models.plan import PipelinePlan
from lakeplan.models.scope import Scope
from lakeplan.plugins.registry import PluginRegistry, plugin_registry
from lakeplan.repositories.scope_repository import ProjectMappingRepository, ScopeRepository
from lakeplan.settings import settings
from lakeplan.types import MetricSettings
from lakeplan.utils.logger import logger

from .compose import parallelize_plans, sequentialize_plans


def make_plan_v2(
    project_name: str,
    sync_policy: BlueprintSyncPolicy,
    sources: BlueprintSettings,
    metrics: MetricSettings | None = None,
    registry: PluginRegistry | None = None,
    scope_exempt_plugins: Collection[str] | None = None,
) -> tuple[PipelinePlan, list[Scope]]:
    """Compile a blueprint into a plan and the scopes it touches.

    Args:
        project_name: Project the blueprint belongs to, passed to metric plugins.
        sync_policy: Policy shared by all data-source plugins.
        sources: Blueprint connections, in order.
        metrics: Enabled metric plugins mapped to their options; ``None``
            options mean "enabled with no options".
        registry: Plugin registry, the process-wide one by default.
        scope_exempt_plugins: Plugins allowed to have no scope, from settings by default.

    Returns:
        The merged plan and every scope reported by data-source plugins

    Raises:
        PlanCompileError: On unknown plugins, missing capabilities, empty
            scopes or a plugin failing to plan. No partial plan is returned.
    """
    registry = registry if registry is not None else plugin_registry
    exempt = set(
        scope_exempt_plugins if scope_exempt_plugins is not None else settings.scope_exempt_plugins
    )

    source_plans: list[PipelinePlan] = []
    scopes: list[Scope] = []
    for index, connection in enumerate(sources.connections):
        if not connection.scopes and connection.plugin not in exempt:
            raise EmptyScopesError(index)
        planner = registry.resolve(connection.plugin).require_data_source()
        try:
            plan, plugin_scopes = planner.make_data_source_plan(
                connection.connection_id, connection.scopes, sync_policy
            )
        except LakeplanError:
            raise
        except Exception as e:
            raise PlanCompileError(
                f"connections[{index}]: plugin {connection.plugin} failed to make a plan: {e}"
            ) from e
        source_plans.append(plan)
        # One target may surface several scopes, e.g. a repo and its board
        scopes.extend(plugin_scopes)

    metric_plans: list[PipelinePlan] = []
    for name, options in (metrics or {}).items():
        planner = registry.resolve(name).require_metric()
        try:
            metric_plans.append(planner.make_metric_plan(project_name, options or {}))
        except LakeplanError:
            raise
        except Exception as e:
            raise PlanCompileError(f"Metric plugin {name} failed to make a plan: {e}") from e

    plan = sequentialize_plans(
        parallelize_plans(*source_plans),
        parallelize_plans(*metric_plans),
    )
    logger.debug(
        f"Compiled plan for project '{project_name}': {len(source_plans)} connections, "
        f"{len(metric_plans)} metric plugins, {plan.stage_count} stages, {plan.task_count} tasks"
    )
    return plan, scopes


class PlanCompiler:
    """Compiles blueprints and keeps scope storage in step with the result."""

    def __init__(
        self,
        scope_repo: ScopeRepository,
        mapping_repo: ProjectMappingRepository,
        registry: PluginRegistry | None = None,
        scope_exempt_plugins: Collection[str] | None = None,
    ):
        """Initialize the compiler.

        Args:
            scope_repo: Scope repository instance
            mapping_repo: Project mapping repository instance
            registry: Plugin registry, the process-wide one by default
            scope_exempt_plugins: Plugins allowed to have no scope, from settings by default
        """
        self.scope_repo = scope_repo
        self.mapping_repo = mapping_repo
        self.registry = registry
        self.scope_exempt_plugins = scope_exempt_plugins

    async def compile_plan_v2(
        self,
        project_name: str,
        sync_policy: BlueprintSyncPolicy,
        sources: BlueprintSettings,
        metrics: MetricSettings | None = None,
    ) -> PipelinePlan:
        """Compile a blueprint and store the scopes it touches.

        Every scope is upserted. When a project name is given, the project's
        scope mappings are replaced by the fresh set, so compiling the same
        blueprint again yields the same mappings. Both writes share one
        transaction.

        Raises:
            PlanCompileError: If the blueprint cannot be compiled (nothing is written)
            PersistError: If storing scopes or mappings fails (nothing is written)
        """
        plan, scopes = make_plan_v2(
            project_name,
            sync_policy,
            sources,
            metrics,
            registry=self.registry,
            scope_exempt_plugins=self.scope_exempt_plugins,
        )

        scope = None
        try:
            for scope in scopes:
                await self.scope_repo.upsert(scope, commit=False)
            scope = None
            if project_name:
                await self.mapping_repo.replace_for_project(project_name, scopes, commit=False)
            await self.scope_repo.commit()
        except SQLAlchemyError as e:
            await self.scope_repo.rollback()
            if scope is not None:
                message = f"Failed to create scopes: [{scope.describe()}]"
            else:
                message = f"Failed to refresh project mappings of '{project_name}'"
            logger.error(f"{message}: {e}")
            raise PersistError(message) from e

        logger.info(
            f"Compiled blueprint plan for project '{project_name}' "
            f"with {plan.task_count} tasks and {len(scopes)} scopes"
        )
        return plan
