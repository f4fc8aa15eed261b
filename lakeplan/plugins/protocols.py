"""
Plugin capabilities consumed by the plan compiler.

A plugin advertises each capability it supports when it is registered;
the compiler never inspects plugin types to discover them.
"""

from typing import Protocol

from ..models.blueprint import BlueprintScope, BlueprintSyncPolicy
from ..models.plan import PipelinePlan
from ..models.scope import Scope
from ..types import JSONDict


class DataSourcePlanner(Protocol):
    """Capability of a data-source plugin to plan collection for one connection."""

    def make_data_source_plan(
        self,
        connection_id: int,
        scopes: list[BlueprintScope],
        sync_policy: BlueprintSyncPolicy,
    ) -> tuple[PipelinePlan, list[Scope]]:
        """Plan collection for the given scopes.

        Returns:
            The connection's sub-plan and the scopes it touches
        """
        ...


class MetricPlanner(Protocol):
    """Capability of a metric plugin to plan computation over a project."""

    def make_metric_plan(self, project_name: str, options: JSONDict) -> PipelinePlan: ...
