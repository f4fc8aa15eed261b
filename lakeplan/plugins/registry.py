"""
Plugin registry.

Maps plugin names to the capabilities they advertise. A process-wide
``plugin_registry`` is available for plugins that register on import;
the compiler accepts any registry instance.

Example:
    from lakeplan.plugins import plugin_registry

    plugin_registry.register("github", data_source=GithubPlanner())
    plugin_registry.register("dora", metric=DoraPlanner())
"""

from dataclasses import dataclass

from ..exceptions import MissingCapabilityError, PluginNotFoundError
from ..utils.logger import logger
from .protocols import DataSourcePlanner, MetricPlanner

DATA_SOURCE_CAPABILITY = "DataSourcePluginBlueprintV200"
METRIC_CAPABILITY = "MetricPluginBlueprintV200"


@dataclass(frozen=True)
class RegisteredPlugin:
    """A plugin name with the capabilities it advertises."""

    name: str
    data_source: DataSourcePlanner | None = None
    metric: MetricPlanner | None = None

    def require_data_source(self) -> DataSourcePlanner:
        """Get the data-source capability.

        Raises:
            MissingCapabilityError: If the plugin does not plan data collection
        """
        if self.data_source is None:
            raise MissingCapabilityError(self.name, DATA_SOURCE_CAPABILITY)
        return self.data_source

    def require_metric(self) -> MetricPlanner:
        """Get the metric capability.

        Raises:
            MissingCapabilityError: If the plugin does not plan metrics
        """
        if self.metric is None:
            raise MissingCapabilityError(self.name, METRIC_CAPABILITY)
        return self.metric


class PluginRegistry:
    """Registry of plugins by name."""

    def __init__(self) -> None:
        self._plugins: dict[str, RegisteredPlugin] = {}

    def register(
        self,
        name: str,
        *,
        data_source: DataSourcePlanner | None = None,
        metric: MetricPlanner | None = None,
    ) -> RegisteredPlugin:
        """Register a plugin, replacing any previous registration of the same name.

        Args:
            name: Plugin name as it appears in blueprints and plan tasks.
            data_source: Data-source planning capability, if any.
            metric: Metric planning capability, if any.

        Returns:
            The registered plugin.
        """
        if name in self._plugins:
            logger.warning(f"Plugin '{name}' is registered again, replacing it")
        plugin = RegisteredPlugin(name=name, data_source=data_source, metric=metric)
        self._plugins[name] = plugin
        logger.debug(
            f"Registered plugin '{name}' "
            f"(data_source={data_source is not None}, metric={metric is not None})"
        )
        return plugin

    def resolve(self, name: str) -> RegisteredPlugin:
        """Look up a plugin by name.

        Raises:
            PluginNotFoundError: If no plugin is registered under the name
        """
        plugin = self._plugins.get(name)
        if plugin is None:
            known = ", ".join(self.names()) or "none"
            logger.debug(f"Plugin '{name}' not found, registered: {known}")
            raise PluginNotFoundError(name)
        return plugin

    def names(self) -> list[str]:
        return sorted(self._plugins)


plugin_registry = PluginRegistry()
