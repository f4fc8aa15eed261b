"""Plugin capabilities and registry."""

from .protocols import DataSourcePlanner, MetricPlanner
from .registry import PluginRegistry, RegisteredPlugin, plugin_registry

__all__ = [
    "DataSourcePlanner",
    "MetricPlanner",
    "PluginRegistry",
    "RegisteredPlugin",
    "plugin_registry",
]
