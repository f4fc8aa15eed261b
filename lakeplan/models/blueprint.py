"""
Blueprint input models for plan compilation.

A blueprint lists the connections to collect from (each with its scopes)
and the metric plugins to run afterwards. Field aliases follow the camelCase
documents blueprints are stored as.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BlueprintModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BlueprintScope(BlueprintModel):
    """One scope selected on a connection.

    Args:
        id: Scope identifier as the plugin knows it (repository id, job name, ...).
        name: Display name.
        entities: Domain types to collect for this scope (e.g. ``CODE``, ``TICKET``).
    """

    id: str
    name: str = ""
    entities: list[str] = Field(default_factory=list)


class BlueprintConnection(BlueprintModel):
    """A data-source connection and the scopes to collect from it."""

    plugin: str
    connection_id: int
    scopes: list[BlueprintScope] = Field(default_factory=list)


class BlueprintSyncPolicy(BlueprintModel):
    """Options shared by every data-source plugin of a blueprint."""

    created_date_after: datetime | None = None
    skip_on_fail: bool = False


class BlueprintSettings(BlueprintModel):
    """Stored blueprint settings: a version tag plus the connection list."""

    version: str = "2.0.0"
    connections: list[BlueprintConnection] = Field(default_factory=list)
