"""
Scope storage models.

Data-source plugins report the scopes a plan touches; the compiler upserts
them here and maps them to the blueprint's project.
"""

from sqlmodel import Field, SQLModel


class Scope(SQLModel, table=True):
    """A concrete collection target (a repository, a board, a CI job, ...).

    ``table_name`` names the domain table the scope belongs to, so one
    logical target may yield several scopes (e.g. ``repos`` and ``boards``).
    """

    __tablename__ = "scopes"

    table_name: str = Field(primary_key=True, max_length=100)
    scope_id: str = Field(primary_key=True, max_length=255)
    name: str = ""
    plugin: str | None = None
    connection_id: int | None = None

    def describe(self) -> str:
        return f"[Id:{self.scope_id}][Name:{self.name}][TableName:{self.table_name}]"


class ProjectMapping(SQLModel, table=True):
    """Association of a project with one scope row."""

    __tablename__ = "project_mappings"

    project_name: str = Field(primary_key=True, max_length=100)
    table_name: str = Field(primary_key=True, max_length=100)
    row_id: str = Field(primary_key=True, max_length=255)
