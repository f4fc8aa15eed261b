"""
Configuration for lakeplan.

Values come from explicit arguments first, then ``LAKEPLAN_*`` environment
variables, then ``settings.toml`` / ``settings.custom.toml`` in the working
directory.

Example settings.toml:
    database_driver = "postgresql"
    database_host = "db.internal"
    encryption_secret = "change-me"
    scope_exempt_plugins = ["webhook"]
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Self

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)


class DatabaseDriver(str, Enum):
    """Supported database backends."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class Settings(BaseSettings):
    """Settings for the plan compiler and pipeline coordinator."""

    model_config = SettingsConfigDict(
        toml_file=["settings.toml", "settings.custom.toml"], env_prefix="LAKEPLAN_", extra="ignore"
    )

    debug: bool = False  # Echo SQL, verbose tracebacks

    # Database
    database_driver: DatabaseDriver = DatabaseDriver.SQLITE
    database_name: str = "lakeplan"  # File path without ".db" for SQLite
    database_host: str = "localhost"
    database_port: int = 5432
    database_username: str = "postgres"
    database_password: SecretStr = SecretStr("postgres")

    # Key of the persisted plan blobs; pipelines cannot be created without it
    encryption_secret: SecretStr = SecretStr("")

    # Plugins allowed to appear in a blueprint without any scope
    scope_exempt_plugins: list[str] = ["webhook", "jenkins"]

    # Pipeline listing
    default_page_size: int = Field(default=50, ge=1)
    max_page_size: int = Field(default=500, ge=1)

    # Logging
    storage_path: Path = Path.home() / ".lakeplan"
    log_level: str = "INFO"
    log_to_file: bool = False
    log_dir: Path | None = None  # {storage_path}/logs when unset
    log_rotation: str = "20 MB"
    log_retention: str = "1 week"
    log_format: str | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Explicit arguments, then environment variables, then TOML files."""
        return init_settings, env_settings, TomlConfigSettingsSource(settings_cls)

    @field_validator("scope_exempt_plugins")
    @classmethod
    def _normalize_plugin_names(cls, names: list[str]) -> list[str]:
        return list(dict.fromkeys(name.strip() for name in names if name.strip()))

    @model_validator(mode="after")
    def _check_page_sizes(self) -> Self:
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) "
                f"exceeds max_page_size ({self.max_page_size})"
            )
        return self

    @property
    def database_url(self) -> str:
        """Async SQLAlchemy URL: aiosqlite for SQLite, asyncpg for PostgreSQL."""
        if self.database_driver == DatabaseDriver.SQLITE:
            return f"sqlite+aiosqlite:///{self.database_name}.db"
        password = self.database_password.get_secret_value()
        return (
            f"postgresql+asyncpg://{self.database_username}:{password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    def get_log_dir(self) -> Path:
        return self.log_dir or self.storage_path / "logs"


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings, loaded once."""
    return Settings()


settings = get_settings()
