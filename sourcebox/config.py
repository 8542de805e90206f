"""
Configuration management for sourcebox.

Loads and validates configuration from sourcebox.toml files and
``SOURCEBOX_*`` environment variables using Pydantic.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Literal, Optional

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sourcebox.exceptions import ConfigurationError

CONFIG_FILENAME = "sourcebox.toml"

DEFAULT_PORTS = {"mysql": 3306, "postgres": 5432}


class GenerationConfig(BaseSettings):
    """Record generation configuration."""

    model_config = SettingsConfigDict(env_prefix="SOURCEBOX_GENERATION_")

    seed: Optional[int] = Field(
        default=None, description="Run seed; omitted means a fresh seed from OS entropy"
    )
    records: Optional[int] = Field(
        default=None, ge=0, description="Rows per table, overriding schema record counts"
    )
    table_records: dict[str, int] = Field(
        default_factory=dict, description="Per-table row counts (highest precedence)"
    )
    workers: int = Field(default=1, ge=1, description="Tables generated concurrently")
    unique_retry_limit: int = Field(
        default=100, ge=1, description="Attempts per value before a constraint is unsatisfiable"
    )
    stream_threshold: int = Field(
        default=100_000,
        ge=1,
        description="Tables above this many rows are generated batch by batch during writing",
    )
    locale: str = Field(default="en_US", description="Faker locale")

    @field_validator("table_records")
    @classmethod
    def _non_negative(cls, value: dict[str, int]) -> dict[str, int]:
        negative = [name for name, count in value.items() if count < 0]
        if negative:
            raise ValueError(f"row counts must not be negative: {', '.join(negative)}")
        return value


class DatabaseConfig(BaseSettings):
    """Database connection configuration."""

    model_config = SettingsConfigDict(env_prefix="SOURCEBOX_DB_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=0, ge=0, description="Database port (0 = driver default)")
    user: str = Field(default="", description="Database user")
    password: SecretStr = Field(default=SecretStr(""), description="Database password")
    name: str = Field(default="", description="Database name")
    url: Optional[str] = Field(
        default=None, description="Connection URL; overrides host/port/user/password/name"
    )
    batch_size: int = Field(default=500, ge=1, description="Rows per INSERT statement")
    single_transaction: bool = Field(
        default=True, description="Commit the whole seed at once (otherwise per table)"
    )
    connect_retries: int = Field(default=3, ge=0, description="Extra connection attempts")
    retry_backoff: float = Field(
        default=0.5, ge=0, description="Base delay in seconds between connection attempts"
    )
    create_tables: bool = Field(
        default=False, description="Run CREATE TABLE IF NOT EXISTS before inserting"
    )

    def port_for(self, sink: str) -> int:
        """Configured port, or the default port for the sink's database."""
        return self.port or DEFAULT_PORTS.get(sink, 0)


class OutputConfig(BaseSettings):
    """File output configuration."""

    model_config = SettingsConfigDict(env_prefix="SOURCEBOX_OUTPUT_")

    path: str = Field(default="-", description="Output file ('-' for stdout)")
    dialect: Literal["mysql", "postgres"] = Field(
        default="postgres", description="SQL dialect for the output file"
    )
    batch_size: int = Field(default=500, ge=1, description="Rows per INSERT statement")
    include_ddl: bool = Field(default=False, description="Emit CREATE TABLE statements")
    transaction: bool = Field(default=True, description="Wrap data in BEGIN/COMMIT")


class SeedConfig(BaseSettings):
    """Main configuration for sourcebox."""

    model_config = SettingsConfigDict(env_prefix="SOURCEBOX_")

    schema_name: Optional[str] = Field(
        default=None, description="Catalog schema name or path to a schema file"
    )
    sink: Literal["file", "mysql", "postgres"] = Field(
        default="file", description="Output destination"
    )
    dry_run: bool = Field(default=False, description="Generate without writing anywhere")
    schemas_dir: Optional[str] = Field(
        default=None, description="Extra directory searched for schema files by name"
    )
    timeout: Optional[float] = Field(
        default=None, gt=0, description="Deadline in seconds for the whole run"
    )
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @model_validator(mode="after")
    def _dialect_follows_sink(self) -> SeedConfig:
        if self.sink in ("mysql", "postgres") and "dialect" not in self.output.model_fields_set:
            self.output.dialect = self.sink
        return self

    def count_for(self, table: str, record_count: int) -> int:
        """
        Rows to generate for a table.

        Precedence: per-table override, then the global record count, then
        the schema's own record_count.
        """
        if table in self.generation.table_records:
            return self.generation.table_records[table]
        if self.generation.records is not None:
            return self.generation.records
        return record_count

    @classmethod
    def from_toml(cls, path: Path | str) -> SeedConfig:
        """
        Load configuration from TOML file.

        Args:
            path: Path to sourcebox.toml file

        Returns:
            SeedConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If config file is invalid
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        try:
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        return cls.from_dict(data, source=str(config_path))

    @classmethod
    def from_dict(cls, data: dict, source: str = "configuration") -> SeedConfig:
        """
        Build configuration from a mapping (TOML table or CLI overrides).

        Raises:
            ConfigurationError: If a value is invalid
        """
        try:
            return cls(**data)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigurationError(f"Invalid {source}: {problems}") from e

    @classmethod
    def find_and_load(cls, start_dir: Optional[Path] = None) -> SeedConfig:
        """
        Find and load configuration from sourcebox.toml.

        Searches for sourcebox.toml starting from start_dir and walking up
        parent directories until found or reaching filesystem root.

        Args:
            start_dir: Directory to start search (defaults to current directory)

        Returns:
            SeedConfig instance

        Raises:
            FileNotFoundError: If no config file found
        """
        if start_dir is None:
            start_dir = Path.cwd()

        current = Path(start_dir).resolve()

        # Walk up directory tree
        while True:
            config_path = current / CONFIG_FILENAME
            if config_path.exists():
                return cls.from_toml(config_path)

            parent = current.parent
            if parent == current:
                break
            current = parent

        raise FileNotFoundError(
            f"No {CONFIG_FILENAME} found in {start_dir} or parent directories."
        )
