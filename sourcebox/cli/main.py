"""CLI commands for sourcebox."""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any

import click

from sourcebox.catalog import describe_schemas
from sourcebox.config import SeedConfig
from sourcebox.dependency import resolve_order
from sourcebox.exceptions import SourceBoxError
from sourcebox.loader import load_schema
from sourcebox.orchestrator import SeedOrchestrator


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _load_config(path: str | None) -> SeedConfig:
    if path is not None:
        return SeedConfig.from_toml(path)
    try:
        return SeedConfig.find_and_load()
    except FileNotFoundError:
        return SeedConfig()


@click.group()
@click.version_option(package_name="sourcebox")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors")
def cli(verbose: bool, quiet: bool) -> None:
    """sourcebox - realistic, schema-driven test data for MySQL and PostgreSQL."""
    _configure_logging(verbose, quiet)


@cli.command()
@click.argument("database", type=click.Choice(["mysql", "postgres"]))
@click.option("--schema", "-s", "schema_name", help="Catalog schema name or schema file path")
@click.option("--records", "-n", type=click.IntRange(min=0), help="Rows per table")
@click.option("--host", help="Database host")
@click.option("--port", type=int, help="Database port (default: 3306/5432)")
@click.option("--user", help="Database user")
@click.option("--password", help="Database password")
@click.option("--db-name", help="Database name")
@click.option("--url", help="Connection URL (overrides host/port/user/password)")
@click.option("--output", "-o", help="Write SQL to this file ('-' for stdout) instead of a database")
@click.option("--dry-run", is_flag=True, help="Generate without writing anywhere")
@click.option("--seed", type=int, help="Run seed for reproducible data")
@click.option("--workers", type=click.IntRange(min=1), help="Tables generated concurrently")
@click.option("--batch-size", type=click.IntRange(min=1), help="Rows per INSERT statement")
@click.option("--include-ddl", is_flag=True, help="Emit CREATE TABLE statements in file output")
@click.option("--create-tables", is_flag=True, help="Create missing tables before inserting")
@click.option("--timeout", type=float, help="Abort the run after this many seconds")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Path to sourcebox.toml")
@click.option("--json", "output_json", is_flag=True, help="Print the run report as JSON")
def seed(
    database: str,
    schema_name: str | None,
    records: int | None,
    host: str | None,
    port: int | None,
    user: str | None,
    password: str | None,
    db_name: str | None,
    url: str | None,
    output: str | None,
    dry_run: bool,
    seed: int | None,
    workers: int | None,
    batch_size: int | None,
    include_ddl: bool,
    create_tables: bool,
    timeout: float | None,
    config_path: str | None,
    output_json: bool,
) -> None:
    """Seed DATABASE (mysql or postgres) with generated data."""
    try:
        base = _load_config(config_path)
        data = base.model_dump()
        data["sink"] = "file" if output is not None else database
        data["dry_run"] = dry_run or data["dry_run"]
        data["output"]["dialect"] = database

        overrides: dict[str, Any] = {
            "schema_name": schema_name,
            "timeout": timeout,
        }
        generation = {"records": records, "seed": seed, "workers": workers}
        db = {
            "host": host,
            "port": port,
            "user": user,
            "password": password,
            "name": db_name,
            "url": url,
            "batch_size": batch_size,
        }
        out = {"path": output, "batch_size": batch_size}
        data.update({k: v for k, v in overrides.items() if v is not None})
        data["generation"].update({k: v for k, v in generation.items() if v is not None})
        data["database"].update({k: v for k, v in db.items() if v is not None})
        data["output"].update({k: v for k, v in out.items() if v is not None})
        if include_ddl:
            data["output"]["include_ddl"] = True
        if create_tables:
            data["database"]["create_tables"] = True

        config = SeedConfig.from_dict(data, source="command line options")
    except (SourceBoxError, FileNotFoundError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    to_stderr = config.sink == "file" and config.output.path == "-" and not config.dry_run
    orchestrator = SeedOrchestrator(config)
    try:
        run = orchestrator.run()
    except KeyboardInterrupt:
        click.echo("Interrupted, seed rolled back", err=True)
        sys.exit(130)

    if output_json:
        click.echo(json.dumps(run.to_dict(), indent=2), err=to_stderr)
    elif run.succeeded:
        mode = " (dry run)" if run.dry_run else ""
        click.echo(f"✓ Seeded schema '{run.schema}' via {run.sink}{mode}", err=to_stderr)
        for table in run.resolution_order:
            click.echo(f"  {table}: {run.table_counts.get(table, 0)} rows", err=to_stderr)
        click.echo(
            f"  total: {run.total_rows} rows in {run.elapsed:.2f}s (seed {run.seed})",
            err=to_stderr,
        )

    if not run.succeeded:
        click.echo(f"✗ Seed failed [{run.error_kind}]: {run.error_message}", err=True)
        sys.exit(1)


@click.command("list-schemas")
@click.option("--schemas-dir", type=click.Path(file_okay=False), help="Extra schema directory")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def list_schemas(schemas_dir: str | None, output_json: bool) -> None:
    """List available schemas."""
    summaries = describe_schemas(schemas_dir)

    if output_json:
        click.echo(json.dumps([asdict(summary) for summary in summaries], indent=2))
        return

    if not summaries:
        click.echo("No schemas found")
        return
    width = max(len(summary.name) for summary in summaries)
    for summary in summaries:
        click.echo(
            f"{summary.name:<{width}}  {summary.tables:>2} tables  "
            f"{summary.records:>6} rows  {summary.description}"
        )


cli.add_command(list_schemas)
cli.add_command(list_schemas, name="ls")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--quiet", "-q", is_flag=True, help="Only set the exit status")
def validate(path: Path, quiet: bool) -> None:
    """Validate a schema file."""
    try:
        schema = load_schema(path)
        order = resolve_order(schema)
    except SourceBoxError as e:
        if not quiet:
            click.echo(f"✗ Invalid schema: {e}", err=True)
        sys.exit(1)

    if not quiet:
        click.echo(f"✓ Valid schema: {schema.name} ({len(schema.tables)} tables)")
        click.echo(f"  generation order: {', '.join(order)}")


if __name__ == "__main__":
    cli()
