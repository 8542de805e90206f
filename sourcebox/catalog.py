"""Bundled schema catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import resources
from pathlib import Path

from sourcebox.exceptions import SchemaError, SchemaNotFoundError
from sourcebox.loader import parse_schema
from sourcebox.models import SchemaDefinition

logger = logging.getLogger(__name__)

SCHEMA_PACKAGE = "sourcebox.schemas"
SCHEMA_SUFFIX = ".json"


def _bundled() -> dict[str, resources.abc.Traversable]:
    entries = {}
    for entry in resources.files(SCHEMA_PACKAGE).iterdir():
        if entry.name.endswith(SCHEMA_SUFFIX):
            entries[entry.name[: -len(SCHEMA_SUFFIX)]] = entry
    return entries


def list_schemas(schemas_dir: str | Path | None = None) -> list[str]:
    """
    List schema names available by name.

    Args:
        schemas_dir: Extra directory of ``*.json`` schema files

    Returns:
        Sorted schema names
    """
    names = set(_bundled())
    if schemas_dir is not None and Path(schemas_dir).is_dir():
        names.update(p.stem for p in Path(schemas_dir).glob(f"*{SCHEMA_SUFFIX}"))
    return sorted(names)


def resolve_schema(identifier: str, schemas_dir: str | Path | None = None) -> SchemaDefinition:
    """
    Load a schema by catalog name or file path.

    Lookup order: an existing file path, then ``schemas_dir``, then the
    bundled catalog.

    Args:
        identifier: Schema name (``retail-orders``) or path to a JSON file
        schemas_dir: Extra directory of ``*.json`` schema files

    Returns:
        Validated SchemaDefinition

    Raises:
        SchemaNotFoundError: If nothing matches
        SchemaError: If the matching document is invalid

    Example:
        >>> schema = resolve_schema("retail-orders")
        >>> schema.table_names
        ['customers', 'products', 'orders', 'order_items']
    """
    path = Path(identifier)
    if path.is_file():
        logger.debug(f"Loading schema from file {path}")
        return parse_schema(path.read_bytes(), source=str(path))

    if schemas_dir is not None:
        candidate = Path(schemas_dir) / f"{identifier}{SCHEMA_SUFFIX}"
        if candidate.is_file():
            logger.debug(f"Loading schema '{identifier}' from {schemas_dir}")
            return parse_schema(candidate.read_bytes(), source=str(candidate))

    bundled = _bundled()
    if identifier in bundled:
        logger.debug(f"Loading bundled schema '{identifier}'")
        return parse_schema(bundled[identifier].read_bytes(), source=identifier)

    raise SchemaNotFoundError(identifier, list_schemas(schemas_dir))


@dataclass(frozen=True)
class SchemaSummary:
    """One catalog entry as shown by ``list-schemas``."""

    name: str
    industry: str
    description: str
    tables: int
    records: int


def describe_schemas(schemas_dir: str | Path | None = None) -> list[SchemaSummary]:
    """
    Summarize every schema available by name.

    Invalid schema files are logged and left out.

    Args:
        schemas_dir: Extra directory of ``*.json`` schema files

    Returns:
        Summaries sorted by schema name
    """
    summaries = []
    for name in list_schemas(schemas_dir):
        try:
            schema = resolve_schema(name, schemas_dir)
        except SchemaError as e:
            logger.warning(f"Skipping schema '{name}': {str(e).splitlines()[0]}")
            continue
        summaries.append(
            SchemaSummary(
                name=name,
                industry=schema.vertical,
                description=schema.description,
                tables=len(schema.tables),
                records=sum(t.record_count for t in schema.tables),
            )
        )
    return summaries
