"""Custom exceptions with helpful error messages."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum


class SourceBoxError(Exception):
    """Base exception for sourcebox errors."""

    #: Short machine-readable name reported on a failed SeedRun.
    kind = "SourceBoxError"


class SchemaIssueKind(str, Enum):
    """Categories of problems the schema loader can report."""

    MALFORMED_INPUT = "MalformedInput"
    MISSING_FIELD = "MissingField"
    UNKNOWN_COLUMN_TYPE = "UnknownColumnType"
    DUPLICATE_TABLE_NAME = "DuplicateTableName"
    DUPLICATE_COLUMN_NAME = "DuplicateColumnName"
    DANGLING_FOREIGN_KEY = "DanglingForeignKey"
    INVALID_GENERATOR_SPEC = "InvalidGeneratorSpec"
    INVALID_PRIMARY_KEY = "InvalidPrimaryKey"
    INVALID_REFERENTIAL_ACTION = "InvalidReferentialAction"
    INVALID_DATABASE_TYPE = "InvalidDatabaseType"
    INVALID_TABLE_DEFINITION = "InvalidTableDefinition"
    UNKNOWN_TABLE = "UnknownTable"
    FORWARD_COLUMN_REFERENCE = "ForwardColumnReference"


@dataclass(frozen=True)
class SchemaIssue:
    """
    One problem found while validating a schema document.

    Attributes:
        kind: Issue category
        message: Human-readable description
        path: Location in the document (e.g. ``tables[1].columns[0].type``)
        table: Table name, when the issue belongs to a table
        column: Column name, when the issue belongs to a column
    """

    kind: SchemaIssueKind
    message: str
    path: str = ""
    table: str | None = None
    column: str | None = None

    def __str__(self) -> str:
        location = f"{self.path}: " if self.path else ""
        return f"[{self.kind.value}] {location}{self.message}"


class SchemaError(SourceBoxError):
    """Schema document is malformed or inconsistent."""

    kind = "SchemaError"

    def __init__(self, issues: Iterable[SchemaIssue], source: str | None = None):
        self.issues = list(issues)
        self.source = source
        origin = f" in '{source}'" if source else ""
        lines = "\n".join(f"  - {issue}" for issue in self.issues)
        super().__init__(
            f"Schema validation failed{origin} with {len(self.issues)} issue(s):\n"
            f"{lines}\n\n"
            f"Suggestions:\n"
            f"1. Fix every listed issue, the schema is never partially loaded\n"
            f"2. Run 'sourcebox validate <path>' to re-check the document"
        )

    @property
    def kinds(self) -> set[SchemaIssueKind]:
        """Distinct issue kinds reported."""
        return {issue.kind for issue in self.issues}


class SchemaNotFoundError(SourceBoxError):
    """Schema identifier matches neither a catalog entry nor a file."""

    kind = "SchemaNotFoundError"

    def __init__(self, identifier: str, available: Iterable[str] = ()):
        available_str = ", ".join(sorted(available)) or "(none)"
        super().__init__(
            f"Schema '{identifier}' not found.\n\n"
            f"Suggestions:\n"
            f"1. Check schema name spelling\n"
            f"2. Available schemas: {available_str}\n"
            f"3. Pass a path to a schema JSON file instead"
        )


class CyclicDependencyError(SourceBoxError):
    """Circular dependency detected in table relationships."""

    kind = "CyclicDependencyError"

    def __init__(self, tables: Iterable[str]):
        self.tables = sorted(set(tables))
        tables_str = ", ".join(self.tables)
        super().__init__(
            f"Circular dependency detected involving tables: {tables_str}\n\n"
            f"Suggestions:\n"
            f"1. Check foreign key relationships for cycles\n"
            f"2. Make one of the foreign keys nullable and self-contained, "
            f"or drop it from the schema\n"
            f"3. Self-references are only supported on nullable columns"
        )


class ConstraintUnsatisfiableError(SourceBoxError):
    """Column constraints cannot be met for the requested row count."""

    kind = "ConstraintUnsatisfiableError"

    def __init__(self, table: str, column: str, reason: str):
        self.table = table
        self.column = column
        self.reason = reason
        super().__init__(
            f"Cannot satisfy constraints on column '{column}' in table "
            f"'{table}': {reason}\n\n"
            f"Suggestions:\n"
            f"1. Lower the record count for '{table}'\n"
            f"2. Widen the generator domain for '{column}' "
            f"(larger range, more values)\n"
            f"3. Drop the unique constraint if duplicates are acceptable"
        )


class ExhaustedSequenceError(ConstraintUnsatisfiableError):
    """UniqueSequence asked for more values than its domain holds."""

    kind = "ExhaustedSequenceError"

    def __init__(self, table: str, column: str, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            table,
            column,
            f"requested {requested} unique values but the sequence domain "
            f"only contains {available}",
        )


class EmptyParentSetError(SourceBoxError):
    """Foreign key must select from a parent table with no rows."""

    kind = "EmptyParentSetError"

    def __init__(self, table: str, column: str, parent_table: str):
        self.table = table
        self.column = column
        self.parent_table = parent_table
        super().__init__(
            f"Column '{column}' in table '{table}' references "
            f"'{parent_table}', which has no generated rows.\n\n"
            f"Suggestions:\n"
            f"1. Give '{parent_table}' a record count above zero\n"
            f"2. Set '{table}' to zero rows\n"
            f"3. Make '{column}' nullable to allow NULL references"
        )


class GenerationError(SourceBoxError):
    """Generator failed internally while producing a value."""

    kind = "GenerationError"

    def __init__(self, table: str, column: str, reason: str):
        self.table = table
        self.column = column
        self.reason = reason
        super().__init__(
            f"Could not generate value for column '{column}' in table "
            f"'{table}': {reason}\n\n"
            f"Suggestions:\n"
            f"1. Check 'generator' and 'generator_params' for '{column}'\n"
            f"2. Mark the column nullable if it may legitimately be empty"
        )


class SinkError(SourceBoxError):
    """Output sink failed to connect or write."""

    kind = "SinkError"

    def __init__(self, sink: str, reason: str, table: str | None = None):
        self.sink = sink
        self.reason = reason
        self.table = table
        target = f" while writing '{table}'" if table else ""
        super().__init__(f"{sink} sink failed{target}: {reason}")


class RunCancelledError(SourceBoxError):
    """Seed run stopped by a cancellation signal or deadline."""

    kind = "RunCancelledError"

    def __init__(self, reason: str = "cancelled"):
        self.reason = reason
        super().__init__(f"Seed run stopped: {reason}")


class ConfigurationError(SourceBoxError):
    """Seeding configuration is inconsistent."""

    kind = "ConfigurationError"
