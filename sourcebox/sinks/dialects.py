"""SQL dialects: identifier quoting, literal rendering and DDL."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sourcebox.loader import parse_column_type
from sourcebox.models import ColumnDefinition, ColumnType, TableDefinition


class Dialect:
    """Base SQL dialect (PostgreSQL spelling)."""

    name = "postgres"
    identifier_quote = '"'
    begin_statement = "BEGIN;"

    def quote_identifier(self, name: str) -> str:
        q = self.identifier_quote
        return f"{q}{name.replace(q, q + q)}{q}"

    def quote_string(self, value: str) -> str:
        return "'" + value.replace("'", "''") + "'"

    def boolean(self, value: bool) -> str:
        return "TRUE" if value else "FALSE"

    def literal(self, value: Any) -> str:
        """
        Render a Python value as a SQL literal.

        Example:
            >>> POSTGRES.literal("O'Brien")
            "'O''Brien'"
        """
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return self.boolean(value)
        if isinstance(value, int):
            return str(value)
        if isinstance(value, Decimal):
            return format(value, "f")
        if isinstance(value, float):
            return repr(value)
        if isinstance(value, datetime):
            return self.quote_string(value.isoformat(sep=" "))
        if isinstance(value, date):
            return self.quote_string(value.isoformat())
        return self.quote_string(str(value))

    def insert_values(self, table: TableDefinition, rows: list[tuple[Any, ...]]) -> str:
        """Multi-row INSERT with inline literals."""
        columns = ", ".join(self.quote_identifier(c) for c in table.column_names)
        values = ",\n".join(
            "(" + ", ".join(self.literal(v) for v in row) + ")" for row in rows
        )
        return f"INSERT INTO {self.quote_identifier(table.name)} ({columns}) VALUES\n{values};"

    def insert_placeholders(self, table: TableDefinition, row_count: int) -> str:
        """Multi-row INSERT with ``%s`` placeholders for a DB-API driver."""
        columns = ", ".join(self.quote_identifier(c) for c in table.column_names)
        single = "(" + ", ".join(["%s"] * len(table.columns)) + ")"
        placeholders = ", ".join([single] * row_count)
        return f"INSERT INTO {self.quote_identifier(table.name)} ({columns}) VALUES {placeholders}"

    def column_type(self, column: ColumnDefinition) -> str:
        """Map a column to a concrete SQL type for this dialect."""
        value_type, args = parse_column_type(column.sql_type)
        base = column.sql_type.split("(")[0].lower().replace("unsigned", "").strip()

        if value_type is ColumnType.STRING:
            if base == "uuid":
                return self.uuid_type()
            if base in ("varchar", "char", "character", "character varying") and args:
                return f"{'CHAR' if base in ('char', 'character') else 'VARCHAR'}({args[0]})"
            if base in ("string", "str"):
                return "VARCHAR(255)"
            return "TEXT"
        if value_type is ColumnType.INTEGER:
            if base in ("bigint", "bigserial"):
                return "BIGINT"
            if base in ("smallint", "tinyint"):
                return "SMALLINT"
            return "INTEGER"
        if value_type is ColumnType.DECIMAL:
            if base in ("float", "double", "double precision", "real"):
                return self.double_type()
            if len(args) == 2:
                return f"DECIMAL({args[0]},{args[1]})"
            return "DECIMAL(12,2)"
        if value_type is ColumnType.DATE:
            return "DATE"
        if value_type is ColumnType.DATETIME:
            return self.datetime_type()
        if value_type is ColumnType.BOOLEAN:
            return "BOOLEAN"
        if value_type is ColumnType.ENUM:
            values = column.constraints.allowed_values or ()
            width = max((len(str(v)) for v in values), default=50)
            return f"VARCHAR({max(width, 1)})"
        return "TEXT"

    def uuid_type(self) -> str:
        return "UUID"

    def double_type(self) -> str:
        return "DOUBLE PRECISION"

    def datetime_type(self) -> str:
        return "TIMESTAMP"

    def create_table(self, table: TableDefinition) -> list[str]:
        """
        CREATE TABLE (and index) statements for a table.

        Returns:
            Statements without trailing semicolons
        """
        q = self.quote_identifier
        lines = []
        for col in table.columns:
            line = f"    {q(col.name)} {self.column_type(col)}"
            if not col.constraints.nullable:
                line += " NOT NULL"
            lines.append(line)

        pk = table.primary_key
        if pk is not None:
            lines.append(f"    PRIMARY KEY ({q(pk.name)})")
        for col in table.columns:
            if col.constraints.unique and not col.primary_key:
                lines.append(f"    UNIQUE ({q(col.name)})")
        for index in table.composite_unique_indexes:
            lines.append(f"    UNIQUE ({', '.join(q(c) for c in index.columns)})")
        for rel in table.relationships:
            lines.append(
                f"    FOREIGN KEY ({q(rel.source_column)}) "
                f"REFERENCES {q(rel.target_table)} ({q(rel.target_column)}) "
                f"ON DELETE {rel.actions.on_delete} ON UPDATE {rel.actions.on_update}"
            )
        lines.extend(self.inline_indexes(table))

        statements = [
            f"CREATE TABLE IF NOT EXISTS {q(table.name)} (\n" + ",\n".join(lines) + "\n)"
        ]
        statements.extend(self.index_statements(table))
        return statements

    def inline_indexes(self, table: TableDefinition) -> list[str]:
        return []

    def index_statements(self, table: TableDefinition) -> list[str]:
        q = self.quote_identifier
        return [
            f"CREATE INDEX IF NOT EXISTS {q(index.name)} ON {q(table.name)} "
            f"({', '.join(q(c) for c in index.columns)})"
            for index in table.indexes
            if not index.unique
        ]


class MySQLDialect(Dialect):
    """MySQL: backtick identifiers, backslash escapes, 1/0 booleans."""

    name = "mysql"
    identifier_quote = "`"
    begin_statement = "START TRANSACTION;"

    _ESCAPES = {
        "\\": "\\\\",
        "'": "\\'",
        "\0": "\\0",
        "\n": "\\n",
        "\r": "\\r",
        "\x1a": "\\Z",
    }

    def quote_string(self, value: str) -> str:
        return "'" + "".join(self._ESCAPES.get(ch, ch) for ch in value) + "'"

    def boolean(self, value: bool) -> str:
        return "1" if value else "0"

    def uuid_type(self) -> str:
        return "CHAR(36)"

    def double_type(self) -> str:
        return "DOUBLE"

    def datetime_type(self) -> str:
        return "DATETIME"

    def inline_indexes(self, table: TableDefinition) -> list[str]:
        q = self.quote_identifier
        return [
            f"    INDEX {q(index.name)} ({', '.join(q(c) for c in index.columns)})"
            for index in table.indexes
            if not index.unique
        ]

    def index_statements(self, table: TableDefinition) -> list[str]:
        return []


POSTGRES = Dialect()
MYSQL = MySQLDialect()

DIALECTS = {
    "postgres": POSTGRES,
    "postgresql": POSTGRES,
    "mysql": MYSQL,
}


def get_dialect(name: str) -> Dialect:
    """
    Look up a dialect by name.

    Raises:
        ValueError: If the dialect is unknown
    """
    try:
        return DIALECTS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown SQL dialect '{name}'. Available: mysql, postgres"
        ) from None
