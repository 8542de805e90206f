"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import copy
import json
import re
from typing import Any

import psycopg
import pytest

from sourcebox.loader import parse_schema
from sourcebox.models import SchemaDefinition

SHOP_DOCUMENT: dict[str, Any] = {
    "name": "shop",
    "version": "1.0",
    "tables": [
        {
            "name": "customers",
            "record_count": 20,
            "columns": [
                {"name": "id", "type": "int", "primary_key": True},
                {"name": "email", "type": "varchar(255)", "unique": True, "generator": "email"},
                {
                    "name": "tier",
                    "type": "varchar(10)",
                    "generator": "enum",
                    "generator_params": {"values": ["bronze", "silver", "gold"]},
                },
            ],
        },
        {
            "name": "orders",
            "record_count": 50,
            "columns": [
                {"name": "id", "type": "int", "primary_key": True},
                {
                    "name": "customer_id",
                    "type": "int",
                    "foreign_key": {"table": "customers", "column": "id"},
                },
                {
                    "name": "quantity",
                    "type": "int",
                    "generator": "int_range",
                    "generator_params": {"min": 1, "max": 5},
                },
                {
                    "name": "unit_price",
                    "type": "decimal(10,2)",
                    "generator": "decimal_range",
                    "generator_params": {"min": 1, "max": 100},
                },
                {
                    "name": "total",
                    "type": "decimal(12,2)",
                    "generator": "derived",
                    "generator_params": {"expression": "quantity * unit_price", "precision": 2},
                },
            ],
        },
    ],
}


def make_schema(document: dict[str, Any]) -> SchemaDefinition:
    """Parse a schema document given as a dict."""
    return parse_schema(json.dumps(document), source="test")


@pytest.fixture
def shop_doc() -> dict[str, Any]:
    """Fresh copy of a two-table schema document (customers ← orders)."""
    return copy.deepcopy(SHOP_DOCUMENT)


@pytest.fixture
def build_schema():
    """Parse a schema document given as a dict."""
    return make_schema


@pytest.fixture
def shop_schema(shop_doc: dict[str, Any]) -> SchemaDefinition:
    """Parsed two-table schema."""
    return make_schema(shop_doc)


class FakeCursor:
    def __init__(self, conn: FakeConnection):
        self.conn = conn

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def execute(self, sql: str, params: list[Any] | None = None) -> None:
        self.conn.execute(sql, params)


class FakeConnection:
    """
    DB-API connection double.

    Tracks rows per table inside the open transaction and rows committed.
    With ``fail_after_rows`` set, the INSERT that would take the total past
    that many rows raises a driver error.
    """

    _TABLE = re.compile(r'INSERT INTO [`"]([^`"]+)[`"]')

    def __init__(self, fail_after_rows: int | None = None, error: Exception | None = None):
        self.fail_after_rows = fail_after_rows
        self.error = error or psycopg.DataError("value too long for type character varying")
        self.statements: list[str] = []
        self.pending: dict[str, int] = {}
        self.committed: dict[str, int] = {}
        self.rows_seen = 0
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self)

    def execute(self, sql: str, params: list[Any] | None) -> None:
        self.statements.append(sql)
        match = self._TABLE.search(sql)
        if match is None:
            return
        rows = sql.count("(%s")
        if self.fail_after_rows is not None and self.rows_seen + rows > self.fail_after_rows:
            raise self.error
        self.rows_seen += rows
        table = match.group(1)
        self.pending[table] = self.pending.get(table, 0) + rows

    def commit(self) -> None:
        self.commits += 1
        for table, rows in self.pending.items():
            self.committed[table] = self.committed.get(table, 0) + rows
        self.pending.clear()

    def rollback(self) -> None:
        self.rollbacks += 1
        self.pending.clear()

    def close(self) -> None:
        self.closed = True

    @property
    def total_committed(self) -> int:
        return sum(self.committed.values())


@pytest.fixture
def fake_connection() -> FakeConnection:
    """Connection double that never fails."""
    return FakeConnection()


@pytest.fixture
def make_connection():
    """Factory for connection doubles, e.g. ``make_connection(fail_after_rows=30)``."""
    return FakeConnection
