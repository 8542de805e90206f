"""Generated rows and per-table record sets."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from sourcebox.models import TableDefinition


@dataclass(frozen=True)
class GeneratedRecord:
    """One generated row: column name → value (None means SQL NULL)."""

    table: str
    values: dict[str, Any]

    def __getitem__(self, column: str) -> Any:
        return self.values[column]

    def as_tuple(self, columns: list[str]) -> tuple[Any, ...]:
        return tuple(self.values[col] for col in columns)


class RecordSet:
    """
    Ordered rows generated for one table.

    Key columns (primary and unique keys) are indexed as rows are appended,
    so child tables can select existing keys. The index survives
    :meth:`release`, which drops row payloads once they have been written.
    """

    def __init__(self, table: TableDefinition):
        self.table = table
        self.columns = table.column_names
        self._records: list[GeneratedRecord] = []
        self._keys: dict[str, list[Any]] = {col: [] for col in table.key_columns}
        self._by_pk: dict[Any, int] = {}
        self._count = 0
        self._released = False

    @property
    def name(self) -> str:
        return self.table.name

    def append(self, values: dict[str, Any]) -> GeneratedRecord:
        """Add a completed row and index its key values."""
        record = GeneratedRecord(self.table.name, values)
        pk = self.table.primary_key
        if pk is not None:
            self._by_pk[values[pk.name]] = self._count
        for column, keys in self._keys.items():
            value = values.get(column)
            if value is not None:
                keys.append(value)
        self._records.append(record)
        self._count += 1
        return record

    def extend(self, rows: list[dict[str, Any]]) -> None:
        for values in rows:
            self.append(values)

    def __len__(self) -> int:
        return self._count

    def __iter__(self) -> Iterator[GeneratedRecord]:
        return iter(self._records)

    @property
    def records(self) -> list[GeneratedRecord]:
        """Rows still held in memory."""
        return list(self._records)

    def key_values(self, column: str) -> list[Any]:
        """
        Non-null values of a key column, in generation order.

        Raises:
            KeyError: If ``column`` is not a primary or unique key
        """
        return self._keys[column]

    def has_key(self, value: Any) -> bool:
        """Whether a primary key value exists in this set."""
        return value in self._by_pk

    def rows(self) -> list[tuple[Any, ...]]:
        """Held rows as tuples in column order."""
        return [record.as_tuple(self.columns) for record in self._records]

    def batches(self, size: int) -> Iterator[list[GeneratedRecord]]:
        """Yield held rows in batches of at most ``size``."""
        for start in range(0, len(self._records), size):
            yield self._records[start : start + size]

    def release(self) -> None:
        """Drop row payloads, keeping the row count and key index."""
        self._records = []
        self._released = True

    @property
    def released(self) -> bool:
        return self._released
