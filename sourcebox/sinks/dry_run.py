"""Dry-run sink - counts rows without touching any destination."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from sourcebox.models import SchemaDefinition, TableDefinition
from sourcebox.records import GeneratedRecord
from sourcebox.sinks.base import DEFAULT_BATCH_SIZE, Sink, SinkResult


class DryRunSink(Sink):
    """
    In-memory sink for previews and tests.

    Records per-table row counts; with ``retain=True`` it also keeps the
    rows for inspection. Never connects anywhere.
    """

    name = "dry-run"

    def __init__(self, retain: bool = False, batch_size: int = DEFAULT_BATCH_SIZE):
        super().__init__(batch_size)
        self.retain = retain
        self.counts: dict[str, int] = {}
        self._data: dict[str, list[dict[str, Any]]] = {}
        self.finalized = False
        self.aborted = False

    def open(self, schema: SchemaDefinition, order: list[str], seed: int) -> None:
        self.clear()

    def write_table(
        self, table: TableDefinition, batches: Iterable[list[GeneratedRecord]]
    ) -> SinkResult:
        written = 0
        for batch in batches:
            written += len(batch)
            if self.retain:
                self._data.setdefault(table.name, []).extend(
                    dict(record.values) for record in batch
                )
        self.counts[table.name] = written
        return SinkResult(table=table.name, rows_written=written)

    def finalize(self) -> None:
        self.finalized = True

    def abort(self, error: BaseException | None = None) -> None:
        self.aborted = True

    def get_data(self, table_name: str) -> list[dict[str, Any]]:
        """
        Get retained rows for inspection.

        Args:
            table_name: Table name

        Returns:
            List of row dicts for the table (empty unless ``retain=True``)
        """
        return self._data.get(table_name, [])

    def clear(self) -> None:
        """Forget all counts and retained rows."""
        self.counts.clear()
        self._data.clear()
        self.finalized = False
        self.aborted = False
