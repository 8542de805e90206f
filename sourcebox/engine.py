"""
Record generation engine.

Produces rows for one table at a time, honouring column constraints and
foreign keys. Every random draw for a table comes from a source derived from
the run seed and the table name, so output is identical for the same seed
regardless of how tables are scheduled across workers.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from collections.abc import Iterator, Mapping
from typing import Any

from sourcebox.dependency import resolve_order
from sourcebox.exceptions import (
    ConstraintUnsatisfiableError,
    ExhaustedSequenceError,
    GenerationError,
    RunCancelledError,
)
from sourcebox.generators.base import FieldGenerator, RowContext
from sourcebox.generators.registry import build_generator
from sourcebox.models import (
    ColumnDefinition,
    ForeignKeyReferenceSpec,
    IndexDefinition,
    SchemaDefinition,
    TableDefinition,
    UniqueSequenceSpec,
)
from sourcebox.records import GeneratedRecord, RecordSet
from sourcebox.rng import table_faker, table_random

logger = logging.getLogger(__name__)

# Constants for generation logic
DEFAULT_UNIQUE_RETRY_LIMIT = 100  # Maximum attempts to find an acceptable value


class CancelToken:
    """
    Cooperative cancellation signal with an optional deadline.

    Generation checks the token between rows; sinks check it between batches.
    """

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._deadline: float | None = None
        self.reason: str | None = None
        self.set_deadline(timeout)

    def set_deadline(self, timeout: float | None) -> None:
        """Start (or clear) a deadline ``timeout`` seconds from now."""
        self._deadline = time.monotonic() + timeout if timeout else None

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False

    def check(self) -> None:
        """
        Raise if cancellation was requested.

        Raises:
            RunCancelledError: If cancelled or past the deadline
        """
        if self.cancelled:
            raise RunCancelledError(self.reason or "cancelled")


class TableRun:
    """
    Generation state for one table.

    Column generators are created fresh for every run, so sequence counters
    and pre-drawn samples never carry over between tables or runs.
    """

    def __init__(
        self,
        table: TableDefinition,
        count: int,
        run_seed: int,
        parents: Mapping[str, RecordSet],
        locale: str = "en_US",
        unique_retry_limit: int = DEFAULT_UNIQUE_RETRY_LIMIT,
        cancel: CancelToken | None = None,
    ):
        self.table = table
        self.count = count
        self.records = RecordSet(table)
        self.unique_retry_limit = unique_retry_limit
        self.cancel = cancel or CancelToken()

        visible = dict(parents)
        visible[table.name] = self.records
        self._ctx = RowContext(
            table=table.name,
            row_index=0,
            rng=table_random(run_seed, table.name),
            faker=table_faker(run_seed, table.name, locale),
            parents=visible,
        )
        self._generators: list[tuple[ColumnDefinition, FieldGenerator]] = []
        self._seen: dict[str, set[Any]] = {}
        self._composite: dict[str, list[tuple[IndexDefinition, set[tuple]]]] = {}
        self._started = False
        self._produced = 0

    def start(self) -> None:
        """
        Check feasibility and prepare generators.

        All constraint problems that can be detected up front are raised
        here, before any row exists.

        Raises:
            ConstraintUnsatisfiableError: If the requested count cannot be met
            EmptyParentSetError: If a required parent table has no rows
            GenerationError: If a parent table has not been generated
        """
        if self._started:
            return
        self._started = True
        table = self.table

        for parent in table.parent_tables:
            if parent not in self._ctx.parents:
                rel = next(r for r in table.relationships if r.target_table == parent)
                raise GenerationError(
                    table.name,
                    rel.source_column,
                    f"parent table '{parent}' has not been generated",
                )

        self._generators = [(col, build_generator(table.name, col)) for col in table.columns]
        for col in table.columns:
            if col.constraints.unique:
                self._seen[col.name] = set()
        for index in table.composite_unique_indexes:
            self._composite.setdefault(index.columns[-1], []).append((index, set()))

        if self.count == 0:
            return
        for _, generator in self._generators:
            generator.prepare(self.count, self._ctx)
        self._check_domains()

    def _check_domains(self) -> None:
        """Fail fast when a unique domain is smaller than the row count."""
        for col, generator in self._generators:
            if not col.constraints.unique or col.null_rate > 0:
                continue
            if isinstance(col.generator, ForeignKeyReferenceSpec):
                continue
            domain = generator.domain_size
            if domain is None or domain >= self.count:
                continue
            if isinstance(col.generator, UniqueSequenceSpec):
                raise ExhaustedSequenceError(self.table.name, col.name, self.count, domain)
            raise ConstraintUnsatisfiableError(
                self.table.name,
                col.name,
                f"requested {self.count} unique values but the generator can "
                f"only produce {domain} distinct values",
            )

        by_name = {col.name: (col, generator) for col, generator in self._generators}
        for index in self.table.composite_unique_indexes:
            members = [by_name[c] for c in index.columns]
            # tuples holding NULL never collide
            if any(col.null_rate > 0 for col, _ in members):
                continue
            sizes = [generator.domain_size for _, generator in members]
            if any(size is None or size == 0 for size in sizes):
                continue
            if math.prod(sizes) < self.count:
                raise ConstraintUnsatisfiableError(
                    self.table.name,
                    index.columns[-1],
                    f"unique index ({', '.join(index.columns)}) allows at most "
                    f"{math.prod(sizes)} combinations, {self.count} requested",
                )

    def next_row(self) -> GeneratedRecord:
        """Generate, check and append the next row."""
        self.cancel.check()
        ctx = self._ctx
        ctx.row_index = self._produced
        ctx.row = {}
        for col, generator in self._generators:
            ctx.row[col.name] = self._assign(col, generator, ctx)
        self._produced += 1
        return self.records.append(ctx.row)

    def _assign(self, col: ColumnDefinition, generator: FieldGenerator, ctx: RowContext) -> Any:
        if col.null_rate > 0 and ctx.rng.random() < col.null_rate:
            return None

        attempts = 0
        while True:
            value = generator.generate(ctx)
            if value is None:
                if col.constraints.nullable:
                    return None
                raise GenerationError(
                    self.table.name,
                    col.name,
                    "generator produced no value for a non-nullable column",
                )
            if self._accepts(col, value, ctx.row):
                self._remember(col, value, ctx.row)
                return value

            attempts += 1
            if attempts >= self.unique_retry_limit:
                raise ConstraintUnsatisfiableError(
                    self.table.name,
                    col.name,
                    f"no acceptable value after {attempts} attempts "
                    f"(row {ctx.row_index + 1} of {self.count})",
                )

    def _accepts(self, col: ColumnDefinition, value: Any, row: dict[str, Any]) -> bool:
        if not isinstance(col.generator, ForeignKeyReferenceSpec):
            if not col.constraints.admits(value):
                return False
        seen = self._seen.get(col.name)
        if seen is not None and value in seen:
            return False
        for index, tuples in self._composite.get(col.name, ()):
            key = self._index_key(index, value, row)
            if key is not None and key in tuples:
                return False
        return True

    def _remember(self, col: ColumnDefinition, value: Any, row: dict[str, Any]) -> None:
        seen = self._seen.get(col.name)
        if seen is not None:
            seen.add(value)
        for index, tuples in self._composite.get(col.name, ()):
            key = self._index_key(index, value, row)
            if key is not None:
                tuples.add(key)

    @staticmethod
    def _index_key(index: IndexDefinition, value: Any, row: dict[str, Any]) -> tuple | None:
        key = tuple(row.get(c) for c in index.columns[:-1]) + (value,)
        # NULLs never collide in a unique index
        if any(part is None for part in key):
            return None
        return key

    def run(self) -> RecordSet:
        """Generate every row and return the complete RecordSet."""
        self.start()
        while self._produced < self.count:
            self.next_row()
        logger.debug(f"Generated {self.count} rows for '{self.table.name}'")
        return self.records

    def batches(self, size: int) -> Iterator[list[GeneratedRecord]]:
        """
        Generate rows lazily in batches of at most ``size``.

        Each batch is released from the RecordSet once the consumer asks for
        the next one; the key index is kept for child tables.
        """
        self.start()
        while self._produced < self.count:
            batch = [self.next_row() for _ in range(min(size, self.count - self._produced))]
            yield batch
            self.records.release()
        logger.debug(f"Streamed {self.count} rows for '{self.table.name}'")


class GenerationEngine:
    """
    Generate records for the tables of a schema.

    Args:
        schema: Validated schema
        seed: Run seed; the same seed and counts give identical records
        counts: Rows per table; tables not listed use their record_count
        locale: Faker locale
        unique_retry_limit: Attempts per value before giving up
        cancel: Cancellation token shared with the caller

    Example:
        >>> engine = GenerationEngine(schema, seed=42, counts={"customers": 100})
        >>> record_sets = engine.generate_all()
        >>> len(record_sets["customers"])
        100
    """

    def __init__(
        self,
        schema: SchemaDefinition,
        seed: int,
        counts: Mapping[str, int] | None = None,
        locale: str = "en_US",
        unique_retry_limit: int = DEFAULT_UNIQUE_RETRY_LIMIT,
        cancel: CancelToken | None = None,
    ):
        self.schema = schema
        self.seed = seed
        self.counts = dict(counts or {})
        self.locale = locale
        self.unique_retry_limit = unique_retry_limit
        self.cancel = cancel or CancelToken()

    def count_for(self, table: str) -> int:
        if table in self.counts:
            return self.counts[table]
        return self.schema.get_table(table).record_count

    def table_run(self, table: str, parents: Mapping[str, RecordSet]) -> TableRun:
        """Create the generation state for one table."""
        return TableRun(
            self.schema.get_table(table),
            self.count_for(table),
            self.seed,
            parents,
            locale=self.locale,
            unique_retry_limit=self.unique_retry_limit,
            cancel=self.cancel,
        )

    def generate_table(self, table: str, parents: Mapping[str, RecordSet]) -> RecordSet:
        """
        Generate all rows for one table.

        Args:
            table: Table name
            parents: Completed RecordSets of every parent table

        Returns:
            RecordSet with exactly the requested number of rows
        """
        return self.table_run(table, parents).run()

    def generate_all(self) -> dict[str, RecordSet]:
        """Generate every table sequentially in dependency order."""
        record_sets: dict[str, RecordSet] = {}
        for table in resolve_order(self.schema):
            record_sets[table] = self.generate_table(table, record_sets)
        return record_sets
