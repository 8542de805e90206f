"""File sink: writes a replayable SQL script."""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import TextIO

from sourcebox.exceptions import SinkError
from sourcebox.models import SchemaDefinition, TableDefinition
from sourcebox.records import GeneratedRecord
from sourcebox.sinks.base import DEFAULT_BATCH_SIZE, Sink, SinkResult
from sourcebox.sinks.dialects import Dialect, get_dialect

logger = logging.getLogger(__name__)

COMPLETE_MARKER = "-- sourcebox: seed complete"
INCOMPLETE_MARKER = "-- sourcebox: INCOMPLETE"


class FileSink(Sink):
    """
    Write generated rows as SQL INSERT statements.

    Output is written incrementally, one INSERT per batch. The file only ends
    with the completion marker after :meth:`finalize`; an aborted run ends
    with an INCOMPLETE marker (and ROLLBACK when wrapped in a transaction),
    so a partial file can never pass for a complete seed.

    The same seed always produces byte-identical output: the header carries
    no timestamps or host details.

    Args:
        path: Output file, or ``-`` for standard output
        dialect: ``mysql`` or ``postgres``
        batch_size: Rows per INSERT statement
        include_ddl: Emit CREATE TABLE statements before the data
        transaction: Wrap the data in BEGIN/COMMIT
    """

    name = "file"

    def __init__(
        self,
        path: str | Path = "-",
        dialect: str = "postgres",
        batch_size: int = DEFAULT_BATCH_SIZE,
        include_ddl: bool = False,
        transaction: bool = True,
    ):
        super().__init__(batch_size)
        self.path = path
        self.dialect: Dialect = get_dialect(dialect)
        self.include_ddl = include_ddl
        self.transaction = transaction
        # replaying an aborted script ends in ROLLBACK
        self.discards_on_abort = transaction
        self._out: TextIO | None = None
        self._owns_stream = False
        self._rows_total = 0

    def open(self, schema: SchemaDefinition, order: list[str], seed: int) -> None:
        try:
            if str(self.path) == "-":
                self._out = sys.stdout
            else:
                target = Path(self.path)
                target.parent.mkdir(parents=True, exist_ok=True)
                self._out = target.open("w", encoding="utf-8", newline="\n")
                self._owns_stream = True
        except OSError as e:
            raise SinkError(self.name, f"cannot open '{self.path}': {e}") from e

        version = f" (version {schema.version})" if schema.version else ""
        self._emit(
            f"-- sourcebox seed data\n"
            f"-- schema: {schema.name}{version}\n"
            f"-- dialect: {self.dialect.name}\n"
            f"-- seed: {seed}\n"
            f"-- tables: {', '.join(order)}\n"
        )

        if self.include_ddl:
            self._emit("\n")
            for table_name in order:
                for statement in self.dialect.create_table(schema.get_table(table_name)):
                    self._emit(f"{statement};\n\n")

        if self.transaction:
            self._emit(f"\n{self.dialect.begin_statement}\n")

    def write_table(
        self, table: TableDefinition, batches: Iterable[list[GeneratedRecord]]
    ) -> SinkResult:
        columns = table.column_names
        rows_written = 0
        self._emit(f"\n-- table: {table.name}\n")
        for batch in batches:
            if not batch:
                continue
            rows = [record.as_tuple(columns) for record in batch]
            self._emit(self.dialect.insert_values(table, rows) + "\n")
            rows_written += len(rows)
        self._rows_total += rows_written
        logger.debug(f"Wrote {rows_written} rows for '{table.name}' to {self.path}")
        return SinkResult(table=table.name, rows_written=rows_written)

    def finalize(self) -> None:
        if self.transaction:
            self._emit("\nCOMMIT;\n")
        self._emit(f"\n{COMPLETE_MARKER} ({self._rows_total} rows)\n")
        self._close()

    def abort(self, error: BaseException | None = None) -> None:
        if self._out is None:
            return
        reason = str(error).splitlines()[0] if error is not None and str(error) else "aborted"
        try:
            if self.transaction:
                self._out.write("\nROLLBACK;\n")
            self._out.write(f"\n{INCOMPLETE_MARKER}: seed aborted: {reason}\n")
        except OSError as e:
            logger.warning(f"Could not mark '{self.path}' as incomplete: {e}")
        finally:
            self._close()

    def _emit(self, text: str) -> None:
        if self._out is None:
            raise SinkError(self.name, "sink is not open")
        try:
            self._out.write(text)
        except OSError as e:
            raise SinkError(self.name, f"write to '{self.path}' failed: {e}") from e

    def _close(self) -> None:
        if self._out is None:
            return
        try:
            self._out.flush()
            if self._owns_stream:
                self._out.close()
        except OSError as e:
            logger.warning(f"Could not close '{self.path}': {e}")
        finally:
            self._out = None
            self._owns_stream = False
