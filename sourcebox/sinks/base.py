"""Base sink interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from sourcebox.models import SchemaDefinition, TableDefinition
from sourcebox.records import GeneratedRecord

DEFAULT_BATCH_SIZE = 500


@dataclass(frozen=True)
class SinkResult:
    """Outcome of writing one table."""

    table: str
    rows_written: int


class Sink(ABC):
    """
    Destination for generated records.

    Lifecycle: :meth:`open` once, :meth:`write_table` per table in
    resolution order, then either :meth:`finalize` on success or
    :meth:`abort` on any failure. A sink never leaves a partial seed looking
    complete: transactional sinks roll back, the file sink marks the output
    as incomplete.
    """

    #: Sink name used in logs and SeedRun reports
    name = "sink"
    #: Whether :meth:`abort` undoes every row written so far
    discards_on_abort = False

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.batch_size = batch_size

    @abstractmethod
    def open(self, schema: SchemaDefinition, order: list[str], seed: int) -> None:
        """
        Prepare the destination.

        Args:
            schema: Schema being seeded
            order: Tables in the order they will be written
            seed: Run seed, for provenance

        Raises:
            SinkError: If the destination cannot be reached
        """

    @abstractmethod
    def write_table(
        self, table: TableDefinition, batches: Iterable[list[GeneratedRecord]]
    ) -> SinkResult:
        """
        Write one table's rows.

        Args:
            table: Table definition (column order and names)
            batches: Rows grouped in batches of at most ``batch_size``

        Returns:
            SinkResult with the number of rows written

        Raises:
            SinkError: If a write fails
        """

    @abstractmethod
    def finalize(self) -> None:
        """Commit or complete the output."""

    @abstractmethod
    def abort(self, error: BaseException | None = None) -> None:
        """Roll back or mark the output incomplete. Must not raise."""
