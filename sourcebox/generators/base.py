"""Base generator interface."""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from faker import Faker

from sourcebox.models import ColumnDefinition

if TYPE_CHECKING:
    from sourcebox.records import RecordSet


@dataclass
class RowContext:
    """
    State visible to a generator while producing one value.

    Attributes:
        table: Table being generated
        row_index: Zero-based index of the row within the table
        rng: Table-scoped random source (the only source of randomness)
        faker: Table-scoped Faker instance seeded from ``rng``
        row: Values already assigned in the current row
        parents: Completed RecordSets by table name; for self-references
            the table's own in-progress RecordSet is included
    """

    table: str
    row_index: int
    rng: random.Random
    faker: Faker
    row: dict[str, Any] = field(default_factory=dict)
    parents: Mapping[str, RecordSet] = field(default_factory=dict)


class FieldGenerator(ABC):
    """
    Produces values for one column.

    A generator instance lives for a single table generation, so counters
    and pre-drawn samples never leak between tables or runs.

    Example:
        >>> class ConstantGenerator(FieldGenerator):
        ...     def generate(self, ctx):
        ...         return 42
    """

    def __init__(self, table: str, column: ColumnDefinition):
        self.table = table
        self.column = column

    def prepare(self, count: int, ctx: RowContext) -> None:
        """
        Hook called once before the first row of a table.

        Args:
            count: Number of rows that will be requested
            ctx: Context for row zero (rng and parents are table-scoped)
        """

    @abstractmethod
    def generate(self, ctx: RowContext) -> Any:
        """
        Generate a value for the column.

        Args:
            ctx: Row context

        Returns:
            Generated value appropriate for the column type
        """

    @property
    def domain_size(self) -> int | None:
        """Number of distinct values the generator can produce, None if unbounded."""
        return None
