"""Foreign key reference generator."""

from __future__ import annotations

import itertools
import logging
from typing import Any

from sourcebox.exceptions import ConstraintUnsatisfiableError, EmptyParentSetError
from sourcebox.generators.base import FieldGenerator, RowContext
from sourcebox.models import ColumnDefinition, ForeignKeyReferenceSpec, SelectionPolicy

logger = logging.getLogger(__name__)


class ForeignKeyReferenceGenerator(FieldGenerator):
    """
    Select key values that already exist in the referenced table.

    Values are only ever read from the parent's RecordSet, so a generated
    foreign key can never dangle. Self-references read from the rows of the
    current table generated so far; the first row gets NULL.

    Unique (one-to-one) references draw a sample without replacement.
    """

    def __init__(self, table: str, column: ColumnDefinition):
        super().__init__(table, column)
        self.spec: ForeignKeyReferenceSpec = column.generator
        self.self_reference = self.spec.table == table
        self._keys: list[Any] = []
        self._cum_weights: list[float] | None = None
        self._sample: list[Any] | None = None
        self._null_only = False

    def prepare(self, count: int, ctx: RowContext) -> None:
        if self.self_reference or count == 0:
            return

        parent = ctx.parents[self.spec.table]
        self._keys = parent.key_values(self.spec.column)
        if not self._keys:
            if not self.column.constraints.nullable:
                raise EmptyParentSetError(self.table, self.column.name, self.spec.table)
            logger.warning(
                f"Parent table '{self.spec.table}' is empty, "
                f"{self.table}.{self.column.name} will be NULL"
            )
            self._null_only = True
            return

        if self.column.constraints.unique:
            if count > len(self._keys):
                raise ConstraintUnsatisfiableError(
                    self.table,
                    self.column.name,
                    f"needs {count} distinct references but '{self.spec.table}' "
                    f"only has {len(self._keys)} rows",
                )
            self._sample = ctx.rng.sample(self._keys, count)
            return

        if self.spec.policy is SelectionPolicy.SKEWED:
            weights = (1.0 / (i + 1) ** self.spec.skew for i in range(len(self._keys)))
            self._cum_weights = list(itertools.accumulate(weights))

    def generate(self, ctx: RowContext) -> Any:
        if self.self_reference:
            existing = ctx.parents[self.table].key_values(self.spec.column)
            if not existing:
                return None
            return ctx.rng.choice(existing)

        if self._null_only:
            return None
        if self._sample is not None:
            return self._sample[ctx.row_index]
        if self._cum_weights is not None:
            return ctx.rng.choices(self._keys, cum_weights=self._cum_weights)[0]
        return ctx.rng.choice(self._keys)

    @property
    def domain_size(self) -> int | None:
        if self.self_reference:
            return None
        return len(self._keys)
