"""Fixed value-set generator."""

from __future__ import annotations

from typing import Any

from sourcebox.generators.base import FieldGenerator, RowContext
from sourcebox.models import ColumnDefinition, EnumerationSpec


class EnumerationGenerator(FieldGenerator):
    """Pick from a fixed set of values, optionally weighted."""

    def __init__(self, table: str, column: ColumnDefinition):
        super().__init__(table, column)
        spec: EnumerationSpec = column.generator
        self.values = list(spec.values)
        self.weights = list(spec.weights) if spec.weights is not None else None

    def generate(self, ctx: RowContext) -> Any:
        if self.weights is None:
            return ctx.rng.choice(self.values)
        return ctx.rng.choices(self.values, weights=self.weights)[0]

    @property
    def domain_size(self) -> int | None:
        if self.weights is None:
            return len(set(self.values))
        return len({v for v, w in zip(self.values, self.weights) if w > 0})
