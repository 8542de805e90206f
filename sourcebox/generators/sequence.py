"""Unique sequence generator."""

from __future__ import annotations

from typing import Any

from sourcebox.exceptions import ExhaustedSequenceError
from sourcebox.generators.base import FieldGenerator, RowContext
from sourcebox.models import ColumnDefinition, SequenceOrder, UniqueSequenceSpec


class UniqueSequenceGenerator(FieldGenerator):
    """
    Emit distinct values from ``start`` by ``step``.

    Shuffled sequences draw a random sample of positions up front, so every
    value is still used at most once.
    """

    def __init__(self, table: str, column: ColumnDefinition):
        super().__init__(table, column)
        self.spec: UniqueSequenceSpec = column.generator
        self._position = 0
        self._order: list[int] | None = None

    def prepare(self, count: int, ctx: RowContext) -> None:
        domain = self.spec.domain_size
        if domain is not None and count > domain:
            raise ExhaustedSequenceError(self.table, self.column.name, count, domain)
        if self.spec.order is SequenceOrder.SHUFFLED:
            self._order = ctx.rng.sample(range(domain), count)

    def generate(self, ctx: RowContext) -> Any:
        position = self._position
        domain = self.spec.domain_size
        if domain is not None and position >= domain:
            raise ExhaustedSequenceError(self.table, self.column.name, position + 1, domain)
        if self._order is not None:
            position = self._order[position]
        self._position += 1

        value = self.spec.start + position * self.spec.step
        if self.spec.format is not None:
            return self.spec.format.format(value)
        return value

    @property
    def domain_size(self) -> int | None:
        return self.spec.domain_size
