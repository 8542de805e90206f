"""Numeric and temporal range generator."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sourcebox.generators.base import FieldGenerator, RowContext
from sourcebox.models import ColumnDefinition, Distribution, ScalarRangeSpec


class ScalarRangeGenerator(FieldGenerator):
    """
    Draw values within [minimum, maximum] using a distribution.

    Integers, decimals, dates and datetimes are all mapped onto a numeric
    axis (days for dates, seconds for datetimes), sampled there, and mapped
    back. Results are clamped so they never leave the declared range.
    """

    def __init__(self, table: str, column: ColumnDefinition):
        super().__init__(table, column)
        spec: ScalarRangeSpec = column.generator
        self.spec = spec
        self._low = self._to_axis(spec.minimum)
        self._high = self._to_axis(spec.maximum)

    def generate(self, ctx: RowContext) -> Any:
        spec = self.spec
        if spec.distribution is Distribution.UNIFORM and isinstance(spec.minimum, int):
            return ctx.rng.randint(spec.minimum, spec.maximum)

        point = self._sample(ctx)
        return self._from_axis(point)

    @property
    def domain_size(self) -> int | None:
        minimum = self.spec.minimum
        if isinstance(minimum, Decimal):
            scale = Decimal(10) ** self.spec.precision
            return int((self.spec.maximum - minimum) * scale) + 1
        return int(self._high - self._low) + 1

    def _sample(self, ctx: RowContext) -> float:
        spec = self.spec
        low, high = self._low, self._high
        if spec.distribution is Distribution.NORMAL:
            mean = spec.mean if spec.mean is not None else (low + high) / 2
            stddev = spec.stddev if spec.stddev is not None else (high - low) / 6 or 1.0
            return min(max(ctx.rng.gauss(mean, stddev), low), high)
        fraction = ctx.rng.random()
        if spec.distribution is Distribution.SKEWED:
            fraction = fraction**spec.skew
        return low + (high - low) * fraction

    def _to_axis(self, value: Any) -> float:
        if isinstance(value, datetime):
            return (value - self.spec.minimum).total_seconds()
        if isinstance(value, date):
            return float(value.toordinal())
        return float(value)

    def _from_axis(self, point: float) -> Any:
        minimum, maximum = self.spec.minimum, self.spec.maximum
        if isinstance(minimum, datetime):
            value = minimum + timedelta(seconds=math.floor(point))
        elif isinstance(minimum, date):
            value = date.fromordinal(int(math.floor(point)))
        elif isinstance(minimum, Decimal):
            quantum = Decimal(1).scaleb(-self.spec.precision)
            value = Decimal(repr(point)).quantize(quantum, rounding=ROUND_HALF_UP)
        else:
            value = int(round(point))
        return min(max(value, minimum), maximum)
