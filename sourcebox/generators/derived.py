"""
Derived column generator.

Derived values are computed from columns assigned earlier in the same row,
either with a small arithmetic expression or a ``str.format`` template.

Expressions are parsed with :mod:`ast` and evaluated by walking an allow-list
of node types, so schema files can never execute arbitrary code.

Example:
    >>> expr = compile_expression("round(quantity * unit_price, 2)")
    >>> expr.names
    ['quantity', 'unit_price']
    >>> expr.evaluate({"quantity": 3, "unit_price": Decimal("9.99")})
    Decimal('29.97')
"""

from __future__ import annotations

import ast
import operator
import re
import string
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sourcebox.exceptions import GenerationError
from sourcebox.generators.base import FieldGenerator, RowContext
from sourcebox.models import ColumnDefinition, DerivedSpec

BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

UNARY_OPERATORS = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

FUNCTIONS = {
    "round": round,
    "min": min,
    "max": max,
    "abs": abs,
}

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class CompiledExpression:
    """Parsed, validated arithmetic expression."""

    def __init__(self, text: str, tree: ast.Expression, names: list[str]):
        self.text = text
        self.tree = tree
        self.names = names

    def evaluate(self, values: dict[str, Any]) -> Any:
        """
        Evaluate against column values.

        Returns None when any referenced value is NULL.

        Raises:
            ArithmeticError: On division by zero or overflow
            TypeError: On operands of incompatible types
        """
        if any(values.get(name) is None for name in self.names):
            return None
        return self._eval(self.tree.body, values)

    def _eval(self, node: ast.AST, values: dict[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            return values[node.id]
        if isinstance(node, ast.UnaryOp):
            return UNARY_OPERATORS[type(node.op)](self._eval(node.operand, values))
        if isinstance(node, ast.BinOp):
            left = self._eval(node.left, values)
            right = self._eval(node.right, values)
            left, right = _align(left, right)
            return BINARY_OPERATORS[type(node.op)](left, right)
        # Only calls to FUNCTIONS survive compile_expression
        args = [self._eval(arg, values) for arg in node.args]
        if any(isinstance(arg, Decimal) for arg in args):
            args = [Decimal(repr(arg)) if isinstance(arg, float) else arg for arg in args]
        return FUNCTIONS[node.func.id](*args)


def _align(left: Any, right: Any) -> tuple[Any, Any]:
    """Promote floats to Decimal when mixed with Decimal operands."""
    if isinstance(left, Decimal) and isinstance(right, float):
        return left, Decimal(repr(right))
    if isinstance(right, Decimal) and isinstance(left, float):
        return Decimal(repr(left)), right
    return left, right


def compile_expression(text: str) -> CompiledExpression:
    """
    Parse and validate an arithmetic expression.

    Args:
        text: Expression over column names, numbers, + - * / // % ** and
            the functions round, min, max and abs

    Returns:
        CompiledExpression with the referenced column names in first-use order

    Raises:
        ValueError: If the expression is not valid or uses anything else
    """
    try:
        tree = ast.parse(text, mode="eval")
    except SyntaxError as e:
        raise ValueError(f"invalid expression {text!r}: {e.msg}") from None

    names: list[str] = []

    def check(node: ast.AST) -> None:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise ValueError(f"invalid expression {text!r}: only numeric literals allowed")
        elif isinstance(node, ast.Name):
            if node.id in FUNCTIONS:
                raise ValueError(f"invalid expression {text!r}: '{node.id}' must be called")
            if node.id not in names:
                names.append(node.id)
        elif isinstance(node, ast.UnaryOp) and type(node.op) in UNARY_OPERATORS:
            check(node.operand)
        elif isinstance(node, ast.BinOp) and type(node.op) in BINARY_OPERATORS:
            check(node.left)
            check(node.right)
        elif (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id in FUNCTIONS
            and not node.keywords
            and node.args
        ):
            for arg in node.args:
                check(arg)
        else:
            raise ValueError(
                f"invalid expression {text!r}: unsupported syntax "
                f"'{type(node).__name__}'"
            )

    check(tree.body)
    return CompiledExpression(text, tree, names)


def template_fields(template: str) -> list[str]:
    """
    List the column names a ``str.format`` template references.

    Raises:
        ValueError: If the template is malformed or uses positional,
            attribute or index fields
    """
    names: list[str] = []
    try:
        parsed = list(string.Formatter().parse(template))
    except ValueError as e:
        raise ValueError(f"invalid template {template!r}: {e}") from None
    for _, field_name, _, _ in parsed:
        if field_name is None:
            continue
        if not _IDENTIFIER.match(field_name):
            raise ValueError(
                f"invalid template {template!r}: placeholder '{{{field_name}}}' "
                f"must be a plain column name"
            )
        if field_name not in names:
            names.append(field_name)
    return names


class DerivedGenerator(FieldGenerator):
    """Compute a value from earlier columns of the same row."""

    def __init__(self, table: str, column: ColumnDefinition):
        super().__init__(table, column)
        self.spec: DerivedSpec = column.generator
        self._expression = (
            compile_expression(self.spec.expression) if self.spec.expression else None
        )

    def generate(self, ctx: RowContext) -> Any:
        if self._expression is None:
            values = {
                name: "" if ctx.row.get(name) is None else ctx.row[name]
                for name in self.spec.references
            }
            return self.spec.template.format(**values)

        try:
            value = self._expression.evaluate(ctx.row)
        except (ArithmeticError, TypeError, ValueError) as e:
            raise GenerationError(
                self.table,
                self.column.name,
                f"expression {self.spec.expression!r} failed: {e}",
            ) from e
        return self._round(value)

    def _round(self, value: Any) -> Any:
        precision = self.spec.precision
        if precision is None or value is None:
            return value
        if isinstance(value, Decimal):
            return value.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)
        if isinstance(value, float):
            return round(value, precision)
        return value
