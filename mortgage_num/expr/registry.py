from __future__ import annotations

import decimal
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum, IntEnum


class Operator(str, Enum):
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    FLOOR = "floor"
    POW = "pow"


class Precedence(IntEnum):
    """Binding power of an operator; higher binds tighter."""

    TERM = 1
    FACTOR = 2
    EXPONENT = 3
    CALL = 4


@dataclass(slots=True)
class ArityError(ValueError):
    op: Operator
    expected: str
    got: int

    def __str__(self) -> str:
        return f"{self.op.value} expects {self.expected} operands, got {self.got}"


@dataclass(slots=True)
class UnsupportedOperatorError(RuntimeError):
    op: object

    def __str__(self) -> str:
        return f"No operator spec registered for {self.op!r}"


def _sum(ctx: decimal.Context, values: Sequence[decimal.Decimal]) -> decimal.Decimal:
    total = values[0]
    for value in values[1:]:
        total = ctx.add(total, value)
    return total


def _product(ctx: decimal.Context, values: Sequence[decimal.Decimal]) -> decimal.Decimal:
    result = values[0]
    for value in values[1:]:
        result = ctx.multiply(result, value)
    return result


def _floor(ctx: decimal.Context, values: Sequence[decimal.Decimal]) -> decimal.Decimal:
    return values[0].to_integral_value(rounding=decimal.ROUND_FLOOR, context=ctx)


@dataclass(frozen=True, slots=True)
class OperatorSpec:
    """Immutable descriptor for a single expression operator.

    Attributes:
        op: The operator this entry describes.
        precedence: Binding power used by the renderer to place parentheses.
        min_arity: Minimum operand count.
        max_arity: Maximum operand count, or ``None`` for variadic operators.
        associative: ``True`` for operators whose chains are kept flat
            (``a + b + c`` is one node with three operands).
        fn: Computes the operator over operand values within a decimal context.
    """

    op: Operator
    precedence: Precedence
    min_arity: int
    max_arity: int | None
    associative: bool
    fn: Callable[[decimal.Context, Sequence[decimal.Decimal]], decimal.Decimal]

    @property
    def expected_arity(self) -> str:
        if self.max_arity is None:
            return f"at least {self.min_arity}"
        if self.min_arity == self.max_arity:
            return f"exactly {self.min_arity}"
        return f"{self.min_arity} to {self.max_arity}"

    def check_arity(self, argc: int) -> None:
        if argc < self.min_arity or (self.max_arity is not None and argc > self.max_arity):
            raise ArityError(self.op, self.expected_arity, argc)


OPERATOR_SPECS: dict[Operator, OperatorSpec] = {
    Operator.ADD: OperatorSpec(Operator.ADD, Precedence.TERM, 2, None, True, _sum),
    Operator.SUB: OperatorSpec(
        Operator.SUB, Precedence.TERM, 2, 2, False, lambda ctx, v: ctx.subtract(v[0], v[1])
    ),
    Operator.MUL: OperatorSpec(Operator.MUL, Precedence.FACTOR, 2, None, True, _product),
    Operator.DIV: OperatorSpec(
        Operator.DIV, Precedence.FACTOR, 2, 2, False, lambda ctx, v: ctx.divide(v[0], v[1])
    ),
    Operator.FLOOR: OperatorSpec(Operator.FLOOR, Precedence.CALL, 1, 1, False, _floor),
    Operator.POW: OperatorSpec(
        Operator.POW, Precedence.EXPONENT, 2, 2, False, lambda ctx, v: ctx.power(v[0], v[1])
    ),
}


def get_spec(op: Operator) -> OperatorSpec:
    try:
        return OPERATOR_SPECS[op]
    except KeyError:
        raise UnsupportedOperatorError(op) from None


def resolve_operator(name: str | Operator) -> Operator:
    """Map a case-insensitive operator name onto :class:`Operator`."""

    if isinstance(name, Operator):
        return name
    key = str(name or "").strip().lower()
    try:
        return Operator(key)
    except ValueError:
        raise KeyError(f"Unknown operator: {name!r}") from None


def compute_value(
    op: Operator, values: Sequence[decimal.Decimal], ctx: decimal.Context
) -> decimal.Decimal:
    spec = get_spec(op)
    spec.check_arity(len(values))
    return spec.fn(ctx, values)


def _check_registry_complete() -> None:
    missing = [op for op in Operator if op not in OPERATOR_SPECS]
    if missing:
        raise UnsupportedOperatorError(missing[0])


_check_registry_complete()
