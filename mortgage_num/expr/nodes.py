from __future__ import annotations

import decimal
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from ..config import get_decimal_context, get_engine_config
from .cache import LiteralCache
from .registry import Operator, UnsupportedOperatorError, get_spec

if TYPE_CHECKING:
    from .rewrite import SimplificationRule

AnyNumber = Union[int, float, str, decimal.Decimal, "Num"]


def to_decimal(x: AnyNumber) -> decimal.Decimal:
    """Convert a raw number (or a node, by value) into a ``Decimal``.

    Floats go through their shortest ``repr`` so ``0.1`` becomes
    ``Decimal("0.1")`` rather than the binary expansion.
    """

    if isinstance(x, Num):
        return x.value
    if isinstance(x, bool):
        raise TypeError("bool is not a number for expression purposes")
    if isinstance(x, decimal.Decimal):
        return x
    if isinstance(x, int):
        return decimal.Decimal(x)
    if isinstance(x, float):
        return decimal.Decimal(repr(x))
    if isinstance(x, str):
        try:
            return decimal.Decimal(x.strip())
        except decimal.InvalidOperation as exc:
            raise ValueError(f"Not a decimal number: {x!r}") from exc
    raise TypeError(f"Expected int/float/str/Decimal/Num, got {type(x)!r}")


class Num:
    """Base class of every expression node.

    A node is immutable and carries its decimal ``value``, computed once when
    the node is built. Composition methods (``add``, ``mul``, ...) always
    return new nodes; comparisons look only at values, never at names.
    """

    __slots__ = ()

    value: decimal.Decimal

    def to_float(self) -> float:
        return float(self.value)

    def __float__(self) -> float:
        return self.to_float()

    def clamp(self, lo: AnyNumber, hi: AnyNumber) -> Num:
        lo_node = to_node(lo)
        hi_node = to_node(hi)
        if self.gt(hi_node):
            return hi_node
        if self.lt(lo_node):
            return lo_node
        return self

    def gt(self, other: AnyNumber) -> bool:
        return self.value > to_decimal(other)

    def gte(self, other: AnyNumber) -> bool:
        return self.value >= to_decimal(other)

    def lt(self, other: AnyNumber) -> bool:
        return self.value < to_decimal(other)

    def lte(self, other: AnyNumber) -> bool:
        return self.value <= to_decimal(other)

    def eq(self, other: AnyNumber) -> bool:
        return self.value == to_decimal(other)

    def cmp(self, other: AnyNumber) -> int:
        other_value = to_decimal(other)
        result = self.value.compare(other_value)
        if result.is_nan():
            raise decimal.InvalidOperation(f"cannot order {self.value} and {other_value}")
        return int(result)

    def add(self, other: AnyNumber) -> Num:
        return merge_siblings(self, to_node(other), Operator.ADD)

    def sub(self, other: AnyNumber) -> DerivedNum:
        return DerivedNum(Operator.SUB, (self, to_node(other)))

    def mul(self, other: AnyNumber) -> Num:
        return merge_siblings(self, to_node(other), Operator.MUL)

    def div(self, other: AnyNumber) -> DerivedNum:
        return DerivedNum(Operator.DIV, (self, to_node(other)))

    def pow(self, other: AnyNumber) -> DerivedNum:
        return DerivedNum(Operator.POW, (self, to_node(other)))

    def floor(self) -> DerivedNum:
        return DerivedNum(Operator.FLOOR, (self,))

    def __add__(self, other: AnyNumber) -> Num:
        return self.add(other)

    def __radd__(self, other: AnyNumber) -> Num:
        return to_node(other).add(self)

    def __sub__(self, other: AnyNumber) -> DerivedNum:
        return self.sub(other)

    def __rsub__(self, other: AnyNumber) -> DerivedNum:
        return to_node(other).sub(self)

    def __mul__(self, other: AnyNumber) -> Num:
        return self.mul(other)

    def __rmul__(self, other: AnyNumber) -> Num:
        return to_node(other).mul(self)

    def __truediv__(self, other: AnyNumber) -> DerivedNum:
        return self.div(other)

    def __rtruediv__(self, other: AnyNumber) -> DerivedNum:
        return to_node(other).div(self)

    def __pow__(self, other: AnyNumber) -> DerivedNum:
        return self.pow(other)

    def __rpow__(self, other: AnyNumber) -> DerivedNum:
        return to_node(other).pow(self)

    def simplify(self) -> Num:
        from .rewrite import simplify

        return simplify(self)

    def simplify_one(self, rule: SimplificationRule) -> Num | None:
        from .rewrite import simplify_one

        return simplify_one(self, rule)

    def render(self, expand: bool = False) -> str:
        from .render import render_node

        return render_node(self, expand=expand)

    def pretty_print(self) -> str:
        from .render import pretty_print

        return pretty_print(self)

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True, slots=True, weakref_slot=True)
class Literal(Num):
    value: decimal.Decimal

    def __post_init__(self) -> None:
        if not isinstance(self.value, decimal.Decimal):
            object.__setattr__(self, "value", to_decimal(self.value))


@dataclass(frozen=True, slots=True)
class NamedConstant(Num):
    name: str
    value: decimal.Decimal

    def __post_init__(self) -> None:
        if not isinstance(self.value, decimal.Decimal):
            object.__setattr__(self, "value", to_decimal(self.value))


@dataclass(frozen=True, slots=True, eq=False)
class DerivedNum(Num):
    op: Operator
    operands: tuple[Num, ...]
    value: decimal.Decimal = field(init=False, repr=False)
    _hash: int = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.op, Operator):
            raise UnsupportedOperatorError(self.op)
        operands = tuple(self.operands)
        for operand in operands:
            if not isinstance(operand, Num):
                raise TypeError(f"{self.op.value} operand must be a Num, got {type(operand)!r}")
        spec = get_spec(self.op)
        spec.check_arity(len(operands))
        object.__setattr__(self, "operands", operands)
        object.__setattr__(
            self, "value", spec.fn(get_decimal_context(), [n.value for n in operands])
        )
        # Operand hashes are already cached, so this never recurses.
        object.__setattr__(self, "_hash", hash((DerivedNum, self.op, tuple(map(hash, operands)))))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Num):
            return NotImplemented
        return structurally_equal(self, other)

    def __hash__(self) -> int:
        return self._hash


@dataclass(frozen=True, slots=True, eq=False)
class NamedOutput(Num):
    """A derived value promoted to a labelled output.

    Its value is the wrapped node's value; unexpanded rendering prints only
    ``name``.
    """

    name: str
    inner: Num
    _hash: int = field(init=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "inner", to_node(self.inner))
        object.__setattr__(self, "_hash", hash((NamedOutput, self.name, hash(self.inner))))

    @property
    def value(self) -> decimal.Decimal:
        return self.inner.value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Num):
            return NotImplemented
        return structurally_equal(self, other)

    def __hash__(self) -> int:
        return self._hash


def structurally_equal(left: Num, right: Num) -> bool:
    """Compare two trees node by node: same types, operators, names and leaf values.

    Uses an explicit work list, so the depth of the trees is not bounded by
    the interpreter's recursion limit.
    """

    pending = [(left, right)]
    while pending:
        a, b = pending.pop()
        if a is b:
            continue
        if type(a) is not type(b) or hash(a) != hash(b):
            return False
        if isinstance(a, DerivedNum):
            if a.op is not b.op or len(a.operands) != len(b.operands):
                return False
            pending.extend(zip(a.operands, b.operands))
        elif isinstance(a, NamedOutput):
            if a.name != b.name:
                return False
            pending.append((a.inner, b.inner))
        elif a != b:
            return False
    return True


Node = Literal | NamedConstant | DerivedNum | NamedOutput

_LITERAL_CACHE: LiteralCache[Literal] = LiteralCache(Literal)


def literal_cache() -> LiteralCache[Literal]:
    return _LITERAL_CACHE


def literal(x: AnyNumber) -> Literal:
    value = to_decimal(x)
    if get_engine_config().intern_literals:
        return _LITERAL_CACHE.intern(value)
    return Literal(value)


def named_constant(name: str, value: AnyNumber) -> NamedConstant:
    return NamedConstant(name, to_decimal(value))


def named_output(name: str, node: AnyNumber) -> NamedOutput:
    return NamedOutput(name, to_node(node))


def to_node(x: AnyNumber) -> Num:
    if isinstance(x, Num):
        return x
    return literal(x)


def merge_siblings(a: Num, b: Num, op: Operator) -> DerivedNum:
    """Combine ``a`` and ``b`` under an associative ``op``, keeping chains flat.

    An operand that is already a node of the same operator contributes its
    operands instead of itself, so ``a + b + c`` is one three-operand node.
    Order is preserved.
    """

    return build_derived(op, (a, b))


def build_derived(op: Operator, operands: Iterable[Num]) -> DerivedNum:
    if not get_spec(op).associative:
        return DerivedNum(op, tuple(operands))
    flat: list[Num] = []
    for operand in operands:
        if isinstance(operand, DerivedNum) and operand.op is op:
            flat.extend(operand.operands)
        else:
            flat.append(operand)
    return DerivedNum(op, tuple(flat))


def sum_of(*xs: AnyNumber) -> Num:
    if not xs:
        raise ValueError("sum_of requires at least one operand")
    result = to_node(xs[0])
    for x in xs[1:]:
        result = result.add(x)
    return result


def product_of(*xs: AnyNumber) -> Num:
    if not xs:
        raise ValueError("product_of requires at least one operand")
    result = to_node(xs[0])
    for x in xs[1:]:
        result = result.mul(x)
    return result


def floor(x: AnyNumber) -> DerivedNum:
    return to_node(x).floor()


def power(base: AnyNumber, exponent: AnyNumber) -> DerivedNum:
    return to_node(base).pow(exponent)


def maximum(a: AnyNumber, b: AnyNumber) -> Num:
    a_node = to_node(a)
    b_node = to_node(b)
    if a_node.gt(b_node):
        return a_node
    return b_node


def child_nodes(node: Num) -> tuple[Num, ...]:
    if isinstance(node, DerivedNum):
        return node.operands
    if isinstance(node, NamedOutput):
        return (node.inner,)
    return ()


def _fold_tree(node: Num, combine: Callable[[list[int]], int]) -> int:
    """Bottom-up fold over the tree; leaves count 1, inner nodes ``1 + combine(children)``."""

    results: dict[int, int] = {}
    stack: list[tuple[Num, bool]] = [(node, False)]
    while stack:
        current, children_done = stack.pop()
        if id(current) in results:
            continue
        children = child_nodes(current)
        if children and not children_done:
            stack.append((current, True))
            stack.extend((child, False) for child in children if id(child) not in results)
            continue
        results[id(current)] = 1 + combine([results[id(c)] for c in children]) if children else 1
    return results[id(node)]


def node_size(node: Num) -> int:
    return _fold_tree(node, sum)


def node_depth(node: Num) -> int:
    return _fold_tree(node, max)
