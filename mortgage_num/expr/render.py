from __future__ import annotations

import decimal
from dataclasses import dataclass

from .nodes import DerivedNum, Literal, NamedConstant, NamedOutput, Num
from .registry import Operator, UnsupportedOperatorError, get_spec


@dataclass(slots=True)
class FlatteningError(RuntimeError):
    """An associative operator was found directly under itself.

    Builders keep ``ADD``/``MUL`` chains flat, so this always points at a
    construction path that bypassed flattening.
    """

    op: Operator

    def __str__(self) -> str:
        return f"{self.op.value} node nested directly under {self.op.value}; chain was not flattened"


def _render_decimal(value: decimal.Decimal) -> str:
    return str(value)


def _unwrap_outputs(node: Num) -> Num:
    while isinstance(node, NamedOutput):
        node = node.inner
    return node


def _render_operand(child: Num, parent_op: Operator, expand: bool, texts: dict[int, str]) -> str:
    """Text of ``child`` under ``parent_op``, adding ``{(...)}`` only where needed."""

    target = _unwrap_outputs(child) if expand else child
    text = texts[id(target)]
    if not isinstance(target, DerivedNum) or target.op is Operator.DIV:
        # Leaves, names and fractions are self-delimiting.
        return text

    child_spec = get_spec(target.op)
    parent_spec = get_spec(parent_op)
    if child_spec.precedence > parent_spec.precedence:
        return text
    if child_spec.precedence == parent_spec.precedence and target.op is parent_op:
        if child_spec.associative:
            if target is child:
                raise FlatteningError(parent_op)
            # Expanded named output of the same associative operator.
            return text
    return f"{{({text})}}"


def _render_derived(node: DerivedNum, expand: bool, texts: dict[int, str]) -> str:
    op = node.op
    args = node.operands
    if op is Operator.ADD:
        return " + ".join(_render_operand(arg, op, expand, texts) for arg in args)
    if op is Operator.SUB:
        left, right = args
        return (
            f"{_render_operand(left, op, expand, texts)} - "
            f"{_render_operand(right, op, expand, texts)}"
        )
    if op is Operator.MUL:
        return " * ".join(_render_operand(arg, op, expand, texts) for arg in args)
    if op is Operator.DIV:
        numerator, denominator = args
        return f"frac({texts[id(numerator)]}, {texts[id(denominator)]})"
    if op is Operator.FLOOR:
        return f"floor({texts[id(args[0])]})"
    if op is Operator.POW:
        base, exponent = args
        return (
            f"{{{_render_operand(base, op, expand, texts)}}} ^ "
            f"{{{_render_operand(exponent, op, expand, texts)}}}"
        )
    raise UnsupportedOperatorError(op)


def _children(node: Num, expand: bool) -> tuple[Num, ...]:
    if isinstance(node, DerivedNum):
        return node.operands
    if isinstance(node, NamedOutput) and expand:
        return (node.inner,)
    return ()


def _render_single(node: Num, expand: bool, texts: dict[int, str]) -> str:
    if isinstance(node, Literal):
        return _render_decimal(node.value)
    if isinstance(node, NamedConstant):
        return _render_decimal(node.value) if expand else node.name
    if isinstance(node, NamedOutput):
        return texts[id(node.inner)] if expand else node.name
    if isinstance(node, DerivedNum):
        return _render_derived(node, expand, texts)
    raise TypeError(f"Unsupported node: {type(node)!r}")


def render_node(node: Num, expand: bool = False) -> str:
    """Render ``node`` as display text.

    Named constants and named outputs print their names unless ``expand`` is
    set, in which case constants print their value and outputs print the
    wrapped expression, recursively.

    The tree is walked post-order with an explicit stack, so long linear
    chains (one subtraction per month of a loan, say) render at any depth.
    A subtree shared by several parents is rendered once.
    """

    # id() keys stay unique: every visited node is kept alive by ``node``.
    texts: dict[int, str] = {}
    stack: list[tuple[Num, bool]] = [(node, False)]
    while stack:
        current, children_done = stack.pop()
        if id(current) in texts:
            continue
        children = _children(current, expand)
        if children and not children_done:
            stack.append((current, True))
            stack.extend((child, False) for child in reversed(children) if id(child) not in texts)
            continue
        texts[id(current)] = _render_single(current, expand, texts)
    return texts[id(node)]


def pretty_print(node: Num) -> str:
    """Top-level derivation: a root named output shows its expression, children by name."""

    if isinstance(node, NamedOutput):
        return render_node(node.inner, expand=False)
    return render_node(node, expand=False)

