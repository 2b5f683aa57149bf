"""Term-rewriting simplifier for expression trees.

Simplifications pattern-match on the tree and return a rewritten copy. A
rewrite is only accepted when the replacement has exactly the value of the
subtree it replaces; otherwise the rule is treated as not matching there.
Rules run in a fixed order because some of them only match after an earlier
rule has fired (``0 - x`` becomes ``-1 * x`` before literal signs are folded).
"""

from __future__ import annotations

import decimal
import logging
from collections.abc import Callable
from functools import partial
from typing import TypeVar

from ..config import get_decimal_context
from .nodes import (
    DerivedNum,
    Literal,
    NamedConstant,
    NamedOutput,
    Num,
    build_derived,
    literal,
    product_of,
    sum_of,
    to_node,
)
from .registry import Operator

logger = logging.getLogger("mortgage_num.rewrite")

T = TypeVar("T")

SimplificationRule = Callable[[Num], "Num | None"]
_PathEntry = tuple[Num, int, "_PathEntry | None"]


def _is_constant_or_literal(node: Num) -> bool:
    return isinstance(node, (Literal, NamedConstant))


def _is_constant(node: Num, value: int) -> bool:
    return _is_constant_or_literal(node) and node.value == decimal.Decimal(value)


def _is_op(node: Num, op: Operator) -> bool:
    return isinstance(node, DerivedNum) and node.op is op


def addition_identity(root: Num) -> Num | None:
    """Drops ``0`` addends: ``x + 0`` and ``0 + x`` become ``x``."""

    if not _is_op(root, Operator.ADD):
        return None
    kept = [n for n in root.operands if not _is_constant(n, 0)]
    if len(kept) == len(root.operands):
        return None
    if len(kept) == 1:
        return kept[0]
    if kept:
        return sum_of(*kept)
    return literal(0)


def subtraction_identity(root: Num) -> Num | None:
    """Rewrites ``x - 0`` into ``x``."""

    if _is_op(root, Operator.SUB) and _is_constant(root.operands[1], 0):
        return root.operands[0]
    return None


def subtraction_from_zero(root: Num) -> Num | None:
    """Rewrites ``0 - x`` into ``-1 * x``."""

    if _is_op(root, Operator.SUB) and _is_constant(root.operands[0], 0):
        return literal(-1).mul(root.operands[1])
    return None


def multiplication_identity(root: Num) -> Num | None:
    """Drops ``1`` factors: ``1 * x`` and ``x * 1`` become ``x``."""

    if not _is_op(root, Operator.MUL):
        return None
    kept = [n for n in root.operands if not _is_constant(n, 1)]
    if len(kept) == len(root.operands):
        return None
    if len(kept) == 1:
        return kept[0]
    if kept:
        return product_of(*kept)
    return literal(1)


def multiplication_collapse(root: Num) -> Num | None:
    """Rewrites any product with a ``0`` factor into ``0``."""

    if _is_op(root, Operator.MUL) and any(_is_constant(n, 0) for n in root.operands):
        return literal(0)
    return None


def multiplication_by_fraction(root: Num) -> Num | None:
    """Rewrites ``x * y/z`` or ``y/z * x`` into ``(x * y)/z``."""

    if not _is_op(root, Operator.MUL):
        return None
    for idx, factor in enumerate(root.operands):
        if _is_op(factor, Operator.DIV):
            numerator, denominator = factor.operands
            factors = (*root.operands[:idx], numerator, *root.operands[idx + 1 :])
            return product_of(*factors).div(denominator)
    return None


def negated_literal(root: Num) -> Num | None:
    """Folds a literal ``-1`` factor into the first other literal factor.

    Only bare literals take part; a named constant is left alone even when
    its value could absorb the sign.
    """

    if not _is_op(root, Operator.MUL):
        return None
    factors = list(root.operands)
    negative_idx = next(
        (i for i, n in enumerate(factors) if isinstance(n, Literal) and n.value == -1), None
    )
    if negative_idx is None:
        return None
    literal_idx = next(
        (i for i, n in enumerate(factors) if isinstance(n, Literal) and i != negative_idx), None
    )
    if literal_idx is None:
        return None
    factors[literal_idx] = literal(get_decimal_context().minus(factors[literal_idx].value))
    del factors[negative_idx]
    return product_of(*factors)


def division_identity(root: Num) -> Num | None:
    """Rewrites ``x / 1`` into ``x``."""

    if _is_op(root, Operator.DIV) and _is_constant(root.operands[1], 1):
        return root.operands[0]
    return None


def division_collapse(root: Num) -> Num | None:
    """Rewrites ``0 / x`` into ``0``."""

    if _is_op(root, Operator.DIV) and _is_constant(root.operands[0], 0):
        return literal(0)
    return None


def denominator_is_fraction(root: Num) -> Num | None:
    """Rewrites ``x / (y/z)`` into ``(x*z) / y``."""

    if _is_op(root, Operator.DIV) and _is_op(root.operands[1], Operator.DIV):
        x = root.operands[0]
        y, z = root.operands[1].operands
        return product_of(x, z).div(y)
    return None


def numerator_is_fraction(root: Num) -> Num | None:
    """Rewrites ``(x / y) / z`` into ``x / (y * z)``."""

    if _is_op(root, Operator.DIV) and _is_op(root.operands[0], Operator.DIV):
        x, y = root.operands[0].operands
        z = root.operands[1]
        return x.div(product_of(y, z))
    return None


def power_identity(root: Num) -> Num | None:
    """Rewrites ``x ^ 1`` into ``x``."""

    if _is_op(root, Operator.POW) and _is_constant(root.operands[1], 1):
        return root.operands[0]
    return None


def power_collapse(root: Num) -> Num | None:
    """Rewrites ``x ^ 0`` into ``1``, ``0 ^ x`` into ``0`` and ``1 ^ x`` into ``1``."""

    if not _is_op(root, Operator.POW):
        return None
    base, exponent = root.operands
    if _is_constant(exponent, 0):
        return literal(1)
    if _is_constant(base, 0):
        return literal(0)
    if _is_constant(base, 1):
        return literal(1)
    return None


SIMPLIFICATION_RULES: tuple[SimplificationRule, ...] = (
    addition_identity,
    subtraction_identity,
    subtraction_from_zero,
    multiplication_identity,
    multiplication_collapse,
    multiplication_by_fraction,
    negated_literal,
    division_identity,
    division_collapse,
    denominator_is_fraction,
    numerator_is_fraction,
    power_identity,
    power_collapse,
)


def _checked_rewrite(node: Num, rule: SimplificationRule) -> Num | None:
    """Run ``rule`` on ``node``; a result that changes the value counts as no match.

    Regrouping rules move the point where a quotient is rounded, and an
    intermediate product may overflow the context even though the original
    tree evaluates fine. Such rewrites are discarded.
    """

    try:
        replaced = rule(node)
        if replaced is None or replaced.value == node.value:
            return replaced
    except ArithmeticError as exc:
        logger.debug("%s rejected on %s: %s", rule.__name__, node, exc)
        return None
    logger.debug("%s rejected on %s: value would change to %s", rule.__name__, node, replaced.value)
    return None


def _rebuild(path: _PathEntry | None, replacement: Num) -> Num:
    # Walk from the rewritten subtree back up to the root.
    while path is not None:
        owner, idx, path = path
        if isinstance(owner, NamedOutput):
            replacement = NamedOutput(owner.name, replacement)
        else:
            operands = list(owner.operands)
            operands[idx] = replacement
            replacement = build_derived(owner.op, operands)
    return replacement


def simplify_one(node: Num, rule: SimplificationRule) -> Num | None:
    """Apply ``rule`` to the first matching subtree in pre-order.

    Returns the rewritten tree, or ``None`` when the rule matches nowhere.
    Named outputs never match themselves; the rule is applied inside them
    and the result keeps the output's name. Only rewrites that keep the
    subtree's value exactly are accepted.
    """

    # Each entry is (subtree, parent path); a parent path is
    # (parent node, index of the subtree in it, grandparent path).
    pending: list[tuple[Num, _PathEntry | None]] = [(node, None)]
    while pending:
        current, path = pending.pop()
        if isinstance(current, NamedOutput):
            pending.append((current.inner, (current, 0, path)))
            continue
        replaced = _checked_rewrite(current, rule)
        if replaced is not None:
            return _rebuild(path, replaced)
        if isinstance(current, DerivedNum):
            for idx in reversed(range(len(current.operands))):
                pending.append((current.operands[idx], (current, idx, path)))
    return None


def run_fixed_point(initial: T, action: Callable[[T], T | None]) -> tuple[T, bool]:
    """Apply ``action`` until it returns ``None``.

    Returns the last state and whether ``action`` changed anything at all.
    """

    current = initial
    changed = False
    while True:
        following = action(current)
        if following is None:
            return current, changed
        current = following
        changed = True


def apply_rule(root: Num, rule: SimplificationRule) -> tuple[Num, bool]:
    """Rewrite with a single rule until it no longer matches anywhere."""

    return run_fixed_point(root, partial(simplify_one, rule=rule))


def _apply_rule_pass(root: Num) -> Num | None:
    current = root
    fired = False
    for rule in SIMPLIFICATION_RULES:
        current, applied = apply_rule(current, rule)
        if applied:
            fired = True
            logger.debug("%s fired; tree is now %s", rule.__name__, current)
    return current if fired else None


def simplify(node: Num) -> Num:
    """Simplify ``node`` to a fixed point of :data:`SIMPLIFICATION_RULES`.

    The result has the same value as ``node``; only its shape (and therefore
    its rendering) changes.
    """

    root = to_node(node)
    result, changed = run_fixed_point(root, _apply_rule_pass)
    if changed:
        logger.debug("simplified %s -> %s", root, result)
    return result
