"""Coverage tests for expression nodes, the simplifier, and the renderer."""

from __future__ import annotations

import decimal
from decimal import Decimal

import numpy as np
import pytest

from mortgage_num.expr.nodes import (
    DerivedNum,
    Literal,
    NamedOutput,
    Num,
    floor,
    literal,
    maximum,
    named_constant,
    named_output,
    node_depth,
    node_size,
    power,
    product_of,
    sum_of,
)
from mortgage_num.expr.registry import ArityError, Operator, UnsupportedOperatorError
from mortgage_num.expr.render import FlatteningError
from mortgage_num.expr import rewrite

# ---------------------------------------------------------------------------
# Random expression trees
# ---------------------------------------------------------------------------

# Divisors of 3 and 7 give quotients that round at the context precision.
_LEAVES = ("0", "1", "2", "3", "5", "-1", "0.5", "1.25", "4")
_DIVISORS = ("1", "2", "3", "4", "5", "7", "8", "0.5")
_CONSTANTS = (("zero", "0"), ("one", "1"), ("half", "0.5"), ("two", "2"))


def _leaf(rng: np.random.Generator) -> Num:
    if rng.random() < 0.3:
        name, value = _CONSTANTS[rng.integers(len(_CONSTANTS))]
        return named_constant(name, value)
    return literal(_LEAVES[rng.integers(len(_LEAVES))])


def _divisor(rng: np.random.Generator) -> Num:
    first = literal(_DIVISORS[rng.integers(len(_DIVISORS))])
    if rng.random() < 0.3:
        return first.mul(_DIVISORS[rng.integers(len(_DIVISORS))])
    if rng.random() < 0.2:
        return named_constant("one", 1)
    return first


def _random_tree(rng: np.random.Generator, depth: int) -> Num:
    if depth == 0 or rng.random() < 0.2:
        return _leaf(rng)
    kind = int(rng.integers(8))

    def child() -> Num:
        return _random_tree(rng, depth - 1)

    if kind == 0:
        return sum_of(*(child() for _ in range(int(rng.integers(2, 4)))))
    if kind == 1:
        return child().sub(child())
    if kind == 2:
        return product_of(child(), child())
    if kind == 3:
        return child().div(_divisor(rng))
    if kind == 4:
        return floor(child())
    if kind == 5:
        exponent = ("1", "2")[rng.integers(2)]
        return power(_leaf(rng), literal(exponent) if rng.random() < 0.7 else named_constant("one", 1))
    if kind == 6:
        return named_output(f"out{int(rng.integers(100))}", child())
    return literal(0).sub(child())


def _random_trees(count: int, seed: int, depth: int = 3) -> list[Num]:
    rng = np.random.default_rng(seed)
    return [_random_tree(rng, depth) for _ in range(count)]


# ---------------------------------------------------------------------------
# Construction and evaluation
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_literal_value_round_trips(self):
        for raw in ("0", "1", "-2.50", "1234567890.0987654321", "1E+3"):
            assert literal(Decimal(raw)).value == Decimal(raw)

    def test_float_input_uses_shortest_repr(self):
        assert literal(0.1).value == Decimal("0.1")

    def test_bool_input_rejected(self):
        with pytest.raises(TypeError):
            literal(True)

    def test_garbage_string_rejected(self):
        with pytest.raises(ValueError):
            literal("twelve")

    def test_values_computed_per_operator(self):
        assert sum_of(1, 2, 3).value == Decimal(6)
        assert literal(10).sub(4).value == Decimal(6)
        assert product_of(2, 3, 4).value == Decimal(24)
        assert literal(3).div(4).value == Decimal("0.75")
        assert floor(literal("2.7")).value == Decimal(2)
        assert floor(literal("-2.5")).value == Decimal(-3)
        assert power(2, 10).value == Decimal(1024)

    def test_value_is_frozen_at_construction(self):
        node = literal(1).div(3)
        assert node.value is node.value

    def test_add_chain_is_flattened(self):
        x, y, z = named_output("x", literal(1)), literal(2), literal(3)
        node = x.add(y).add(z)
        assert isinstance(node, DerivedNum)
        assert node.op is Operator.ADD
        assert len(node.operands) == 3
        assert node.operands == (x, y, z)

    def test_flattening_splices_both_sides(self):
        node = literal(1).mul(2).mul(literal(3).mul(4))
        assert node.op is Operator.MUL
        assert [n.value for n in node.operands] == [1, 2, 3, 4]

    def test_sub_is_never_flattened(self):
        node = literal(1).sub(2).sub(3)
        assert len(node.operands) == 2
        assert node.operands[0].op is Operator.SUB

    def test_named_output_is_not_spliced(self):
        inner = literal(1).add(2)
        node = named_output("s", inner).add(3)
        assert len(node.operands) == 2

    def test_sub_with_one_operand_raises(self):
        with pytest.raises(ArityError):
            DerivedNum(Operator.SUB, (literal(1),))

    def test_floor_with_two_operands_raises(self):
        with pytest.raises(ArityError):
            DerivedNum(Operator.FLOOR, (literal(1), literal(2)))

    def test_add_with_one_operand_raises(self):
        with pytest.raises(ArityError, match="at least 2"):
            DerivedNum(Operator.ADD, (literal(1),))

    def test_unknown_operator_raises(self):
        with pytest.raises(UnsupportedOperatorError):
            DerivedNum("mod", (literal(1), literal(2)))

    def test_division_by_zero_propagates(self):
        with pytest.raises(decimal.DivisionByZero):
            literal(1).div(0)

    def test_zero_over_zero_propagates(self):
        with pytest.raises(decimal.InvalidOperation):
            literal(0).div(0)

    def test_sum_of_requires_operands(self):
        with pytest.raises(ValueError):
            sum_of()

    def test_sum_of_single_operand_is_that_operand(self):
        node = named_output("n", literal(5))
        assert sum_of(node) is node


class TestComparisons:
    def test_value_based(self):
        rate = named_constant("rate", "0.05")
        assert rate.eq(literal("0.050"))
        assert rate.lt(1)
        assert rate.lte("0.05")
        assert literal(3).gt(2)
        assert literal(3).gte(3)

    def test_cmp(self):
        assert literal(3).cmp(4) == -1
        assert literal(3).cmp(literal(3)) == 0
        assert named_constant("big", 9).cmp(2) == 1

    def test_cmp_refuses_to_order_nan(self):
        with pytest.raises(decimal.InvalidOperation, match="cannot order"):
            literal("NaN").cmp(1)
        with pytest.raises(decimal.InvalidOperation, match="cannot order"):
            literal(1).cmp("NaN")

    def test_clamp_returns_bounds_or_self(self):
        x = literal(1).add(4)
        assert x.clamp(0, 10) is x
        hi = named_constant("cap", 3)
        assert x.clamp(0, hi) is hi
        lo = named_constant("floor", 8)
        assert x.clamp(lo, 10) is lo

    def test_maximum_prefers_second_on_tie(self):
        a, b = named_constant("a", 5), named_constant("b", 5)
        assert maximum(a, b) is b
        assert maximum(literal(7), b).value == 7

    def test_to_float(self):
        assert literal("0.1").to_float() == 0.1
        assert float(literal(2).div(4)) == 0.5


class TestOperatorOverloads:
    def test_forward_and_reflected(self):
        assert ((literal(1) + 2) * 3).render(expand=True) == "{(1 + 2)} * 3"
        assert (10 - literal(4)).render(expand=True) == "10 - 4"
        assert (1 / literal(4)).value == Decimal("0.25")
        assert (2 ** literal(3)).render(expand=True) == "{2} ^ {3}"
        assert (2 * literal(3)).value == 6


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestRender:
    def test_literal(self):
        assert literal(1).render(expand=True) == "1"

    def test_sum_under_product_gets_parens(self):
        assert literal(1).add(2).mul(3).render(expand=True) == "{(1 + 2)} * 3"

    def test_product_under_sum_has_no_parens(self):
        assert literal(1).add(literal(2).mul(3)).render(expand=True) == "1 + 2 * 3"

    def test_left_nested_subtraction(self):
        assert literal(1).sub(2).sub(3).render(expand=True) == "{(1 - 2)} - 3"

    def test_right_nested_subtraction(self):
        assert literal(1).sub(literal(2).sub(3)).render(expand=True) == "1 - {(2 - 3)}"

    def test_division_is_a_fraction(self):
        assert sum_of(1, 2, 3).div(4).render(expand=True) == "frac(1 + 2 + 3, 4)"

    def test_fraction_never_parenthesized(self):
        assert literal(2).mul(literal(1).div(3)).render(expand=True) == "2 * frac(1, 3)"

    def test_power(self):
        assert power(literal(1), literal(2).add(3)).render(expand=True) == "{1} ^ {{(2 + 3)}}"

    def test_power_of_power(self):
        assert power(power(2, 3), 2).render(expand=True) == "{{({2} ^ {3})}} ^ {2}"

    def test_floor(self):
        assert floor(literal(1).add(2)).render(expand=True) == "floor(1 + 2)"
        assert power(floor(literal("2.5")), 2).render() == "{floor(2.5)} ^ {2}"

    def test_named_output_render(self):
        expr = literal(1).add(2).mul(3)
        out = NamedOutput("out", expr)
        assert out.render(expand=False) == "out"
        assert out.render(expand=True) == expr.render(expand=True)

    def test_named_constant_render(self):
        node = named_constant("rate", "0.05").mul(100)
        assert node.render() == "rate * 100"
        assert node.render(expand=True) == "0.05 * 100"

    def test_expanded_output_uses_inner_precedence(self):
        node = named_output("total", literal(1).add(2)).mul(3)
        assert node.render() == "total * 3"
        assert node.render(expand=True) == "{(1 + 2)} * 3"

    def test_expanded_output_of_same_associative_operator(self):
        node = named_output("s", literal(1).add(2)).add(3)
        assert node.render() == "s + 3"
        assert node.render(expand=True) == "1 + 2 + 3"

    def test_unflattened_chain_fails_fast(self):
        nested = DerivedNum(Operator.ADD, (DerivedNum(Operator.ADD, (literal(1), literal(2))), literal(3)))
        with pytest.raises(FlatteningError):
            nested.render()

    def test_str_is_unexpanded_render(self):
        assert str(named_output("p", literal(1)).add(2)) == "p + 2"

    def test_pretty_print_expands_only_the_root(self):
        interest = named_output("interest", literal(2).mul(3))
        payment = named_output("payment", literal(1).add(interest))
        assert payment.pretty_print() == "1 + interest"
        assert literal(1).add(interest).pretty_print() == "1 + interest"


# ---------------------------------------------------------------------------
# Rewrite rules
# ---------------------------------------------------------------------------


class TestRewriteRules:
    def test_addition_identity(self):
        assert literal(0).add(2).mul(3).simplify().render(expand=True) == "2 * 3"

    def test_addition_identity_all_zero(self):
        zero = named_constant("zero", 0)
        assert rewrite.addition_identity(literal(0).add(zero)).value == 0

    def test_addition_identity_matches_named_constant(self):
        zero = named_constant("zero", 0)
        assert zero.add(1).simplify().render(expand=False) == "1"

    def test_addition_identity_ignores_derived_zero(self):
        derived_zero = literal(1).sub(1)
        assert rewrite.addition_identity(derived_zero.add(2)) is None

    def test_subtraction_identity(self):
        x = named_output("x", literal(5))
        assert rewrite.subtraction_identity(x.sub(0)) is x

    def test_subtraction_from_zero(self):
        x = named_output("x", literal(7))
        assert rewrite.subtraction_from_zero(literal(0).sub(x)).render() == "-1 * x"
        assert literal(0).sub(x).simplify().render() == "-1 * x"

    def test_subtraction_from_zero_folds_literal_sign(self):
        assert literal(0).sub(7).simplify().render() == "-7"

    def test_multiplication_identity(self):
        assert literal(1).add(2).mul(1).simplify().render(expand=True) == "1 + 2"

    def test_multiplication_collapse(self):
        x = named_output("x", literal(4))
        result = rewrite.multiplication_collapse(product_of(x, named_constant("zero", 0), 3))
        assert isinstance(result, Literal)
        assert result.value == 0

    def test_multiplication_by_fraction(self):
        node = literal(2).mul(literal(3).div(4))
        assert node.simplify().render(expand=True) == "frac(2 * 3, 4)"
        assert node.simplify().value == node.value

    def test_negated_literal(self):
        x = named_output("x", literal(2))
        assert product_of(x, 3, -1).simplify().render() == "x * -3"

    def test_negated_literal_skips_named_constants(self):
        # Known limitation: only bare literals absorb the sign.
        node = product_of(-1, named_constant("rate", 2))
        assert node.simplify().render() == "-1 * rate"

    def test_division_identity(self):
        assert literal(1).add(literal(1).div(literal(1))).simplify().render(expand=True) == "1 + 1"

    def test_division_identity_needs_constant_divisor(self):
        assert rewrite.division_identity(literal(3).div(literal(2).sub(1))) is None

    def test_division_collapse(self):
        x = named_output("x", literal(9))
        assert literal(0).div(x).simplify().render() == "0"

    def test_denominator_is_fraction(self):
        node = literal(6).div(literal(3).div(2))
        simplified = node.simplify()
        assert simplified.render(expand=True) == "frac(6 * 2, 3)"
        assert simplified.value == node.value == 4

    def test_numerator_is_fraction(self):
        node = literal(6).div(3).div(2)
        simplified = node.simplify()
        assert simplified.render(expand=True) == "frac(6, 3 * 2)"
        assert simplified.value == node.value

    def test_power_identity(self):
        assert power(named_output("b", literal(7)), 1).simplify().render() == "b"

    def test_power_collapse(self):
        assert power(named_constant("b", 5), 0).simplify().render() == "1"
        assert power(0, named_output("n", literal(3))).simplify().render() == "0"
        assert power(1, named_constant("n", 360)).simplify().render() == "1"

    def test_named_output_survives_simplification(self):
        node = named_output("payment", literal(0).add(2).mul(3))
        simplified = node.simplify()
        assert isinstance(simplified, NamedOutput)
        assert simplified.name == "payment"
        assert simplified.render(expand=True) == "2 * 3"

    def test_simplify_keeps_chains_flat(self):
        inner = literal(1).add(2)
        node = literal(4).add(inner.sub(0))
        simplified = node.simplify()
        assert simplified.op is Operator.ADD
        assert len(simplified.operands) == 3
        assert simplified.render() == "4 + 1 + 2"

    def test_simplify_one_reports_no_match(self):
        assert literal(1).add(2).simplify_one(rewrite.power_collapse) is None

    def test_simplify_one_rewrites_first_match_only(self):
        node = literal(0).add(1).mul(literal(0).add(2))
        once = rewrite.simplify_one(node, rewrite.addition_identity)
        assert once.render() == "1 * {(0 + 2)}"

    def test_apply_rule_runs_to_fixed_point(self):
        node = literal(0).add(1).mul(literal(0).add(2))
        result, changed = rewrite.apply_rule(node, rewrite.addition_identity)
        assert changed
        assert result.render() == "1 * 2"
        _, changed_again = rewrite.apply_rule(result, rewrite.addition_identity)
        assert not changed_again

    def test_run_fixed_point_without_change(self):
        assert rewrite.run_fixed_point(3, lambda _: None) == (3, False)

    def test_run_fixed_point_counts_down(self):
        assert rewrite.run_fixed_point(3, lambda n: n - 1 if n else None) == (0, True)


# ---------------------------------------------------------------------------
# Properties over random trees
# ---------------------------------------------------------------------------


class TestSimplifyProperties:
    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_simplify_preserves_value(self, seed):
        for tree in _random_trees(60, seed):
            assert tree.simplify().value == tree.value

    @pytest.mark.parametrize("seed", [10, 11])
    def test_simplify_is_idempotent(self, seed):
        for tree in _random_trees(60, seed):
            once = tree.simplify()
            assert once.simplify().render(expand=True) == once.render(expand=True)
            assert once.simplify().render() == once.render()

    def test_simplify_never_grows_the_tree(self):
        for tree in _random_trees(60, 20):
            assert node_size(tree.simplify()) <= node_size(tree)


# ---------------------------------------------------------------------------
# Rewrites that would change the value
# ---------------------------------------------------------------------------


class TestValueCheckedRewrites:
    def test_inexact_fraction_is_not_regrouped(self):
        node = literal(1).div(3).mul(3)
        assert rewrite.simplify_one(node, rewrite.multiplication_by_fraction) is None
        simplified = node.simplify()
        assert simplified.value == node.value
        assert simplified.render(expand=True) == "frac(1, 3) * 3"

    def test_inexact_nested_fractions_are_not_regrouped(self):
        over_fraction = literal(1).div(literal(1).div(7))
        assert over_fraction.simplify().value == over_fraction.value
        fraction_over = literal(1).div(3).div(7)
        assert fraction_over.simplify().value == fraction_over.value

    def test_overflowing_rewrite_is_skipped(self):
        big = literal("1E+999999")
        node = big.mul(big.div(big))
        assert node.value == Decimal("1E+999999")
        simplified = node.simplify()
        assert simplified == node
        assert simplified.value == node.value

    def test_exact_rewrites_still_apply_next_to_rejected_ones(self):
        node = literal(1).div(3).mul(3).add(0)
        assert node.simplify().render(expand=True) == "frac(1, 3) * 3"


# ---------------------------------------------------------------------------
# Deep trees
# ---------------------------------------------------------------------------


def _amortization_chain(months: int, payment_name: str = "payment") -> Num:
    payment = named_constant(payment_name, "1199.10")
    balance = literal(200000)
    for _ in range(months):
        balance = balance.sub(payment)
    return balance


class TestDeepTrees:
    def test_thirty_year_chain_renders(self):
        chain = _amortization_chain(360)
        text = chain.render()
        assert text.startswith("{(" * 359 + "200000 - payment)}")
        assert text.endswith(")} - payment")
        assert text.count("payment") == 360
        assert chain.render(expand=True).count("1199.10") == 360
        assert chain.value == Decimal("-231676.00")

    def test_thirty_year_chain_structural_equality(self):
        chain = _amortization_chain(360)
        again = _amortization_chain(360)
        assert chain is not again
        assert chain == again
        assert hash(chain) == hash(again)
        assert chain != _amortization_chain(360, payment_name="installment")
        assert chain != _amortization_chain(359)

    def test_thirty_year_chain_size_and_depth(self):
        chain = _amortization_chain(360)
        assert node_size(chain) == 721
        assert node_depth(chain) == 361

    def test_thirty_year_chain_simplifies_to_itself(self):
        chain = _amortization_chain(360)
        assert chain.simplify() == chain

    def test_deep_chain_simplifies(self):
        payment = named_constant("payment", "1199.10")
        balance = literal(200000)
        expected = literal(200000)
        for _ in range(500):
            balance = balance.sub(payment).mul(1)
            expected = expected.sub(payment)
        assert node_depth(balance) == 1001
        simplified = balance.simplify()
        assert simplified == expected
        assert simplified.value == balance.value
