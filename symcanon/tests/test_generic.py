"""Tests for the generic arithmetic operators and tree evaluation."""

import math
from fractions import Fraction

import pytest

from symcanon import (
    E, GENERIC_PRELUDE, evaluate_expression, Polynomial, RationalFunction,
    RuleEngine, IllegalStateError,
)
from symcanon import generic


X = Polynomial.variable(1, 0)


class TestNumbers:
    """Numbers stay exact where they can."""

    def test_exact_sums_and_quotients(self):
        """Fractions combine exactly and collapse to ints."""
        assert generic.add(1, Fraction(1, 2)) == Fraction(3, 2)
        assert isinstance(generic.add(Fraction(1, 2), Fraction(1, 2)), int)
        assert generic.div(1, 2) == Fraction(1, 2)
        assert generic.div(1.0, 4) == 0.25

    def test_exact_powers(self):
        """Integer powers of exact numbers are exact."""
        assert generic.expt(2, -1) == Fraction(1, 2)
        assert generic.expt(Fraction(2, 3), 2) == Fraction(4, 9)
        assert generic.expt(4, Fraction(1, 2)) == 2
        with pytest.raises(ZeroDivisionError):
            generic.expt(0, -1)

    def test_negative_base_fractional_power(self):
        """A real root of a negative number is left symbolic."""
        assert generic.expt(-8, Fraction(1, 3)) == ["expt", -8, Fraction(1, 3)]

    def test_square_roots(self):
        """Perfect squares give exact roots."""
        assert generic.sqrt(4) == 2
        assert generic.sqrt(Fraction(9, 4)) == Fraction(3, 2)
        assert generic.sqrt(2) == pytest.approx(math.sqrt(2))
        assert generic.sqrt(-4) == ["sqrt", -4]

    def test_special_values(self):
        """sin 0, cos 0, exp 0 and log 1 are exact."""
        assert generic.sin(0) == 0 and isinstance(generic.sin(0), int)
        assert generic.cos(0) == 1
        assert generic.exp(0) == 1
        assert generic.log(1) == 0
        assert generic.acos(1) == 0
        assert generic.exp(1) == pytest.approx(math.e)

    def test_outside_real_domain(self):
        """log -1 and asin 2 stay symbolic."""
        assert generic.log(-1) == ["log", -1]
        assert generic.asin(2) == ["asin", 2]

    def test_atan2_and_abs(self):
        """Two-argument arctangent and absolute value."""
        assert generic.atan2(0, 1) == 0
        assert generic.atan2(1.0, 1.0) == pytest.approx(math.pi / 4)
        assert generic.abs_(-3) == 3


class TestSymbolic:
    """Symbols build trees with the trivial identities applied."""

    def test_identities(self):
        """0 + x, 1 * x, 0 * x, x^1 and x^0."""
        assert generic.add(0, "x") == "x"
        assert generic.mul(1, "x") == "x"
        assert generic.mul("x", 0) == 0
        assert generic.expt("x", 1) == "x"
        assert generic.expt("x", 0) == 1
        assert generic.div("x", 1) == "x"

    def test_trees(self):
        """Anything else becomes an expression."""
        assert generic.add("x", "y") == ["+", "x", "y"]
        assert generic.mul(2, "x") == ["*", 2, "x"]
        assert generic.sub(0, "x") == ["-", "x"]
        assert generic.sub("x", "x") == 0
        assert generic.negate(["-", "x"]) == "x"
        assert generic.invert("x") == ["/", 1, "x"]
        assert generic.sin("x") == ["sin", "x"]
        assert generic.atan2("y", "x") == ["atan", "y", "x"]
        assert generic.abs_("x") == ["abs", "x"]
        assert generic.square("x") == ["expt", "x", 2]

    def test_is_zero(self):
        """Exact zero test across kinds."""
        assert generic.is_zero(0)
        assert generic.is_zero(Polynomial.zero(1))
        assert not generic.is_zero("x")
        assert not generic.is_zero(0.5)


class TestAlgebraic:
    """Polynomials and rational functions use their own arithmetic."""

    def test_polynomial_operands(self):
        """Exact scalars mix with polynomials."""
        assert generic.add(X, 1) == X + 1
        assert generic.mul(X, X) == X ** 2
        assert generic.expt(X + 1, 2) == X ** 2 + 2 * X + 1
        assert generic.div(X, X).is_one

    def test_rational_results(self):
        """Inversion produces a RationalFunction."""
        r = generic.invert(X)
        assert isinstance(r, RationalFunction)
        assert generic.mul(r, X).is_one

    def test_mixing_with_symbols_is_an_error(self):
        """Algebraic values do not combine with trees or floats."""
        with pytest.raises(IllegalStateError):
            generic.add(X, "y")
        with pytest.raises(IllegalStateError):
            generic.mul(X, 1.5)

    def test_transcendental_of_polynomial_is_an_error(self):
        """sin, sqrt and fractional powers are not algebraic."""
        with pytest.raises(IllegalStateError):
            generic.sin(X)
        with pytest.raises(IllegalStateError):
            generic.sqrt(X)
        with pytest.raises(IllegalStateError):
            generic.expt(X, Fraction(1, 2))


class TestEvaluateExpression:
    """Walking trees through the generic prelude."""

    def test_numbers_fold(self):
        """A closed tree evaluates to a number."""
        assert evaluate_expression(E("(+ x (* 2 y))"), {"x": 1, "y": 2}) == 5
        assert evaluate_expression(E("(/ 1 2 2)")) == Fraction(1, 4)
        assert evaluate_expression(E("(- 5)")) == -5
        assert evaluate_expression(E("(sqrt 9)")) == 3

    def test_free_symbols_remain(self):
        """Unbound symbols stay symbolic."""
        assert evaluate_expression(E("(+ x (* 2 y))"), {"x": 1}) == ["+", 1, ["*", 2, "y"]]

    def test_unknown_operators_rebuild(self):
        """Operators outside the prelude are left as they are."""
        assert evaluate_expression(E("(foo (+ 1 2))")) == ["foo", 3]
        assert evaluate_expression(E("(+ 1 2)"), prelude={}) == ["+", 1, 2]

    def test_prelude_in_rules(self):
        """GENERIC_PRELUDE works as fold functions for computed clauses."""
        engine = RuleEngine.from_dsl("@root: (root ?x:const) => (! sqrt :x)",
                                     fold_funcs=GENERIC_PRELUDE)
        assert engine(E("(root 16)")) == 4
        assert engine(E("(root 1/4)")) == E("1/2")
