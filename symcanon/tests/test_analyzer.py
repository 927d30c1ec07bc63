"""Tests for the polynomial and rational-function canonicalizers."""

import time
from fractions import Fraction

import pytest

from symcanon import Deadline, E, Polynomial, SimplifyTimeout
from symcanon.analyzer import (
    ExpressionCache, PolynomialAnalyzer, RationalFunctionAnalyzer, fold_inexact,
)


@pytest.fixture
def poly():
    return PolynomialAnalyzer(memoize=False)


@pytest.fixture
def rf():
    return RationalFunctionAnalyzer(memoize=False)


# ============================================================
# Polynomial canonical form
# ============================================================

class TestPolynomialAnalyzer:
    """Sums, products and non-negative powers."""

    def test_like_terms(self, poly):
        """x + x = 2x and x - x = 0."""
        assert poly(E("(+ x x)")) == ["*", 2, "x"]
        assert poly(E("(- x x)")) == 0

    def test_expansion(self, poly):
        """Products are multiplied out into descending terms."""
        assert poly(E("(* (+ x 1) (- x 1))")) == ["+", ["expt", "x", 2], -1]

    def test_variable_order(self, poly):
        """Operands come out in the expression order, whatever the input order."""
        assert poly(E("(+ y x)")) == ["+", "x", "y"]
        assert poly(E("(* y 2 x)")) == ["*", 2, "x", "y"]

    def test_division_by_numbers(self, poly):
        """Exact numeric divisors are interpreted."""
        assert poly(E("(/ x 2)")) == ["*", Fraction(1, 2), "x"]

    def test_other_quotients_are_kernels(self, poly):
        """1/x is not a polynomial; it becomes an opaque kernel."""
        assert poly(E("(/ 1 x)")) == ["/", 1, "x"]
        assert poly(E("(+ (/ 1 x) (/ 1 x))")) == ["*", 2, ["/", 1, "x"]]

    def test_kernels(self, poly):
        """Function applications combine as variables, after their operands are canonicalized."""
        assert poly(E("(+ (sin x) (sin x))")) == ["*", 2, ["sin", "x"]]
        assert poly(E("(sin (+ x x))")) == ["sin", ["*", 2, "x"]]
        assert poly(E("(+ (sin x) y)")) == ["+", "y", ["sin", "x"]]

    def test_float_operands_fold(self, poly):
        """Float operands of + and * are combined into one number."""
        assert poly(E("(+ 1.5 1.5)")) == 3.0
        assert poly(E("(+ 1.5 x 2.5)")) == ["+", 4.0, "x"]
        assert poly(E("(* 2 1.5 x)")) == ["*", 3.0, "x"]
        assert poly(E("(- 5.0 1.5)")) == 3.5
        assert poly(E("(sin (+ 0.5 0.5))")) == ["sin", 1.0]

    def test_surviving_floats_are_opaque(self, poly):
        """A lone float is a variable; undefined float arithmetic stays put."""
        assert poly(E("(+ x x 1.5)")) == ["+", 1.5, ["*", 2, "x"]]
        assert poly(E("(/ 1.0 0.0)")) == ["/", 1.0, 0.0]
        assert poly(E("(expt -1.5 0.5)")) == ["expt", -1.5, 0.5]

    def test_exact_nodes_not_folded(self):
        """fold_inexact leaves exact-only arithmetic to the analyzers."""
        assert fold_inexact(E("(+ 1 2 x)")) == ["+", 1, 2, "x"]
        assert fold_inexact(E("(sin (+ 0.5 0.5))")) == ["sin", ["+", 0.5, 0.5]]

    def test_atoms_pass_through(self, poly):
        """Numbers and symbols are already canonical."""
        assert poly(3) == 3
        assert poly("x") == "x"

    def test_expression_to_form(self, poly):
        """The form and the variable each index stands for."""
        form, variables = poly.expression_to_form(E("(+ x (* 2 y))"))
        assert variables == ["x", "y"]
        assert form == Polynomial.make(2, {(1, 0): 1, (0, 1): 2})


# ============================================================
# Rational canonical form
# ============================================================

class TestRationalFunctionAnalyzer:
    """Every quotient and integer power is interpreted."""

    def test_sum_of_reciprocals(self, rf):
        """1/x + 1/(x+1) over a common denominator."""
        assert rf(E("(+ (/ 1 x) (/ 1 (+ x 1)))")) == \
            ["/", ["+", ["*", 2, "x"], 1], ["+", ["expt", "x", 2], "x"]]

    def test_common_factor_cancels(self, rf):
        """(x^2 - 1) / (x - 1) = x + 1."""
        assert rf(E("(/ (- (expt x 2) 1) (- x 1))")) == ["+", "x", 1]

    def test_negative_powers(self, rf):
        """x^-1 = 1/x."""
        assert rf(E("(expt x -1)")) == ["/", 1, "x"]

    def test_numeric_denominators(self, rf):
        """x/2 + x/3 = 5x/6 stays a polynomial."""
        assert rf(E("(+ (/ x 2) (/ x 3))")) == ["*", Fraction(5, 6), "x"]

    def test_zero_divisor(self, rf):
        """Division by zero is not swallowed."""
        with pytest.raises(ZeroDivisionError):
            rf(E("(/ x 0)"))


# ============================================================
# Caching and limits
# ============================================================

class TestCache:
    """Memo tables can be inspected, cleared and disabled."""

    def test_memoizing_analyzer(self):
        """A memoizing analyzer remembers results until cleared."""
        analyzer = PolynomialAnalyzer(memoize=True)
        analyzer(E("(+ x (sin (+ y y)))"))
        assert len(analyzer.cache) >= 1
        analyzer.clear_cache()
        assert len(analyzer.cache) == 0

    def test_hermetic_analyzer(self, poly):
        """memoize=False stores nothing."""
        poly(E("(+ x x)"))
        assert len(poly.cache) == 0

    def test_expression_cache(self):
        """put, get and a disabled table."""
        cache = ExpressionCache()
        cache.put(("+", "x", "x"), ["*", 2, "x"])
        assert cache.get(("+", "x", "x")) == ["*", 2, "x"]
        assert len(cache) == 1
        disabled = ExpressionCache(enabled=False)
        disabled.put("x", "x")
        assert len(disabled) == 0


class TestLimits:
    """Depth and time budgets raise SimplifyTimeout."""

    def test_depth_guard(self):
        """Kernels nested past max_depth are refused."""
        analyzer = PolynomialAnalyzer(memoize=False, max_depth=2)
        with pytest.raises(SimplifyTimeout):
            analyzer(E("(f (f (f (f (+ x x)))))"))

    def test_shallow_nesting_is_fine(self):
        """Within the budget the kernels are canonicalized."""
        analyzer = PolynomialAnalyzer(memoize=False, max_depth=2)
        assert analyzer(E("(f (+ x x))")) == ["f", ["*", 2, "x"]]

    def test_expired_deadline(self):
        """A spent budget raises before any work is done."""
        analyzer = RationalFunctionAnalyzer(memoize=False, timeout_seconds=-1)
        with pytest.raises(SimplifyTimeout):
            analyzer(E("(+ x x)"))

    def test_caller_deadline(self, poly):
        """A Deadline passed to simplify() replaces the analyzer's own."""
        with pytest.raises(SimplifyTimeout):
            poly.simplify(E("(+ x x)"), Deadline(-1))
        assert poly.simplify(E("(+ x x)"), Deadline(None)) == ["*", 2, "x"]

    def test_products_check_the_deadline(self):
        """Polynomial multiplication and powers stop once the budget is spent."""
        x, y = Polynomial.variable(2, 0), Polynomial.variable(2, 1)
        with pytest.raises(SimplifyTimeout):
            (x + 1).mul(y + 1, Deadline(-1))
        with pytest.raises(SimplifyTimeout):
            (x + y).expt(3, Deadline(-1))

    def test_expansion_is_bounded(self):
        """A power too large to expand in time raises instead of running on."""
        analyzer = PolynomialAnalyzer(memoize=False, timeout_seconds=0.2)
        start = time.monotonic()
        with pytest.raises(SimplifyTimeout):
            analyzer(E("(expt (+ a b c d e) 24)"))
        assert time.monotonic() - start < 3.0
