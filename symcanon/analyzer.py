"""
Canonicalizers: expression -> Polynomial / RationalFunction -> expression.

An analyzer reads the arithmetic skeleton of an expression (+ - * / expt)
into an exact algebraic form and writes it back in a canonical layout:

    PolynomialAnalyzer()(E("(+ x x)"))              # ["*", 2, "x"]
    PolynomialAnalyzer()(E("(* (+ x 1) (- x 1))"))  # ["+", ["expt", "x", 2], -1]
    RationalFunctionAnalyzer()(E("(+ (/ 1 x) (/ 1 (+ x 1)))"))
        # ["/", ["+", ["*", 2, "x"], 1], ["+", ["expt", "x", 2], "x"]]

Anything that is not arithmetic becomes a kernel: an opaque variable whose
operands are canonicalized recursively first. Symbols and kernels are
sorted by the expression order, and that order fixes the variable indices,
so equal inputs always produce identical output. Float operands of + and *
are combined with the generic operators (as are - / expt nodes whose
operands are all numbers); a float that survives is an opaque variable:

    PolynomialAnalyzer()(E("(+ 1.5 x 2.5)"))        # ["+", 4.0, "x"]
    PolynomialAnalyzer()(E("(+ x x 1.5)"))          # ["+", 1.5, ["*", 2, "x"]]

Output layout:
    - terms in descending graded-lex order
    - a term is c, v, (expt v k) or (* c v1 (expt v2 k) ...); c = 1 is omitted
    - a rational function is (/ numerator denominator)
"""

import logging
import threading
from fractions import Fraction
from functools import reduce
from typing import Any, Dict, List, Optional

from . import generic
from .config import Deadline
from .errors import SimplifyTimeout
from .expression import ExprType, freeze, is_exact, is_number, normalize_number, sort_key
from .polynomial import Polynomial
from .rational import RationalFunction

logger = logging.getLogger(__name__)

_MISSING = object()


class ExpressionCache:
    """
    Memo table from frozen expressions to results, safe across threads.

    With enabled=False nothing is stored, which keeps every call hermetic.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._lock = threading.Lock()
        self._table: Dict[Any, ExprType] = {}

    def get(self, key):
        if not self.enabled:
            return _MISSING
        with self._lock:
            return self._table.get(key, _MISSING)

    def put(self, key, value: ExprType) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._table[key] = value

    def clear(self) -> None:
        with self._lock:
            self._table.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._table)


class _Var:
    """A symbol, float or kernel standing for one polynomial variable."""

    __slots__ = ("expr",)

    def __init__(self, expr: ExprType):
        self.expr = expr


def _is_int(x) -> bool:
    return isinstance(x, int) and not isinstance(x, bool)


_ARITHMETIC = ("+", "-", "*", "/", "expt")


def _fold_numbers(op, args):
    """Value of an arithmetic node whose operands are all numbers, or None to keep it."""
    if op == "-":
        if len(args) == 1:
            return generic.negate(args[0])
        return generic.sub(args[0], reduce(generic.add, args[1:]))
    if op == "/":
        if any(a == 0 for a in (args if len(args) == 1 else args[1:])):
            return None
        if len(args) == 1:
            return generic.invert(args[0])
        return reduce(generic.div, args[1:], args[0])
    if op == "expt" and len(args) == 2:
        base, exponent = args
        if base == 0 and exponent < 0:
            return None
        try:
            value = generic.expt(base, exponent)
        except OverflowError:
            return None
        return value if is_number(value) else None
    return None


def fold_inexact(expr: ExprType) -> ExprType:
    """
    Combine float operands of arithmetic nodes with the generic operators.

    Exact-only nodes are left to the analyzers. Only the arithmetic skeleton
    is visited; kernel operands are folded when they are canonicalized.
    """
    if not isinstance(expr, list) or not expr or expr[0] not in _ARITHMETIC:
        return expr
    op = expr[0]
    args = [fold_inexact(a) for a in expr[1:]]
    numbers = [a for a in args if is_number(a)]
    if all(is_exact(a) for a in numbers):
        return [op] + args
    if op in ("+", "*"):
        value = reduce(generic.add if op == "+" else generic.mul, numbers)
        rest = [a for a in args if not is_number(a)]
        return [op, value] + rest if rest else value
    if args and len(numbers) == len(args):
        value = _fold_numbers(op, args)
        if value is not None:
            return value
    return [op] + args


class PolynomialAnalyzer:
    """
    Canonical form through multivariate polynomials.

    Only non-negative integer powers and division by nonzero exact numbers
    are interpreted; any other quotient or power is a kernel.
    """

    name = "polynomial"

    def __init__(self, memoize: bool = True, timeout_seconds: Optional[float] = None,
                 max_depth: int = 16):
        self.cache = ExpressionCache(memoize)
        self.timeout_seconds = timeout_seconds
        self.max_depth = max_depth

    def __call__(self, expr: ExprType) -> ExprType:
        return self.simplify(expr)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(memoize={self.cache.enabled})"

    def clear_cache(self) -> None:
        self.cache.clear()

    def simplify(self, expr: ExprType, deadline: Optional[Deadline] = None) -> ExprType:
        """
        Canonical form of expr. Raises SimplifyTimeout past the deadline or depth.

        Without a deadline the call gets its own, from timeout_seconds.
        """
        if deadline is None:
            deadline = Deadline(self.timeout_seconds)
        return self._simplify(expr, deadline, 0)

    def _simplify(self, expr: ExprType, deadline: Deadline, depth: int) -> ExprType:
        if not isinstance(expr, list) or not expr:
            return expr
        if depth > self.max_depth:
            raise SimplifyTimeout(f"kernel nesting deeper than {self.max_depth}")
        key = freeze(expr)
        cached = self.cache.get(key)
        if cached is not _MISSING:
            return cached
        deadline.check()
        form, variables = self._analyze(expr, deadline, depth)
        result = self.form_to_expression(form, variables)
        self.cache.put(key, result)
        return result

    # ============================================================
    # Expression -> form
    # ============================================================

    def expression_to_form(self, expr: ExprType):
        """(form, variables): the algebraic value and the expression of each variable index."""
        return self._analyze(expr, Deadline(self.timeout_seconds), 0)

    def _analyze(self, expr: ExprType, deadline: Deadline, depth: int):
        found: Dict[Any, ExprType] = {}
        prepared = self._prepare(fold_inexact(expr), found, deadline, depth)
        variables = sorted(found.values(), key=sort_key)
        index = {freeze(v): i for i, v in enumerate(variables)}
        form = self._build(prepared, index, len(variables), deadline)
        return form, variables

    def interprets(self, op: Any, args: List[ExprType]) -> bool:
        if op in ("+", "*"):
            return True
        if op == "-":
            return len(args) >= 1
        if op == "/":
            return len(args) >= 2 and all(is_exact(a) and a != 0 for a in args[1:])
        if op == "expt":
            return len(args) == 2 and _is_int(args[1]) and args[1] >= 0
        return False

    def _prepare(self, expr: ExprType, found: Dict, deadline: Deadline, depth: int):
        """Replace symbols, floats and kernels by _Var, collecting them in found."""
        if is_exact(expr):
            return expr
        if isinstance(expr, list) and expr:
            op, args = expr[0], expr[1:]
            if isinstance(op, str) and self.interprets(op, args):
                if op == "expt":
                    return [op, self._prepare(args[0], found, deadline, depth), args[1]]
                return [op] + [self._prepare(a, found, deadline, depth) for a in args]
            expr = [op] + [self._simplify(a, deadline, depth + 1) for a in args]
        found.setdefault(freeze(expr), expr)
        return _Var(expr)

    def _build(self, node, index: Dict, arity: int, deadline: Deadline):
        if isinstance(node, _Var):
            return Polynomial.variable(arity, index[freeze(node.expr)])
        if not isinstance(node, list):
            return node
        deadline.check()
        op = node[0]
        if op == "expt":
            return self.power(self._build(node[1], index, arity, deadline), node[2], deadline)
        values = [self._build(a, index, arity, deadline) for a in node[1:]]
        if op == "+":
            return self.add_all(values, deadline)
        if op == "*":
            return reduce(lambda a, b: self.mul(a, b, deadline), values, 1)
        if op == "-":
            if len(values) == 1:
                return self.mul(-1, values[0], deadline)
            rest = self.add_all(values[1:], deadline)
            return self.add_all([values[0], self.mul(-1, rest, deadline)], deadline)
        if op == "/":
            if len(values) == 1:
                return self.div(1, values[0], deadline)
            return reduce(lambda a, b: self.div(a, b, deadline), values[1:], values[0])
        raise ValueError(f"not an arithmetic operator: {op!r}")

    # Arithmetic on forms

    def add_all(self, values: List, deadline: Deadline):
        """Sum of exact numbers and Polynomials in one pass over their terms."""
        polynomials = [v for v in values if isinstance(v, Polynomial)]
        if not polynomials:
            return normalize_number(sum(values, 0))
        ref = polynomials[0]
        return Polynomial.sum_of(ref.arity, values, ref.order, deadline)

    def mul(self, a, b, deadline: Deadline):
        if isinstance(a, Polynomial) and isinstance(b, Polynomial):
            return a.mul(b, deadline)
        result = a * b
        return normalize_number(result) if isinstance(result, Fraction) else result

    def div(self, a, b, deadline: Deadline):
        if isinstance(a, Polynomial):
            return a / b
        return normalize_number(Fraction(a) / Fraction(b))

    def power(self, a, n: int, deadline: Deadline):
        if isinstance(a, Polynomial):
            return a.expt(n, deadline)
        return normalize_number(Fraction(a) ** n)

    # ============================================================
    # Form -> expression
    # ============================================================

    def form_to_expression(self, form, variables: List[ExprType]) -> ExprType:
        if isinstance(form, RationalFunction):
            return ["/", _render_polynomial(form.numerator, variables),
                    _render_polynomial(form.denominator, variables)]
        if isinstance(form, Polynomial):
            return _render_polynomial(form, variables)
        return form


def _render_term(exponents, coeff, variables: List[ExprType]) -> ExprType:
    factors = []
    for v, e in zip(variables, exponents):
        if e == 1:
            factors.append(v)
        elif e > 1:
            factors.append(["expt", v, e])
    if not factors:
        return coeff
    if coeff == 1:
        return factors[0] if len(factors) == 1 else ["*"] + factors
    return ["*", coeff] + factors


def _render_polynomial(p: Polynomial, variables: List[ExprType]) -> ExprType:
    if p.is_zero:
        return 0
    terms = [_render_term(e, c, variables) for e, c in p.terms]
    return terms[0] if len(terms) == 1 else ["+"] + terms


class RationalFunctionAnalyzer(PolynomialAnalyzer):
    """
    Canonical form through rational functions.

    Every quotient and every integer power is interpreted. Each top-level
    call runs under a Deadline that polynomial products, powers, sums and
    the gcd loops check, so a blow-up raises SimplifyTimeout instead of
    running unbounded.
    """

    name = "rational-function"

    def interprets(self, op: Any, args: List[ExprType]) -> bool:
        if op == "/":
            return len(args) >= 1
        if op == "expt":
            return len(args) == 2 and _is_int(args[1])
        return super().interprets(op, args)

    def add_all(self, values: List, deadline: Deadline):
        """Polynomial operands are summed in one pass; quotients are added one at a time."""
        quotients = [v for v in values if isinstance(v, RationalFunction)]
        total = super().add_all([v for v in values if not isinstance(v, RationalFunction)], deadline)
        for r in quotients:
            total = RationalFunction.add(total, r, deadline)
        return total

    def mul(self, a, b, deadline: Deadline):
        return RationalFunction.mul(a, b, deadline)

    def div(self, a, b, deadline: Deadline):
        return RationalFunction.div(a, b, deadline)

    def power(self, a, n: int, deadline: Deadline):
        return RationalFunction.expt(a, n, deadline)
