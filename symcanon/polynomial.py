"""
Sparse multivariate polynomials over exact coefficients.

A Polynomial has an arity (number of variables x0 .. x{n-1}) and a term
list: (exponent vector, coefficient) pairs sorted descending by its
monomial order. Coefficients are ints or Fractions.

    p = Polynomial.make(2, {(2, 0): 1, (0, 1): 3})     # x0^2 + 3 x1
    q = Polynomial.variable(2, 0) + 1                   # x0 + 1
    (p * q).evenly_divide(q) == p                       # True

Invariants held by every instance:
    - no zero coefficients are stored
    - equal exponent vectors are merged
    - terms are sorted descending by the monomial order
    - the zero polynomial has an empty term list

gcd() works over Q by clearing denominators and running a primitive
polynomial remainder sequence on the principal variable x0, recursing into
the coefficient ring Z[x1 .. x{n-1}] for contents.
"""

import math
from fractions import Fraction
from functools import reduce
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import IllegalStateError, InexactDivisionError
from .expression import is_exact, is_number, normalize_number
from .ordering import (
    Exponents, MonomialOrder, add_exponents, divides, graded_lex_order,
    monomial_sort_key, subtract_exponents,
)

Coefficient = Union[int, Fraction]
Term = Tuple[Exponents, Coefficient]
TermsType = Union[Mapping[Exponents, Coefficient], Iterable[Term]]


def exact_quotient(a: Coefficient, b: Coefficient) -> Coefficient:
    """a / b without leaving the exact numbers."""
    if b == 0:
        raise ZeroDivisionError("division of a coefficient by zero")
    if isinstance(a, int) and isinstance(b, int) and a % b == 0:
        return a // b
    return normalize_number(Fraction(a) / Fraction(b))


class Polynomial:
    """An immutable multivariate polynomial. See the module docstring."""

    __slots__ = ("arity", "_terms", "order")

    def __init__(self, arity: int, terms: Tuple[Term, ...], order: MonomialOrder = graded_lex_order):
        # Callers outside this module go through make(), which normalizes.
        self.arity = arity
        self._terms = terms
        self.order = order

    # ============================================================
    # Construction
    # ============================================================

    @classmethod
    def make(cls, arity: int, terms: TermsType = (), order: MonomialOrder = graded_lex_order) -> "Polynomial":
        """Build a polynomial from a term map or an iterable of (exponents, coeff) pairs."""
        items = terms.items() if isinstance(terms, Mapping) else terms
        merged: Dict[Exponents, Coefficient] = {}
        for exponents, coeff in items:
            exponents = tuple(exponents)
            if len(exponents) != arity:
                raise IllegalStateError(
                    f"exponent vector {exponents} does not match arity {arity}")
            if any(e < 0 for e in exponents):
                raise ValueError(f"negative exponent in {exponents}")
            merged[exponents] = merged.get(exponents, 0) + coeff
        return cls._from_dict(arity, merged, order)

    @classmethod
    def _from_dict(cls, arity: int, merged: Dict[Exponents, Coefficient],
                   order: MonomialOrder) -> "Polynomial":
        key = monomial_sort_key(order)
        ordered = sorted(
            ((e, normalize_number(c)) for e, c in merged.items() if c != 0),
            key=lambda t: key(t[0]),
            reverse=True,
        )
        return cls(arity, tuple(ordered), order)

    @classmethod
    def constant(cls, arity: int, c: Coefficient, order: MonomialOrder = graded_lex_order) -> "Polynomial":
        return cls.make(arity, {(0,) * arity: c}, order)

    @classmethod
    def zero(cls, arity: int, order: MonomialOrder = graded_lex_order) -> "Polynomial":
        return cls(arity, (), order)

    @classmethod
    def one(cls, arity: int, order: MonomialOrder = graded_lex_order) -> "Polynomial":
        return cls.constant(arity, 1, order)

    @classmethod
    def variable(cls, arity: int, i: int, order: MonomialOrder = graded_lex_order) -> "Polynomial":
        """The polynomial x_i in `arity` variables (0-based)."""
        if not 0 <= i < arity:
            raise IllegalStateError(f"variable index {i} out of range for arity {arity}")
        exponents = [0] * arity
        exponents[i] = 1
        return cls(arity, ((tuple(exponents), 1),), order)

    @classmethod
    def sum_of(cls, arity: int, operands: Iterable, order: MonomialOrder = graded_lex_order,
               deadline=None) -> "Polynomial":
        """Sum of Polynomials and exact numbers, merged into one term map and sorted once."""
        merged: Dict[Exponents, Coefficient] = {}
        constant = (0,) * arity
        for p in operands:
            if deadline is not None:
                deadline.check()
            if isinstance(p, Polynomial):
                if p.arity != arity:
                    raise IllegalStateError(f"polynomial arity mismatch: {p.arity} vs {arity}")
                for e, c in p._terms:
                    merged[e] = merged.get(e, 0) + c
            else:
                merged[constant] = merged.get(constant, 0) + p
        return cls._from_dict(arity, merged, order)

    # ============================================================
    # Inspection
    # ============================================================

    @property
    def terms(self) -> Tuple[Term, ...]:
        return self._terms

    def term_map(self) -> Dict[Exponents, Coefficient]:
        return dict(self._terms)

    def __iter__(self):
        return iter(self._terms)

    def __len__(self) -> int:
        return len(self._terms)

    @property
    def is_zero(self) -> bool:
        return not self._terms

    @property
    def is_constant(self) -> bool:
        return not self._terms or (len(self._terms) == 1 and not any(self._terms[0][0]))

    @property
    def is_one(self) -> bool:
        return self.is_constant and self.constant_term == 1

    @property
    def constant_term(self) -> Coefficient:
        return self.coefficient((0,) * self.arity)

    def coefficient(self, exponents: Sequence[int]) -> Coefficient:
        exponents = tuple(exponents)
        for e, c in self._terms:
            if e == exponents:
                return c
        return 0

    def coefficients(self) -> List[Coefficient]:
        return [c for _, c in self._terms]

    def degree(self, i: Optional[int] = None) -> int:
        """Total degree, or the degree in variable i. The zero polynomial has degree -1."""
        if not self._terms:
            return -1
        if i is None:
            return max(sum(e) for e, _ in self._terms)
        return max(e[i] for e, _ in self._terms)

    @property
    def leading_term(self) -> Term:
        if not self._terms:
            raise IllegalStateError("the zero polynomial has no leading term")
        return self._terms[0]

    @property
    def leading_exponents(self) -> Exponents:
        return self.leading_term[0]

    @property
    def leading_coefficient(self) -> Coefficient:
        return self._terms[0][1] if self._terms else 0

    def denominator_lcm(self) -> int:
        """LCM of the denominators of all coefficients."""
        result = 1
        for _, c in self._terms:
            if isinstance(c, Fraction):
                result = result * c.denominator // math.gcd(result, c.denominator)
        return result

    def content(self) -> Coefficient:
        """gcd of numerators over lcm of denominators; positive. Zero for the zero polynomial."""
        if not self._terms:
            return 0
        numerators = [Fraction(c).numerator for _, c in self._terms]
        g = reduce(math.gcd, numerators)
        return normalize_number(Fraction(abs(g), self.denominator_lcm()))

    def primitive_part(self) -> "Polynomial":
        """Integer coefficients with gcd 1 and a positive leading coefficient."""
        if not self._terms:
            return self
        p = self.scale(exact_quotient(1, self.content()))
        return -p if p.leading_coefficient < 0 else p

    # ============================================================
    # Arithmetic
    # ============================================================

    def _check_arity(self, other: "Polynomial") -> None:
        if self.arity != other.arity:
            raise IllegalStateError(
                f"polynomial arity mismatch: {self.arity} vs {other.arity}")

    def _coerce(self, other) -> Optional["Polynomial"]:
        if isinstance(other, Polynomial):
            self._check_arity(other)
            return other
        if is_exact(other):
            return Polynomial.constant(self.arity, other, self.order)
        return None

    def _rebuild(self, merged: Dict[Exponents, Coefficient]) -> "Polynomial":
        return Polynomial._from_dict(self.arity, merged, self.order)

    def add(self, other: "Polynomial") -> "Polynomial":
        self._check_arity(other)
        if other.is_zero:
            return self
        if self.is_zero:
            return other
        merged = dict(self._terms)
        for e, c in other._terms:
            merged[e] = merged.get(e, 0) + c
        return self._rebuild(merged)

    def negate(self) -> "Polynomial":
        return Polynomial(self.arity, tuple((e, -c) for e, c in self._terms), self.order)

    def sub(self, other: "Polynomial") -> "Polynomial":
        return self.add(other.negate())

    def scale(self, c: Coefficient) -> "Polynomial":
        if c == 0:
            return Polynomial.zero(self.arity, self.order)
        if c == 1:
            return self
        return Polynomial(self.arity, tuple((e, normalize_number(k * c)) for e, k in self._terms), self.order)

    def mul(self, other: "Polynomial", deadline=None) -> "Polynomial":
        """Product; a config.Deadline, when given, is checked once per term of self."""
        self._check_arity(other)
        if self.is_zero or other.is_zero:
            return Polynomial.zero(self.arity, self.order)
        if other.is_one:
            return self
        if self.is_one:
            return other
        merged: Dict[Exponents, Coefficient] = {}
        for ea, ca in self._terms:
            if deadline is not None:
                deadline.check()
            for eb, cb in other._terms:
                e = add_exponents(ea, eb)
                merged[e] = merged.get(e, 0) + ca * cb
        return self._rebuild(merged)

    def expt(self, n: int, deadline=None) -> "Polynomial":
        if not isinstance(n, int) or n < 0:
            raise IllegalStateError(f"polynomial power must be a non-negative integer, got {n!r}")
        result = Polynomial.one(self.arity, self.order)
        base = self
        while n:
            if n & 1:
                result = result.mul(base, deadline)
            n >>= 1
            if n:
                base = base.mul(base, deadline)
        return result

    def divide(self, divisor: "Polynomial") -> Tuple["Polynomial", "Polynomial"]:
        """
        Multivariate division by leading terms.

        Returns (quotient, remainder) with self == quotient * divisor + remainder
        and no term of the remainder divisible by the divisor's leading term.
        """
        self._check_arity(divisor)
        if divisor.is_zero:
            raise ZeroDivisionError("polynomial division by zero")
        lead_e, lead_c = divisor.leading_term
        quotient: Dict[Exponents, Coefficient] = {}
        remainder: Dict[Exponents, Coefficient] = {}
        current = self
        while not current.is_zero:
            e, c = current.leading_term
            if divides(lead_e, e):
                shift = subtract_exponents(e, lead_e)
                q = exact_quotient(c, lead_c)
                quotient[shift] = quotient.get(shift, 0) + q
                step = Polynomial(self.arity, ((shift, q),), self.order)
                current = current.sub(step.mul(divisor))
            else:
                remainder[e] = c
                current = Polynomial(self.arity, current._terms[1:], self.order)
        return self._rebuild(quotient), self._rebuild(remainder)

    def evenly_divide(self, divisor: "Polynomial", deadline=None) -> "Polynomial":
        """The exact quotient; raises InexactDivisionError when a remainder is left."""
        self._check_arity(divisor)
        if divisor.is_zero:
            raise ZeroDivisionError("polynomial division by zero")
        if divisor.is_constant:
            return self.scale(exact_quotient(1, divisor.constant_term))
        lead_e, lead_c = divisor.leading_term
        quotient: Dict[Exponents, Coefficient] = {}
        current = self
        while not current.is_zero:
            if deadline is not None:
                deadline.check()
            e, c = current.leading_term
            if not divides(lead_e, e):
                raise InexactDivisionError(self, divisor)
            shift = subtract_exponents(e, lead_e)
            q = exact_quotient(c, lead_c)
            quotient[shift] = q
            step = Polynomial(self.arity, ((shift, q),), self.order)
            current = current.sub(step.mul(divisor))
        return self._rebuild(quotient)

    # Operator overloading, mixing in exact scalars

    def __add__(self, other):
        other = self._coerce(other)
        return NotImplemented if other is None else self.add(other)

    __radd__ = __add__

    def __sub__(self, other):
        other = self._coerce(other)
        return NotImplemented if other is None else self.sub(other)

    def __rsub__(self, other):
        other = self._coerce(other)
        return NotImplemented if other is None else other.sub(self)

    def __mul__(self, other):
        if is_exact(other):
            return self.scale(other)
        other = self._coerce(other)
        return NotImplemented if other is None else self.mul(other)

    __rmul__ = __mul__

    def __truediv__(self, other):
        if is_exact(other):
            return self.scale(exact_quotient(1, other))
        if isinstance(other, Polynomial):
            from .rational import RationalFunction
            return RationalFunction.make(self, other)
        return NotImplemented

    def __rtruediv__(self, other):
        if is_exact(other):
            from .rational import RationalFunction
            return RationalFunction.make(Polynomial.constant(self.arity, other, self.order), self)
        return NotImplemented

    def __neg__(self):
        return self.negate()

    def __pow__(self, n):
        return self.expt(n)

    def __eq__(self, other):
        if not isinstance(other, Polynomial):
            return NotImplemented
        return self.arity == other.arity and dict(self._terms) == dict(other._terms)

    def __hash__(self):
        return hash((self.arity, frozenset(self._terms)))

    def __repr__(self) -> str:
        return f"Polynomial({self.arity}, {list(self._terms)})"

    # ============================================================
    # Calculus and substitution
    # ============================================================

    def evaluate(self, values: Sequence):
        """
        Substitute values for x0 .. x{n-1}.

        Values may be numbers or anything supporting + * ** with numbers,
        including Polynomials and RationalFunctions.
        """
        if len(values) != self.arity:
            raise IllegalStateError(
                f"evaluate needs {self.arity} values, got {len(values)}")
        total = 0
        for exponents, c in self._terms:
            term = c
            for v, e in zip(values, exponents):
                if e:
                    term = term * (v ** e)
            total = total + term
        return normalize_number(total) if is_number(total) else total

    def partial_derivative(self, i: int) -> "Polynomial":
        if not 0 <= i < self.arity:
            raise IllegalStateError(f"no variable {i} in a polynomial of arity {self.arity}")
        merged: Dict[Exponents, Coefficient] = {}
        for e, c in self._terms:
            if e[i]:
                lowered = e[:i] + (e[i] - 1,) + e[i + 1:]
                merged[lowered] = merged.get(lowered, 0) + c * e[i]
        return self._rebuild(merged)

    def arg_scale(self, factors: Sequence[Coefficient]) -> "Polynomial":
        """p(f0 x0, f1 x1, ...)."""
        if len(factors) != self.arity:
            raise IllegalStateError(f"arg_scale needs {self.arity} factors")
        merged = {}
        for e, c in self._terms:
            k = c
            for f, n in zip(factors, e):
                k = k * f ** n
            merged[e] = k
        return self._rebuild(merged)

    def arg_shift(self, shifts: Sequence[Coefficient]) -> "Polynomial":
        """p(x0 + s0, x1 + s1, ...)."""
        if len(shifts) != self.arity:
            raise IllegalStateError(f"arg_shift needs {self.arity} shifts")
        values = [Polynomial.variable(self.arity, i, self.order) + s for i, s in enumerate(shifts)]
        result = self.evaluate(values)
        if isinstance(result, Polynomial):
            return result
        return Polynomial.constant(self.arity, result, self.order)

    def extend_arity(self, k: int = 1) -> "Polynomial":
        """The same polynomial with k new variables appended."""
        pad = (0,) * k
        return self._with_arity(self.arity + k, {e + pad: c for e, c in self._terms})

    def _with_arity(self, arity: int, merged) -> "Polynomial":
        return Polynomial._from_dict(arity, merged, self.order)

    def map_coefficients(self, f) -> "Polynomial":
        return self._rebuild({e: f(c) for e, c in self._terms})


# ============================================================
# Univariate view: x0 over the coefficient ring in x1 .. x{n-1}
# ============================================================

UnivariateType = Dict[int, Polynomial]


def _to_univariate(p: Polynomial) -> UnivariateType:
    grouped: Dict[int, Dict[Exponents, Coefficient]] = {}
    for e, c in p.terms:
        grouped.setdefault(e[0], {})[e[1:]] = c
    return {d: Polynomial._from_dict(p.arity - 1, terms, p.order) for d, terms in grouped.items()}


def _from_univariate(u: UnivariateType, arity: int, order: MonomialOrder) -> Polynomial:
    merged: Dict[Exponents, Coefficient] = {}
    for d, coeff in u.items():
        for e, c in coeff.terms:
            merged[(d,) + e] = c
    return Polynomial._from_dict(arity, merged, order)


def _leading(u: UnivariateType) -> Polynomial:
    return u[max(u)]


def _pseudo_remainder(a: UnivariateType, b: UnivariateType, deadline=None) -> UnivariateType:
    db = max(b)
    lb = b[db]
    r = dict(a)
    while r and max(r) >= db:
        if deadline is not None:
            deadline.check()
        dr = max(r)
        lr = r[dr]
        shift = dr - db
        nxt = {d: c.mul(lb, deadline) for d, c in r.items()}
        for d, c in b.items():
            k = d + shift
            nxt[k] = nxt[k].sub(lr.mul(c, deadline)) if k in nxt else lr.mul(c, deadline).negate()
        r = {d: c for d, c in nxt.items() if not c.is_zero}
    return r


def _content_z(u: UnivariateType, deadline=None) -> Polynomial:
    coeffs = [u[d] for d in sorted(u, reverse=True)]
    g = coeffs[0]
    for c in coeffs[1:]:
        if g.is_one:
            break
        g = _gcd_z(g, c, deadline)
    return _positive(g)


def _positive(p: Polynomial) -> Polynomial:
    return p.negate() if p.leading_coefficient < 0 else p


def _primitive_z(u: UnivariateType, deadline=None) -> UnivariateType:
    if not u:
        return u
    c = _content_z(u, deadline)
    result = u if c.is_one else {d: coeff.evenly_divide(c, deadline) for d, coeff in u.items()}
    if _leading(result).leading_coefficient < 0:
        result = {d: coeff.negate() for d, coeff in result.items()}
    return result


def _integer_gcd_of(*ps: Polynomial) -> int:
    values = [int(c) for p in ps for c in p.coefficients()]
    return abs(reduce(math.gcd, values, 0))


def _gcd_z(p: Polynomial, q: Polynomial, deadline=None) -> Polynomial:
    """gcd in Z[x0 .. x{n-1}] of integer-coefficient polynomials."""
    if p.is_zero:
        return _positive(q)
    if q.is_zero:
        return _positive(p)
    if p.is_constant or q.is_constant:
        return Polynomial.constant(p.arity, _integer_gcd_of(p, q), p.order)
    if p == q:
        return _positive(p)
    if deadline is not None:
        deadline.check()
    up, uq = _to_univariate(p), _to_univariate(q)
    cp, cq = _content_z(up, deadline), _content_z(uq, deadline)
    c = _gcd_z(cp, cq, deadline)
    a = {d: k.evenly_divide(cp, deadline) for d, k in up.items()}
    b = {d: k.evenly_divide(cq, deadline) for d, k in uq.items()}
    if max(a) < max(b):
        a, b = b, a
    while b:
        if deadline is not None:
            deadline.check()
        r = _pseudo_remainder(a, b, deadline)
        a, b = b, _primitive_z(r, deadline)
    g = _primitive_z(a, deadline)
    return _from_univariate({d: k.mul(c) for d, k in g.items()}, p.arity, p.order)


def gcd(p: Polynomial, q: Polynomial, deadline=None) -> Polynomial:
    """
    Greatest common divisor over Q.

    The result is normalized to integer coefficients with content 1 and a
    positive leading coefficient; gcd(0, 0) is the zero polynomial. A
    config.Deadline, when given, is checked inside the remainder loops.
    """
    p._check_arity(q)
    if p.is_zero and q.is_zero:
        return p
    if p.is_zero:
        return q.primitive_part()
    if q.is_zero:
        return p.primitive_part()
    if p.is_constant or q.is_constant:
        return Polynomial.one(p.arity, p.order)
    pi = p.scale(p.denominator_lcm())
    qi = q.scale(q.denominator_lcm())
    g = _gcd_z(pi, qi, deadline)
    return g.primitive_part()


# Module-level API mirroring the methods

make = Polynomial.make


def add(p: Polynomial, q: Polynomial) -> Polynomial:
    return p.add(q)


def sub(p: Polynomial, q: Polynomial) -> Polynomial:
    return p.sub(q)


def mul(p: Polynomial, q: Polynomial) -> Polynomial:
    return p.mul(q)


def evenly_divide(p: Polynomial, q: Polynomial) -> Polynomial:
    return p.evenly_divide(q)


def evaluate(p: Polynomial, values: Sequence):
    return p.evaluate(values)


def partial_derivative(p: Polynomial, i: int) -> Polynomial:
    return p.partial_derivative(i)
