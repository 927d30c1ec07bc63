"""
Rational functions: reduced numerator/denominator polynomial pairs.

RationalFunction.make(u, v) is the only way in. It returns

    - a number, when u and v are both numbers
    - 0, when the numerator reduces to zero
    - a bare Polynomial, when the denominator reduces to a constant
    - otherwise a RationalFunction whose numerator and denominator have
      integer coefficients, no common polynomial factor, no common integer
      content, and a denominator with a positive leading coefficient

so equal rational functions always have equal representations.

Arithmetic follows Knuth, TAOCP vol. 2, section 4.5.1: gcds are taken
between the smaller operands before multiplying out, which keeps the
intermediate polynomials small.
"""

import math
from fractions import Fraction
from typing import Sequence, Union

from .errors import IllegalStateError
from .expression import is_exact, normalize_number
from .polynomial import Polynomial, exact_quotient, gcd, _to_univariate

ScalarType = Union[int, Fraction]


def _as_polynomial(x, arity: int, order) -> Polynomial:
    if isinstance(x, Polynomial):
        if x.arity != arity:
            raise IllegalStateError(f"arity mismatch: {x.arity} vs {arity}")
        return x
    return Polynomial.constant(arity, x, order)


def _algebraic_operand(*xs):
    for x in xs:
        if isinstance(x, (Polynomial, RationalFunction)):
            return x
    return None


class RationalFunction:
    """A reduced quotient of polynomials. Build with make()."""

    __slots__ = ("numerator", "denominator")

    def __init__(self, numerator: Polynomial, denominator: Polynomial):
        self.numerator = numerator
        self.denominator = denominator

    @property
    def arity(self) -> int:
        return self.numerator.arity

    # ============================================================
    # Construction and normalization
    # ============================================================

    @staticmethod
    def make(u, v, deadline=None):
        """Reduce u/v to canonical form. See the module docstring for the result type."""
        if is_exact(u) and is_exact(v):
            if v == 0:
                raise ZeroDivisionError("rational function with a zero denominator")
            return normalize_number(Fraction(u) / Fraction(v))
        if isinstance(u, RationalFunction) or isinstance(v, RationalFunction):
            return RationalFunction.div(u, v, deadline)
        ref = _algebraic_operand(u, v)
        u = _as_polynomial(u, ref.arity, ref.order)
        v = _as_polynomial(v, ref.arity, ref.order)
        if v.is_zero:
            raise ZeroDivisionError("rational function with a zero denominator")
        if u.is_zero:
            return 0
        g = gcd(u, v, deadline)
        if not g.is_one:
            u, v = u.evenly_divide(g, deadline), v.evenly_divide(g, deadline)
        return RationalFunction._normalize(u, v)

    @staticmethod
    def _normalize(u: Polynomial, v: Polynomial):
        """
        Canonical scaling of an already gcd-free pair.

        Clears fractional coefficients with the LCM of all denominators,
        removes the common integer content, makes the denominator's leading
        coefficient positive and degrades constant denominators.
        """
        if v.is_zero:
            raise ZeroDivisionError("rational function with a zero denominator")
        if u.is_zero:
            return 0
        if v.is_constant:
            return u.scale(exact_quotient(1, v.constant_term))
        k = u.denominator_lcm()
        k = k * v.denominator_lcm() // math.gcd(k, v.denominator_lcm())
        if k != 1:
            u, v = u.scale(k), v.scale(k)
        common = math.gcd(int(u.content()), int(v.content()))
        if common != 1:
            u, v = u.scale(Fraction(1, common)), v.scale(Fraction(1, common))
        if v.leading_coefficient < 0:
            u, v = u.negate(), v.negate()
        return RationalFunction(u, v)

    @staticmethod
    def _parts(x, arity: int, order):
        """(numerator, denominator) of a number, Polynomial or RationalFunction."""
        if isinstance(x, RationalFunction):
            return x.numerator, x.denominator
        return _as_polynomial(x, arity, order), Polynomial.one(arity, order)

    # ============================================================
    # Arithmetic
    # ============================================================

    @staticmethod
    def add(r, s, deadline=None):
        """r + s for any mix of scalars, Polynomials and RationalFunctions."""
        ref = _algebraic_operand(r, s)
        if ref is None:
            return normalize_number(r + s)
        order = _order_of(ref)
        u, u_ = RationalFunction._parts(r, ref.arity, order)
        v, v_ = RationalFunction._parts(s, ref.arity, order)
        if u_ == v_:
            t = u.add(v)
            if t.is_zero:
                return 0
            if u_.is_one:
                return t
            d = gcd(t, u_, deadline)
            if d.is_one:
                return RationalFunction._normalize(t, u_)
            return RationalFunction._normalize(
                t.evenly_divide(d, deadline), u_.evenly_divide(d, deadline))
        d1 = gcd(u_, v_, deadline)
        if d1.is_one:
            return RationalFunction._normalize(
                u.mul(v_, deadline).add(u_.mul(v, deadline)), u_.mul(v_, deadline))
        ud = u_.evenly_divide(d1, deadline)
        vd = v_.evenly_divide(d1, deadline)
        t = u.mul(vd, deadline).add(v.mul(ud, deadline))
        if t.is_zero:
            return 0
        d2 = gcd(t, d1, deadline)
        return RationalFunction._normalize(
            t.evenly_divide(d2, deadline), ud.mul(v_.evenly_divide(d2, deadline), deadline))

    @staticmethod
    def negate(r):
        if isinstance(r, RationalFunction):
            return RationalFunction(r.numerator.negate(), r.denominator)
        return -r

    @staticmethod
    def sub(r, s, deadline=None):
        return RationalFunction.add(r, RationalFunction.negate(s), deadline)

    @staticmethod
    def mul(r, s, deadline=None):
        ref = _algebraic_operand(r, s)
        if ref is None:
            return normalize_number(r * s)
        order = _order_of(ref)
        u, u_ = RationalFunction._parts(r, ref.arity, order)
        v, v_ = RationalFunction._parts(s, ref.arity, order)
        if u.is_zero or v.is_zero:
            return 0
        d1 = gcd(u, v_, deadline)
        d2 = gcd(u_, v, deadline)
        num = u.evenly_divide(d1, deadline).mul(v.evenly_divide(d2, deadline), deadline)
        den = u_.evenly_divide(d2, deadline).mul(v_.evenly_divide(d1, deadline), deadline)
        return RationalFunction._normalize(num, den)

    @staticmethod
    def invert(r):
        """1/r. A negative sign ends up in the numerator."""
        if isinstance(r, RationalFunction):
            return RationalFunction._normalize(r.denominator, r.numerator)
        if isinstance(r, Polynomial):
            if r.is_zero:
                raise ZeroDivisionError("inverse of the zero polynomial")
            return RationalFunction._normalize(Polynomial.one(r.arity, r.order), r)
        if r == 0:
            raise ZeroDivisionError("inverse of zero")
        return normalize_number(Fraction(1) / Fraction(r))

    @staticmethod
    def div(r, s, deadline=None):
        return RationalFunction.mul(r, RationalFunction.invert(s), deadline)

    @staticmethod
    def expt(r, n: int, deadline=None):
        if not isinstance(n, int):
            raise IllegalStateError(f"rational function power must be an integer, got {n!r}")
        if n < 0:
            return RationalFunction.expt(RationalFunction.invert(r), -n, deadline)
        if isinstance(r, RationalFunction):
            # Powers of coprime polynomials stay coprime.
            return RationalFunction._normalize(
                r.numerator.expt(n, deadline), r.denominator.expt(n, deadline))
        if isinstance(r, Polynomial):
            return r.expt(n, deadline)
        return normalize_number(Fraction(r) ** n)

    # Operator overloading

    def __add__(self, other):
        return RationalFunction.add(self, other)

    __radd__ = __add__

    def __sub__(self, other):
        return RationalFunction.sub(self, other)

    def __rsub__(self, other):
        return RationalFunction.sub(other, self)

    def __mul__(self, other):
        return RationalFunction.mul(self, other)

    __rmul__ = __mul__

    def __truediv__(self, other):
        return RationalFunction.div(self, other)

    def __rtruediv__(self, other):
        return RationalFunction.div(other, self)

    def __neg__(self):
        return RationalFunction.negate(self)

    def __pow__(self, n):
        return RationalFunction.expt(self, n)

    def __eq__(self, other):
        if not isinstance(other, RationalFunction):
            return NotImplemented
        return (self.arity == other.arity
                and self.numerator == other.numerator
                and self.denominator == other.denominator)

    def __hash__(self):
        return hash((self.numerator, self.denominator))

    def __repr__(self) -> str:
        return f"RationalFunction({self.numerator!r}, {self.denominator!r})"

    # ============================================================
    # Evaluation, differentiation, composition
    # ============================================================

    def evaluate(self, values: Sequence):
        den = self.denominator.evaluate(values)
        if den == 0:
            raise ZeroDivisionError("rational function evaluated at a pole")
        num = self.numerator.evaluate(values)
        if is_exact(num) and is_exact(den):
            return normalize_number(Fraction(num) / Fraction(den))
        return num / den

    def partial_derivative(self, i: int):
        u, v = self.numerator, self.denominator
        top = u.partial_derivative(i).mul(v).sub(u.mul(v.partial_derivative(i)))
        return RationalFunction.make(top, v.mul(v))


def _order_of(x):
    if isinstance(x, RationalFunction):
        return x.numerator.order
    return x.order


def _homogenize(u: Polynomial, p: Polynomial, q: Polynomial, degree: int) -> Polynomial:
    """sum of c_k(x1..) p^k q^(degree-k) over the terms c_k x0^k of u."""
    total = Polynomial.zero(u.arity, u.order)
    for k, coeff in _to_univariate(u).items():
        lifted = Polynomial.make(u.arity, {(0,) + e: c for e, c in coeff.terms}, u.order)
        total = total.add(lifted.mul(p.expt(k)).mul(q.expt(degree - k)))
    return total


def compose(r, s, deadline=None):
    """
    Substitute s for the principal variable x0 of r.

    Both must have the same arity. With s = p/q and r = u/v the result is
    u(p/q) / v(p/q) = [U q^dv] / [V q^du], where U and V are u and v
    homogenized to their own degrees in x0, so no rational intermediate is
    ever formed.
    """
    if isinstance(r, Polynomial):
        r_num, r_den = r, Polynomial.one(r.arity, r.order)
    elif isinstance(r, RationalFunction):
        r_num, r_den = r.numerator, r.denominator
    else:
        return r
    p, q = RationalFunction._parts(s, r_num.arity, r_num.order)
    du = max(r_num.degree(0), 0)
    dv = max(r_den.degree(0), 0)
    top = _homogenize(r_num, p, q, du).mul(q.expt(dv))
    bottom = _homogenize(r_den, p, q, dv).mul(q.expt(du))
    return RationalFunction.make(top, bottom, deadline)


# Module-level API

make = RationalFunction.make
add = RationalFunction.add
sub = RationalFunction.sub
mul = RationalFunction.mul
div = RationalFunction.div
invert = RationalFunction.invert
expt = RationalFunction.expt
negate = RationalFunction.negate


def numerator(r):
    return r.numerator if isinstance(r, RationalFunction) else r


def denominator(r):
    if isinstance(r, RationalFunction):
        return r.denominator
    if isinstance(r, Polynomial):
        return Polynomial.one(r.arity, r.order)
    return 1
