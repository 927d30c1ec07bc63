"""
Dual numbers with tagged infinitesimals, for forward-mode differentiation.

A Differential is a finite sum of terms c * e_t1 * e_t2 * ..., where each
e_t is an infinitesimal whose square is zero. The tags of a term form a
sorted tuple; the empty tuple is the primal (finite) part:

    x + 1*e_7              Differential(((), "x"), ((7,), 1))

Coefficients are anything the generic operators accept: numbers, symbolic
expressions, Polynomials, RationalFunctions.

To differentiate f at x, mint a fresh tag t, evaluate f(x + e_t) and read
off the coefficient of e_t:

    derivative(lambda x: x * x * x)(3)      # 27
    differentiate(E("(sin x)"), "x")        # ["cos", "x"]

Nested derivatives use different tags, and the chain rule always splits on
the highest tag present, so inner and outer perturbations never mix.
"""

import itertools
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from . import generic
from .errors import IllegalStateError
from .expression import ExprType, is_number

TagSet = Tuple[int, ...]
DTerm = Tuple[TagSet, Any]


# ============================================================
# Tag allocation
# ============================================================

class TagAllocator:
    """Monotonic source of fresh infinitesimal tags, safe across threads."""

    def __init__(self, start: int = 0):
        self._start = start
        self._lock = threading.Lock()
        self._counter = itertools.count(start)

    def next_tag(self) -> int:
        with self._lock:
            return next(self._counter)

    def reset(self) -> None:
        """Start counting again. Only meaningful between independent computations."""
        with self._lock:
            self._counter = itertools.count(self._start)


# Shared by derivative(), partial() and differentiate() unless one is passed in.
TAGS = TagAllocator()


# ============================================================
# The Differential type
# ============================================================

def _term_key(term: DTerm):
    tags = term[0]
    return (len(tags), tags)


class Differential:
    """
    Sorted tuple of (tags, coefficient) terms.

    No two terms share a tag tuple, no coefficient is zero, and terms are
    ordered by number of tags and then lexicographically, so the primal part
    (no tags) always comes first.
    """

    __slots__ = ("terms",)

    def __init__(self, terms: Tuple[DTerm, ...]):
        self.terms = terms

    @classmethod
    def from_terms(cls, terms: Iterable[DTerm]) -> "Differential":
        merged: Dict[TagSet, Any] = {}
        for tags, coeff in terms:
            tags = tuple(sorted(tags))
            merged[tags] = generic.add(merged[tags], coeff) if tags in merged else coeff
        kept = [(t, c) for t, c in merged.items() if not generic.is_zero(c)]
        return cls(tuple(sorted(kept, key=_term_key)))

    @property
    def tags(self) -> List[int]:
        return sorted({t for tags, _ in self.terms for t in tags})

    @property
    def finite_part(self):
        """Coefficient of the term with no tags at all."""
        for tags, coeff in self.terms:
            if not tags:
                return coeff
        return 0

    # Python operators route through the generic operators, so functions
    # written with + - * / ** work on differentials and plain numbers alike.

    def __add__(self, other):
        return generic.add(self, other)

    def __radd__(self, other):
        return generic.add(other, self)

    def __sub__(self, other):
        return generic.sub(self, other)

    def __rsub__(self, other):
        return generic.sub(other, self)

    def __mul__(self, other):
        return generic.mul(self, other)

    def __rmul__(self, other):
        return generic.mul(other, self)

    def __truediv__(self, other):
        return generic.div(self, other)

    def __rtruediv__(self, other):
        return generic.div(other, self)

    def __pow__(self, other):
        return generic.expt(self, other)

    def __rpow__(self, other):
        return generic.expt(other, self)

    def __neg__(self):
        return generic.negate(self)

    def __eq__(self, other):
        if isinstance(other, Differential):
            return self.terms == other.terms
        return all(not tags for tags, _ in self.terms) and self.finite_part == other

    def __hash__(self):
        # Untagged differentials compare equal to their scalar.
        if all(not tags for tags, _ in self.terms):
            return hash(self.finite_part)
        return hash(self.terms)

    def __repr__(self) -> str:
        return f"Differential({self.terms!r})"


def is_differential(x: Any) -> bool:
    return isinstance(x, Differential)


def _terms_of(x: Any) -> Tuple[DTerm, ...]:
    if isinstance(x, Differential):
        return x.terms
    if generic.is_zero(x):
        return ()
    return (((), x),)


def _collapse(terms: Iterable[DTerm]):
    """A Differential, or its bare primal value when no tags are left."""
    d = Differential.from_terms(terms)
    if not d.terms:
        return 0
    if len(d.terms) == 1 and not d.terms[0][0]:
        return d.terms[0][1]
    return d


# ============================================================
# Term arithmetic
# ============================================================

def d_add(a, b):
    """Linear merge of the two term lists."""
    return _collapse(_terms_of(a) + _terms_of(b))


def d_negate(a):
    return _collapse((tags, generic.negate(c)) for tags, c in _terms_of(a))


def d_sub(a, b):
    return d_add(a, d_negate(b))


def d_mul(a, b):
    """Pairwise product; pairs sharing a tag vanish because e_t * e_t = 0."""
    products = []
    for ta, ca in _terms_of(a):
        for tb, cb in _terms_of(b):
            if set(ta) & set(tb):
                continue
            products.append((ta + tb, generic.mul(ca, cb)))
    return _collapse(products)


# ============================================================
# Bundles and their parts
# ============================================================

def bundle(primal, tangent, tag: int):
    """primal + tangent * e_tag."""
    return d_add(primal, d_mul(tangent, Differential((((tag,), 1),))))


def max_order_tag(*values) -> Optional[int]:
    """Highest tag over all Differential arguments, or None."""
    best = None
    for v in values:
        if isinstance(v, Differential):
            for tags, _ in v.terms:
                if tags and (best is None or tags[-1] > best):
                    best = tags[-1]
    return best


def primal_part(d, tag: int):
    """Terms without tag."""
    if not isinstance(d, Differential):
        return d
    return _collapse(t for t in d.terms if tag not in t[0])


def tangent_part(d, tag: int):
    """Terms carrying tag, tag kept."""
    if not isinstance(d, Differential):
        return 0
    return _collapse(t for t in d.terms if tag in t[0])


def primal_tangent_pair(d, tag: int):
    return primal_part(d, tag), tangent_part(d, tag)


def extract_tangent(d, tag: int):
    """Coefficient of e_tag: the terms carrying tag, with tag removed."""
    if not isinstance(d, Differential):
        return 0
    return _collapse(
        (tuple(t for t in tags if t != tag), c) for tags, c in d.terms if tag in tags)


# ============================================================
# Chain rule
# ============================================================

def lift_1(f: Callable, df: Callable) -> Callable:
    """
    Extend a unary operator to differentials.

    f(a + b e) = f(a) + f'(a) b e, applied to the highest tag; f and df are
    generic, so lower tags inside a are handled by the recursive calls.
    """
    def lifted(x):
        tag = max_order_tag(x)
        if tag is None:
            return f(x)
        primal, tangent = primal_tangent_pair(x, tag)
        return generic.add(f(primal), generic.mul(df(primal), tangent))
    return lifted


def lift_2(f: Callable, df_dx: Callable, df_dy: Callable) -> Callable:
    """Binary version of lift_1; a partial is only evaluated when its tangent is nonzero."""
    def lifted(x, y):
        tag = max_order_tag(x, y)
        if tag is None:
            return f(x, y)
        xp, dx = primal_tangent_pair(x, tag)
        yp, dy = primal_tangent_pair(y, tag)
        result = f(xp, yp)
        if not generic.is_zero(dx):
            result = generic.add(result, generic.mul(df_dx(xp, yp), dx))
        if not generic.is_zero(dy):
            result = generic.add(result, generic.mul(df_dy(xp, yp), dy))
        return result
    return lifted


def _abs_derivative(x):
    if is_number(x):
        if x == 0:
            raise IllegalStateError("abs is not differentiable at zero")
        return 1 if x > 0 else -1
    return generic.div(x, generic.abs_(x))


def _one_minus_square(x):
    return generic.sub(1, generic.square(x))


# Derivative of each unary operator, in terms of the generic operators.
UNARY_DERIVATIVES: Dict[str, Callable] = {
    "invert": lambda x: generic.negate(generic.invert(generic.square(x))),
    "square": lambda x: generic.mul(2, x),
    "sqrt": lambda x: generic.invert(generic.mul(2, generic.sqrt(x))),
    "exp": lambda x: generic.exp(x),
    "log": lambda x: generic.invert(x),
    "sin": lambda x: generic.cos(x),
    "cos": lambda x: generic.negate(generic.sin(x)),
    "tan": lambda x: generic.invert(generic.square(generic.cos(x))),
    "asin": lambda x: generic.invert(generic.sqrt(_one_minus_square(x))),
    "acos": lambda x: generic.negate(generic.invert(generic.sqrt(_one_minus_square(x)))),
    "atan": lambda x: generic.invert(generic.add(1, generic.square(x))),
    "sinh": lambda x: generic.cosh(x),
    "cosh": lambda x: generic.sinh(x),
    "tanh": lambda x: _one_minus_square(generic.tanh(x)),
    "abs": _abs_derivative,
}


def _atan2_denominator(y, x):
    return generic.add(generic.square(x), generic.square(y))


# Partials (d/dx, d/dy) of each binary operator that is not bilinear.
BINARY_PARTIALS: Dict[str, Tuple[Callable, Callable]] = {
    "expt": (
        lambda x, y: generic.mul(y, generic.expt(x, generic.sub(y, 1))),
        lambda x, y: generic.mul(generic.log(x), generic.expt(x, y)),
    ),
    "atan2": (
        lambda y, x: generic.div(x, _atan2_denominator(y, x)),
        lambda y, x: generic.div(generic.negate(y), _atan2_denominator(y, x)),
    ),
}


def apply_unary(name: str, x):
    """Apply the generic operator `name` to a differential through the chain rule."""
    f = generic.UNARY_OPERATORS[name]
    return lift_1(f, UNARY_DERIVATIVES[name])(x)


def apply_binary(name: str, x, y):
    f = generic.BINARY_OPERATORS[name]
    df_dx, df_dy = BINARY_PARTIALS[name]
    return lift_2(f, df_dx, df_dy)(x, y)


# ============================================================
# Differentiation API
# ============================================================

def derivative(f: Callable, allocator: Optional[TagAllocator] = None) -> Callable:
    """The derivative of a unary function, as a function."""
    tags = allocator or TAGS

    def df(x):
        tag = tags.next_tag()
        return extract_tangent(f(bundle(x, 1, tag)), tag)
    return df


def _perturb(args: Sequence, selectors: Sequence[int], tag: int) -> List:
    args = list(args)
    i = selectors[0]
    if len(selectors) == 1:
        args[i] = bundle(args[i], 1, tag)
        return args
    inner = args[i]
    if not isinstance(inner, (list, tuple)):
        raise IllegalStateError(f"argument {i} is not a structure; cannot select {selectors[1]}")
    args[i] = type(inner)(_perturb(inner, selectors[1:], tag))
    return args


def partial(f: Callable, *selectors: int, allocator: Optional[TagAllocator] = None) -> Callable:
    """
    Partial derivative of f with respect to the argument picked by selectors.

    partial(f, 1) perturbs the second argument; partial(f, 0, 2) perturbs
    element 2 of a sequence passed as the first argument. Paths deeper than
    two are not supported.
    """
    if len(selectors) > 2:
        raise IllegalStateError(f"selector path {selectors} is deeper than two")
    if not selectors:
        return derivative(f, allocator)
    tags = allocator or TAGS

    def pf(*args):
        tag = tags.next_tag()
        return extract_tangent(f(*_perturb(args, selectors, tag)), tag)
    return pf


def gradient(f: Callable, arity: int, allocator: Optional[TagAllocator] = None) -> Callable:
    """All first partials of an arity-argument function."""
    partials = [partial(f, i, allocator=allocator) for i in range(arity)]

    def grad(*args):
        return [p(*args) for p in partials]
    return grad


def differentiate(expr: ExprType, var: str, allocator: Optional[TagAllocator] = None) -> ExprType:
    """
    Symbolic derivative of an expression tree with respect to var.

    The tree is evaluated through the generic operators with var bound to
    var + e_t; the e_t coefficient is the (unsimplified) derivative.
    """
    tag = (allocator or TAGS).next_tag()
    value = generic.evaluate_expression(expr, {var: bundle(var, 1, tag)})
    return extract_tangent(value, tag)
