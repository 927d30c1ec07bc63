"""
Monomial orders over exponent vectors.

An exponent vector is a tuple of non-negative ints, one per variable. Each
order takes two vectors of equal length and returns -1, 0 or 1.

    lex_order                  first differing component decides
    graded_lex_order           total degree, then lex
    graded_reverse_lex_order   total degree, then reversed lex with sign flipped

All three are strict total orders compatible with monomial multiplication,
which is what makes the sorted term list of a Polynomial canonical.
"""

from functools import cmp_to_key
from typing import Callable, Sequence, Tuple

Exponents = Tuple[int, ...]
MonomialOrder = Callable[[Sequence[int], Sequence[int]], int]


def _sign(n: int) -> int:
    return (n > 0) - (n < 0)


def lex_order(a: Sequence[int], b: Sequence[int]) -> int:
    for x, y in zip(a, b):
        if x != y:
            return _sign(x - y)
    return 0


def graded_lex_order(a: Sequence[int], b: Sequence[int]) -> int:
    da, db = sum(a), sum(b)
    if da != db:
        return _sign(da - db)
    return lex_order(a, b)


def graded_reverse_lex_order(a: Sequence[int], b: Sequence[int]) -> int:
    da, db = sum(a), sum(b)
    if da != db:
        return _sign(da - db)
    return -lex_order(tuple(reversed(a)), tuple(reversed(b)))


def monomial_sort_key(order: MonomialOrder):
    """Adapt a monomial order for sorted() and list.sort()."""
    return cmp_to_key(order)


def add_exponents(a: Exponents, b: Exponents) -> Exponents:
    return tuple(x + y for x, y in zip(a, b))


def subtract_exponents(a: Exponents, b: Exponents) -> Exponents:
    return tuple(x - y for x, y in zip(a, b))


def divides(a: Exponents, b: Exponents) -> bool:
    """True when the monomial with exponents a divides the one with b."""
    return all(x <= y for x, y in zip(a, b))


ORDERS = {
    "lex": lex_order,
    "graded-lex": graded_lex_order,
    "graded-reverse-lex": graded_reverse_lex_order,
}
