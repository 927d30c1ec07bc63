"""
Helpers over expression trees.

Expressions are the nested lists the rule engine works on:

    ["+", "x", ["*", 2, "y"]]

An atom is a number (int, Fraction or float) or a symbol (str). A compound
is a non-empty list whose first element is the operator. Trees are treated
as immutable values throughout the library.
"""

from fractions import Fraction
from numbers import Number
from typing import Any, List, Set, Union

ExprType = Union[int, float, Fraction, str, List]


def is_number(x: Any) -> bool:
    """True for int, Fraction and float constants (bool excluded)."""
    return isinstance(x, (int, float, Fraction)) and not isinstance(x, bool)


def is_exact(x: Any) -> bool:
    return isinstance(x, (int, Fraction)) and not isinstance(x, bool)


def is_symbol(x: Any) -> bool:
    return isinstance(x, str)


def is_compound(x: Any) -> bool:
    return isinstance(x, list) and len(x) > 0


def operator(x: ExprType) -> Any:
    return x[0] if is_compound(x) else None


def has_operator(x: Any, op: str) -> bool:
    return is_compound(x) and x[0] == op


def normalize_number(x: Number) -> Number:
    """Fractions with denominator 1 become ints."""
    if isinstance(x, Fraction) and x.denominator == 1:
        return int(x.numerator)
    return x


# ============================================================
# Total order: numbers < symbols < compounds
# ============================================================

def _rank(x: Any) -> int:
    if is_number(x):
        return 0
    if is_symbol(x):
        return 1
    return 2


def compare_expressions(a: ExprType, b: ExprType) -> int:
    """
    Three-way comparison for sorting operands.

    Numbers sort by value, symbols alphabetically, compounds by length and
    then element by element.
    """
    ra, rb = _rank(a), _rank(b)
    if ra != rb:
        return -1 if ra < rb else 1
    if ra == 0:
        if a == b:
            return 0
        return -1 if a < b else 1
    if ra == 1:
        if a == b:
            return 0
        return -1 if a < b else 1
    if len(a) != len(b):
        return -1 if len(a) < len(b) else 1
    for x, y in zip(a, b):
        c = compare_expressions(x, y)
        if c:
            return c
    return 0


def sort_key(x: ExprType):
    """A key for sorted() consistent with compare_expressions."""
    if is_number(x):
        return (0, x)
    if is_symbol(x):
        return (1, x)
    return (2, len(x), tuple(sort_key(e) for e in x))


def freeze(x: ExprType):
    """Hashable form of an expression, for memo tables and kernel maps."""
    if isinstance(x, list):
        return tuple(freeze(e) for e in x)
    if isinstance(x, float):
        return ("float", x)
    return x


def operators_in(x: ExprType) -> Set[Any]:
    """Every symbol occurring anywhere in the tree, operators included."""
    found: Set[Any] = set()

    def walk(e):
        if isinstance(e, list):
            for sub in e:
                walk(sub)
        elif is_symbol(e):
            found.add(e)

    walk(x)
    return found


def variables_in(x: ExprType) -> Set[str]:
    """Symbols in operand position."""
    found: Set[str] = set()

    def walk(e):
        if is_compound(e):
            if is_compound(e[0]):
                walk(e[0])
            for sub in e[1:]:
                walk(sub)
        elif is_symbol(e):
            found.add(e)

    walk(x)
    return found


def contains_partials(x: ExprType) -> bool:
    if not is_compound(x):
        return False
    if x[0] == "partial":
        return True
    return any(contains_partials(e) for e in x)


def expression_size(x: ExprType) -> int:
    if isinstance(x, list):
        return 1 + sum(expression_size(e) for e in x)
    return 1
