"""
Exception types raised by symcanon.

Zero denominators raise the builtin ZeroDivisionError. Everything else that
can go wrong in the algebra is one of the classes below. A failed pattern
match is not an error: see rewriter.NoMatch.
"""


class SymcanonError(Exception):
    """Base class for all symcanon errors."""


class IllegalStateError(SymcanonError):
    """
    An operation was asked to do something it does not support.

    Examples: differentiating abs at exactly zero, a partial-derivative
    selector that is too deep, adding polynomials of different arity.
    """


class InexactDivisionError(SymcanonError, ArithmeticError):
    """Exact polynomial division left a nonzero remainder."""

    def __init__(self, dividend, divisor):
        super().__init__(f"{divisor!r} does not evenly divide {dividend!r}")
        self.dividend = dividend
        self.divisor = divisor


class SimplifyTimeout(SymcanonError):
    """
    A canonicalization ran past its deadline or nesting budget.

    The simplifier recovers from this at the rational-function boundary by
    returning its input unchanged.
    """

    def __init__(self, message: str = "simplification deadline exceeded"):
        super().__init__(message)
