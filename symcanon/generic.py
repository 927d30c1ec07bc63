"""
Generic arithmetic over every kind of value symcanon handles.

Each operator dispatches on its arguments in a fixed order:

    1. Differential   - the chain rule (see differential.py)
    2. numbers        - exact where possible, math floats otherwise
    3. Polynomial / RationalFunction - their own operator overloads
    4. anything else  - an expression tree, with the trivial identities
                        0 + x, 1 * x, 0 * x, x^1, x^0 applied

    add(1, Fraction(1, 2))      # Fraction(3, 2)
    mul(1, "x")                 # "x"
    mul(2, "x")                 # ["*", 2, "x"]
    sqrt(4)                     # 2
    sin(0)                      # 0
    sin("x")                    # ["sin", "x"]

GENERIC_PRELUDE exposes the operators as fold functions keyed by operator
symbol, and evaluate_expression() walks a tree through them.
"""

import math
from fractions import Fraction
from typing import Any, Callable, Dict, List, Optional

from . import differential
from .errors import IllegalStateError
from .expression import ExprType, is_exact, is_number, normalize_number
from .polynomial import Polynomial
from .rational import RationalFunction
from .rewriter import FoldFuncsType, binary_only, nary_fold, unary_only

_ALGEBRAIC = (Polynomial, RationalFunction)


def _any_differential(*xs) -> bool:
    return any(isinstance(x, differential.Differential) for x in xs)


def _is_algebraic(x) -> bool:
    return isinstance(x, _ALGEBRAIC)


def _algebraic_pair(a, b, name: str) -> bool:
    """True when a and b should combine through Polynomial/RationalFunction overloads."""
    if not (_is_algebraic(a) or _is_algebraic(b)):
        return False
    for x in (a, b):
        if not (_is_algebraic(x) or is_exact(x)):
            raise IllegalStateError(f"{name} is not defined between {a!r} and {b!r}")
    return True


def _refuse_algebraic(name: str, x) -> None:
    if _is_algebraic(x):
        raise IllegalStateError(f"{name} is not defined on {type(x).__name__}")


def _zero(x) -> bool:
    return is_number(x) and x == 0


def _one(x) -> bool:
    return is_number(x) and x == 1


def is_zero(x) -> bool:
    """Exact test for the additive identity of any supported kind."""
    if is_number(x):
        return x == 0
    if isinstance(x, Polynomial):
        return x.is_zero
    if isinstance(x, differential.Differential):
        return not x.terms
    return False


# ============================================================
# Arithmetic
# ============================================================

def add(a, b):
    if _any_differential(a, b):
        return differential.d_add(a, b)
    if is_number(a) and is_number(b):
        return normalize_number(a + b)
    if _algebraic_pair(a, b, "add"):
        return a + b
    if _zero(a):
        return b
    if _zero(b):
        return a
    return ["+", a, b]


def negate(x):
    if _any_differential(x):
        return differential.d_negate(x)
    if is_number(x) or _is_algebraic(x):
        return -x
    if isinstance(x, list) and len(x) == 2 and x[0] == "-":
        return x[1]
    return ["-", x]


def sub(a, b):
    if _any_differential(a, b):
        return differential.d_sub(a, b)
    if is_number(a) and is_number(b):
        return normalize_number(a - b)
    if _algebraic_pair(a, b, "sub"):
        return a - b
    if _zero(b):
        return a
    if _zero(a):
        return negate(b)
    if a == b:
        return 0
    return ["-", a, b]


def mul(a, b):
    if _any_differential(a, b):
        return differential.d_mul(a, b)
    if is_number(a) and is_number(b):
        return normalize_number(a * b)
    if _algebraic_pair(a, b, "mul"):
        return a * b
    if _zero(a) or _zero(b):
        return 0
    if _one(a):
        return b
    if _one(b):
        return a
    return ["*", a, b]


def invert(x):
    if _any_differential(x):
        return differential.apply_unary("invert", x)
    if is_number(x):
        return div(1, x)
    if _is_algebraic(x):
        return RationalFunction.invert(x)
    return ["/", 1, x]


def div(a, b):
    if _any_differential(a, b):
        return differential.d_mul(a, invert(b))
    if is_number(a) and is_number(b):
        if is_exact(a) and is_exact(b):
            return normalize_number(Fraction(a) / Fraction(b))
        return a / b
    if _algebraic_pair(a, b, "div"):
        return RationalFunction.div(a, b)
    if _one(b):
        return a
    if _zero(a):
        return 0
    return ["/", a, b]


def square(x):
    if _any_differential(x):
        return differential.d_mul(x, x)
    if is_number(x) or _is_algebraic(x):
        return x * x
    return expt(x, 2)


def expt(a, b):
    if _any_differential(a, b):
        return differential.apply_binary("expt", a, b)
    if is_number(a) and is_number(b):
        if is_exact(a) and isinstance(b, int):
            if a == 0 and b < 0:
                raise ZeroDivisionError("zero raised to a negative power")
            return normalize_number(Fraction(a) ** b)
        if b == Fraction(1, 2):
            return sqrt(a)
        if a < 0:
            return ["expt", a, b]
        return float(a) ** float(b)
    if _is_algebraic(a):
        if not isinstance(b, int):
            raise IllegalStateError(f"{type(a).__name__} power must be an integer, got {b!r}")
        return RationalFunction.expt(a, b)
    _refuse_algebraic("expt", b)
    if _zero(b):
        return 1
    if _one(b):
        return a
    if _one(a):
        return 1
    return ["expt", a, b]


# ============================================================
# Elementary functions
# ============================================================

def _exact_sqrt(x) -> Optional[Any]:
    if isinstance(x, int) and x >= 0:
        r = math.isqrt(x)
        return r if r * r == x else None
    if isinstance(x, Fraction) and x >= 0:
        n, d = _exact_sqrt(x.numerator), _exact_sqrt(x.denominator)
        if n is not None and d is not None:
            return Fraction(n, d)
    return None


def sqrt(x):
    if _any_differential(x):
        return differential.apply_unary("sqrt", x)
    if is_number(x):
        exact = _exact_sqrt(x) if is_exact(x) else None
        if exact is not None:
            return exact
        if x < 0:
            return ["sqrt", x]
        return math.sqrt(x)
    _refuse_algebraic("sqrt", x)
    return ["sqrt", x]


def _transcendental(name: str, x, fn: Callable, exact: Dict[int, int]):
    if _any_differential(x):
        return differential.apply_unary(name, x)
    if is_number(x):
        if is_exact(x) and x in exact:
            return exact[x]
        try:
            return fn(x)
        except ValueError:
            # Outside the real domain (log -1, asin 2): keep it symbolic.
            return [name, x]
    _refuse_algebraic(name, x)
    return [name, x]


def exp(x):
    return _transcendental("exp", x, math.exp, {0: 1})


def log(x):
    return _transcendental("log", x, math.log, {1: 0})


def sin(x):
    return _transcendental("sin", x, math.sin, {0: 0})


def cos(x):
    return _transcendental("cos", x, math.cos, {0: 1})


def tan(x):
    return _transcendental("tan", x, math.tan, {0: 0})


def asin(x):
    return _transcendental("asin", x, math.asin, {0: 0})


def acos(x):
    return _transcendental("acos", x, math.acos, {1: 0})


def atan(x):
    return _transcendental("atan", x, math.atan, {0: 0})


def sinh(x):
    return _transcendental("sinh", x, math.sinh, {0: 0})


def cosh(x):
    return _transcendental("cosh", x, math.cosh, {0: 1})


def tanh(x):
    return _transcendental("tanh", x, math.tanh, {0: 0})


def abs_(x):
    if _any_differential(x):
        return differential.apply_unary("abs", x)
    if is_number(x):
        return abs(x)
    _refuse_algebraic("abs", x)
    return ["abs", x]


def atan2(y, x):
    if _any_differential(y, x):
        return differential.apply_binary("atan2", y, x)
    if is_number(y) and is_number(x):
        if is_exact(y) and is_exact(x) and y == 0 and x > 0:
            return 0
        return math.atan2(y, x)
    _refuse_algebraic("atan2", y)
    _refuse_algebraic("atan2", x)
    return ["atan", y, x]


UNARY_OPERATORS: Dict[str, Callable] = {
    "negate": negate,
    "invert": invert,
    "square": square,
    "sqrt": sqrt,
    "exp": exp,
    "log": log,
    "sin": sin,
    "cos": cos,
    "tan": tan,
    "asin": asin,
    "acos": acos,
    "atan": atan,
    "sinh": sinh,
    "cosh": cosh,
    "tanh": tanh,
    "abs": abs_,
}

BINARY_OPERATORS: Dict[str, Callable] = {
    "add": add,
    "sub": sub,
    "mul": mul,
    "div": div,
    "expt": expt,
    "atan2": atan2,
}


# ============================================================
# Prelude and tree evaluation
# ============================================================

def _minus(args: List[Any]) -> Optional[Any]:
    if not args:
        return None
    if len(args) == 1:
        return negate(args[0])
    result = args[0]
    for a in args[1:]:
        result = sub(result, a)
    return result


def _divide(args: List[Any]) -> Optional[Any]:
    if not args:
        return None
    if len(args) == 1:
        return invert(args[0])
    result = args[0]
    for a in args[1:]:
        result = div(result, a)
    return result


def _atan(args: List[Any]) -> Optional[Any]:
    if len(args) == 1:
        return atan(args[0])
    if len(args) == 2:
        return atan2(args[0], args[1])
    return None


GENERIC_PRELUDE: FoldFuncsType = {
    "+": nary_fold(0, add),
    "*": nary_fold(1, mul),
    "-": _minus,
    "/": _divide,
    "expt": binary_only(expt),
    "square": unary_only(square),
    "sqrt": unary_only(sqrt),
    "exp": unary_only(exp),
    "log": unary_only(log),
    "sin": unary_only(sin),
    "cos": unary_only(cos),
    "tan": unary_only(tan),
    "asin": unary_only(asin),
    "acos": unary_only(acos),
    "atan": _atan,
    "sinh": unary_only(sinh),
    "cosh": unary_only(cosh),
    "tanh": unary_only(tanh),
    "abs": unary_only(abs_),
}


def evaluate_expression(expr: ExprType, env: Optional[Dict[str, Any]] = None,
                        prelude: Optional[FoldFuncsType] = None):
    """
    Evaluate a tree bottom-up through the generic operators.

    Symbols found in env are replaced by their values; others stay symbolic.
    Operators missing from the prelude rebuild the node unevaluated, which
    is an error only when a Differential would end up inside it.
    """
    env = env or {}
    prelude = GENERIC_PRELUDE if prelude is None else prelude
    if isinstance(expr, str):
        return env.get(expr, expr)
    if not isinstance(expr, list) or not expr:
        return expr
    op = expr[0]
    args = [evaluate_expression(a, env, prelude) for a in expr[1:]]
    if isinstance(op, str) and op in prelude:
        result = prelude[op](args)
        if result is not None:
            return result
    if _any_differential(*args):
        raise IllegalStateError(f"no derivative is known for operator {op!r}")
    return [op] + args
