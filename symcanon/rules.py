"""
Algebraic rule library.

Each function returns a Ruleset: rules tried in order at the root of an
expression. Wrap them with engine.rule_simplifier() to rewrite whole trees
to a fixed point:

    flatten = rule_simplifier(associative("+", "*"), commutative("+", "*"))
    flatten(E("(+ (+ y x) 1)"))            # => ["+", 1, "x", "y"]

    contract = rule_simplifier(exponent_contract())
    contract(E("(* x x x)"))               # => ["expt", "x", 3]

Rule families that need semantic knowledge take an oracle:
    equivalent(a, b) -> bool   the two expressions are mathematically equal
    zero(expr) -> bool         the expression is identically zero
Both are normally backed by the canonicalizer (see simplify.Simplifier).
"""

from typing import Any, Callable, List

from .engine import Ruleset, parse_sexpr as P, ruleset
from .expression import ExprType, is_number, sort_key
from .rewriter import ARITHMETIC_PRELUDE, Rule

EquivalenceOracle = Callable[[ExprType, ExprType], bool]
ZeroOracle = Callable[[ExprType], bool]


# ============================================================
# Builders for replacement expressions
# ============================================================

def _product(factors: List[Any]) -> ExprType:
    factors = [f for f in factors if not (is_number(f) and f == 1)]
    if not factors:
        return 1
    if len(factors) == 1:
        return factors[0]
    return ["*"] + factors


def _sum(terms: List[Any]) -> ExprType:
    terms = [t for t in terms if not (is_number(t) and t == 0)]
    if not terms:
        return 0
    if len(terms) == 1:
        return terms[0]
    return ["+"] + terms


def _quotient(num: ExprType, den: ExprType) -> ExprType:
    if is_number(den) and den == 1:
        return num
    return ["/", num, den]


def _power(base: ExprType, n) -> ExprType:
    if n == 0:
        return 1
    if n == 1:
        return base
    return ["expt", base, n]


def _seg(b, *names: str) -> List[Any]:
    """Concatenate bound operand segments."""
    out: List[Any] = []
    for name in names:
        out.extend(b[name])
    return out


# ============================================================
# Structural families
# ============================================================

def associative(*ops: str) -> Ruleset:
    """(op a (op b c) d) => (op a b c d)"""
    return ruleset(*[
        Rule(P(f"({op} ?a... ({op} ?b...) ?c...)"), P(f"({op} :a... :b... :c...)"),
             name=f"associative-{op}")
        for op in ops
    ])


def _is_sorted(xs: List[Any]) -> bool:
    keys = [sort_key(x) for x in xs]
    return all(keys[i] <= keys[i + 1] for i in range(len(keys) - 1))


def commutative(*ops: str) -> Ruleset:
    """Sort operands by the expression order. A sorted node is left alone."""
    def rule_for(op):
        return Rule(
            P(f"({op} ?xs...)"),
            lambda b: [op] + sorted(b["xs"], key=sort_key),
            condition=lambda b: not _is_sorted(b["xs"]),
            name=f"commutative-{op}",
        )
    return ruleset(*[rule_for(op) for op in ops])


def idempotent(*ops: str) -> Ruleset:
    """(op a x x b) => (op a x b)"""
    return ruleset(*[
        Rule(P(f"({op} ?a... ?x ?x ?b...)"), P(f"({op} :a... :x :b...)"),
             name=f"idempotent-{op}")
        for op in ops
    ])


def unary_elimination(*ops: str) -> Ruleset:
    """(op x) => x"""
    return ruleset(*[
        Rule(P(f"({op} ?x)"), P(":x"), name=f"unary-elimination-{op}")
        for op in ops
    ])


def constant_elimination(op: str, constant) -> Ruleset:
    """Drop the identity element: (+ a 0 b) => (+ a b)."""
    return ruleset(
        Rule([op, ["?...", "a"], constant, ["?...", "b"]],
             [op, [":...", "a"], [":...", "b"]],
             name=f"constant-elimination-{op}"),
    )


def constant_promotion(op: str, constant) -> Ruleset:
    """An absorbing element takes over: (* a 0 b) => 0."""
    return ruleset(
        Rule([op, ["?...", "a"], constant, ["?...", "b"]], constant,
             name=f"constant-promotion-{op}"),
    )


# ============================================================
# Powers
# ============================================================

def exponent_contract() -> Ruleset:
    """Merge powers of equal bases; (* x x x) => (expt x 3)."""
    return ruleset(
        Rule(P("(expt (expt ?x ?a:int) ?b:int)"), P("(expt :x (! * :a :b))"),
             name="power-of-power", fold_funcs=ARITHMETIC_PRELUDE),
        Rule(P("(* ?pre... (expt ?x ?a:int) (expt ?x ?b:int) ?post...)"),
             P("(* :pre... (expt :x (! + :a :b)) :post...)"),
             name="power-times-power", fold_funcs=ARITHMETIC_PRELUDE),
        Rule(P("(* ?pre... (expt ?x ?a:int) ?x ?post...)"),
             P("(* :pre... (expt :x (! + :a 1)) :post...)"),
             name="power-times-base", fold_funcs=ARITHMETIC_PRELUDE),
        Rule(P("(* ?pre... ?x (expt ?x ?a:int) ?post...)"),
             P("(* :pre... (expt :x (! + :a 1)) :post...)"),
             name="base-times-power", fold_funcs=ARITHMETIC_PRELUDE),
        Rule(P("(* ?pre... ?x ?x ?post...)"), P("(* :pre... (expt :x 2) :post...)"),
             name="square"),
        Rule(P("(expt ?x 1)"), P(":x"), name="power-one"),
        Rule(P("(* ?x)"), P(":x"), name="unary-product"),
    )


# ============================================================
# Square roots
# ============================================================

def sqrt_expand() -> Ruleset:
    """Push sqrt into products and quotients."""
    return ruleset(
        Rule(P("(sqrt (* ?xs...))"),
             lambda b: ["*"] + [["sqrt", x] for x in b["xs"]],
             condition=lambda b: len(b["xs"]) > 1,
             name="sqrt-of-product"),
        Rule(P("(sqrt (/ ?x ?y))"), P("(/ (sqrt :x) (sqrt :y))"), name="sqrt-of-quotient"),
    )


def clear_square_roots() -> Ruleset:
    """Even powers under and over a square root. Radicands are taken as nonnegative."""
    return ruleset(
        Rule(P("(sqrt (expt ?x ?n:even))"), lambda b: _power(b["x"], b["n"] // 2),
             name="sqrt-of-even-power"),
        Rule(P("(expt (sqrt ?x) ?n:even)"), lambda b: _power(b["x"], b["n"] // 2),
             name="even-power-of-sqrt"),
    )


def sqrt_contract(equivalent: EquivalenceOracle) -> Ruleset:
    """
    Cancel square roots of equivalent radicands.

    (* a (sqrt x) b (sqrt x) c)               => (* a x b c)
    (/ (sqrt x) (sqrt x))                     => 1
    (/ (* a (sqrt x) b) (sqrt x))             => (* a b)
    (/ (sqrt x) (* c (sqrt x) d))             => (/ 1 (* c d))
    (/ (* a (sqrt x) b) (* c (sqrt y) d))     => (/ (* a b) (* c d))
    (expt (sqrt x) 2k)                        => (expt x k)
    """
    same = lambda b: equivalent(b["x"], b["y"])
    return ruleset(
        Rule(P("(* ?a... (sqrt ?x) ?b... (sqrt ?y) ?c...)"),
             lambda b: _product(_seg(b, "a") + [b["x"]] + _seg(b, "b", "c")),
             condition=same, name="sqrt-product"),
        Rule(P("(/ (sqrt ?x) (sqrt ?y))"), 1, condition=same, name="sqrt-ratio"),
        Rule(P("(/ (* ?a... (sqrt ?x) ?b...) (sqrt ?y))"),
             lambda b: _product(_seg(b, "a", "b")),
             condition=same, name="sqrt-product-over-sqrt"),
        Rule(P("(/ (sqrt ?x) (* ?c... (sqrt ?y) ?d...))"),
             lambda b: _quotient(1, _product(_seg(b, "c", "d"))),
             condition=same, name="sqrt-over-sqrt-product"),
        Rule(P("(/ (* ?a... (sqrt ?x) ?b...) (* ?c... (sqrt ?y) ?d...))"),
             lambda b: _quotient(_product(_seg(b, "a", "b")), _product(_seg(b, "c", "d"))),
             condition=same, name="sqrt-products-ratio"),
        Rule(P("(expt (sqrt ?x) ?n:even)"), lambda b: _power(b["x"], b["n"] // 2),
             name="sqrt-even-power"),
    )


# ============================================================
# Trigonometry
# ============================================================

def trig_to_sincos() -> Ruleset:
    return ruleset(
        Rule(P("(tan ?x)"), P("(/ (sin :x) (cos :x))"), name="tan"),
        Rule(P("(cot ?x)"), P("(/ (cos :x) (sin :x))"), name="cot"),
        Rule(P("(sec ?x)"), P("(/ 1 (cos :x))"), name="sec"),
        Rule(P("(csc ?x)"), P("(/ 1 (sin :x))"), name="csc"),
    )


def sin_sq_to_cos_sq() -> Ruleset:
    """(expt (sin x) n), n >= 2  =>  (* (expt (sin x) n-2) (- 1 (expt (cos x) 2)))"""
    def replace(b):
        x, n = b["x"], b["n"]
        rest = ["-", 1, ["expt", ["cos", x], 2]]
        return _product([_power(["sin", x], n - 2), rest])
    return ruleset(
        Rule(P("(expt (sin ?x) ?n:at-least-two)"), replace, name="sin-squared"),
    )


def _coefficient_rule(name: str, first: str, second: str, zero: ZeroOracle) -> Rule:
    pattern = P(f"(+ ?a... (* ?k1... (expt ({first} ?x) 2) ?k2...) ?b... "
                f"(* ?k3... (expt ({second} ?x) 2) ?k4...) ?c...)")

    def equal_factors(b):
        left = _product(_seg(b, "k1", "k2"))
        right = _product(_seg(b, "k3", "k4"))
        return left == right or zero(["-", left, right])

    return Rule(pattern,
                lambda b: _sum(_seg(b, "a", "b", "c") + [_product(_seg(b, "k1", "k2"))]),
                condition=equal_factors, name=name)


def sincos_flush_ones(zero: ZeroOracle) -> Ruleset:
    """sin^2 x + cos^2 x => 1 inside a sum, also with equal coefficient factors."""
    return ruleset(
        Rule(P("(+ ?a... (expt (sin ?x) 2) ?b... (expt (cos ?x) 2) ?c...)"),
             lambda b: _sum(_seg(b, "a", "b", "c") + [1]), name="flush-sin-cos"),
        Rule(P("(+ ?a... (expt (cos ?x) 2) ?b... (expt (sin ?x) 2) ?c...)"),
             lambda b: _sum(_seg(b, "a", "b", "c") + [1]), name="flush-cos-sin"),
        _coefficient_rule("flush-k-sin-cos", "sin", "cos", zero),
        _coefficient_rule("flush-k-cos-sin", "cos", "sin", zero),
    )


def trig_cleanup(zero: ZeroOracle) -> Ruleset:
    """
    k - k cos^2 x => k sin^2 x and k - k sin^2 x => k cos^2 x inside a sum,
    whichever order the two terms come in.
    """
    def cleanup(name, trig, other, k_first):
        term = f"(* ?m... (expt ({trig} ?x) 2))"
        if k_first:
            pattern = P(f"(+ ?a... ?k ?b... {term} ?c...)")
        else:
            pattern = P(f"(+ ?a... {term} ?b... ?k ?c...)")

        def cancels(b):
            return zero(["+", b["k"], _product(b["m"])])

        def replace(b):
            return _sum(_seg(b, "a", "b", "c") + [_product([b["k"], ["expt", [other, b["x"]], 2]])])

        return Rule(pattern, replace, condition=cancels, name=name)

    return ruleset(
        cleanup("k-minus-k-cos-squared", "cos", "sin", True),
        cleanup("minus-k-cos-squared-plus-k", "cos", "sin", False),
        cleanup("k-minus-k-sin-squared", "sin", "cos", True),
        cleanup("minus-k-sin-squared-plus-k", "sin", "cos", False),
    )


def sincos_to_trig() -> Ruleset:
    """Quotients of sin and cos of the same argument back to tan and cot."""
    return ruleset(
        Rule(P("(/ (sin ?x) (cos ?x))"), P("(tan :x)"), name="to-tan"),
        Rule(P("(/ (cos ?x) (sin ?x))"), P("(cot :x)"), name="to-cot"),
        Rule(P("(/ (* ?a... (sin ?x) ?b...) (cos ?x))"), P("(* :a... (tan :x) :b...)"),
             name="to-tan-product-over"),
        Rule(P("(/ (sin ?x) (* ?c... (cos ?x) ?d...))"),
             lambda b: _quotient(["tan", b["x"]], _product(_seg(b, "c", "d"))),
             name="to-tan-over-product"),
        Rule(P("(/ (* ?a... (sin ?x) ?b...) (* ?c... (cos ?x) ?d...))"),
             lambda b: _quotient(_product(_seg(b, "a") + [["tan", b["x"]]] + _seg(b, "b")),
                                 _product(_seg(b, "c", "d"))),
             name="to-tan-products"),
    )


# ============================================================
# Logarithms and exponentials
# ============================================================

def log_exp_inverse() -> Ruleset:
    return ruleset(
        Rule(P("(log (exp ?x))"), P(":x"), name="log-of-exp"),
        Rule(P("(exp (log ?x))"), P(":x"), name="exp-of-log"),
        Rule(P("(exp 0)"), 1, name="exp-zero"),
        Rule(P("(log 1)"), 0, name="log-one"),
    )


def exp_contract() -> Ruleset:
    """(* a (exp x) b (exp y)) => (* a b (exp (+ x y)))"""
    return ruleset(
        Rule(P("(* ?a... (exp ?x) ?b... (exp ?y) ?c...)"),
             lambda b: _product(_seg(b, "a", "b", "c") + [["exp", ["+", b["x"], b["y"]]]]),
             name="exp-product"),
    )


def log_expand_powers() -> Ruleset:
    return ruleset(
        Rule(P("(log (expt ?x ?n))"), P("(* :n (log :x))"), name="log-of-power"),
    )


# ============================================================
# Numbers
# ============================================================

def divide_numbers_through() -> Ruleset:
    """Distribute division by a number over a sum; drop unit factors."""
    return ruleset(
        Rule(P("(* 1 ?x)"), P(":x"), name="one-times"),
        Rule(P("(* 1 ?xs...)"), P("(* :xs...)"), name="drop-unit-factor"),
        Rule(P("(/ ?x 1)"), P(":x"), name="over-one"),
        Rule(P("(/ (+ ?ts...) ?d:nonzero)"),
             lambda b: ["+"] + [["/", t, b["d"]] for t in b["ts"]],
             condition=lambda b: is_number(b["d"]),
             name="divide-sum-by-number"),
    )


# ============================================================
# Partial derivative operators
# ============================================================

def _partial_indices(x) -> List[int]:
    return list(x[1:])


def is_partial(x: Any) -> bool:
    return (isinstance(x, list) and len(x) >= 2 and x[0] == "partial"
            and all(isinstance(i, int) for i in x[1:]))


def is_partial_power(x: Any) -> bool:
    return (isinstance(x, list) and len(x) == 3 and x[0] == "expt"
            and is_partial(x[1]) and isinstance(x[2], int))


def _is_partial_factor(x: Any) -> bool:
    return is_partial(x) or is_partial_power(x)


def is_partial_operator(x: Any) -> bool:
    """(partial i ...), a power of one, or a product of such."""
    if _is_partial_factor(x):
        return True
    return (isinstance(x, list) and len(x) >= 2 and x[0] == "*"
            and all(_is_partial_factor(f) for f in x[1:]))


def _base_partial(x):
    return x[1] if is_partial_power(x) else x


def _factors(op) -> List[Any]:
    return list(op[1:]) if op[0] == "*" else [op]


def canonicalize_partials() -> Ruleset:
    """
    Compositions of partial derivative operators become one operator product.

    ((partial 0) ((partial 1) f))          => ((* (partial 0) (partial 1)) f)
    ((partial 0) ((partial 0) f))          => ((expt (partial 0) 2) f)
    (* (partial 1) (partial 0))            => (* (partial 0) (partial 1))

    Mixed partials commute; factors are sorted by their index lists.
    """
    op = ["?", "op", is_partial_operator]
    inner = ["?", "inner", is_partial_operator]

    def bigger(b):
        return _partial_indices(_base_partial(b["p"])) > _partial_indices(_base_partial(b["q"]))

    def merge_powers(b):
        return ["*"] + b["a"] + [["expt", b["p"], b["m"] + b["n"]]] + b["c"]

    return ruleset(
        Rule([op, [inner, ["?", "f"]]],
             lambda b: [["*"] + _factors(b["op"]) + _factors(b["inner"]), b["f"]],
             name="compose-partials"),
        Rule(["*", ["?...", "a"], ["?", "p", is_partial], ["?", "p"], ["?...", "c"]],
             lambda b: ["*"] + b["a"] + [["expt", b["p"], 2]] + b["c"],
             name="repeated-partial"),
        Rule(["*", ["?...", "a"], ["expt", ["?", "p", is_partial], ["?", "m", "int"]],
              ["?", "p"], ["?...", "c"]],
             lambda b: ["*"] + b["a"] + [["expt", b["p"], b["m"] + 1]] + b["c"],
             name="partial-power-times-partial"),
        Rule(["*", ["?...", "a"], ["?", "p", is_partial],
              ["expt", ["?", "p"], ["?", "m", "int"]], ["?...", "c"]],
             lambda b: ["*"] + b["a"] + [["expt", b["p"], b["m"] + 1]] + b["c"],
             name="partial-times-partial-power"),
        Rule(["*", ["?...", "a"], ["expt", ["?", "p", is_partial], ["?", "m", "int"]],
              ["expt", ["?", "p"], ["?", "n", "int"]], ["?...", "c"]],
             merge_powers, name="partial-powers"),
        Rule(["*", ["?...", "a"], ["?", "p", _is_partial_factor],
              ["?", "q", _is_partial_factor], ["?...", "c"]],
             lambda b: ["*"] + b["a"] + [b["q"], b["p"]] + b["c"],
             condition=bigger,
             name="sort-partials"),
        Rule(["*", ["?", "p", is_partial_operator]], [":", "p"], name="unary-partial-product"),
    )
