"""
Core rewriter module for symbolic expression transformation.

This module provides pattern matching, instantiation and the bottom-up
rewriting loop that every rule family in symcanon is built on.

Pattern syntax (list form; see engine.parse_sexpr for the text form):
    ["?", "x"]              - match any expression, bind to x
    ["?", "x", pred]        - match when pred(value) holds; pred is a callable
                              or a name from PATTERN_PREDICATES ("int", "even", ...)
    ["?c", "x"]             - match constants only
    ["?v", "x"]             - match symbols only
    ["?free", "x", "v"]     - match expressions not containing v
    ["?...", "xs"]          - match zero or more consecutive operands, anywhere
    ["?...", "xs", "const"] - the same, each operand constrained
    literal                 - match exact value

A variable that occurs twice in a pattern must bind equal values both times.
Segment variables are tried shortest first and every split is explored, so
a failing side-condition backtracks into the next split.

Skeleton syntax:
    [":", "x"]              - substitute bound value
    [":...", "xs"]          - splice bound list into the parent
    ["!", op, args...]      - compute op(args) through a prelude (op may be a callable)
    callable                - skeleton(bindings) builds the replacement
    literal                 - keep as-is
"""

import logging
from fractions import Fraction
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from .expression import ExprType, is_number, is_exact, normalize_number

logger = logging.getLogger(__name__)

# Type aliases
BindingsType = Dict[str, Any]
NumericType = Union[int, Fraction, float]
ConditionType = Union[Callable[["Bindings"], bool], ExprType, None]


# ============================================================
# Bindings Class - Dict-like interface for match results
# ============================================================

class Bindings:
    """
    Dict-like wrapper for pattern matching bindings.

        if bindings := match(parse_sexpr("(+ ?a ?b)"), expr):
            print(bindings["a"], bindings["b"])

    Bindings objects are truthy; a failed match is NoMatch, which is falsy.
    """

    __slots__ = ('_dict',)

    def __init__(self, pairs=()):
        """Initialize from a mapping or from [name, value] pairs."""
        if isinstance(pairs, dict):
            self._dict = dict(pairs)
        else:
            self._dict = {name: value for name, value in pairs}

    def __bool__(self) -> bool:
        return True

    def __getitem__(self, key: str):
        return self._dict[key]

    def get(self, key: str, default=None):
        return self._dict.get(key, default)

    def __contains__(self, key: str) -> bool:
        return key in self._dict

    def keys(self):
        return self._dict.keys()

    def values(self):
        return self._dict.values()

    def items(self):
        return self._dict.items()

    def __iter__(self):
        return iter(self._dict)

    def __len__(self) -> int:
        return len(self._dict)

    def __repr__(self) -> str:
        return f"Bindings({self._dict})"

    def __eq__(self, other):
        if isinstance(other, Bindings):
            return self._dict == other._dict
        return False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary."""
        return self._dict.copy()


class _NoMatch:
    """
    Singleton for "no rule applied" / "pattern did not match".

    NoMatch is falsy and has no bindings. Rulesets return it instead of
    raising, so callers can move on to the next rule or pass.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NoMatch"

    def __getitem__(self, key: str):
        raise KeyError(f"NoMatch has no binding for '{key}'")

    def get(self, key: str, default=None):
        return default

    def __contains__(self, key: str) -> bool:
        return False

    def __len__(self) -> int:
        return 0

    def __iter__(self):
        return iter([])


NoMatch = _NoMatch()


def wrap_bindings(result: Optional[BindingsType]) -> Union[Bindings, _NoMatch]:
    """Convert an internal bindings dict (or None) to Bindings or NoMatch."""
    if result is None:
        return NoMatch
    return Bindings(result)


# FoldOp handler: receives list of evaluated args, returns result or None (can't fold)
FoldHandler = Callable[[List[Any]], Optional[Any]]
FoldFuncsType = Dict[str, FoldHandler]


# ============================================================
# Fold Operation Builders
# ============================================================

def nary_fold(identity, binary_op: Callable[[Any, Any], Any],
              unary: Optional[Callable[[Any], Any]] = None) -> FoldHandler:
    """Create an n-ary folder with identity element.

    Examples:
        nary_fold(0, lambda a, b: a + b)  # (+) = 0, (+ x) = x, (+ x y z) = x+y+z
    """
    def handler(args: List[Any]) -> Any:
        if len(args) == 0:
            return identity
        if len(args) == 1:
            return unary(args[0]) if unary else args[0]
        result = args[0]
        for a in args[1:]:
            result = binary_op(result, a)
        return result
    return handler


def unary_only(f: Callable[[Any], Any]) -> FoldHandler:
    """Create a unary-only folder."""
    def handler(args: List[Any]) -> Optional[Any]:
        if len(args) != 1:
            return None
        return f(args[0])
    return handler


def binary_only(f: Callable[[Any, Any], Any]) -> FoldHandler:
    """Create a binary-only folder."""
    def handler(args: List[Any]) -> Optional[Any]:
        if len(args) != 2:
            return None
        return f(args[0], args[1])
    return handler


def numeric_only(handler: FoldHandler) -> FoldHandler:
    """Only fold when every argument is a number."""
    def guarded(args: List[Any]) -> Optional[Any]:
        if not all(is_number(a) for a in args):
            return None
        return handler(args)
    return guarded


def _exact_div(a, b):
    if b == 0:
        return None
    if is_exact(a) and is_exact(b):
        return normalize_number(Fraction(a) / Fraction(b))
    return a / b


def _exact_expt(a, b):
    if isinstance(b, int) and is_exact(a):
        if b < 0 and a == 0:
            return None
        return normalize_number(Fraction(a) ** b)
    return None


def _special_minus(args: List[Any]) -> Optional[Any]:
    if len(args) == 1:
        return -args[0]
    if len(args) == 2:
        return args[0] - args[1]
    return None


# ============================================================
# Standard Preludes
# ============================================================

# Exact arithmetic for computed skeleton clauses
ARITHMETIC_PRELUDE: FoldFuncsType = {
    "+": numeric_only(nary_fold(0, lambda a, b: normalize_number(a + b))),
    "*": numeric_only(nary_fold(1, lambda a, b: normalize_number(a * b))),
    "-": numeric_only(_special_minus),
    "/": numeric_only(binary_only(_exact_div)),
    "expt": numeric_only(binary_only(_exact_expt)),
}


def _is_int(x) -> bool:
    return isinstance(x, int) and not isinstance(x, bool)


# Predicates usable in typed bindings: ?n:int, ?n:even, ?n:at-least-two
PATTERN_PREDICATES: Dict[str, Callable[[Any], bool]] = {
    "const": is_number,
    "number": is_number,
    "exact": is_exact,
    "var": lambda x: isinstance(x, str),
    "symbol": lambda x: isinstance(x, str),
    "compound": lambda x: isinstance(x, list) and len(x) > 0,
    "int": _is_int,
    "even": lambda x: _is_int(x) and x % 2 == 0,
    "odd": lambda x: _is_int(x) and x % 2 == 1,
    "positive": lambda x: is_number(x) and x > 0,
    "negative": lambda x: is_number(x) and x < 0,
    "nonzero": lambda x: not (is_number(x) and x == 0),
    "at-least-two": lambda x: _is_int(x) and x >= 2,
}

# Predicate prelude: comparison and type predicates for conditional guards
PREDICATE_PRELUDE: FoldFuncsType = {
    ">": binary_only(lambda a, b: a > b),
    "<": binary_only(lambda a, b: a < b),
    ">=": binary_only(lambda a, b: a >= b),
    "<=": binary_only(lambda a, b: a <= b),
    "=": binary_only(lambda a, b: a == b),
    "!=": binary_only(lambda a, b: a != b),
    "const?": unary_only(is_number),
    "var?": unary_only(lambda x: isinstance(x, str)),
    "list?": unary_only(lambda x: isinstance(x, list)),
    "int?": unary_only(_is_int),
    "even?": unary_only(PATTERN_PREDICATES["even"]),
    "zero?": unary_only(lambda x: is_number(x) and x == 0),
    "not": unary_only(lambda x: not x),
    "and": nary_fold(True, lambda a, b: a and b),
    "or": nary_fold(False, lambda a, b: a or b),
}

# Full prelude: arithmetic + predicates (common choice for conditional rules)
FULL_PRELUDE: FoldFuncsType = {
    **ARITHMETIC_PRELUDE,
    **PREDICATE_PRELUDE,
}

# Empty prelude (no computed clauses are folded)
NO_PRELUDE: FoldFuncsType = {}


# ============================================================
# Expression predicates
# ============================================================

def atom(exp: ExprType) -> bool:
    return constant(exp) or variable(exp)


def compound(exp: ExprType) -> bool:
    return isinstance(exp, list)


def constant(exp: ExprType) -> bool:
    return is_number(exp)


def variable(exp: ExprType) -> bool:
    return isinstance(exp, str)


def free_in(var: str, expr: ExprType) -> bool:
    """True if var appears anywhere in expr."""
    if isinstance(expr, str):
        return expr == var
    if isinstance(expr, list):
        return any(free_in(var, sub) for sub in expr)
    return False


# ============================================================
# Pattern Matching Helpers
# ============================================================

_ELEMENT_HEADS = ("?", "?c", "?v", "?free")


def element_pattern(pat: Any) -> bool:
    """Pattern variable that matches exactly one expression."""
    return (isinstance(pat, list) and len(pat) in (2, 3)
            and pat[0] in _ELEMENT_HEADS and isinstance(pat[1], str))


def segment_pattern(pat: Any) -> bool:
    """Pattern variable that matches a run of operands (?xs...)."""
    return (isinstance(pat, list) and len(pat) in (2, 3)
            and pat[0] == "?..." and isinstance(pat[1], str))


def skeleton_evaluation(s: Any) -> bool:
    return isinstance(s, list) and len(s) == 2 and s[0] == ":"


def skeleton_splice(s: Any) -> bool:
    return isinstance(s, list) and len(s) == 2 and s[0] == ":..."


def skeleton_compute(s: Any) -> bool:
    return isinstance(s, list) and len(s) >= 2 and s[0] == "!"


def resolve_predicate(spec: Any) -> Callable[[Any], bool]:
    """A predicate given as a callable or as a PATTERN_PREDICATES name."""
    if callable(spec):
        return spec
    try:
        return PATTERN_PREDICATES[spec]
    except KeyError:
        raise ValueError(f"Unknown pattern predicate: {spec!r}") from None


def _element_accepts(pat: List, dat: ExprType, bindings: BindingsType) -> bool:
    head = pat[0]
    if head == "?c":
        return constant(dat)
    if head == "?v":
        return variable(dat)
    if head == "?free":
        excluded = lookup(pat[2], bindings)
        return isinstance(excluded, str) and not free_in(excluded, dat)
    if len(pat) == 3:
        return bool(resolve_predicate(pat[2])(dat))
    return True


def extend_bindings(name: str, dat: Any, bindings: BindingsType) -> Optional[BindingsType]:
    """
    Bind name to dat.

    Returns the extended bindings, the same bindings when name is already
    bound to an equal value, or None on a conflicting binding.
    """
    if name in bindings:
        return bindings if bindings[name] == dat else None
    extended = dict(bindings)
    extended[name] = dat
    return extended


def lookup(var: str, bindings: BindingsType) -> Any:
    """The bound value of var, or var itself when unbound."""
    return bindings.get(var, var)


# ============================================================
# Pattern Matching
# ============================================================

def match_all(pat: Any, exp: ExprType, bindings: Optional[BindingsType] = None) -> Iterator[BindingsType]:
    """Yield every consistent set of bindings for pat against exp."""
    if bindings is None:
        bindings = {}

    if element_pattern(pat):
        if _element_accepts(pat, exp, bindings):
            extended = extend_bindings(pat[1], exp, bindings)
            if extended is not None:
                yield extended
        return

    if segment_pattern(pat):
        # Only meaningful inside a compound; on its own it binds a whole list.
        if isinstance(exp, list):
            extended = extend_bindings(pat[1], exp, bindings)
            if extended is not None:
                yield extended
        return

    if not isinstance(pat, list):
        if not isinstance(exp, list) and pat == exp and type(pat) is not bool:
            yield bindings
        return

    if not isinstance(exp, list):
        return

    yield from _match_sequence(pat, 0, exp, 0, bindings, _min_lengths(pat))


def _min_lengths(pats: List) -> List[int]:
    """For each index, how many operands the rest of the pattern needs at least."""
    needed = [0] * (len(pats) + 1)
    for i in range(len(pats) - 1, -1, -1):
        needed[i] = needed[i + 1] + (0 if segment_pattern(pats[i]) else 1)
    return needed


def _match_sequence(pats: List, i: int, exps: List, j: int,
                    bindings: BindingsType, needed: List[int]) -> Iterator[BindingsType]:
    if i == len(pats):
        if j == len(exps):
            yield bindings
        return
    if len(exps) - j < needed[i]:
        return

    current = pats[i]
    if segment_pattern(current):
        name = current[1]
        if name in bindings:
            seg = bindings[name]
            if isinstance(seg, list) and exps[j:j + len(seg)] == seg:
                yield from _match_sequence(pats, i + 1, exps, j + len(seg), bindings, needed)
            return
        check = resolve_predicate(current[2]) if len(current) == 3 else None
        for k in range(j, len(exps) - needed[i + 1] + 1):
            if k > j and check is not None and not check(exps[k - 1]):
                break
            extended = dict(bindings)
            extended[name] = exps[j:k]
            yield from _match_sequence(pats, i + 1, exps, k, extended, needed)
        return

    if j == len(exps):
        return
    for extended in match_all(current, exps[j], bindings):
        yield from _match_sequence(pats, i + 1, exps, j + 1, extended, needed)


def match(pat: Any, exp: ExprType, bindings: Optional[BindingsType] = None) -> Union[Bindings, _NoMatch]:
    """
    Match a pattern against an expression.

    Returns the first consistent Bindings, or NoMatch.
    """
    for result in match_all(pat, exp, bindings):
        return Bindings(result)
    return NoMatch


# ============================================================
# Instantiation
# ============================================================

def _fold(op: Any, args: List[Any], fold_funcs: Optional[FoldFuncsType]) -> Any:
    if callable(op):
        return op(*args)
    if fold_funcs and op in fold_funcs:
        try:
            result = fold_funcs[op](args)
        except (ArithmeticError, ValueError, TypeError) as exc:
            logger.debug("computed clause (%s ...) not folded: %s", op, exc)
            result = None
        if result is not None:
            if isinstance(result, float) and result.is_integer():
                return int(result)
            return normalize_number(result) if is_number(result) else result
    return [op] + args


def instantiate(skeleton: Any, bindings: BindingsType,
                fold_funcs: Optional[FoldFuncsType] = None) -> ExprType:
    """Fill a skeleton from bindings. See the module docstring for the forms."""
    if isinstance(bindings, Bindings):
        bindings = bindings.to_dict()
    if callable(skeleton):
        return skeleton(Bindings(bindings))
    if not isinstance(skeleton, list):
        return skeleton
    if not skeleton:
        return []
    if skeleton_evaluation(skeleton) or skeleton_splice(skeleton):
        return lookup(skeleton[1], bindings)
    if skeleton_compute(skeleton):
        args = [instantiate(arg, bindings, fold_funcs) for arg in skeleton[2:]]
        return _fold(skeleton[1], args, fold_funcs)
    result = []
    for part in skeleton:
        if skeleton_splice(part):
            spliced = lookup(part[1], bindings)
            if isinstance(spliced, list):
                result.extend(spliced)
            else:
                result.append(spliced)
        else:
            result.append(instantiate(part, bindings, fold_funcs))
    return result


def condition_holds(condition: ConditionType, bindings: BindingsType,
                    fold_funcs: Optional[FoldFuncsType] = None) -> bool:
    """
    Evaluate a rule's side-condition.

    Callables receive the Bindings. S-expression guards are instantiated
    (computed clauses folded through the prelude) and tested for truth:
    0, "", [] and False are false.
    """
    if condition is None:
        return True
    if callable(condition):
        return bool(condition(Bindings(bindings)))
    result = instantiate(condition, bindings, fold_funcs)
    if isinstance(result, bool):
        return result
    if is_number(result):
        return result != 0
    if isinstance(result, (str, list)):
        return len(result) > 0
    return True


# ============================================================
# Rules
# ============================================================

class Rule:
    """
    One rewrite: pattern, optional side-condition, replacement skeleton.

    apply() tries every consistent match (every segment split) until the
    condition holds, and returns the instantiated skeleton or NoMatch.
    """

    __slots__ = ("pattern", "skeleton", "condition", "name", "fold_funcs")

    def __init__(self, pattern: Any, skeleton: Any, condition: ConditionType = None,
                 name: Optional[str] = None, fold_funcs: Optional[FoldFuncsType] = None):
        self.pattern = pattern
        self.skeleton = skeleton
        self.condition = condition
        self.name = name
        self.fold_funcs = fold_funcs

    def bindings_for(self, expr: ExprType) -> Optional[BindingsType]:
        for candidate in match_all(self.pattern, expr):
            if condition_holds(self.condition, candidate, self.fold_funcs):
                return candidate
        return None

    def apply(self, expr: ExprType):
        bindings = self.bindings_for(expr)
        if bindings is None:
            return NoMatch
        return instantiate(self.skeleton, bindings, self.fold_funcs)

    def __call__(self, expr: ExprType) -> ExprType:
        """Rewrite at the root once, or return expr unchanged."""
        result = self.apply(expr)
        return expr if result is NoMatch else result

    def __repr__(self) -> str:
        return f"Rule({self.name or '<anonymous>'})"


def as_rule(rule: Any, fold_funcs: Optional[FoldFuncsType] = None) -> Rule:
    """Accept Rule objects and [pattern, skeleton] pairs alike."""
    if isinstance(rule, Rule):
        return rule
    pattern, skeleton = rule[0], rule[1]
    condition = rule[2] if len(rule) > 2 else None
    return Rule(pattern, skeleton, condition, fold_funcs=fold_funcs)


# ============================================================
# Rewriter Factory
# ============================================================

def rewriter(
    rules: List[Any],
    fold_funcs: Optional[FoldFuncsType] = None,
    max_steps: int = 10000,
    on_rewrite: Optional[Callable[[int, Rule, ExprType, ExprType], None]] = None,
) -> Callable[[ExprType], ExprType]:
    """
    Create a full-tree rewriter from rules.

    The returned function rewrites bottom-up: operands first, then the node
    itself, trying the rules in order (first match wins) until none applies
    at that node. Whenever a node is rewritten, the new subtree is processed
    again, so the result is a fixed point of the whole rule list.

    on_rewrite(index, rule, before, after) is called for every rewrite.

    Examples:
        simplify = rewriter([[E("(+ ?x 0)"), E(":x")]])
        simplify(E("(* (+ y 0) 2)"))  # => ["*", "y", 2]
    """
    compiled = [as_rule(r, fold_funcs) for r in rules]

    def rewrite_node(exp: ExprType) -> ExprType:
        for index, rule in enumerate(compiled):
            result = rule.apply(exp)
            if result is not NoMatch and result != exp:
                if on_rewrite is not None:
                    on_rewrite(index, rule, exp, result)
                return result
        return NoMatch

    def simplify(exp: ExprType) -> ExprType:
        for _ in range(max_steps):
            if isinstance(exp, list) and exp:
                parts = [simplify(e) for e in exp]
                if parts != exp:
                    exp = parts
            result = rewrite_node(exp)
            if result is NoMatch:
                return exp
            exp = result
        logger.warning("rewriter stopped after %d steps without reaching a fixed point", max_steps)
        return exp

    return simplify


# Convenience alias
simplifier = rewriter
