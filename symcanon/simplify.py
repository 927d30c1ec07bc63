"""
The simplification pipeline.

simplify() combines the rule library with the canonicalizers:

    1. divide numbers through sums, drop unit factors
    2. square roots          (only when sqrt occurs)
    3. trigonometry          (only when a trig function occurs)
    4. logarithms and exp    (only when log or exp occurs)
    5. partial derivatives   (only when partial occurs)
    6. canonicalize

and repeats the whole pipeline until its output stops changing, so
simplify(simplify(e)) == simplify(e).

Canonicalization runs the rational-function analyzer and then the
polynomial analyzer under one shared deadline. If either step times out
(or nests deeper than the configured depth) the input comes back
unchanged and a warning is logged; no other error is swallowed.

    simplify(E("(+ x x)"))                                    # ["*", 2, "x"]
    simplify(E("(+ (expt (sin x) 2) (expt (cos x) 2))"))      # 1
"""

import dataclasses
import logging
import threading
from typing import Callable, Optional

from . import rules
from .analyzer import PolynomialAnalyzer, RationalFunctionAnalyzer
from .config import Deadline, SimplifierConfig
from .engine import format_sexpr, rule_simplifier
from .errors import SimplifyTimeout
from .expression import ExprType, contains_partials, operators_in

logger = logging.getLogger(__name__)

Stage = Callable[[ExprType], ExprType]

_SQRT_OPS = {"sqrt"}
_TRIG_OPS = {"sin", "cos", "tan", "cot", "sec", "csc"}
_LOG_EXP_OPS = {"log", "exp"}


class Simplifier:
    """
    A configured simplification pipeline with its own analyzers.

    Analyzers are injected so tests and callers control caching; by default
    both memoize according to config.memoize.
    """

    def __init__(self, config: Optional[SimplifierConfig] = None,
                 poly_analyzer: Optional[PolynomialAnalyzer] = None,
                 rf_analyzer: Optional[RationalFunctionAnalyzer] = None):
        self.config = config or SimplifierConfig()
        self.poly_analyzer = poly_analyzer or PolynomialAnalyzer(
            memoize=self.config.memoize, timeout_seconds=self.config.timeout_seconds,
            max_depth=self.config.max_depth)
        self.rf_analyzer = rf_analyzer or RationalFunctionAnalyzer(
            memoize=self.config.memoize, timeout_seconds=self.config.timeout_seconds,
            max_depth=self.config.max_depth)
        self._build_stages()

    @classmethod
    def hermetic(cls, config: Optional[SimplifierConfig] = None) -> "Simplifier":
        """A Simplifier whose analyzers keep no state between calls."""
        config = dataclasses.replace(config or SimplifierConfig(), memoize=False)
        return cls(config)

    def clear_caches(self) -> None:
        self.poly_analyzer.clear_cache()
        self.rf_analyzer.clear_cache()

    def __repr__(self) -> str:
        return f"Simplifier({self.config})"

    # ============================================================
    # Canonicalization and the oracles built on it
    # ============================================================

    def canonicalize(self, expr: ExprType) -> ExprType:
        """Both analyzers share one Deadline of config.timeout_seconds."""
        deadline = Deadline(self.config.timeout_seconds)
        try:
            return self.poly_analyzer.simplify(self.rf_analyzer.simplify(expr, deadline), deadline)
        except SimplifyTimeout as exc:
            logger.warning("canonicalization abandoned (%s) for %s", exc, format_sexpr(expr))
            return expr

    def is_zero(self, expr: ExprType) -> bool:
        return self.canonicalize(expr) == 0

    def equivalent(self, a: ExprType, b: ExprType) -> bool:
        return a == b or self.is_zero(["-", a, b])

    # ============================================================
    # Stage combinators
    # ============================================================

    def simplify_and_canonicalize(self, rule_simplify: Stage) -> Stage:
        """Run the rules; canonicalize only when they changed something."""
        def stage(expr: ExprType) -> ExprType:
            new_expr = rule_simplify(expr)
            if new_expr == expr:
                return expr
            return self.canonicalize(new_expr)
        return stage

    def simplify_until_stable(self, rule_simplify: Stage) -> Stage:
        """
        Alternate rules and canonicalization until nothing changes.

        A round whose canonical result is provably equal to its input is
        accepted as the answer.
        """
        def stage(expr: ExprType) -> ExprType:
            for _ in range(self.config.max_passes):
                new_expr = rule_simplify(expr)
                if new_expr == expr:
                    return expr
                canonical = self.canonicalize(new_expr)
                if canonical == expr:
                    return expr
                if self.is_zero(["-", expr, canonical]):
                    return canonical
                expr = canonical
            return expr
        return stage

    def _build_stages(self) -> None:
        zero = self.is_zero
        equivalent = self.equivalent
        sc = self.simplify_and_canonicalize

        self._divide_numbers = rule_simplifier(rules.divide_numbers_through())
        self._sqrt_stages = [
            sc(rule_simplifier(rules.sqrt_expand())),
            sc(rule_simplifier(rules.clear_square_roots())),
            sc(rule_simplifier(rules.sqrt_contract(equivalent))),
        ]
        self._trig_stages = [
            sc(rule_simplifier(rules.trig_to_sincos())),
            self.simplify_until_stable(rule_simplifier(rules.sin_sq_to_cos_sq())),
            sc(rule_simplifier(rules.sincos_flush_ones(zero))),
            sc(rule_simplifier(rules.trig_cleanup(zero))),
            sc(rule_simplifier(rules.sincos_to_trig())),
        ]
        self._log_exp_stages = [
            sc(rule_simplifier(rules.log_exp_inverse(), rules.exp_contract(),
                               rules.log_expand_powers())),
        ]
        self._partial_stages = [sc(rule_simplifier(rules.canonicalize_partials()))]

    # ============================================================
    # The pipeline
    # ============================================================

    def _run(self, name: str, stages, expr: ExprType) -> ExprType:
        for stage in stages:
            expr = stage(expr)
        logger.debug("%s stage: %s", name, format_sexpr(expr))
        return expr

    def _pipeline(self, expr: ExprType) -> ExprType:
        expr = self._divide_numbers(expr)
        ops = operators_in(expr)
        if ops & _SQRT_OPS:
            expr = self._run("sqrt", self._sqrt_stages, expr)
        if operators_in(expr) & _TRIG_OPS:
            expr = self._run("trig", self._trig_stages, expr)
        if operators_in(expr) & _LOG_EXP_OPS:
            expr = self._run("log/exp", self._log_exp_stages, expr)
        if contains_partials(expr):
            expr = self._run("partials", self._partial_stages, expr)
        return self.canonicalize(expr)

    def simplify(self, expr: ExprType) -> ExprType:
        """Repeat the pipeline until its output is a fixed point (at most max_passes times)."""
        current = expr
        for n in range(self.config.max_passes):
            new_expr = self._pipeline(current)
            if new_expr == current:
                return new_expr
            logger.debug("pass %d: %s", n + 1, format_sexpr(new_expr))
            current = new_expr
        logger.debug("no fixed point after %d passes", self.config.max_passes)
        return current

    __call__ = simplify


_default: Optional[Simplifier] = None
_default_lock = threading.Lock()


def default_simplifier() -> Simplifier:
    """The shared Simplifier, configured from the environment on first use."""
    global _default
    with _default_lock:
        if _default is None:
            _default = Simplifier(SimplifierConfig.from_env())
        return _default


def simplify(expr: ExprType, simplifier: Optional[Simplifier] = None) -> ExprType:
    return (simplifier or default_simplifier()).simplify(expr)
