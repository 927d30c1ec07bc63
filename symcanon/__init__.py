"""
SYMCANON - symbolic simplification through rewriting and canonical forms

Expressions are nested lists in prefix form over numbers and symbols.
Rules rewrite them, exact polynomial and rational-function arithmetic puts
them in canonical form, and forward-mode differentials differentiate them.

Quick Start:
    from symcanon import E, simplify, differentiate

    simplify(E("(+ x x)"))                                   # ["*", 2, "x"]
    simplify(E("(+ (expt (sin x) 2) (expt (cos x) 2))"))     # 1
    differentiate(E("(expt x 2)"), "x")                      # ["*", 2, "x"]

Rule engine:
    from symcanon import RuleEngine

    engine = RuleEngine.from_dsl('''
        @add-zero: (+ ?x 0) => :x
        @mul-one: (* ?x 1) => :x
    ''')

    engine(["+", "y", 0])  # => "y"

Pattern Syntax:
    ?x                 - match any expression, bind to x
    ?x:const           - match a number only
    ?x:var             - match a symbol only
    ?x:even, ?x:int    - typed bindings (see PATTERN_PREDICATES)
    ?xs...             - match any run of elements, bind a list
    :x                 - substitute bound value
    :xs...             - splice a bound list
    (! op args...)     - compute op over the instantiated args

Logging goes to the "symcanon" logger; call configure_logging() to see it.
"""

import logging

__version__ = "0.1.0"

from .errors import (
    SymcanonError,
    IllegalStateError,
    InexactDivisionError,
    SimplifyTimeout,
)

from .config import SimplifierConfig, Deadline, configure_logging

from .expression import (
    ExprType,
    compare_expressions,
    sort_key,
    operators_in,
    variables_in,
)

from .ordering import lex_order, graded_lex_order, graded_reverse_lex_order

from .polynomial import Polynomial, gcd
from .rational import RationalFunction

# Core rewriter components
from .rewriter import (
    rewriter,
    simplifier,
    match,
    match_all,
    instantiate,
    Rule,
    BindingsType,
    NumericType,
    FoldHandler,
    FoldFuncsType,
    # Bindings classes
    Bindings,
    NoMatch,
    wrap_bindings,
    # Fold operation builders
    nary_fold,
    unary_only,
    binary_only,
    # Standard preludes
    ARITHMETIC_PRELUDE,
    PATTERN_PREDICATES,
    PREDICATE_PRELUDE,
    FULL_PRELUDE,
    NO_PRELUDE,
)

# Engine and DSL
from .engine import (
    RuleEngine,
    SequencedEngine,
    RuleMetadata,
    RewriteStep,
    RewriteTrace,
    Ruleset,
    ruleset,
    rule_simplifier,
    E,
    parse_sexpr,
    format_sexpr,
    parse_rule_line,
    load_rules_from_dsl,
)

from .differential import (
    Differential,
    TagAllocator,
    derivative,
    partial,
    gradient,
    differentiate,
)

from .generic import GENERIC_PRELUDE, evaluate_expression

from .analyzer import PolynomialAnalyzer, RationalFunctionAnalyzer
from .simplify import Simplifier, simplify, default_simplifier

logging.getLogger(__name__).addHandler(logging.NullHandler())

# Public API
__all__ = [
    # Version
    "__version__",
    # Errors
    "SymcanonError",
    "IllegalStateError",
    "InexactDivisionError",
    "SimplifyTimeout",
    # Configuration
    "SimplifierConfig",
    "Deadline",
    "configure_logging",
    # Expressions
    "ExprType",
    "compare_expressions",
    "sort_key",
    "operators_in",
    "variables_in",
    # Algebra
    "lex_order",
    "graded_lex_order",
    "graded_reverse_lex_order",
    "Polynomial",
    "gcd",
    "RationalFunction",
    # Core
    "rewriter",
    "simplifier",
    "match",
    "match_all",
    "instantiate",
    "Rule",
    # Types
    "BindingsType",
    "NumericType",
    "FoldHandler",
    "FoldFuncsType",
    # Bindings
    "Bindings",
    "NoMatch",
    "wrap_bindings",
    # Fold operation builders
    "nary_fold",
    "unary_only",
    "binary_only",
    # Standard preludes
    "ARITHMETIC_PRELUDE",
    "PATTERN_PREDICATES",
    "PREDICATE_PRELUDE",
    "FULL_PRELUDE",
    "NO_PRELUDE",
    "GENERIC_PRELUDE",
    # Engine
    "RuleEngine",
    "SequencedEngine",
    "RuleMetadata",
    "RewriteStep",
    "RewriteTrace",
    "Ruleset",
    "ruleset",
    "rule_simplifier",
    # Expression builder
    "E",
    # DSL utilities
    "parse_sexpr",
    "format_sexpr",
    "parse_rule_line",
    "load_rules_from_dsl",
    # Differentiation
    "Differential",
    "TagAllocator",
    "derivative",
    "partial",
    "gradient",
    "differentiate",
    "evaluate_expression",
    # Simplification
    "PolynomialAnalyzer",
    "RationalFunctionAnalyzer",
    "Simplifier",
    "simplify",
    "default_simplifier",
]
