"""Tests for rewriting strategies, engine sequencing and root-only rulesets."""

import pytest
from symcanon import (
    RuleEngine, SequencedEngine, Ruleset, ruleset, rule_simplifier, NoMatch,
    E, ARITHMETIC_PRELUDE,
)


# ============================================================
# Strategies
# ============================================================

class TestBottomUp:
    """The default strategy: operands first, then the node, to a fixed point."""

    def test_bottomup_is_default(self):
        """Calling the engine rewrites the whole tree to a fixed point."""
        engine = RuleEngine.from_dsl('''
            @add-zero: (+ ?x 0) => :x
            @mul-one: (* ?x 1) => :x
        ''')
        assert engine(E("(sin (+ (* y 1) 0))")) == ["sin", "y"]

    def test_bottomup_simplifies_children_first(self):
        """Inner rewrites enable outer ones in the same call."""
        engine = RuleEngine.from_dsl('''
            @inner: (complex) => simple
            @outer: (f simple) => done
        ''')
        assert engine(E("(f (complex))")) == "done"

    def test_bottomup_with_constant_folding(self):
        """Bottom-up strategy works with constant folding."""
        engine = RuleEngine.from_dsl("@fold: (+ ?a:const ?b:const) => (! + :a :b)",
                                     fold_funcs=ARITHMETIC_PRELUDE)
        assert engine(E("(f (+ 1 (+ 2 3)))"), strategy="bottomup") == ["f", 6]

    def test_rewritten_node_is_revisited(self):
        """A rewrite that creates new redexes below is processed again."""
        engine = RuleEngine.from_dsl('''
            @expand: (square ?x) => (* :x :x)
            @mul-one: (* 1 1) => 1
        ''')
        assert engine(E("(square (square 1))")) == 1


class TestOnce:
    """The 'once' strategy applies at most one rewrite."""

    def test_once_applies_single_rule(self):
        """Only the first rewrite happens."""
        engine = RuleEngine.from_dsl('''
            @a: (a) => (b)
            @b: (b) => (c)
        ''')
        assert engine(E("(a)"), strategy="once") == ["b"]

    def test_once_prefers_top_level(self):
        """The root is tried before the operands."""
        engine = RuleEngine.from_dsl('''
            @outer: (f ?x) => (outer-fired :x)
            @inner: (a) => inner-fired
        ''')
        assert engine(E("(f (a))"), strategy="once") == ["outer-fired", ["a"]]

    def test_once_finds_rule_in_subexpression(self):
        """Without a root match the first operand match is rewritten."""
        engine = RuleEngine.from_dsl("@add-zero: (+ ?x 0) => :x")
        assert engine(E("(* (+ y 0) (+ z 0))"), strategy="once") == ["*", "y", ["+", "z", 0]]

    def test_once_returns_unchanged_if_no_match(self):
        """No match leaves the expression alone."""
        engine = RuleEngine.from_dsl("@add-zero: (+ ?x 0) => :x")
        assert engine(E("(* y 2)"), strategy="once") == ["*", "y", 2]


class TestTopDown:
    """The 'topdown' strategy tries each node before its operands."""

    def test_topdown_tries_parent_first(self):
        """An expanding rule at the root fires before operand rules."""
        engine = RuleEngine.from_dsl('''
            @expand: (square ?x) => (* :x :x)
            @fold: (* ?a:const ?b:const) => (! * :a :b)
        ''', fold_funcs=ARITHMETIC_PRELUDE)
        assert engine(E("(square 3)"), strategy="topdown") == 9

    def test_topdown_with_constant_folding(self):
        """Top-down strategy recurses when the root does not match."""
        engine = RuleEngine.from_dsl("@fold: (+ ?a:const ?b:const) => (! + :a :b)",
                                     fold_funcs=ARITHMETIC_PRELUDE)
        assert engine(E("(f (+ 1 2))"), strategy="topdown") == ["f", 3]


class TestStrategyComparison:
    """Tests comparing different strategies."""

    def test_all_strategies_reach_same_fixpoint(self):
        """For confluent rules, bottomup and topdown agree."""
        engine = RuleEngine.from_dsl('''
            @add-zero-r: (+ ?x 0) => :x
            @add-zero-l: (+ 0 ?x) => :x
            @mul-one-r: (* ?x 1) => :x
            @mul-one-l: (* 1 ?x) => :x
        ''')
        expr = E("(+ (* 1 x) 0)")
        assert engine(expr, strategy="bottomup") == "x"
        assert engine(expr, strategy="topdown") == "x"

    def test_invalid_strategy_raises(self):
        """Invalid strategy name raises ValueError listing the valid ones."""
        engine = RuleEngine.from_dsl("@rule: (a) => (b)")
        with pytest.raises(ValueError) as exc_info:
            engine(E("(a)"), strategy="exhaustive")
        assert "bottomup" in str(exc_info.value)


# ============================================================
# Sequencing with >>
# ============================================================

class TestSequencedEngine:
    """Tests for SequencedEngine and >> operator."""

    def test_sequencing_builds_sequenced_engine(self):
        """>> creates a SequencedEngine."""
        phase1 = RuleEngine.from_dsl("@step1: (a) => (b)")
        phase2 = RuleEngine.from_dsl("@step2: (b) => (c)")
        assert isinstance(phase1 >> phase2, SequencedEngine)

    def test_each_phase_to_fixpoint(self):
        """Each phase runs until its fixpoint before the next starts."""
        flatten = RuleEngine.from_dsl("@flatten: (+ ?a... (+ ?b...) ?c...) => (+ :a... :b... :c...)")
        fold = RuleEngine.from_dsl(
            "@fold: (+ ?a:const ?b:const ?rest...) => (+ (! + :a :b) :rest...)",
            fold_funcs=ARITHMETIC_PRELUDE)
        single = RuleEngine.from_dsl("@unary: (+ ?x) => :x")
        pipeline = flatten >> fold >> single
        assert len(pipeline) == 3
        assert pipeline(E("(+ (+ 1 2) (+ 3 4))")) == 10

    def test_phase_order_matters(self):
        """The last phase decides the result."""
        expand = RuleEngine.from_dsl("@expand: (double ?x) => (+ :x :x)")
        collect = RuleEngine.from_dsl("@collect: (+ ?x ?x) => (double :x)")
        assert (expand >> collect)(E("(double y)")) == ["double", "y"]
        assert (collect >> expand)(E("(+ y y)")) == ["+", "y", "y"]

    def test_sequenced_passes_kwargs(self):
        """Keyword arguments reach every phase."""
        phase1 = RuleEngine.from_dsl("@outer: (f ?x) => (g :x)")
        phase2 = RuleEngine.from_dsl("@inner: (a) => b")
        assert (phase1 >> phase2)(E("(f (a))"), strategy="once") == ["g", "b"]

    def test_sequenced_repr_and_iter(self):
        """repr names the phase count; iteration yields the engines."""
        phase1 = RuleEngine.from_dsl("@a: (a) => b")
        phase2 = RuleEngine.from_dsl("@b: (b) => c")
        pipeline = phase1 >> phase2
        assert "2 phases" in repr(pipeline)
        assert list(pipeline) == [phase1, phase2]


# ============================================================
# Root-only rulesets
# ============================================================

class TestRuleset:
    """Rulesets rewrite at the root only; rule_simplifier rewrites everywhere."""

    def test_ruleset_root_only(self):
        """A Ruleset does not look inside operands."""
        rs = ruleset([E("(+ ?x 0)"), E(":x")])
        assert rs(E("(+ y 0)")) == "y"
        assert rs(E("(f (+ y 0))")) == ["f", ["+", "y", 0]]

    def test_ruleset_apply_reports_no_match(self):
        """apply() returns NoMatch where calling returns the input."""
        rs = ruleset([E("(+ ?x 0)"), E(":x")])
        assert rs.apply(E("(* y 2)")) is NoMatch
        assert rs(E("(* y 2)")) == ["*", "y", 2]

    def test_first_rule_wins(self):
        """Rules are tried in order."""
        rs = Ruleset([[E("(f ?x)"), "first"], [E("(f ?x)"), "second"]])
        assert rs(E("(f 1)")) == "first"
        assert len(rs) == 2

    def test_rule_simplifier_unions_rulesets(self):
        """rule_simplifier rewrites the whole tree with every ruleset."""
        add_zero = ruleset([E("(+ ?x 0)"), E(":x")])
        mul_one = ruleset([E("(* ?x 1)"), E(":x")])
        simplify = rule_simplifier(add_zero, mul_one)
        assert simplify(E("(sin (+ (* y 1) 0))")) == ["sin", "y"]
