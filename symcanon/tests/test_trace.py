"""Tests for rewrite traces."""

import json

import pytest
from symcanon import RuleEngine, E, RewriteTrace, RewriteStep, RuleMetadata, FULL_PRELUDE


IDENTITIES = '''
    @add-zero "x + 0 = x": (+ ?x 0) => :x
    @mul-one: (* ?x 1) => :x
    @mul-zero: (* ?x 0) => 0
'''


@pytest.fixture
def engine():
    return RuleEngine.from_dsl(IDENTITIES)


class TestTraceRecording:
    """What simplify(trace=True) records."""

    def test_returns_result_and_trace(self, engine):
        """trace=True returns (result, RewriteTrace)."""
        result, trace = engine(E("(+ (* x 1) 0)"), trace=True)
        assert result == "x"
        assert isinstance(trace, RewriteTrace)
        assert trace.initial == ["+", ["*", "x", 1], 0]
        assert trace.final == "x"

    def test_steps_in_bottomup_order(self, engine):
        """Operands are rewritten before their parents."""
        _, trace = engine(E("(+ (* x 1) 0)"), trace=True)
        assert trace.rules_applied() == ["mul-one", "add-zero"]
        assert trace.steps[0].before == ["*", "x", 1]
        assert trace.steps[0].after == "x"

    def test_steps_chain(self, engine):
        """Each step records the subtree it rewrote."""
        _, trace = engine(E("(* (+ y 0) 0)"), trace=True)
        assert [(s.before, s.after) for s in trace] == [
            (["+", "y", 0], "y"),
            (["*", "y", 0], 0),
        ]

    def test_once_and_topdown_trace(self, engine):
        """Every strategy records its steps."""
        _, trace = engine(E("(+ (* x 1) 0)"), trace=True, strategy="once")
        assert trace.rules_applied() == ["add-zero"]
        _, trace = engine(E("(+ (* x 1) 0)"), trace=True, strategy="topdown")
        assert trace.rules_applied() == ["add-zero", "mul-one"]

    def test_trace_with_guards(self):
        """Only the rule whose guard held is recorded."""
        engine = RuleEngine.from_dsl('''
            @abs-pos: (abs ?x) => :x when (! > :x 0)
            @abs-neg: (abs ?x) => (! - :x) when (! < :x 0)
        ''', fold_funcs=FULL_PRELUDE)
        result, trace = engine(E("(abs -4)"), trace=True)
        assert result == 4
        assert trace.rules_applied() == ["abs-neg"]

    def test_anonymous_rules_are_numbered(self):
        """Rules without names show their index."""
        engine = RuleEngine.from_rules([[E("(+ ?x 0)"), E(":x")]])
        _, trace = engine(E("(+ y 0)"), trace=True)
        assert trace.rules_applied() == ["rule[0]"]


class TestTraceFormatting:
    """Tests for trace format() method."""

    def test_format_verbose(self, engine):
        """Verbose format shows full details."""
        _, trace = engine(E("(+ (* x 1) 0)"), trace=True)
        verbose = trace.format("verbose")
        assert "Initial: (+ (* x 1) 0)" in verbose
        assert "Final: x" in verbose
        assert "1. mul-one: (* x 1) -> x" in verbose

    def test_format_compact(self, engine):
        """Compact format is a single line."""
        _, trace = engine(E("(+ (* x 1) 0)"), trace=True)
        assert trace.format("compact") == "(+ (* x 1) 0) --[mul-one, add-zero]--> x"

    def test_format_rules(self, engine):
        """Rules format shows just rule names."""
        _, trace = engine(E("(+ (* x 1) 0)"), trace=True)
        assert trace.format("rules") == "mul-one -> add-zero"

    def test_format_chain(self, engine):
        """Chain format shows the expression after every step."""
        _, trace = engine(E("(+ x 0)"), trace=True)
        assert trace.format("chain") == "(+ x 0)\n  --(add-zero)-->\nx"

    def test_format_empty_trace(self, engine):
        """Empty trace formats correctly."""
        _, trace = engine(E("(+ x y)"), trace=True)
        assert not trace
        assert trace.format("rules") == "(no rules applied)"
        assert trace.format("chain") == "(+ x y)"
        assert trace.summary() == "No rewriting performed"


class TestTraceExport:
    """Counting and dict export."""

    def test_rule_counts_and_summary(self, engine):
        """rule_counts tallies rules; summary names the most used."""
        _, trace = engine(E("(+ (+ (+ x 0) 0) 0)"), trace=True)
        assert trace.rule_counts() == {"add-zero": 3}
        assert len(trace) == 3
        assert "Most used: add-zero (3x)" in trace.summary()

    def test_to_dict_serializable(self, engine):
        """to_dict output survives JSON encoding."""
        _, trace = engine(E("(+ (* x 1) 0)"), trace=True)
        data = json.loads(json.dumps(trace.to_dict()))
        assert data["step_count"] == 2
        assert data["steps"][1]["rule_name"] == "add-zero"
        assert data["steps"][1]["description"] == "x + 0 = x"

    def test_step_repr(self):
        """A step prints its rule and transformation."""
        step = RewriteStep(0, RuleMetadata(name="mul-one"), ["*", "x", 1], "x")
        assert repr(step) == "mul-one: (* x 1) -> x"
