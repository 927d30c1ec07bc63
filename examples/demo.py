#!/usr/bin/env python3
"""
symcanon feature tour

Runs the rule engine, the canonicalizers, the simplifier and forward-mode
differentiation on small examples and prints the results.
"""

from symcanon import (
    RuleEngine, E, FULL_PRELUDE, format_sexpr,
    Polynomial, gcd, PolynomialAnalyzer, RationalFunctionAnalyzer,
    Simplifier, SimplifierConfig, configure_logging,
    TagAllocator, derivative, gradient, differentiate, evaluate_expression,
    rule_simplifier,
)
from symcanon import generic, rules


def section(title: str):
    """Print a section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print('='*60)


def show(source: str, result):
    print(f"  {source} => {format_sexpr(result)}")


def demo_rule_engine():
    """Rules written in the DSL, with guards and groups."""
    section("Rule Engine")

    engine = (RuleEngine()
        .with_prelude(FULL_PRELUDE)
        .load_dsl('''
            [algebra]
            @add-zero: (+ ?x 0) => :x
            @mul-one: (* ?x 1) => :x
            @fold-add: (+ ?a ?b) => (! + :a :b) when (! and (! const? :a) (! const? :b))

            [expand]
            @square: (square ?x) => (* :x :x)
        '''))

    print(f"  Groups: {engine.groups()}")
    for source in ["(+ (* y 1) 0)", "(+ 2 3)", "(square (+ 1 2))"]:
        show(source, engine(E(source)))
    show("(square (+ 1 2)) [algebra only]", engine(E("(square (+ 1 2))"), groups=["algebra"]))

    result, trace = engine(E("(+ (* x 1) 0)"), trace=True)
    print(f"  Trace: {trace.format('compact')}")


def demo_segments():
    """Sequence wildcards match any run of operands."""
    section("Sequence Patterns")

    flatten = rule_simplifier(rules.associative("+", "*"), rules.commutative("+", "*"))
    show("(+ (+ y x) (* b (* a 2)) 1)", flatten(E("(+ (+ y x) (* b (* a 2)) 1)")))

    contract = rule_simplifier(rules.exponent_contract())
    show("(* x x x)", contract(E("(* x x x)")))


def demo_polynomials():
    """Exact polynomial arithmetic."""
    section("Polynomials")

    x = Polynomial.variable(2, 0)
    y = Polynomial.variable(2, 1)
    p = (x + y) * (x - y)
    q = (x + y) ** 2
    print(f"  p = {p}")
    print(f"  q = {q}")
    print(f"  gcd(p, q) = {gcd(p, q)}")
    print(f"  p / q = {p / q}")


def demo_canonical_forms():
    """Expressions through the analyzers."""
    section("Canonical Forms")

    poly = PolynomialAnalyzer()
    rf = RationalFunctionAnalyzer()
    for source in ["(* (+ x 1) (- x 1))", "(+ (sin x) y (sin x))"]:
        show(source, poly(E(source)))
    for source in ["(+ (/ 1 x) (/ 1 (+ x 1)))", "(/ (- (expt x 2) 1) (- x 1))"]:
        show(source, rf(E(source)))


def demo_simplify():
    """The full pipeline."""
    section("Simplification")

    simplifier = Simplifier(SimplifierConfig(timeout_seconds=2.0))
    examples = [
        "(+ (expt (sin x) 2) (expt (cos x) 2))",
        "(* (tan x) (cos x))",
        "(log (exp (+ y y)))",
        "(* (sqrt (+ x 1)) (sqrt (+ 1 x)))",
        "(/ (+ (* 2 x) 2) 2)",
    ]
    for source in examples:
        show(source, simplifier(E(source)))


def demo_derivatives():
    """Forward-mode differentiation."""
    section("Differentiation")

    tags = TagAllocator()
    print(f"  d/dx x^3 at 3 = {derivative(lambda x: x * x * x, tags)(3)}")
    print(f"  d/dx sin x at 0 = {derivative(generic.sin, tags)(0)}")
    print(f"  grad x^2 y at (3, 2) = {gradient(lambda x, y: x * x * y, 2, allocator=tags)(3, 2)}")

    for source in ["(expt x 2)", "(sin x)", "(exp (* 2 x))"]:
        show(f"d/dx {source}", differentiate(E(source), "x", tags))

    show("(+ x (* 2 y)) at x=1, y=2",
         evaluate_expression(E("(+ x (* 2 y))"), {"x": 1, "y": 2}))


def main():
    """Run all demonstrations."""
    configure_logging()
    print("symcanon feature tour")

    demo_rule_engine()
    demo_segments()
    demo_polynomials()
    demo_canonical_forms()
    demo_simplify()
    demo_derivatives()

    print("\n" + "="*60)
    print(" Done")
    print("="*60)


if __name__ == "__main__":
    main()
