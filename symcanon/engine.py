"""
Rule engine, s-expression reader and rule DSL loader.

DSL format:
    # Comment
    [group-name]
    @rule-name: (pattern) => (skeleton)
    @rule-name[priority] "Description text": (pattern) => (skeleton) when (guard)

    Examples:
    @add-zero: (+ ?x 0) => :x
    @power-of-power: (expt (expt ?x ?a:int) ?b:int) => (expt :x (! * :a :b))
    @fold-plus: (+ ?a ?b) => (! + :a :b) when (! and (! const? :a) (! const? :b))

Pattern syntax:
    ?x or ?x:expr      - match any expression, bind to x
    ?x:const           - match constant only
    ?x:var             - match symbol only
    ?x:free(v)         - match expression not containing the symbol bound to v
    ?x:int, ?x:even... - typed binding, see rewriter.PATTERN_PREDICATES
    ?xs...             - match zero or more operands, anywhere in the list
    ?xs:const...       - the same, each operand constrained

Skeleton syntax:
    :x      - substitute bound value of x
    :xs...  - splice a bound operand list
    (! op args...) - computed clause, folded through the engine's prelude
    literal - use as-is

Numbers read as int, then n/d Fraction, then float.

Tracing:
    Use RuleEngine.simplify(expr, trace=True) to see which rules are applied.
"""

import logging
import re
from fractions import Fraction
from typing import Callable, Dict, List, Optional, Tuple, Union

from .rewriter import (
    rewriter, match as _match_internal, match_all, condition_holds, ExprType,
    FoldFuncsType, PATTERN_PREDICATES, Bindings, NoMatch, Rule, as_rule,
)

logger = logging.getLogger(__name__)


# ============================================================
# Expression Builder
# ============================================================

class _ExprBuilder:
    """
    Expression builder.

    Examples:
        from symcanon import E

        expr = E("(+ x (* 2 y))")
        expr = E.op("+", "x", E.op("*", 2, "y"))
        x, y = E.vars("x", "y")
    """

    def __call__(self, s: str) -> ExprType:
        """
        Parse an s-expression string.

        Examples:
            E("(+ x 1)") -> ["+", "x", 1]
            E("(* 1/2 x)") -> ["*", Fraction(1, 2), "x"]
        """
        return parse_sexpr(s)

    def op(self, name, *args) -> List:
        """Build a compound expression: E.op("+", "x", 1) -> ["+", "x", 1]."""
        return [name] + list(args)

    def var(self, name: str) -> str:
        return name

    def vars(self, *names: str) -> Tuple[str, ...]:
        """
        Create multiple variables for unpacking.

        Example:
            x, y, z = E.vars("x", "y", "z")
        """
        return names

    def const(self, value: Union[int, float, Fraction]) -> Union[int, float, Fraction]:
        return value

    def __repr__(self) -> str:
        return "E (expression builder)"


# Singleton instance
E = _ExprBuilder()


_FRACTION = re.compile(r'^[+-]?\d+/\d+$')


def _parse_atom(s: str) -> ExprType:
    try:
        return int(s)
    except ValueError:
        pass
    if _FRACTION.match(s):
        value = Fraction(s)
        return value.numerator if value.denominator == 1 else value
    if any(ch.isdigit() for ch in s):
        try:
            return float(s)
        except ValueError:
            pass

    if s.startswith('?'):
        return _parse_pattern_variable(s[1:])

    if s.startswith(':') and len(s) > 1:
        rest = s[1:].strip()
        if rest.endswith('...'):
            return [":...", rest[:-3].strip()]
        return [":", rest]

    return s


def _parse_pattern_variable(rest: str) -> ExprType:
    is_rest = rest.endswith('...')
    if is_rest:
        rest = rest[:-3]

    if ':' not in rest:
        name = rest.strip() or 'x'
        return ["?...", name] if is_rest else ["?", name]

    name_part, type_part = rest.split(':', 1)
    name = name_part.strip() or 'x'

    if is_rest:
        if type_part in ("expr", ""):
            return ["?...", name]
        if type_part not in PATTERN_PREDICATES:
            raise ValueError(f"Unknown pattern type '{type_part}' in ?{rest}...")
        return ["?...", name, type_part]

    if type_part == 'const':
        return ["?c", name]
    if type_part == 'var':
        return ["?v", name]
    if type_part in ('expr', ''):
        return ["?", name]
    if type_part.startswith('free(') and type_part.endswith(')'):
        return ["?free", name, type_part[5:-1].strip()]
    if type_part in PATTERN_PREDICATES:
        return ["?", name, type_part]
    raise ValueError(f"Unknown pattern type '{type_part}' in ?{rest}")


def parse_sexpr(s: str) -> ExprType:
    """
    Parse an S-expression string into a nested list.

    Examples:
        "(+ x 1)" -> ["+", "x", 1]
        "(expt ?x ?n:even)" -> ["expt", ["?", "x"], ["?", "n", "even"]]

    Raises ValueError on unbalanced parentheses.
    """
    s = s.strip()
    if not s:
        return None

    if s.startswith('('):
        depth = 0
        parts = []
        current = ''
        i = 1  # Skip opening paren
        closed = False

        while i < len(s):
            c = s[i]
            if c == '(':
                depth += 1
                current += c
            elif c == ')':
                if depth == 0:
                    if current.strip():
                        parts.append(parse_sexpr(current.strip()))
                    closed = True
                    break
                depth -= 1
                current += c
            elif c in ' \t\n' and depth == 0:
                if current.strip():
                    parts.append(parse_sexpr(current.strip()))
                current = ''
            else:
                current += c
            i += 1

        if not closed:
            raise ValueError(f"Unbalanced parentheses in: {s}")
        if s[i + 1:].strip():
            raise ValueError(f"Trailing text after expression: {s[i + 1:].strip()}")
        return parts

    # ?x:free(v) is the only atom that carries parentheses
    if s.count('(') != s.count(')'):
        raise ValueError(f"Unbalanced parentheses in: {s}")
    return _parse_atom(s)


def format_sexpr(expr: ExprType, dsl_syntax: bool = True) -> str:
    """
    Format an expression as an S-expression string.

    Examples:
        ["+", "x", 1] -> "(+ x 1)"
        ["*", Fraction(1, 2), "x"] -> "(* 1/2 x)"
        ["?", "n", "even"] -> "?n:even" (with dsl_syntax=True)
        [":...", "xs"] -> ":xs..." (with dsl_syntax=True)
    """
    if isinstance(expr, list):
        if not expr:
            return "()"

        if dsl_syntax and len(expr) == 2:
            op = expr[0]
            if op == "?":
                return f"?{expr[1]}"
            elif op == ":":
                return f":{expr[1]}"
            elif op == "?c":
                return f"?{expr[1]}:const"
            elif op == "?v":
                return f"?{expr[1]}:var"
            elif op == "?...":
                return f"?{expr[1]}..."
            elif op == ":...":
                return f":{expr[1]}..."

        if dsl_syntax and len(expr) == 3 and isinstance(expr[2], str):
            op = expr[0]
            if op == "?free":
                return f"?{expr[1]}:free({expr[2]})"
            elif op == "?...":
                return f"?{expr[1]}:{expr[2]}..."
            elif op == "?":
                return f"?{expr[1]}:{expr[2]}"

        parts = [format_sexpr(e, dsl_syntax) for e in expr]
        return "(" + " ".join(parts) + ")"
    if isinstance(expr, Fraction):
        return f"{expr.numerator}/{expr.denominator}"
    return str(expr)


# ============================================================
# Rule DSL
# ============================================================

class RuleMetadata:
    """Metadata for a rule including name, description, priority, and condition."""

    def __init__(self, name: Optional[str] = None, description: Optional[str] = None,
                 tags: Optional[List[str]] = None, condition: Optional[ExprType] = None,
                 priority: int = 0):
        self.name = name
        self.description = description
        self.tags = tags or []
        self.condition = condition
        self.priority = priority  # Higher priority fires first

    def __repr__(self) -> str:
        if self.name:
            base = f"@{self.name}[{self.priority}]" if self.priority != 0 else f"@{self.name}"
            if self.description:
                base += f" \"{self.description}\""
        else:
            base = "<anonymous>"
        if self.condition is not None and not callable(self.condition):
            base += f" when {format_sexpr(self.condition)}"
        return base


_HEADER = re.compile(r'@([\w?-]+)(?:\[(-?\d+)\])?(?:\s+"([^"]*)")?:\s*(.+)')


def _find_when(rest: str) -> int:
    """Position of a top-level 'when' keyword, or -1."""
    depth = 0
    for i, ch in enumerate(rest):
        if ch == '(':
            depth += 1
        elif ch == ')':
            depth -= 1
        elif depth == 0 and rest.startswith('when', i) and (i == 0 or rest[i - 1].isspace()):
            after = i + 4
            if after >= len(rest) or rest[after].isspace():
                return i
    return -1


def parse_rule_line(line: str) -> Optional[Tuple[RuleMetadata, ExprType, ExprType]]:
    """
    Parse a single rule line.

    Formats:
        @name: pattern => skeleton
        @name[priority] "description": pattern => skeleton when condition
        pattern => skeleton

    Returns (metadata, pattern, skeleton), or None for blank and comment lines.
    Raises ValueError for a line that is neither a rule nor blank.
    """
    line = line.strip()
    if not line or line.startswith('#'):
        return None

    metadata = RuleMetadata()
    if line.startswith('@'):
        header = _HEADER.match(line)
        if not header:
            raise ValueError(f"Malformed rule header: {line}")
        metadata.name = header.group(1)
        metadata.priority = int(header.group(2)) if header.group(2) else 0
        metadata.description = header.group(3)
        line = header.group(4)

    if '=>' not in line:
        raise ValueError(f"Rule has no '=>': {line}")

    pattern_str, rest = (part.strip() for part in line.split('=>', 1))
    skeleton_str = rest
    when_pos = _find_when(rest)
    if when_pos >= 0:
        skeleton_str = rest[:when_pos].strip()
        metadata.condition = parse_sexpr(rest[when_pos + 4:].strip())

    pattern = parse_sexpr(pattern_str)
    skeleton = parse_sexpr(skeleton_str)
    if pattern is None or skeleton is None:
        raise ValueError(f"Rule is missing a pattern or skeleton: {line}")

    return (metadata, pattern, skeleton)


def load_rules_from_dsl(text: str) -> List[Tuple[RuleMetadata, List]]:
    """
    Load rules from DSL text.

    A [groupname] line tags every following rule with that group.

    Example:
        [algebra]
        @add-zero: (+ ?x 0) => :x

        [fold]
        @fold: (* ?a:const ?b:const) => (! * :a :b)

    Returns:
        List of (metadata, [pattern, skeleton]) tuples
    """
    rules = []
    current_group = None

    for lineno, line in enumerate(text.split('\n'), 1):
        stripped = line.strip()
        if stripped.startswith('[') and stripped.endswith(']'):
            current_group = stripped[1:-1].strip()
            continue
        try:
            result = parse_rule_line(line)
        except ValueError as exc:
            raise ValueError(f"line {lineno}: {exc}") from exc
        if result:
            metadata, pattern, skeleton = result
            if current_group and current_group not in metadata.tags:
                metadata.tags.append(current_group)
            rules.append((metadata, [pattern, skeleton]))
    return rules


# ============================================================
# Tracing
# ============================================================

class RewriteStep:
    """A single step in a rewriting trace."""

    def __init__(self, rule_index: int, metadata: RuleMetadata,
                 before: ExprType, after: ExprType):
        self.rule_index = rule_index
        self.metadata = metadata
        self.before = before
        self.after = after

    @property
    def rule_name(self) -> str:
        return self.metadata.name or f"rule[{self.rule_index}]"

    def __repr__(self) -> str:
        return f"{self.rule_name}: {format_sexpr(self.before)} -> {format_sexpr(self.after)}"

    def to_dict(self) -> Dict:
        return {
            "rule_index": self.rule_index,
            "rule_name": self.metadata.name,
            "description": self.metadata.description,
            "before": self.before,
            "after": self.after,
        }


class RewriteTrace:
    """
    A trace of all rewriting steps applied.

    Formats:
        - repr / format("verbose"): multi-line with before/after
        - format("compact"): single line showing the rule chain
        - format("rules"): just the rule names applied
        - format("chain"): the expression after every step
    """

    def __init__(self):
        self.steps: List[RewriteStep] = []
        self.initial: ExprType = None
        self.final: ExprType = None

    def add_step(self, step: RewriteStep):
        self.steps.append(step)

    def format(self, style: str = "verbose") -> str:
        if style == "compact":
            return (f"{format_sexpr(self.initial)} --[{', '.join(self.rules_applied())}]--> "
                    f"{format_sexpr(self.final)}")
        elif style == "rules":
            rules = self.rules_applied()
            return " -> ".join(rules) if rules else "(no rules applied)"
        elif style == "chain":
            parts = [format_sexpr(self.initial)]
            for step in self.steps:
                parts.append(f"  --({step.rule_name})-->")
                parts.append(format_sexpr(step.after))
            return "\n".join(parts)
        return repr(self)

    def __repr__(self) -> str:
        lines = [f"Initial: {format_sexpr(self.initial)}"]
        for i, step in enumerate(self.steps, 1):
            lines.append(f"  {i}. {step}")
        lines.append(f"Final: {format_sexpr(self.final)}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def __bool__(self) -> bool:
        """True if any rewriting was done."""
        return len(self.steps) > 0

    def to_dict(self) -> Dict:
        return {
            "initial": self.initial,
            "final": self.final,
            "steps": [step.to_dict() for step in self.steps],
            "step_count": len(self.steps),
        }

    def rule_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for step in self.steps:
            counts[step.rule_name] = counts.get(step.rule_name, 0) + 1
        return counts

    def rules_applied(self) -> List[str]:
        return [s.rule_name for s in self.steps]

    def summary(self) -> str:
        if not self.steps:
            return "No rewriting performed"
        counts = self.rule_counts()
        most_used = max(counts.items(), key=lambda x: x[1])
        return (f"{len(self.steps)} steps using {len(counts)} unique rules. "
                f"Most used: {most_used[0]} ({most_used[1]}x)")


# ============================================================
# Rule Engine
# ============================================================

STRATEGIES = ("bottomup", "once", "topdown")


class RuleEngine:
    """
    An ordered ruleset with names, priorities and groups.

    Rules are tried in priority order (stable for equal priorities); the
    first whose pattern matches and whose guard holds wins.

    Example:
        engine = RuleEngine.from_dsl('''
            @add-zero "Adding zero has no effect": (+ ?x 0) => :x
            @mul-one: (* ?x 1) => :x
        ''')
        engine(E("(+ (* y 1) 0)"))  # => "y"

        # Computed clauses need a prelude
        engine = RuleEngine.from_dsl(rules, fold_funcs=ARITHMETIC_PRELUDE)
    """

    def __init__(self, fold_funcs: Optional[FoldFuncsType] = None):
        self._rules: List[List] = []
        self._metadata: List[RuleMetadata] = []
        self._rule_names: Dict[str, int] = {}
        self._compiled: Optional[List[Rule]] = None
        self._fold_funcs: Optional[FoldFuncsType] = fold_funcs
        self._disabled_groups: set = set()

    def _invalidate(self) -> None:
        self._compiled = None

    def _reindex(self) -> None:
        self._rule_names = {}
        for idx, meta in enumerate(self._metadata):
            if meta.name:
                self._rule_names[meta.name] = idx

    def _sort_by_priority(self) -> None:
        """Higher priority first; equal priorities keep their relative order."""
        indexed = sorted(range(len(self._rules)), key=lambda i: (-self._metadata[i].priority, i))
        self._rules = [self._rules[i] for i in indexed]
        self._metadata = [self._metadata[i] for i in indexed]
        self._reindex()
        self._invalidate()

    def _rule_objects(self) -> List[Rule]:
        if self._compiled is None:
            self._compiled = [
                Rule(pattern, skeleton, meta.condition, meta.name, self._fold_funcs)
                for (pattern, skeleton), meta in zip(self._rules, self._metadata)
            ]
        return self._compiled

    # ============================================================
    # Loading
    # ============================================================

    def _extend(self, parsed: List[Tuple[RuleMetadata, List]]) -> 'RuleEngine':
        for metadata, rule in parsed:
            self._rules.append(rule)
            self._metadata.append(metadata)
        self._sort_by_priority()
        return self

    def load_dsl(self, text: str) -> 'RuleEngine':
        """Load rules from DSL text."""
        return self._extend(load_rules_from_dsl(text))

    def load_rules(self, rules: List) -> 'RuleEngine':
        """Load [pattern, skeleton] pairs, [pattern, skeleton, condition] triples or Rule objects."""
        parsed = []
        for rule in rules:
            if isinstance(rule, Rule):
                parsed.append((RuleMetadata(name=rule.name, condition=rule.condition),
                               [rule.pattern, rule.skeleton]))
            else:
                condition = rule[2] if len(rule) > 2 else None
                parsed.append((RuleMetadata(condition=condition), [rule[0], rule[1]]))
        return self._extend(parsed)

    def with_prelude(self, fold_funcs: FoldFuncsType) -> 'RuleEngine':
        """
        Set the prelude used for computed clauses and guards.

            engine = RuleEngine().with_prelude(FULL_PRELUDE).load_dsl(...)
        """
        self._fold_funcs = fold_funcs
        self._invalidate()
        return self

    def add_rule(self, pattern: ExprType, skeleton, name: Optional[str] = None,
                 description: Optional[str] = None, condition=None,
                 priority: int = 0) -> 'RuleEngine':
        """Add a single rule; skeleton and condition may be callables."""
        metadata = RuleMetadata(name=name, description=description,
                                condition=condition, priority=priority)
        return self._extend([(metadata, [pattern, skeleton])])

    def get_rule(self, name: str) -> Optional[Tuple[List, RuleMetadata]]:
        if name in self._rule_names:
            idx = self._rule_names[name]
            return self._rules[idx], self._metadata[idx]
        return None

    def get_metadata(self, index: int) -> RuleMetadata:
        return self._metadata[index] if index < len(self._metadata) else RuleMetadata()

    # ============================================================
    # Group Management
    # ============================================================

    def disable_group(self, group: str) -> 'RuleEngine':
        self._disabled_groups.add(group)
        return self

    def enable_group(self, group: str) -> 'RuleEngine':
        self._disabled_groups.discard(group)
        return self

    def groups(self) -> set:
        all_groups = set()
        for meta in self._metadata:
            all_groups.update(meta.tags)
        return all_groups

    def _is_rule_active(self, metadata: RuleMetadata, groups: Optional[List[str]] = None) -> bool:
        """
        Untagged rules are always active. With explicit groups, a tagged rule
        must belong to one of them; otherwise it must not be in a disabled group.
        """
        if not metadata.tags:
            return True
        if groups is not None:
            return any(g in groups for g in metadata.tags)
        return not any(g in self._disabled_groups for g in metadata.tags)

    def _active(self, groups: Optional[List[str]] = None) -> List[Tuple[int, Rule]]:
        return [(i, rule) for i, rule in enumerate(self._rule_objects())
                if self._is_rule_active(self._metadata[i], groups)]

    # ============================================================
    # Matching and single steps
    # ============================================================

    def match(self, pattern: Union[str, ExprType], expr: ExprType):
        """
        Match a pattern against an expression.

        Example:
            if bindings := engine.match("(+ ?a ?b)", expr):
                print(bindings["a"], bindings["b"])
        """
        if isinstance(pattern, str):
            pattern = parse_sexpr(pattern)
        return _match_internal(pattern, expr)

    def apply_once(self, expr: ExprType,
                   groups: Optional[List[str]] = None) -> Tuple[ExprType, Optional[RuleMetadata]]:
        """
        Apply at most one rule at the root of expr.

        Returns (result, metadata of the applied rule), or (expr, None).
        """
        for idx, rule in self._active(groups):
            result = rule.apply(expr)
            if result is not NoMatch:
                return result, self._metadata[idx]
        return expr, None

    def rules_matching(self, expr: ExprType, check_conditions: bool = True,
                       groups: Optional[List[str]] = None) -> List[Tuple[RuleMetadata, Bindings]]:
        """
        Every rule that could apply at the root of expr, with its bindings.

        Useful for finding out why an expression does not simplify.
        """
        matching = []
        for idx, rule in self._active(groups):
            for candidate in match_all(rule.pattern, expr):
                if check_conditions and not condition_holds(rule.condition, candidate, rule.fold_funcs):
                    continue
                matching.append((self._metadata[idx], Bindings(candidate)))
                break
        return matching

    @property
    def rules(self) -> List[List]:
        return self._rules.copy()

    # ============================================================
    # Strategies
    # ============================================================

    def simplify(
        self,
        expr: ExprType,
        trace: bool = False,
        max_steps: int = 10000,
        strategy: str = "bottomup",
        groups: Optional[List[str]] = None,
    ):
        """
        Rewrite an expression with the active rules.

        Args:
            expr: Expression to simplify
            trace: If True, return (result, RewriteTrace)
            max_steps: Bound on rewrite steps
            strategy:
                - "bottomup": operands first, then the node, until no rule
                  applies anywhere (default)
                - "once": at most one rewrite, the first match in pre-order
                - "topdown": the node first, then operands, until fixpoint
            groups: Restrict to rules of these groups
        """
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy: {strategy}. "
                             f"Valid options: {', '.join(STRATEGIES)}")
        trace_obj = RewriteTrace() if trace else None
        record = self._recorder(trace_obj)

        if strategy == "bottomup":
            active = self._active(groups)
            indices = [i for i, _ in active]

            def on_rewrite(local_index, rule, before, after):
                record(indices[local_index], before, after)

            run = rewriter([rule for _, rule in active], max_steps=max_steps,
                           on_rewrite=on_rewrite if trace else None)
            result = run(expr)
        elif strategy == "once":
            result = self._rewrite_once(expr, groups, record)
        else:
            result = expr
            for _ in range(max_steps):
                new_expr = self._topdown_pass(result, groups, record)
                if new_expr == result:
                    break
                result = new_expr

        if trace:
            trace_obj.initial = expr
            trace_obj.final = result
            return result, trace_obj
        return result

    def _recorder(self, trace_obj: Optional[RewriteTrace]) -> Callable:
        def record(idx: int, before: ExprType, after: ExprType) -> None:
            logger.debug("rule %s: %s -> %s", self._metadata[idx].name or idx,
                         format_sexpr(before), format_sexpr(after))
            if trace_obj is not None:
                trace_obj.add_step(RewriteStep(idx, self._metadata[idx], before, after))
        return record

    def _rewrite_at(self, expr: ExprType, groups, record):
        for idx, rule in self._active(groups):
            result = rule.apply(expr)
            if result is not NoMatch and result != expr:
                record(idx, expr, result)
                return result
        return NoMatch

    def _rewrite_once(self, expr: ExprType, groups, record) -> ExprType:
        result = self._rewrite_at(expr, groups, record)
        if result is not NoMatch:
            return result
        if isinstance(expr, list):
            for i, child in enumerate(expr):
                new_child = self._rewrite_once(child, groups, record)
                if new_child != child:
                    return expr[:i] + [new_child] + expr[i + 1:]
        return expr

    def _topdown_pass(self, expr: ExprType, groups, record) -> ExprType:
        result = self._rewrite_at(expr, groups, record)
        if result is not NoMatch:
            return result
        if isinstance(expr, list) and expr:
            return [self._topdown_pass(child, groups, record) for child in expr]
        return expr

    # ============================================================
    # Export and container protocol
    # ============================================================

    def clear(self) -> 'RuleEngine':
        self._rules = []
        self._metadata = []
        self._rule_names = {}
        self._invalidate()
        return self

    def list_rules(self) -> List[str]:
        """All rules in DSL form, in firing order."""
        result = []
        for (pattern, skeleton), meta in zip(self._rules, self._metadata):
            rule_str = f"{format_sexpr(pattern)} => " + (
                "<function>" if callable(skeleton) else format_sexpr(skeleton))
            if meta.name:
                head = f"@{meta.name}[{meta.priority}]" if meta.priority != 0 else f"@{meta.name}"
                if meta.description:
                    head += f" \"{meta.description}\""
                rule_str = f"{head}: {rule_str}"
            if meta.condition is not None:
                rule_str += " when " + (
                    "<function>" if callable(meta.condition) else format_sexpr(meta.condition))
            result.append(rule_str)
        return result

    def to_dsl(self, name: Optional[str] = None) -> str:
        """DSL text for the rules, with [group] headers."""
        lines = []
        if name:
            lines.extend([f"# {name}", ""])
        current_group = None
        for meta, rule_str in zip(self._metadata, self.list_rules()):
            rule_group = meta.tags[0] if meta.tags else None
            if rule_group != current_group:
                if rule_group:
                    if lines and lines[-1] != "":
                        lines.append("")
                    lines.append(f"[{rule_group}]")
                current_group = rule_group
            lines.append(rule_str)
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"RuleEngine({len(self._rules)} rules)"

    def __call__(self, expr: ExprType, **kwargs) -> ExprType:
        """engine(expr) is shorthand for engine.simplify(expr)."""
        return self.simplify(expr, **kwargs)

    def __iter__(self):
        """Iterate over (rule, metadata) pairs."""
        return iter(zip(self._rules, self._metadata))

    def __contains__(self, name: str) -> bool:
        return name in self._rule_names

    def __getitem__(self, name: str) -> Tuple[List, RuleMetadata]:
        if name not in self._rule_names:
            raise KeyError(f"No rule named '{name}'")
        idx = self._rule_names[name]
        return self._rules[idx], self._metadata[idx]

    @classmethod
    def from_dsl(cls, text: str, fold_funcs: Optional[FoldFuncsType] = None) -> 'RuleEngine':
        return cls(fold_funcs=fold_funcs).load_dsl(text)

    @classmethod
    def from_rules(cls, rules: List, fold_funcs: Optional[FoldFuncsType] = None) -> 'RuleEngine':
        return cls(fold_funcs=fold_funcs).load_rules(rules)

    def copy(self) -> 'RuleEngine':
        new_engine = RuleEngine(fold_funcs=self._fold_funcs)
        new_engine._rules = self._rules.copy()
        new_engine._metadata = self._metadata.copy()
        new_engine._disabled_groups = set(self._disabled_groups)
        new_engine._reindex()
        return new_engine

    def __or__(self, other: 'RuleEngine') -> 'RuleEngine':
        """Union of two engines: engine1 | engine2."""
        return self.copy()._extend(list(zip(other._metadata, other._rules)))

    def __rshift__(self, other) -> 'SequencedEngine':
        """
        Sequence two engines: engine1 >> engine2.

        Each engine runs to its own fixpoint before the next starts.
        """
        return SequencedEngine([self, other])


class SequencedEngine:
    """Engines applied one after another; created with >> on RuleEngine."""

    def __init__(self, engines: List):
        self._engines = engines

    def __call__(self, expr: ExprType, **kwargs) -> ExprType:
        result = expr
        for engine in self._engines:
            result = engine(result, **kwargs)
        return result

    def __rshift__(self, other) -> 'SequencedEngine':
        """Chain another engine: (a >> b) >> c."""
        if isinstance(other, SequencedEngine):
            return SequencedEngine(self._engines + other._engines)
        return SequencedEngine(self._engines + [other])

    def __repr__(self) -> str:
        return f"SequencedEngine({len(self._engines)} phases)"

    def __len__(self) -> int:
        return len(self._engines)

    def __iter__(self):
        return iter(self._engines)


# ============================================================
# Rulesets as plain functions
# ============================================================

class Ruleset:
    """
    Rules tried in order at the root of an expression only.

    Calling a Ruleset returns the first rewrite, or the expression itself
    when no rule applies. apply() returns NoMatch instead.
    """

    def __init__(self, rules: List, fold_funcs: Optional[FoldFuncsType] = None):
        self.rules = [as_rule(r, fold_funcs) for r in rules]

    def apply(self, expr: ExprType):
        for rule in self.rules:
            result = rule.apply(expr)
            if result is not NoMatch:
                return result
        return NoMatch

    def __call__(self, expr: ExprType) -> ExprType:
        result = self.apply(expr)
        return expr if result is NoMatch else result

    def __len__(self) -> int:
        return len(self.rules)

    def __repr__(self) -> str:
        return f"Ruleset({len(self.rules)} rules)"


def ruleset(*rules, fold_funcs: Optional[FoldFuncsType] = None) -> Ruleset:
    """Build a root-only Ruleset from Rule objects or [pattern, skeleton(, condition)] lists."""
    return Ruleset(list(rules), fold_funcs)


def rule_simplifier(*rulesets: Ruleset, max_steps: int = 10000) -> Callable[[ExprType], ExprType]:
    """
    Full-tree bottom-up rewriter over the union of the rulesets, run to a
    fixed point: at every node the rules are retried until none applies.
    """
    rules: List[Rule] = []
    for rs in rulesets:
        rules.extend(rs.rules if isinstance(rs, Ruleset) else [as_rule(rs)])
    return rewriter(rules, max_steps=max_steps)
