"""Compiles stored rule conditions into predicates.

A condition is either an expression string (see ``expression``) or a JSON
object naming one of a closed set of predicate variants::

    {"type": "amount_gt", "value": 1000000}
    {"type": "velocity", "metric": "tx_count_1h", "threshold": 10}
    {"type": "and", "conditions": [...]}
    {"type": "or", "conditions": [...]}
    {"type": "not", "condition": {...}}
    {"type": "expr", "expression": "failed_tx_count_1h > 3"}

Both forms compile to the same predicate shape.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..errors import RuleCompileError, RuleEvaluationError
from ..models import RiskRule
from .expression import MAX_NESTING, Facts, compile_expression

Predicate = Callable[[Facts], bool]

VELOCITY_METRICS = frozenset({"tx_count_1h", "tx_amount_1h", "tx_count_24h", "failed_tx_count_1h"})


@dataclass(frozen=True)
class CompiledRule:
    rule: RiskRule
    predicate: Predicate

    def matches(self, facts: Facts) -> bool:
        return self.predicate(facts)


def _as_predicate(node: Callable[[Facts], Any]) -> Predicate:
    def predicate(facts: Facts) -> bool:
        result = node(facts)
        if not isinstance(result, bool):
            raise RuleEvaluationError(
                f"Condition produced {type(result).__name__}, expected a boolean"
            )
        return result

    return predicate


def _number(spec: dict[str, Any], key: str) -> float:
    value = spec.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleCompileError(f"{spec.get('type')!r} condition needs a numeric {key!r}")
    return value


def _fact(facts: Facts, name: str) -> Any:
    try:
        return facts[name]
    except KeyError:
        raise RuleEvaluationError(f"Unknown fact {name!r}") from None


def _compile_variant(spec: Any, depth: int = 0) -> Predicate:
    if depth > MAX_NESTING:
        raise RuleCompileError(f"Condition nested deeper than {MAX_NESTING} levels")
    if not isinstance(spec, dict):
        raise RuleCompileError("Condition must be a JSON object")

    kind = spec.get("type")
    if kind == "amount_gt":
        limit = _number(spec, "value")
        return lambda facts: _fact(facts, "amount") > limit

    if kind == "velocity":
        metric = spec.get("metric")
        if metric not in VELOCITY_METRICS:
            raise RuleCompileError(f"Unknown velocity metric {metric!r}")
        threshold = _number(spec, "threshold")
        return lambda facts: _fact(facts, metric) >= threshold

    if kind in ("and", "or"):
        children = spec.get("conditions")
        if not isinstance(children, list) or not children:
            raise RuleCompileError(f"{kind!r} condition needs a non-empty 'conditions' list")
        compiled = [_compile_variant(child, depth + 1) for child in children]
        if kind == "and":
            return lambda facts: all(p(facts) for p in compiled)
        return lambda facts: any(p(facts) for p in compiled)

    if kind == "not":
        inner = _compile_variant(spec.get("condition"), depth + 1)
        return lambda facts: not inner(facts)

    if kind == "expr":
        source = spec.get("expression")
        if not isinstance(source, str):
            raise RuleCompileError("'expr' condition needs an 'expression' string")
        return _as_predicate(compile_expression(source))

    raise RuleCompileError(f"Unknown condition type {kind!r}")


def compile_condition(condition: str) -> Predicate:
    text = condition.strip()
    if text.startswith("{"):
        try:
            spec = json.loads(text)
        except json.JSONDecodeError as exc:
            raise RuleCompileError(f"Invalid JSON condition: {exc.msg}") from exc
        except RecursionError as exc:
            raise RuleCompileError("JSON condition nested too deeply") from exc
        return _compile_variant(spec)
    return _as_predicate(compile_expression(text))


def compile_rule(rule: RiskRule) -> CompiledRule:
    try:
        predicate = compile_condition(rule.condition)
    except RuleCompileError as exc:
        raise RuleCompileError(f"Rule {rule.name!r}: {exc}", rule_id=rule.id) from exc
    return CompiledRule(rule=rule, predicate=predicate)
