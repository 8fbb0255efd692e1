"""Hot-swappable rule evaluation over a flat fact map."""

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

import structlog

from .classification import clamp_score, classify_risk_level
from .errors import RuleCompileError
from .models import RiskContext, RiskItem, RiskRule, VelocityMetrics
from .repository import RiskRepository
from .rules import CompiledRule, compile_rule

logger = structlog.get_logger()


def build_facts(context: RiskContext, velocity: VelocityMetrics | None = None) -> dict[str, Any]:
    """Join the transaction context and velocity counters into one fact map."""
    facts = context.to_facts()
    if velocity is not None:
        facts.update(velocity.model_dump())
    return facts


class RuleEngine:
    """Evaluates operator-configured rules.

    The compiled rule set is an immutable tuple. A reload builds a new tuple
    and swaps it in with a single assignment, so an evaluate() that already
    grabbed the old tuple finishes against it undisturbed.
    """

    def __init__(self, rules: Iterable[RiskRule] = ()) -> None:
        self._compiled: tuple[CompiledRule, ...] = ()
        self.last_loaded_at: datetime | None = None
        if rules:
            self.replace_rules(rules)

    @property
    def rule_count(self) -> int:
        return len(self._compiled)

    @property
    def rules(self) -> tuple[RiskRule, ...]:
        return tuple(c.rule for c in self._compiled)

    def replace_rules(self, rules: Iterable[RiskRule]) -> int:
        """Compile ``rules`` and swap them in. Returns the number compiled."""
        compiled: list[CompiledRule] = []
        skipped = 0
        for rule in rules:
            if not rule.enabled:
                continue
            try:
                compiled.append(compile_rule(rule))
            except RuleCompileError as exc:
                skipped += 1
                logger.warning(
                    "rule_compile_failed", rule_id=rule.id, rule_name=rule.name, error=str(exc)
                )

        self._compiled = tuple(compiled)
        self.last_loaded_at = datetime.now(UTC)
        logger.info("rules_loaded", rule_count=len(compiled), skipped=skipped)
        return len(compiled)

    async def load_rules(self, repository: RiskRepository) -> int:
        """Pull enabled rules from storage and swap them in.

        A storage failure propagates and leaves the current rule set in place.
        """
        rules = await repository.list_enabled_rules()
        return self.replace_rules(rules)

    def evaluate(self, facts: Mapping[str, Any]) -> list[RiskItem]:
        compiled = self._compiled
        now = datetime.now(UTC)
        items: list[RiskItem] = []
        for entry in compiled:
            rule = entry.rule
            try:
                matched = entry.matches(facts)
            except Exception as exc:
                logger.debug(
                    "rule_evaluation_failed", rule_id=rule.id, rule_name=rule.name, error=str(exc)
                )
                continue
            if not matched:
                continue

            score = clamp_score(rule.score)
            items.append(
                RiskItem(
                    type=rule.type,
                    level=classify_risk_level(score),
                    score=score,
                    reason=f"Rule matched: {rule.name}",
                    timestamp=now,
                )
            )

        if items:
            logger.info(
                "rules_matched",
                matched=[item.reason for item in items],
                rule_count=len(compiled),
            )
        return items
