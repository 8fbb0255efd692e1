"""Unit tests for the hot-swappable rule engine."""

import pytest

from riskguard.domains.risk.errors import RuleCompileError
from riskguard.domains.risk.models import (
    RiskContext,
    RiskLevel,
    RiskRule,
    RiskType,
    VelocityMetrics,
)
from riskguard.domains.risk.rules import compile_rule
from riskguard.domains.risk.rules_engine import RuleEngine, build_facts


def _rule(name: str, condition: str, score: int = 50, **kwargs) -> RiskRule:
    return RiskRule(name=name, condition=condition, score=score, **kwargs)


@pytest.fixture
def facts() -> dict:
    context = RiskContext(actor_id="actor-1", ip="10.0.0.1", device_id="dev-1", amount=2_000_000)
    return build_facts(context, VelocityMetrics(tx_count_1h=12, failed_tx_count_1h=1))


class TestBuildFacts:
    def test_merges_context_and_velocity(self, facts):
        assert facts["amount"] == 2_000_000
        assert facts["actor_id"] == "actor-1"
        assert facts["tx_count_1h"] == 12
        assert facts["tx_amount_1h"] == 0

    def test_without_velocity(self):
        facts = build_facts(RiskContext(actor_id="a"))
        assert "tx_count_1h" not in facts
        assert facts["amount"] == 0


class TestRuleEngine:
    def test_matching_rule_produces_item(self, facts):
        engine = RuleEngine([_rule("large_amount", "amount > 1000000", score=70)])
        items = engine.evaluate(facts)

        assert len(items) == 1
        item = items[0]
        assert item.type == RiskType.RULE_MATCH
        assert item.score == 70
        assert item.level == RiskLevel.HIGH
        assert item.reason == "Rule matched: large_amount"

    def test_non_matching_rule_produces_nothing(self, facts):
        engine = RuleEngine([_rule("huge_amount", "amount > 9000000")])
        assert engine.evaluate(facts) == []

    def test_custom_rule_type_carried(self, facts):
        rule = _rule("velocity", "tx_count_1h > 10", type=RiskType.ANOMALOUS_TRANSACTION)
        items = RuleEngine([rule]).evaluate(facts)
        assert items[0].type == RiskType.ANOMALOUS_TRANSACTION

    def test_score_clamped(self, facts):
        items = RuleEngine([_rule("over", "amount > 0", score=250)]).evaluate(facts)
        assert items[0].score == 100
        assert items[0].level == RiskLevel.CRITICAL

    def test_malformed_rule_does_not_block_others(self, facts):
        engine = RuleEngine(
            [
                _rule("broken", "amount > > 5", score=90),
                _rule("large_amount", "amount > 1000000", score=70),
            ]
        )
        assert engine.rule_count == 1
        items = engine.evaluate(facts)
        assert [item.reason for item in items] == ["Rule matched: large_amount"]

    def test_deeply_nested_rule_skipped_not_fatal(self, facts):
        deep = "(" * 400 + "amount > 1" + ")" * 400
        deep_json = '{"type": "not", "condition": ' * 100 + '{"type": "amount_gt", "value": 1}'
        deep_json += "}" * 100
        engine = RuleEngine()

        compiled = engine.replace_rules(
            [
                _rule("deep_parens", deep, score=90),
                _rule("deep_json", deep_json, score=90),
                _rule("large_amount", "amount > 1000000", score=70),
            ]
        )

        assert compiled == 1
        assert [r.name for r in engine.rules] == ["large_amount"]
        items = engine.evaluate(facts)
        assert [item.reason for item in items] == ["Rule matched: large_amount"]

    def test_runtime_failure_treated_as_no_match(self, facts):
        engine = RuleEngine(
            [
                _rule("non_boolean", "amount + 1", score=90),
                _rule("unknown_fact", "chargebacks_30d > 2", score=90),
                _rule("failed_tx", "failed_tx_count_1h >= 1", score=30),
            ]
        )
        assert engine.rule_count == 3
        items = engine.evaluate(facts)
        assert [item.reason for item in items] == ["Rule matched: failed_tx"]

    def test_disabled_rules_skipped(self, facts):
        engine = RuleEngine([_rule("off", "amount > 0", enabled=False)])
        assert engine.rule_count == 0
        assert engine.evaluate(facts) == []

    def test_replace_rules_swaps_whole_set(self, facts):
        engine = RuleEngine([_rule("a", "amount > 0")])
        snapshot = engine.rules

        compiled = engine.replace_rules([_rule("b", "amount > 0"), _rule("c", "amount < 0")])

        assert compiled == 2
        assert [r.name for r in engine.rules] == ["b", "c"]
        # The previously observed set is untouched
        assert [r.name for r in snapshot] == ["a"]
        assert engine.last_loaded_at is not None

    def test_empty_engine(self, facts):
        engine = RuleEngine()
        assert engine.rule_count == 0
        assert engine.last_loaded_at is None
        assert engine.evaluate(facts) == []

    @pytest.mark.asyncio
    async def test_load_rules_from_repository(self, repository, facts):
        repository.rules = [
            _rule("large_amount", "amount > 1000000", score=70),
            _rule("disabled", "amount > 0", enabled=False),
        ]
        engine = RuleEngine()

        loaded = await engine.load_rules(repository)

        assert loaded == 1
        assert len(engine.evaluate(facts)) == 1

    @pytest.mark.asyncio
    async def test_load_failure_keeps_current_rules(self, repository):
        engine = RuleEngine([_rule("kept", "amount > 0")])
        repository.fail_on.add("list_enabled_rules")

        with pytest.raises(RuntimeError):
            await engine.load_rules(repository)

        assert [r.name for r in engine.rules] == ["kept"]


class TestCompileRule:
    def test_error_carries_rule_id(self):
        rule = RiskRule(id=7, name="bad", condition="amount >", score=10)
        with pytest.raises(RuleCompileError) as excinfo:
            compile_rule(rule)
        assert excinfo.value.rule_id == 7
        assert "bad" in str(excinfo.value)
