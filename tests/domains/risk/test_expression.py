"""Unit tests for the rule expression language."""

import pytest

from riskguard.domains.risk.errors import RuleCompileError, RuleEvaluationError
from riskguard.domains.risk.rules import compile_condition, compile_expression, tokenize

FACTS = {
    "actor_id": "actor-1",
    "amount": 2_000_000,
    "payment_method": "card",
    "tx_count_1h": 4,
    "failed_tx_count_1h": 0,
}


class TestTokenize:
    def test_operators_and_names(self):
        tokens = tokenize("amount >= 10 && payment_method == 'card'")
        assert [t.value for t in tokens] == [
            "amount", ">=", "10", "&&", "payment_method", "==", "'card'", "",
        ]
        assert tokens[-1].kind == "end"

    def test_unexpected_character(self):
        with pytest.raises(RuleCompileError, match="Unexpected character"):
            tokenize("amount > 5 $ 3")


class TestCompileExpression:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("amount > 1000000", True),
            ("amount < 1000000", False),
            ("amount >= 2000000 and tx_count_1h == 4", True),
            ("amount > 5000000 or payment_method == \"card\"", True),
            ("not (tx_count_1h > 10)", True),
            ("!(amount > 0)", False),
            ("tx_count_1h * 2 + 1 == 9", True),
            ("amount / 1000 > 1999.5", True),
            ("amount % 7 == 2000000 % 7", True),
            ("-tx_count_1h < 0", True),
            ("payment_method in ['card', 'wallet']", True),
            ("payment_method in []", False),
            ("true || false", True),
            ("1 + 2 * 3 == 7", True),
        ],
    )
    def test_evaluates(self, source, expected):
        assert compile_expression(source)(FACTS) is expected

    def test_and_short_circuits(self):
        predicate = compile_expression("amount < 0 and missing_fact > 1")
        assert predicate(FACTS) is False

    def test_unknown_fact_raises_at_evaluation(self):
        predicate = compile_expression("missing_fact > 1")
        with pytest.raises(RuleEvaluationError, match="missing_fact"):
            predicate(FACTS)

    def test_logical_operand_must_be_boolean(self):
        predicate = compile_expression("amount and true")
        with pytest.raises(RuleEvaluationError):
            predicate(FACTS)

    @pytest.mark.parametrize(
        "source",
        ["", "   ", "amount >", "(amount > 1", "amount > 1)", "amount > > 1", "and", "[1, 2"],
    )
    def test_malformed_rejected(self, source):
        with pytest.raises(RuleCompileError):
            compile_expression(source)

    def test_moderate_nesting_compiles(self):
        source = "(" * 10 + "amount > 1" + ")" * 10
        assert compile_expression(source)(FACTS) is True
        assert compile_expression("not " * 10 + "true")(FACTS) is True

    @pytest.mark.parametrize(
        "source",
        [
            "(" * 400 + "amount > 1" + ")" * 400,
            "not " * 400 + "true",
            "- " * 400 + "1 > 0",
            "1 in " + "[" * 400 + "1" + "]" * 400,
        ],
    )
    def test_deep_nesting_rejected(self, source):
        with pytest.raises(RuleCompileError, match="nested"):
            compile_expression(source)


class TestCompileCondition:
    def test_expression_string(self):
        assert compile_condition("amount > 1000000")(FACTS) is True

    def test_non_boolean_result_raises(self):
        predicate = compile_condition("amount + 1")
        with pytest.raises(RuleEvaluationError, match="boolean"):
            predicate(FACTS)

    def test_amount_gt_variant(self):
        predicate = compile_condition('{"type": "amount_gt", "value": 1000000}')
        assert predicate(FACTS) is True
        assert predicate({**FACTS, "amount": 10}) is False

    def test_velocity_variant(self):
        predicate = compile_condition(
            '{"type": "velocity", "metric": "tx_count_1h", "threshold": 4}'
        )
        assert predicate(FACTS) is True
        assert predicate({**FACTS, "tx_count_1h": 3}) is False

    def test_composite_variants(self):
        condition = """
        {"type": "and", "conditions": [
            {"type": "amount_gt", "value": 1000},
            {"type": "not", "condition": {"type": "expr", "expression": "failed_tx_count_1h > 0"}},
            {"type": "or", "conditions": [
                {"type": "velocity", "metric": "tx_count_1h", "threshold": 100},
                {"type": "expr", "expression": "payment_method == 'card'"}
            ]}
        ]}
        """
        assert compile_condition(condition)(FACTS) is True
        assert compile_condition(condition)({**FACTS, "failed_tx_count_1h": 2}) is False

    @pytest.mark.parametrize(
        "condition",
        [
            "{not json",
            '{"type": "teleport"}',
            '{"type": "amount_gt", "value": "lots"}',
            '{"type": "amount_gt", "value": true}',
            '{"type": "velocity", "metric": "logins_1h", "threshold": 3}',
            '{"type": "and", "conditions": []}',
            '{"type": "not"}',
            '{"type": "expr", "expression": 5}',
            '{"type": "expr", "expression": "amount >"}',
        ],
    )
    def test_invalid_variants_rejected(self, condition):
        with pytest.raises(RuleCompileError):
            compile_condition(condition)

    def test_deeply_nested_variants_rejected(self):
        depth = 100
        condition = (
            '{"type": "not", "condition": ' * depth
            + '{"type": "amount_gt", "value": 1}'
            + "}" * depth
        )
        with pytest.raises(RuleCompileError, match="nested"):
            compile_condition(condition)

    def test_json_beyond_parser_recursion_rejected(self):
        depth = 100_000
        condition = '{"a": ' * depth + "1" + "}" * depth
        with pytest.raises(RuleCompileError, match="nested"):
            compile_condition(condition)
