"""Unit tests for the score-to-level ladder."""

import pytest

from riskguard.domains.risk.classification import clamp_score, classify_risk_level
from riskguard.domains.risk.models import RiskLevel


@pytest.mark.parametrize(
    "score, expected",
    [
        (0, RiskLevel.VERY_LOW),
        (19, RiskLevel.VERY_LOW),
        (20, RiskLevel.LOW),
        (40, RiskLevel.LOW),
        (41, RiskLevel.MEDIUM),
        (60, RiskLevel.MEDIUM),
        (61, RiskLevel.HIGH),
        (80, RiskLevel.HIGH),
        (81, RiskLevel.CRITICAL),
        (100, RiskLevel.CRITICAL),
    ],
)
def test_ladder_boundaries(score, expected):
    assert classify_risk_level(score) == expected


def test_ladder_is_monotonic():
    levels = [classify_risk_level(score) for score in range(101)]
    assert levels == sorted(levels)
    assert set(levels) == set(RiskLevel)


@pytest.mark.parametrize("score", [-1, 101, 1000])
def test_out_of_range_rejected(score):
    with pytest.raises(ValueError):
        classify_risk_level(score)


@pytest.mark.parametrize(
    "value, expected",
    [(-5, 0), (0, 0), (14.2, 14), (14.6, 15), (99.9, 100), (150, 100)],
)
def test_clamp_score(value, expected):
    assert clamp_score(value) == expected
