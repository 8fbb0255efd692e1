"""The risk level ladder: one place that maps a score to a level."""

from .models import RiskLevel

MIN_SCORE = 0
MAX_SCORE = 100

# Inclusive upper bound of each level, in ascending order
_LADDER: tuple[tuple[int, RiskLevel], ...] = (
    (19, RiskLevel.VERY_LOW),
    (40, RiskLevel.LOW),
    (60, RiskLevel.MEDIUM),
    (80, RiskLevel.HIGH),
    (MAX_SCORE, RiskLevel.CRITICAL),
)


def clamp_score(value: float) -> int:
    """Round to the nearest integer and clamp into [0, 100]."""
    return max(MIN_SCORE, min(MAX_SCORE, int(round(value))))


def classify_risk_level(score: int) -> RiskLevel:
    if not MIN_SCORE <= score <= MAX_SCORE:
        raise ValueError(f"Risk score {score} outside [{MIN_SCORE}, {MAX_SCORE}]")
    for upper, level in _LADDER:
        if score <= upper:
            return level
    raise AssertionError("unreachable: ladder covers the full score range")
