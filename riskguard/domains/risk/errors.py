"""Error taxonomy for the risk domain.

Only ValidationError, PersistenceError and DeadlineExceeded ever escape
RiskAggregator.evaluate_risk. Everything else is raised at a collaborator
seam and downgraded to an omitted signal by the aggregator.
"""


class RiskError(Exception):
    """Base class for all risk-domain errors."""


class ValidationError(RiskError, ValueError):
    """Missing or malformed primary input."""


class StorageError(RiskError):
    """A repository read or write failed."""


class PersistenceError(StorageError):
    """The final analysis result could not be recorded."""


class RemoteUnavailable(RiskError):
    """The best-effort remote risk collaborator failed or timed out."""


class RuleCompileError(RiskError):
    """A stored rule condition could not be compiled."""

    def __init__(self, message: str, rule_id: int | None = None) -> None:
        super().__init__(message)
        self.rule_id = rule_id


class RuleEvaluationError(RiskError):
    """A compiled rule could not be evaluated against the given facts."""


class DeadlineExceeded(RiskError, TimeoutError):
    """The caller-supplied evaluation deadline expired."""
