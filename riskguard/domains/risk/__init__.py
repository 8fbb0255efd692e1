"""Risk evaluation domain."""

from .aggregator import RiskAggregator, fuse_signals
from .antibot import AntiBotDetector
from .classification import clamp_score, classify_risk_level
from .errors import (
    DeadlineExceeded,
    PersistenceError,
    RemoteUnavailable,
    RiskError,
    RuleCompileError,
    RuleEvaluationError,
    StorageError,
    ValidationError,
)
from .fraud_rings import FraudRingDetector, edges_from_shared_values
from .frequency import FrequencyEstimator
from .models import (
    BehaviorSample,
    BehaviorSnapshot,
    BlacklistEntry,
    BlacklistType,
    BotAssessment,
    FraudRing,
    RelationEdge,
    RelationKind,
    RiskAnalysisResult,
    RiskContext,
    RiskItem,
    RiskLevel,
    RiskRule,
    RiskType,
    VelocityMetrics,
)
from .remote import HttpRemoteRiskClient, RemoteRiskClient
from .repository import RiskRepository, SqlRiskRepository
from .rules_engine import RuleEngine, build_facts

__all__ = [
    "AntiBotDetector",
    "BehaviorSample",
    "BehaviorSnapshot",
    "BlacklistEntry",
    "BlacklistType",
    "BotAssessment",
    "DeadlineExceeded",
    "FraudRing",
    "FraudRingDetector",
    "FrequencyEstimator",
    "HttpRemoteRiskClient",
    "PersistenceError",
    "RelationEdge",
    "RelationKind",
    "RemoteRiskClient",
    "RemoteUnavailable",
    "RiskAggregator",
    "RiskAnalysisResult",
    "RiskContext",
    "RiskError",
    "RiskItem",
    "RiskLevel",
    "RiskRepository",
    "RiskRule",
    "RiskType",
    "RuleCompileError",
    "RuleEngine",
    "RuleEvaluationError",
    "SqlRiskRepository",
    "StorageError",
    "ValidationError",
    "VelocityMetrics",
    "build_facts",
    "clamp_score",
    "classify_risk_level",
    "edges_from_shared_values",
    "fuse_signals",
]
