"""Risk evaluation configuration with sensible defaults."""

import os
from dataclasses import dataclass, field


@dataclass
class ScoringWeights:
    """Weights for the fused risk score.

    The score is the plain sum of weight * factor over the signals present.
    bot, financial, location and amount sum to 1.0; rule matches add on top
    and the fused score is clamped to 100.
    """

    bot: float = 0.4
    financial: float = 0.3
    location: float = 0.2
    amount: float = 0.1
    rules: float = 0.3

    def __post_init__(self) -> None:
        values = self.as_dict().values()
        if any(w < 0 for w in values):
            raise ValueError("Scoring weights must be non-negative")
        if not any(w > 0 for w in values):
            raise ValueError("At least one scoring weight must be positive")

    def as_dict(self) -> dict[str, float]:
        return {
            "bot": self.bot,
            "financial": self.financial,
            "location": self.location,
            "amount": self.amount,
            "rules": self.rules,
        }


@dataclass
class AmountThresholds:
    # Amounts are integer minor units (cents)
    high_amount: int = 5_000_000
    elevated_amount: int = 1_000_000
    high_factor: float = 1.0
    elevated_factor: float = 0.5


@dataclass
class DeviationFactors:
    ip_changed: float = 0.8
    device_changed: float = 0.5
    both_changed: float = 1.0


@dataclass
class SketchSettings:
    width: int = 2048
    depth: int = 4
    decay_factor: float = 0.5
    decay_interval_seconds: float = 10.0


@dataclass
class BotThresholds:
    actor_request_max: int = 20
    ip_request_max: int = 50
    pattern_min_samples: int = 5
    pattern_window: int = 10
    interval_variance_max: float = 0.1
    interval_mean_max_seconds: float = 2.0
    direct_kill_lookback: int = 5
    ip_actor_max: int = 10
    history_limit: int = 100
    retention_seconds: float = 300.0
    browser_tokens: tuple[str, ...] = ("Mozilla", "Chrome", "Safari", "Firefox", "Edge")


@dataclass
class RemoteSettings:
    timeout_seconds: float = 0.3
    symbol: str = "PAYMENT"
    side: str = "OUT"


@dataclass
class RiskConfig:
    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    amount: AmountThresholds = field(default_factory=AmountThresholds)
    deviation: DeviationFactors = field(default_factory=DeviationFactors)
    sketch: SketchSettings = field(default_factory=SketchSettings)
    bot: BotThresholds = field(default_factory=BotThresholds)
    remote: RemoteSettings = field(default_factory=RemoteSettings)

    @classmethod
    def from_env(cls) -> "RiskConfig":
        """Load config with env var overrides. Env vars use RISK_ prefix."""
        config = cls()

        # Weight overrides
        if v := os.getenv("RISK_WEIGHT_BOT"):
            config.scoring.bot = float(v)
        if v := os.getenv("RISK_WEIGHT_FINANCIAL"):
            config.scoring.financial = float(v)
        if v := os.getenv("RISK_WEIGHT_LOCATION"):
            config.scoring.location = float(v)
        if v := os.getenv("RISK_WEIGHT_AMOUNT"):
            config.scoring.amount = float(v)
        if v := os.getenv("RISK_WEIGHT_RULES"):
            config.scoring.rules = float(v)
        config.scoring.__post_init__()

        # Amount overrides
        if v := os.getenv("RISK_HIGH_AMOUNT"):
            config.amount.high_amount = int(v)
        if v := os.getenv("RISK_ELEVATED_AMOUNT"):
            config.amount.elevated_amount = int(v)

        # Sketch overrides
        if v := os.getenv("RISK_SKETCH_WIDTH"):
            config.sketch.width = int(v)
        if v := os.getenv("RISK_SKETCH_DEPTH"):
            config.sketch.depth = int(v)
        if v := os.getenv("RISK_SKETCH_DECAY_FACTOR"):
            config.sketch.decay_factor = float(v)

        # Bot overrides
        if v := os.getenv("RISK_BOT_ACTOR_REQUEST_MAX"):
            config.bot.actor_request_max = int(v)
        if v := os.getenv("RISK_BOT_IP_REQUEST_MAX"):
            config.bot.ip_request_max = int(v)

        if v := os.getenv("RISK_REMOTE_TIMEOUT_SECONDS"):
            config.remote.timeout_seconds = float(v)

        return config


# Module-level default instance
default_config = RiskConfig()
