"""Pydantic models for the risk domain."""

import json
from datetime import UTC, datetime
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RiskLevel(IntEnum):
    VERY_LOW = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class RiskType(StrEnum):
    BLACKLIST = "blacklist"
    ANOMALOUS_TRANSACTION = "anomalous_transaction"
    DEVICE_RISK = "device_risk"
    IP_RISK = "ip_risk"
    BEHAVIOR_ANOMALY = "behavior_anomaly"
    BOT_ACTIVITY = "bot_activity"
    RULE_MATCH = "rule_match"
    REMOTE_ASSESSMENT = "remote_assessment"


class BlacklistType(StrEnum):
    ACTOR = "actor"
    IP = "ip"
    DEVICE = "device"
    EMAIL = "email"
    PHONE = "phone"


class RelationKind(StrEnum):
    SHARED_PAYMENT = "shared_payment"
    SHARED_DEVICE = "shared_device"
    REFERRAL = "referral"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RiskContext(BaseModel):
    actor_id: str
    ip: str = ""
    device_id: str = ""
    amount: int = 0
    payment_method: str = ""
    order_id: str = ""

    def to_facts(self) -> dict[str, Any]:
        return self.model_dump()


class VelocityMetrics(BaseModel):
    tx_count_1h: int = 0
    tx_amount_1h: int = 0
    tx_count_24h: int = 0
    failed_tx_count_1h: int = 0


class RiskItem(BaseModel):
    type: RiskType
    level: RiskLevel
    score: int
    reason: str
    timestamp: datetime = Field(default_factory=_utcnow)


class RiskAnalysisResult(BaseModel):
    """Outcome of one evaluation. Append-only: never modified once built."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    actor_id: str
    risk_score: int = Field(ge=0, le=100)
    risk_level: RiskLevel
    risk_items: list[RiskItem] = []
    created_at: datetime = Field(default_factory=_utcnow)

    def serialize_items(self) -> str:
        return json.dumps([item.model_dump(mode="json") for item in self.risk_items])

    @staticmethod
    def deserialize_items(raw: str | None) -> list[RiskItem]:
        if not raw:
            return []
        return [RiskItem.model_validate(item) for item in json.loads(raw)]


class BlacklistEntry(BaseModel):
    id: int | None = None
    type: BlacklistType
    value: str
    reason: str = ""
    expires_at: datetime
    created_at: datetime = Field(default_factory=_utcnow)

    def is_active(self, now: datetime | None = None) -> bool:
        return (now or _utcnow()) < self.expires_at


class BehaviorSnapshot(BaseModel):
    actor_id: str
    last_ip: str = ""
    last_device_id: str = ""
    last_seen_at: datetime = Field(default_factory=_utcnow)


class RiskRule(BaseModel):
    id: int | None = None
    name: str
    type: RiskType = RiskType.RULE_MATCH
    condition: str
    score: int = 0
    enabled: bool = True


class BehaviorSample(BaseModel):
    actor_id: str
    ip: str = ""
    user_agent: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)
    action: str = "transaction"


class BotAssessment(BaseModel):
    is_bot: bool
    reason: str = ""
    score: int = Field(ge=0, le=100)


class RelationEdge(BaseModel):
    source: int
    target: int
    kind: RelationKind = RelationKind.SHARED_PAYMENT


class FraudRing(BaseModel):
    model_config = ConfigDict(frozen=True)

    members: tuple[int, ...]

    @field_validator("members")
    @classmethod
    def _at_least_two(cls, members: tuple[int, ...]) -> tuple[int, ...]:
        if len(members) < 2:
            raise ValueError("A fraud ring needs at least two members")
        return tuple(sorted(members))

    @property
    def size(self) -> int:
        return len(self.members)


class RemoteRiskRequest(BaseModel):
    actor_id: str
    symbol: str
    side: str
    quantity: int = 1
    price: int


class RemoteRiskResponse(BaseModel):
    score: float
    allowed: bool = True
