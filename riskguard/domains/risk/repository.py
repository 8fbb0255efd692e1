"""Storage collaborator for risk evaluation.

RiskRepository is the narrow read/write surface the aggregator and rule
engine depend on. SqlRiskRepository backs it with SQLAlchemy for durable
state and Redis for rolling velocity counters.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from riskguard.db.models import (
    BehaviorSnapshotDB,
    BlacklistEntryDB,
    RiskAnalysisResultDB,
    RiskRuleDB,
)

from .errors import PersistenceError, StorageError
from .models import (
    BehaviorSnapshot,
    BlacklistEntry,
    BlacklistType,
    RiskAnalysisResult,
    RiskLevel,
    RiskRule,
    RiskType,
    VelocityMetrics,
)

logger = structlog.get_logger()

VELOCITY_KEY_TEMPLATES = {
    "tx_count_1h": "risk:velocity:{actor_id}:count:1h",
    "tx_amount_1h": "risk:velocity:{actor_id}:amount:1h",
    "tx_count_24h": "risk:velocity:{actor_id}:count:24h",
    "failed_tx_count_1h": "risk:velocity:{actor_id}:fail:1h",
}


class RiskRepository(ABC):
    """Everything risk evaluation reads from or writes to storage."""

    @abstractmethod
    async def find_active_blacklist(
        self, type: BlacklistType, value: str, now: datetime
    ) -> BlacklistEntry | None: ...

    @abstractmethod
    async def save_blacklist(self, entry: BlacklistEntry) -> BlacklistEntry: ...

    @abstractmethod
    async def delete_blacklist(self, entry_id: int) -> bool: ...

    @abstractmethod
    async def get_behavior(self, actor_id: str) -> BehaviorSnapshot | None: ...

    @abstractmethod
    async def save_behavior(self, snapshot: BehaviorSnapshot) -> None: ...

    @abstractmethod
    async def list_enabled_rules(self) -> list[RiskRule]: ...

    @abstractmethod
    async def save_rule(self, rule: RiskRule) -> RiskRule: ...

    @abstractmethod
    async def get_velocity_metrics(self, actor_id: str) -> VelocityMetrics: ...

    @abstractmethod
    async def save_analysis_result(self, result: RiskAnalysisResult) -> RiskAnalysisResult: ...

    @abstractmethod
    async def list_analysis_results(
        self, actor_id: str, limit: int = 20
    ) -> list[RiskAnalysisResult]: ...


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything here is stored in UTC
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _rule_type(raw: str) -> RiskType:
    try:
        return RiskType(raw)
    except ValueError:
        return RiskType.RULE_MATCH


def _parse_counter(raw: bytes | str | None) -> int:
    if raw is None:
        return 0
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return 0


class SqlRiskRepository(RiskRepository):
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis: Redis | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._redis = redis

    # --- blacklist ---

    async def find_active_blacklist(
        self, type: BlacklistType, value: str, now: datetime
    ) -> BlacklistEntry | None:
        stmt = (
            select(BlacklistEntryDB)
            .where(
                BlacklistEntryDB.type == type.value,
                BlacklistEntryDB.value == value,
                BlacklistEntryDB.expires_at > now,
            )
            .limit(1)
        )
        try:
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError(f"Blacklist lookup failed for {type.value}") from exc
        if row is None:
            return None
        return BlacklistEntry(
            id=row.id,
            type=BlacklistType(row.type),
            value=row.value,
            reason=row.reason,
            expires_at=_aware(row.expires_at),
            created_at=_aware(row.created_at) if row.created_at else now,
        )

    async def save_blacklist(self, entry: BlacklistEntry) -> BlacklistEntry:
        row = BlacklistEntryDB(
            type=entry.type.value,
            value=entry.value,
            reason=entry.reason,
            expires_at=entry.expires_at,
            created_at=entry.created_at,
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except SQLAlchemyError as exc:
            raise StorageError("Failed to save blacklist entry") from exc
        return entry.model_copy(update={"id": row.id})

    async def delete_blacklist(self, entry_id: int) -> bool:
        stmt = delete(BlacklistEntryDB).where(BlacklistEntryDB.id == entry_id)
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to delete blacklist entry {entry_id}") from exc
        return result.rowcount > 0

    # --- behaviour snapshots ---

    async def get_behavior(self, actor_id: str) -> BehaviorSnapshot | None:
        stmt = select(BehaviorSnapshotDB).where(BehaviorSnapshotDB.actor_id == actor_id)
        try:
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StorageError("Behavior lookup failed") from exc
        if row is None:
            return None
        return BehaviorSnapshot(
            actor_id=row.actor_id,
            last_ip=row.last_ip,
            last_device_id=row.last_device_id,
            last_seen_at=_aware(row.last_seen_at),
        )

    async def save_behavior(self, snapshot: BehaviorSnapshot) -> None:
        stmt = select(BehaviorSnapshotDB).where(BehaviorSnapshotDB.actor_id == snapshot.actor_id)
        try:
            async with self._session_factory() as session, session.begin():
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    row = BehaviorSnapshotDB(actor_id=snapshot.actor_id)
                    session.add(row)
                row.last_ip = snapshot.last_ip
                row.last_device_id = snapshot.last_device_id
                row.last_seen_at = snapshot.last_seen_at
        except SQLAlchemyError as exc:
            raise StorageError("Failed to save behavior snapshot") from exc

    # --- rules ---

    async def list_enabled_rules(self) -> list[RiskRule]:
        stmt = select(RiskRuleDB).where(RiskRuleDB.enabled.is_(True)).order_by(RiskRuleDB.id)
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError("Failed to list enabled rules") from exc
        return [
            RiskRule(
                id=row.id,
                name=row.name,
                type=_rule_type(row.type),
                condition=row.condition,
                score=row.score,
                enabled=row.enabled,
            )
            for row in rows
        ]

    async def save_rule(self, rule: RiskRule) -> RiskRule:
        stmt = select(RiskRuleDB).where(RiskRuleDB.name == rule.name)
        try:
            async with self._session_factory() as session, session.begin():
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    row = RiskRuleDB(name=rule.name)
                    session.add(row)
                row.type = rule.type.value
                row.condition = rule.condition
                row.score = rule.score
                row.enabled = rule.enabled
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to save rule {rule.name!r}") from exc
        return rule.model_copy(update={"id": row.id})

    # --- velocity ---

    async def get_velocity_metrics(self, actor_id: str) -> VelocityMetrics:
        if self._redis is None:
            return VelocityMetrics()

        fields = list(VELOCITY_KEY_TEMPLATES)
        pipe = self._redis.pipeline(transaction=False)
        for name in fields:
            pipe.get(VELOCITY_KEY_TEMPLATES[name].format(actor_id=actor_id))
        try:
            values = await pipe.execute()
        except RedisError as exc:
            raise StorageError("Velocity metrics lookup failed") from exc

        return VelocityMetrics(**{name: _parse_counter(raw) for name, raw in zip(fields, values)})

    # --- analysis results ---

    async def save_analysis_result(self, result: RiskAnalysisResult) -> RiskAnalysisResult:
        row = RiskAnalysisResultDB(
            actor_id=result.actor_id,
            risk_score=result.risk_score,
            risk_level=int(result.risk_level),
            risk_items=result.serialize_items(),
            created_at=result.created_at,
        )
        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except SQLAlchemyError as exc:
            logger.error("analysis_result_persist_failed", actor_id=result.actor_id)
            raise PersistenceError("Failed to save risk analysis result") from exc
        return result.model_copy(update={"id": row.id})

    async def list_analysis_results(
        self, actor_id: str, limit: int = 20
    ) -> list[RiskAnalysisResult]:
        stmt = (
            select(RiskAnalysisResultDB)
            .where(RiskAnalysisResultDB.actor_id == actor_id)
            .order_by(RiskAnalysisResultDB.created_at.desc(), RiskAnalysisResultDB.id.desc())
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageError("Failed to list analysis results") from exc
        return [
            RiskAnalysisResult(
                id=row.id,
                actor_id=row.actor_id,
                risk_score=row.risk_score,
                risk_level=RiskLevel(row.risk_level),
                risk_items=RiskAnalysisResult.deserialize_items(row.risk_items),
                created_at=_aware(row.created_at),
            )
            for row in rows
        ]
