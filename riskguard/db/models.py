"""SQLAlchemy ORM models for riskguard state."""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER primary keys
_PK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


class BlacklistEntryDB(Base):
    __tablename__ = "blacklist_entries"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(32), index=True)
    value: Mapped[str] = mapped_column(String(255), index=True)
    reason: Mapped[str] = mapped_column(String(255), default="")
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class BehaviorSnapshotDB(Base):
    __tablename__ = "behavior_snapshots"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    last_ip: Mapped[str] = mapped_column(String(64), default="")
    last_device_id: Mapped[str] = mapped_column(String(128), default="")
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class RiskRuleDB(Base):
    __tablename__ = "risk_rules"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), unique=True)
    type: Mapped[str] = mapped_column(String(32), default="rule_match")
    condition: Mapped[str] = mapped_column(Text)
    score: Mapped[int] = mapped_column(Integer, default=0)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, index=True)


class RiskAnalysisResultDB(Base):
    __tablename__ = "risk_analysis_results"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(128), index=True)
    risk_score: Mapped[int] = mapped_column(Integer)
    risk_level: Mapped[int] = mapped_column(Integer)
    # JSON array of {type, level, score, reason, timestamp}
    risk_items: Mapped[str] = mapped_column(Text, default="[]")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
