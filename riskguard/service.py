"""Wires the risk aggregator to its production collaborators."""

from dataclasses import dataclass, field

import structlog
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine

from riskguard.config import Settings, settings
from riskguard.db.database import create_engine, create_session_factory
from riskguard.domains.risk.aggregator import RiskAggregator
from riskguard.domains.risk.config import RiskConfig
from riskguard.domains.risk.remote import HttpRemoteRiskClient
from riskguard.domains.risk.repository import SqlRiskRepository
from riskguard.domains.risk.rules_engine import RuleEngine

logger = structlog.get_logger()


@dataclass
class RiskService:
    aggregator: RiskAggregator
    repository: SqlRiskRepository
    engine: AsyncEngine
    redis: Redis | None = None
    remote_client: HttpRemoteRiskClient | None = None
    _started: bool = field(default=False, repr=False)

    async def start(self) -> None:
        await self.aggregator.start()
        self._started = True
        logger.info("risk_service_started")

    async def close(self) -> None:
        if self._started:
            await self.aggregator.stop()
        if self.remote_client is not None:
            await self.remote_client.aclose()
        if self.redis is not None:
            await self.redis.aclose()
        await self.engine.dispose()
        logger.info("risk_service_stopped")


def build_service(
    app_settings: Settings | None = None,
    risk_config: RiskConfig | None = None,
) -> RiskService:
    cfg = app_settings or settings
    risk_config = risk_config or RiskConfig.from_env()
    risk_config.sketch.decay_interval_seconds = cfg.sketch_decay_interval_seconds

    engine = create_engine(cfg.database_url)
    redis = Redis.from_url(cfg.redis_url) if cfg.redis_url else None
    repository = SqlRiskRepository(create_session_factory(engine), redis=redis)

    remote_client = None
    if cfg.remote_risk_url:
        risk_config.remote.timeout_seconds = cfg.remote_risk_timeout_seconds
        remote_client = HttpRemoteRiskClient(
            cfg.remote_risk_url, timeout_seconds=cfg.remote_risk_timeout_seconds
        )

    aggregator = RiskAggregator(
        repository,
        config=risk_config,
        rule_engine=RuleEngine(),
        remote_client=remote_client,
        rule_reload_interval_seconds=cfg.rule_reload_interval_seconds,
        bot_prune_interval_seconds=cfg.bot_history_prune_interval_seconds,
    )
    logger.info(
        "risk_service_built",
        remote_enabled=remote_client is not None,
        redis_enabled=redis is not None,
    )
    return RiskService(
        aggregator=aggregator,
        repository=repository,
        engine=engine,
        redis=redis,
        remote_client=remote_client,
    )
