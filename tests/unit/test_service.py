"""Tests for production wiring of the risk service."""

import pytest

from riskguard.config import Settings
from riskguard.domains.risk.config import RiskConfig
from riskguard.service import build_service


@pytest.mark.asyncio
async def test_build_service_without_remote():
    cfg = Settings(
        _env_file=None, database_url="sqlite+aiosqlite:///:memory:", remote_risk_url=None
    )

    service = build_service(cfg, RiskConfig())

    assert service.remote_client is None
    assert service.aggregator.rule_engine is not None
    await service.close()


@pytest.mark.asyncio
async def test_build_service_applies_remote_timeout():
    cfg = Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        remote_risk_url="http://risk.internal",
        remote_risk_timeout_seconds=0.25,
        sketch_decay_interval_seconds=5.0,
    )
    risk_config = RiskConfig()

    service = build_service(cfg, risk_config)

    assert service.remote_client is not None
    assert risk_config.remote.timeout_seconds == 0.25
    assert risk_config.sketch.decay_interval_seconds == 5.0
    await service.close()
