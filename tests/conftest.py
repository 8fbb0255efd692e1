"""Shared test fixtures for riskguard tests."""

import os
from datetime import datetime

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/1")

from riskguard.domains.risk.errors import PersistenceError  # noqa: E402
from riskguard.domains.risk.models import (  # noqa: E402
    BehaviorSnapshot,
    BlacklistEntry,
    BlacklistType,
    RiskAnalysisResult,
    RiskRule,
    VelocityMetrics,
)
from riskguard.domains.risk.repository import RiskRepository  # noqa: E402

BROWSER_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 Safari/605.1.15"


class InMemoryRiskRepository(RiskRepository):
    """Dict-backed repository that records every call for assertions."""

    def __init__(self) -> None:
        self.blacklist: dict[int, BlacklistEntry] = {}
        self.behaviors: dict[str, BehaviorSnapshot] = {}
        self.rules: list[RiskRule] = []
        self.velocity: dict[str, VelocityMetrics] = {}
        self.results: list[RiskAnalysisResult] = []
        self.calls: list[str] = []
        self.fail_on: set[str] = set()
        self._next_id = 1

    def _enter(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            if name == "save_analysis_result":
                raise PersistenceError("disk full")
            raise RuntimeError(f"{name} unavailable")

    def _allocate_id(self) -> int:
        value = self._next_id
        self._next_id += 1
        return value

    async def find_active_blacklist(
        self, type: BlacklistType, value: str, now: datetime
    ) -> BlacklistEntry | None:
        self._enter("find_active_blacklist")
        for entry in self.blacklist.values():
            if entry.type == type and entry.value == value and entry.is_active(now):
                return entry
        return None

    async def save_blacklist(self, entry: BlacklistEntry) -> BlacklistEntry:
        self._enter("save_blacklist")
        saved = entry.model_copy(update={"id": self._allocate_id()})
        self.blacklist[saved.id] = saved
        return saved

    async def delete_blacklist(self, entry_id: int) -> bool:
        self._enter("delete_blacklist")
        return self.blacklist.pop(entry_id, None) is not None

    async def get_behavior(self, actor_id: str) -> BehaviorSnapshot | None:
        self._enter("get_behavior")
        return self.behaviors.get(actor_id)

    async def save_behavior(self, snapshot: BehaviorSnapshot) -> None:
        self._enter("save_behavior")
        self.behaviors[snapshot.actor_id] = snapshot

    async def list_enabled_rules(self) -> list[RiskRule]:
        self._enter("list_enabled_rules")
        return [rule for rule in self.rules if rule.enabled]

    async def save_rule(self, rule: RiskRule) -> RiskRule:
        self._enter("save_rule")
        saved = rule.model_copy(update={"id": self._allocate_id()})
        self.rules.append(saved)
        return saved

    async def get_velocity_metrics(self, actor_id: str) -> VelocityMetrics:
        self._enter("get_velocity_metrics")
        return self.velocity.get(actor_id, VelocityMetrics())

    async def save_analysis_result(self, result: RiskAnalysisResult) -> RiskAnalysisResult:
        self._enter("save_analysis_result")
        saved = result.model_copy(update={"id": self._allocate_id()})
        self.results.append(saved)
        return saved

    async def list_analysis_results(
        self, actor_id: str, limit: int = 20
    ) -> list[RiskAnalysisResult]:
        self._enter("list_analysis_results")
        matching = [r for r in self.results if r.actor_id == actor_id]
        return list(reversed(matching))[:limit]


@pytest.fixture
def repository() -> InMemoryRiskRepository:
    return InMemoryRiskRepository()


@pytest.fixture
def browser_ua() -> str:
    return BROWSER_UA
