"""Risk evaluation pipeline: blacklist -> signals -> weighted fusion -> ladder -> persist."""

import asyncio
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

import structlog

from riskguard.shared.scheduling import PeriodicTask

from .antibot import AntiBotDetector
from .classification import clamp_score, classify_risk_level
from .config import RiskConfig, default_config
from .errors import (
    DeadlineExceeded,
    PersistenceError,
    RemoteUnavailable,
    ValidationError,
)
from .fraud_rings import FraudRingDetector
from .models import (
    BehaviorSample,
    BehaviorSnapshot,
    BlacklistEntry,
    BlacklistType,
    FraudRing,
    RelationEdge,
    RemoteRiskRequest,
    RiskAnalysisResult,
    RiskContext,
    RiskItem,
    RiskLevel,
    RiskType,
)
from .remote import RemoteRiskClient
from .repository import RiskRepository
from .rules_engine import RuleEngine, build_facts

logger = structlog.get_logger()

DEFAULT_BLACKLIST_DURATION = timedelta(hours=24)

# A signal is (factor in [0, 1], evidence items), or None when omitted
Signal = tuple[float, list[RiskItem]] | None


def fuse_signals(factors: dict[str, float], weights: dict[str, float]) -> int:
    """Fixed-weight sum of the signals present, scaled to an integer 0-100.

    Omitted signals are absent from ``factors`` and contribute nothing; the
    weights are never rescaled, so losing a signal can only lower the score.
    """
    weighted = 0.0
    for name, factor in factors.items():
        weight = weights.get(name, 0.0)
        if weight <= 0:
            continue
        weighted += weight * min(max(factor, 0.0), 1.0)
    return clamp_score(weighted * 100)


def _item(type: RiskType, factor: float, reason: str, now: datetime) -> RiskItem:
    score = clamp_score(factor * 100)
    return RiskItem(
        type=type, level=classify_risk_level(score), score=score, reason=reason, timestamp=now
    )


class RiskAggregator:
    """Orchestrates risk evaluation for a single transaction attempt.

    Stateless across calls apart from the repository and the shared bot
    detector. Every signal source is failure tolerant: a source that errors
    or times out is omitted from the fused score. Only invalid input,
    persistence failure and an expired caller deadline reach the caller.
    """

    def __init__(
        self,
        repository: RiskRepository,
        config: RiskConfig | None = None,
        rule_engine: RuleEngine | None = None,
        bot_detector: AntiBotDetector | None = None,
        remote_client: RemoteRiskClient | None = None,
        ring_detector: FraudRingDetector | None = None,
        rule_reload_interval_seconds: float | None = None,
        bot_prune_interval_seconds: float = 60.0,
    ) -> None:
        self._repository = repository
        self._config = config or default_config
        self._rule_engine = rule_engine
        self._bot_detector = bot_detector or AntiBotDetector(
            thresholds=self._config.bot, sketch=self._config.sketch
        )
        self._remote_client = remote_client
        self._ring_detector = ring_detector or FraudRingDetector()
        self._tasks: list[PeriodicTask] = [
            PeriodicTask(
                "sketch_decay",
                self._config.sketch.decay_interval_seconds,
                self._bot_detector.estimator.decay,
            ),
            PeriodicTask("bot_history_prune", bot_prune_interval_seconds, self._bot_detector.prune),
        ]
        if rule_engine is not None and rule_reload_interval_seconds:
            self._tasks.append(
                PeriodicTask("rule_reload", rule_reload_interval_seconds, self.reload_rules)
            )

    @property
    def bot_detector(self) -> AntiBotDetector:
        return self._bot_detector

    @property
    def rule_engine(self) -> RuleEngine | None:
        return self._rule_engine

    # --- lifecycle ---

    async def start(self) -> None:
        if self._rule_engine is not None:
            try:
                await self.reload_rules()
            except Exception:
                logger.warning("initial_rule_load_failed", exc_info=True)
        for task in self._tasks:
            task.start()

    async def stop(self) -> None:
        for task in self._tasks:
            await task.stop()

    async def reload_rules(self) -> int:
        if self._rule_engine is None:
            return 0
        return await self._rule_engine.load_rules(self._repository)

    # --- evaluation ---

    async def evaluate_risk(
        self,
        actor_id: str,
        ip: str,
        device_id: str,
        amount: int,
        *,
        user_agent: str | None = None,
        payment_method: str = "",
        order_id: str = "",
        deadline_seconds: float | None = None,
    ) -> RiskAnalysisResult:
        if not actor_id or not str(actor_id).strip():
            raise ValidationError("actor_id is required")
        if amount < 0:
            raise ValidationError("amount must not be negative")

        context = RiskContext(
            actor_id=str(actor_id),
            ip=ip or "",
            device_id=device_id or "",
            amount=amount,
            payment_method=payment_method or "",
            order_id=order_id or "",
        )

        if deadline_seconds is None:
            return await self._evaluate(context, user_agent or "")
        try:
            async with asyncio.timeout(deadline_seconds):
                return await self._evaluate(context, user_agent or "")
        except TimeoutError as exc:
            logger.warning(
                "risk_evaluation_deadline_exceeded",
                actor_id=context.actor_id,
                deadline_seconds=deadline_seconds,
            )
            raise DeadlineExceeded(
                f"Risk evaluation exceeded {deadline_seconds}s deadline"
            ) from exc

    async def _evaluate(self, context: RiskContext, user_agent: str) -> RiskAnalysisResult:
        now = datetime.now(UTC)

        # 1. Blacklist (absolute override)
        hit = await self._find_blacklist_hit(context, now)
        if hit is not None:
            item = RiskItem(
                type=RiskType.BLACKLIST,
                level=RiskLevel.CRITICAL,
                score=100,
                reason=f"{hit.type.value} found in blacklist",
                timestamp=now,
            )
            return await self._persist(context.actor_id, 100, [item], now)

        # 2. Signals
        factors: dict[str, float] = {}
        items: list[RiskItem] = []

        amount_factor = self._amount_factor(context.amount)
        factors["amount"] = amount_factor
        if amount_factor > 0:
            items.append(
                _item(
                    RiskType.ANOMALOUS_TRANSACTION,
                    amount_factor,
                    f"Amount {context.amount} above risk threshold",
                    now,
                )
            )

        is_bot, bot_reason = False, ""
        try:
            assessment = self._bot_detector.assess(
                BehaviorSample(
                    actor_id=context.actor_id,
                    ip=context.ip,
                    user_agent=user_agent,
                    timestamp=now,
                    action="transaction",
                )
            )
        except Exception:
            logger.warning("bot_signal_failed", actor_id=context.actor_id, exc_info=True)
        else:
            is_bot, bot_reason = assessment.is_bot, assessment.reason
            bot_factor = 1.0 if assessment.is_bot else assessment.score / 100.0
            factors["bot"] = bot_factor
            if bot_factor > 0:
                items.append(
                    _item(
                        RiskType.BOT_ACTIVITY,
                        bot_factor,
                        assessment.reason or f"Bot heuristics score {assessment.score}",
                        now,
                    )
                )

        location, financial, rules = await asyncio.gather(
            self._location_signal(context, now),
            self._remote_signal(context, now),
            self._rule_signal(context),
        )
        for name, signal in (("location", location), ("financial", financial), ("rules", rules)):
            if signal is None:
                continue
            factors[name] = signal[0]
            items.extend(signal[1])

        # 3. Fusion and 4. classification
        score = fuse_signals(factors, self._config.scoring.as_dict())
        level = classify_risk_level(score)
        items.append(
            RiskItem(
                type=RiskType.ANOMALOUS_TRANSACTION,
                level=level,
                score=score,
                reason=(
                    f"Weighted analysis completed. Bot detected: {is_bot}"
                    + (f" ({bot_reason})" if bot_reason else "")
                ),
                timestamp=now,
            )
        )

        logger.info(
            "risk_evaluated",
            actor_id=context.actor_id,
            score=score,
            risk_level=level.name,
            signals=sorted(factors),
        )

        # 5. Persist
        return await self._persist(context.actor_id, score, items, now)

    async def _find_blacklist_hit(
        self, context: RiskContext, now: datetime
    ) -> BlacklistEntry | None:
        candidates = ((BlacklistType.ACTOR, context.actor_id), (BlacklistType.IP, context.ip))
        for bl_type, value in candidates:
            if not value:
                continue
            try:
                entry = await self._repository.find_active_blacklist(bl_type, value, now)
            except Exception:
                logger.warning(
                    "blacklist_check_failed", type=bl_type.value, value=value, exc_info=True
                )
                continue
            if entry is not None and entry.is_active(now):
                logger.info("blacklist_hit", type=bl_type.value, value=value, entry_id=entry.id)
                return entry
        return None

    def _amount_factor(self, amount: int) -> float:
        thresholds = self._config.amount
        if amount > thresholds.high_amount:
            return thresholds.high_factor
        if amount > thresholds.elevated_amount:
            return thresholds.elevated_factor
        return 0.0

    async def _location_signal(self, context: RiskContext, now: datetime) -> Signal:
        try:
            snapshot = await self._repository.get_behavior(context.actor_id)
        except Exception:
            logger.warning("behavior_lookup_failed", actor_id=context.actor_id, exc_info=True)
            return None
        if snapshot is None:
            return 0.0, []

        deviation = self._config.deviation
        ip_changed = bool(snapshot.last_ip and context.ip and snapshot.last_ip != context.ip)
        device_changed = bool(
            snapshot.last_device_id
            and context.device_id
            and snapshot.last_device_id != context.device_id
        )

        items: list[RiskItem] = []
        if ip_changed and device_changed:
            factor = deviation.both_changed
        elif ip_changed:
            factor = deviation.ip_changed
        elif device_changed:
            factor = deviation.device_changed
        else:
            return 0.0, []

        if ip_changed:
            items.append(
                _item(
                    RiskType.IP_RISK,
                    deviation.ip_changed,
                    f"IP changed from {snapshot.last_ip} to {context.ip}",
                    now,
                )
            )
        if device_changed:
            items.append(
                _item(RiskType.DEVICE_RISK, deviation.device_changed, "Device changed", now)
            )
        return factor, items

    async def _remote_signal(self, context: RiskContext, now: datetime) -> Signal:
        if self._remote_client is None:
            return None

        remote = self._config.remote
        request = RemoteRiskRequest(
            actor_id=context.actor_id,
            symbol=remote.symbol,
            side=remote.side,
            quantity=1,
            price=context.amount,
        )
        try:
            response = await asyncio.wait_for(
                self._remote_client.assess_risk(request), timeout=remote.timeout_seconds
            )
        except TimeoutError:
            logger.warning(
                "remote_risk_timeout", actor_id=context.actor_id, timeout=remote.timeout_seconds
            )
            return None
        except RemoteUnavailable as exc:
            logger.warning("remote_risk_unavailable", actor_id=context.actor_id, error=str(exc))
            return None
        except Exception:
            logger.warning("remote_risk_failed", actor_id=context.actor_id, exc_info=True)
            return None

        factor = 1.0 if not response.allowed else min(max(response.score / 100.0, 0.0), 1.0)
        reason = f"Remote assessment score {response.score:g}" + (
            "" if response.allowed else " (not allowed)"
        )
        return factor, [_item(RiskType.REMOTE_ASSESSMENT, factor, reason, now)]

    async def _rule_signal(self, context: RiskContext) -> Signal:
        engine = self._rule_engine
        if engine is None or engine.rule_count == 0:
            return None

        try:
            velocity = await self._repository.get_velocity_metrics(context.actor_id)
        except Exception:
            logger.warning("velocity_lookup_failed", actor_id=context.actor_id, exc_info=True)
            velocity = None

        matched = engine.evaluate(build_facts(context, velocity))
        factor = min(sum(item.score for item in matched), 100) / 100.0
        return factor, matched

    async def _persist(
        self, actor_id: str, score: int, items: list[RiskItem], now: datetime
    ) -> RiskAnalysisResult:
        result = RiskAnalysisResult(
            actor_id=actor_id,
            risk_score=score,
            risk_level=classify_risk_level(score),
            risk_items=items,
            created_at=now,
        )
        try:
            saved = await self._repository.save_analysis_result(result)
        except PersistenceError:
            raise
        except Exception as exc:
            logger.error("risk_result_persist_failed", actor_id=actor_id, exc_info=True)
            raise PersistenceError("Failed to persist risk analysis result") from exc

        logger.info(
            "risk_result_saved",
            actor_id=actor_id,
            result_id=saved.id,
            score=score,
            risk_level=saved.risk_level.name,
        )
        return saved

    # --- write paths ---

    async def add_to_blacklist(
        self,
        type: BlacklistType | str,
        value: str,
        reason: str = "",
        duration: timedelta | None = None,
    ) -> BlacklistEntry:
        try:
            bl_type = BlacklistType(type)
        except ValueError as exc:
            raise ValidationError(f"Unknown blacklist type {type!r}") from exc
        if not value:
            raise ValidationError("Blacklist value is required")
        duration = duration if duration is not None else DEFAULT_BLACKLIST_DURATION
        if duration <= timedelta(0):
            raise ValidationError("Blacklist duration must be positive")

        now = datetime.now(UTC)
        entry = BlacklistEntry(
            type=bl_type, value=value, reason=reason, expires_at=now + duration, created_at=now
        )
        try:
            saved = await self._repository.save_blacklist(entry)
        except Exception:
            logger.error("blacklist_save_failed", type=bl_type.value, value=value, exc_info=True)
            raise
        logger.info("blacklist_added", type=bl_type.value, value=value, entry_id=saved.id)
        return saved

    async def remove_from_blacklist(self, entry_id: int) -> bool:
        try:
            removed = await self._repository.delete_blacklist(entry_id)
        except Exception:
            logger.error("blacklist_delete_failed", entry_id=entry_id, exc_info=True)
            raise
        logger.info("blacklist_removed", entry_id=entry_id, removed=removed)
        return removed

    async def record_behavior(self, actor_id: str, ip: str, device_id: str) -> BehaviorSnapshot:
        if not actor_id:
            raise ValidationError("actor_id is required")
        snapshot = BehaviorSnapshot(
            actor_id=actor_id,
            last_ip=ip or "",
            last_device_id=device_id or "",
            last_seen_at=datetime.now(UTC),
        )
        try:
            await self._repository.save_behavior(snapshot)
        except Exception:
            logger.error("behavior_save_failed", actor_id=actor_id, exc_info=True)
            raise
        logger.info("behavior_recorded", actor_id=actor_id, ip=ip)
        return snapshot

    # --- batch analysis ---

    def detect_fraud_rings(
        self, actor_count: int, edges: Iterable[RelationEdge | tuple[int, int]]
    ) -> list[FraudRing]:
        normalized = [
            edge if isinstance(edge, RelationEdge) else RelationEdge(source=edge[0], target=edge[1])
            for edge in edges
        ]
        return self._ring_detector.detect(actor_count, normalized)
