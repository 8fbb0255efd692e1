"""Cheap per-request bot heuristics: cadence, behaviour pattern, user agent, IP crowding."""

import statistics
import threading
from collections import deque
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import structlog

from .config import BotThresholds, SketchSettings, default_config
from .frequency import FrequencyEstimator
from .models import BehaviorSample, BotAssessment

logger = structlog.get_logger()


def _actor_key(actor_id: str) -> str:
    return f"actor:{actor_id}"


def _ip_key(ip: str) -> str:
    return f"ip:{ip}"


class AntiBotDetector:
    """Scores single behaviour samples against recent per-actor and per-IP activity.

    Request cadence is counted in a decaying FrequencyEstimator, so "requests
    in the window" means the decayed estimate rather than an exact sliding
    window. Recent samples per actor are kept in a bounded deque for the
    interval and browse-before-buy checks.
    """

    def __init__(
        self,
        thresholds: BotThresholds | None = None,
        estimator: FrequencyEstimator | None = None,
        sketch: SketchSettings | None = None,
    ) -> None:
        self._thresholds = thresholds or default_config.bot
        sketch = sketch or default_config.sketch
        self._estimator = estimator or FrequencyEstimator(
            width=sketch.width, depth=sketch.depth, decay_factor=sketch.decay_factor
        )
        self._history: dict[str, deque[BehaviorSample]] = {}
        self._ip_actors: dict[str, dict[str, datetime]] = {}
        self._lock = threading.RLock()

    @property
    def estimator(self) -> FrequencyEstimator:
        return self._estimator

    def is_bot(self, sample: BehaviorSample) -> tuple[bool, str]:
        """Classify the sample, then record it. Returns (is_bot, reason)."""
        with self._lock:
            reason = self._classify(sample)
            self._record(sample)
        return self._report(sample, reason)

    def risk_score(self, sample: BehaviorSample) -> int:
        """Continuous 0-100 score, independent of the boolean classification."""
        with self._lock:
            return self._score(sample)

    def assess(self, sample: BehaviorSample) -> BotAssessment:
        """Classify and score against prior activity, then record the sample."""
        with self._lock:
            reason = self._classify(sample)
            score = self._score(sample)
            self._record(sample)
        is_bot, reason = self._report(sample, reason)
        return BotAssessment(is_bot=is_bot, reason=reason, score=score)

    def prune(self, now: datetime | None = None) -> int:
        """Forget samples older than the retention window. Returns samples dropped."""
        cutoff = (now or datetime.now(UTC)) - timedelta(seconds=self._thresholds.retention_seconds)
        dropped = 0
        with self._lock:
            for actor_id in list(self._history):
                samples = self._history[actor_id]
                while samples and samples[0].timestamp < cutoff:
                    samples.popleft()
                    dropped += 1
                if not samples:
                    del self._history[actor_id]

            for ip in list(self._ip_actors):
                actors = {a: seen for a, seen in self._ip_actors[ip].items() if seen >= cutoff}
                if actors:
                    self._ip_actors[ip] = actors
                else:
                    del self._ip_actors[ip]

        if dropped:
            logger.debug("bot_history_pruned", dropped=dropped)
        return dropped

    # --- heuristics (caller holds the lock) ---

    def _classify(self, sample: BehaviorSample) -> str | None:
        return (
            self._check_frequency(sample)
            or self._check_pattern(sample)
            or self._check_ip_crowding(sample)
        )

    def _score(self, sample: BehaviorSample) -> int:
        t = self._thresholds
        score = 0

        # Cadence (0-40)
        count = self._estimator.estimate(_actor_key(sample.actor_id))
        if count > t.actor_request_max:
            score += 40
        elif count > t.actor_request_max / 2:
            score += 20
        elif count > t.actor_request_max / 4:
            score += 10

        # Behaviour pattern (0-50)
        history = list(self._history.get(sample.actor_id, ()))
        if len(history) >= 3:
            if self._is_regular_interval(history[-t.pattern_window :]):
                score += 30
            if self._is_direct_kill(history, sample):
                score += 20

        # User agent (0-20)
        if self._is_abnormal_user_agent(sample.user_agent):
            score += 20

        # IP crowding (0-10)
        if self._check_ip_crowding(sample):
            score += 10

        return min(score, 100)

    @staticmethod
    def _report(sample: BehaviorSample, reason: str | None) -> tuple[bool, str]:
        if reason:
            logger.info("bot_detected", actor_id=sample.actor_id, ip=sample.ip, reason=reason)
            return True, reason
        return False, ""

    def _check_frequency(self, sample: BehaviorSample) -> str | None:
        t = self._thresholds
        if self._estimator.estimate(_actor_key(sample.actor_id)) >= t.actor_request_max:
            return "Actor request rate too high"
        if sample.ip and self._estimator.estimate(_ip_key(sample.ip)) >= t.ip_request_max:
            return "IP request rate too high"
        return None

    def _check_pattern(self, sample: BehaviorSample) -> str | None:
        t = self._thresholds
        history = list(self._history.get(sample.actor_id, ()))
        if len(history) < t.pattern_min_samples:
            return None

        recent = history[-t.pattern_window :]
        if self._is_regular_interval(recent):
            return "Request intervals too regular"
        if self._is_direct_kill(recent, sample):
            return "Purchase without prior browsing"
        if self._is_abnormal_user_agent(sample.user_agent):
            return "Abnormal user agent"
        return None

    def _check_ip_crowding(self, sample: BehaviorSample) -> str | None:
        if not sample.ip:
            return None
        actors = set(self._ip_actors.get(sample.ip, {}))
        actors.add(sample.actor_id)
        if len(actors) > self._thresholds.ip_actor_max:
            return "Too many actors on one IP"
        return None

    def _is_regular_interval(self, samples: Sequence[BehaviorSample]) -> bool:
        if len(samples) < 3:
            return False
        intervals = [
            (later.timestamp - earlier.timestamp).total_seconds()
            for earlier, later in zip(samples, samples[1:])
        ]
        mean = statistics.fmean(intervals)
        variance = statistics.pvariance(intervals, mu=mean)
        t = self._thresholds
        return variance < t.interval_variance_max and mean < t.interval_mean_max_seconds

    def _is_direct_kill(self, samples: Sequence[BehaviorSample], current: BehaviorSample) -> bool:
        if current.action != "kill":
            return False
        lookback = samples[-self._thresholds.direct_kill_lookback :]
        return not any(s.action == "view" for s in lookback)

    def _is_abnormal_user_agent(self, user_agent: str) -> bool:
        return not any(token in user_agent for token in self._thresholds.browser_tokens)

    def _record(self, sample: BehaviorSample) -> None:
        self._estimator.add(_actor_key(sample.actor_id))
        if sample.ip:
            self._estimator.add(_ip_key(sample.ip))
            self._ip_actors.setdefault(sample.ip, {})[sample.actor_id] = sample.timestamp

        history = self._history.get(sample.actor_id)
        if history is None:
            history = deque(maxlen=self._thresholds.history_limit)
            self._history[sample.actor_id] = history
        history.append(sample)
