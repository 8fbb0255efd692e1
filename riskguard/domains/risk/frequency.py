"""Approximate per-key event counting with a decaying Count-Min Sketch.

Each key is hashed into one bucket per row; adds touch every row and
estimates take the row minimum, so collisions can only inflate a count.
Multiplying the whole matrix by a decay factor on a timer approximates a
sliding window without keeping per-event timestamps.
"""

import hashlib
import math
import threading

import numpy as np
import structlog

logger = structlog.get_logger()


class FrequencyEstimator:
    """Thread-safe Count-Min Sketch with multiplicative decay."""

    def __init__(self, width: int = 2048, depth: int = 4, decay_factor: float = 0.5) -> None:
        if width < 1 or depth < 1:
            raise ValueError("width and depth must be at least 1")
        if not 0.0 < decay_factor < 1.0:
            raise ValueError("decay_factor must be in (0, 1)")
        self.width = width
        self.depth = depth
        self.decay_factor = decay_factor
        self._table = np.zeros((depth, width), dtype=np.float64)
        self._rows = np.arange(depth)
        self._seeds = [row.to_bytes(8, "little") for row in range(depth)]
        self._lock = threading.Lock()

    @classmethod
    def from_error_bounds(
        cls, epsilon: float, delta: float, decay_factor: float = 0.5
    ) -> "FrequencyEstimator":
        """Size the sketch so that estimates exceed the true count by at most
        ``epsilon * total`` with probability ``1 - delta``."""
        if not 0.0 < epsilon < 1.0 or not 0.0 < delta < 1.0:
            raise ValueError("epsilon and delta must be in (0, 1)")
        width = math.ceil(math.e / epsilon)
        depth = math.ceil(math.log(1.0 / delta))
        return cls(width=width, depth=depth, decay_factor=decay_factor)

    def _buckets(self, key: str) -> np.ndarray:
        encoded = key.encode("utf-8")
        return np.array(
            [
                int.from_bytes(
                    hashlib.blake2b(encoded, digest_size=8, key=seed).digest(), "little"
                )
                % self.width
                for seed in self._seeds
            ]
        )

    def add(self, key: str, count: float = 1) -> None:
        if count <= 0:
            return
        buckets = self._buckets(key)
        with self._lock:
            self._table[self._rows, buckets] += count

    def estimate(self, key: str) -> float:
        buckets = self._buckets(key)
        with self._lock:
            return float(self._table[self._rows, buckets].min())

    def decay(self) -> None:
        with self._lock:
            self._table *= self.decay_factor
        logger.debug("frequency_sketch_decayed", factor=self.decay_factor)

    def reset(self) -> None:
        with self._lock:
            self._table.fill(0.0)

    @property
    def total(self) -> float:
        """Sum of one row, i.e. the (decayed) number of events added."""
        with self._lock:
            return float(self._table[0].sum())
