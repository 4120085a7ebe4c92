"""Flag request streams that look automated. Classification never blocks."""

from __future__ import annotations

import statistics
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict

from codegate_api.core.settings import settings

REGULAR_INTERVALS = "regular_intervals"
BURST = "burst"


@dataclass(frozen=True)
class AnomalyVerdict:
    reason: str
    confidence: float


class AnomalyClassifier:
    def __init__(
        self,
        *,
        min_samples: int | None = None,
        max_variation: float | None = None,
        max_mean_interval_seconds: float | None = None,
        burst_window_seconds: float | None = None,
        burst_threshold: int | None = None,
        history: int = 50,
        time_source: Callable[[], float] = time.monotonic,
    ) -> None:
        self._min_samples = min_samples or settings.anomaly_min_samples
        self._max_variation = max_variation if max_variation is not None else settings.anomaly_max_variation
        self._max_mean_interval = max_mean_interval_seconds or settings.anomaly_max_mean_interval_seconds
        self._burst_window = burst_window_seconds or settings.anomaly_burst_window_seconds
        self._burst_threshold = burst_threshold or settings.anomaly_burst_threshold
        self._history = history
        self._time_source = time_source
        self._samples: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def observe(self, key: str) -> AnomalyVerdict | None:
        """Record a request for ``key`` and classify the stream so far."""

        now = self._time_source()
        with self._lock:
            samples = self._samples.setdefault(key, deque(maxlen=self._history))
            samples.append(now)
            snapshot = list(samples)
        return self.classify(snapshot, now)

    def classify(self, timestamps: list[float], now: float) -> AnomalyVerdict | None:
        if len(timestamps) < self._min_samples:
            return None

        intervals = [later - earlier for earlier, later in zip(timestamps, timestamps[1:])]
        mean = statistics.fmean(intervals)
        variation = statistics.pstdev(intervals) / mean if mean > 0 else 0.0
        if variation < self._max_variation and mean < self._max_mean_interval:
            return AnomalyVerdict(reason=REGULAR_INTERVALS, confidence=0.8)

        recent = sum(1 for stamp in timestamps if now - stamp < self._burst_window)
        if recent > self._burst_threshold:
            return AnomalyVerdict(reason=BURST, confidence=0.9)
        return None

    def purge_stale(self, max_idle_seconds: float) -> int:
        now = self._time_source()
        with self._lock:
            stale = [key for key, samples in self._samples.items() if not samples or now - samples[-1] > max_idle_seconds]
            for key in stale:
                del self._samples[key]
        return len(stale)


__all__ = ["AnomalyClassifier", "AnomalyVerdict", "BURST", "REGULAR_INTERVALS"]
