from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class ActivationCodeSnapshot:
    generation: Dict[str, int]
    redemptions: Dict[str, int]
    sweeps: Dict[str, int]
    rate_limits: Dict[str, int]
    anomalies: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "generation": dict(self.generation),
            "redemptions": dict(self.redemptions),
            "sweeps": dict(self.sweeps),
            "rate_limits": dict(self.rate_limits),
            "anomalies": dict(self.anomalies),
        }


class ActivationCodeObservabilityStore:
    """Collect activation code lifecycle telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._generation: Dict[str, int] = defaultdict(int)
        self._redemptions: Dict[str, int] = defaultdict(int)
        self._sweeps: Dict[str, int] = defaultdict(int)
        self._rate_limits: Dict[str, int] = defaultdict(int)
        self._anomalies: Dict[str, int] = defaultdict(int)

    def record_generated(self) -> None:
        with self._lock:
            self._generation["generated"] += 1

    def record_generation_conflict(self) -> None:
        with self._lock:
            self._generation["conflicts"] += 1

    def record_redemption(self, outcome: str) -> None:
        with self._lock:
            self._redemptions[outcome] += 1

    def record_sweep(self, policy: str, deleted: int) -> None:
        with self._lock:
            self._sweeps[f"{policy}:runs"] += 1
            self._sweeps[f"{policy}:deleted"] += deleted

    def record_rate_limited(self, policy: str, *, blocked: bool) -> None:
        with self._lock:
            self._rate_limits[f"{policy}:rejected"] += 1
            if blocked:
                self._rate_limits[f"{policy}:blocks"] += 1

    def record_anomaly(self, reason: str) -> None:
        with self._lock:
            self._anomalies[reason] += 1

    def snapshot(self) -> ActivationCodeSnapshot:
        with self._lock:
            return ActivationCodeSnapshot(
                generation=dict(self._generation),
                redemptions=dict(self._redemptions),
                sweeps=dict(self._sweeps),
                rate_limits=dict(self._rate_limits),
                anomalies=dict(self._anomalies),
            )

    def reset(self) -> None:
        with self._lock:
            self._generation.clear()
            self._redemptions.clear()
            self._sweeps.clear()
            self._rate_limits.clear()
            self._anomalies.clear()


_STORE = ActivationCodeObservabilityStore()


def get_activation_code_store() -> ActivationCodeObservabilityStore:
    return _STORE


__all__ = ["ActivationCodeObservabilityStore", "ActivationCodeSnapshot", "get_activation_code_store"]
