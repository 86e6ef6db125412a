"""
Scan telemetry counters.
"""

import threading
from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass(frozen=True)
class StatsSnapshot:
    """Point-in-time view of ScanStats."""
    requests_total: int
    retries_total: int
    max_observed_concurrency: int
    avg_latency_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ScanStats:
    """
    Run-wide counters, safe to update from concurrent workers.

    requests_total counts every HTTP attempt including retries.
    max_observed_concurrency is a high-water mark and never decreases.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.requests_total = 0
        self.retries_total = 0
        self.sum_wall_ms = 0
        self.attempts_across_calls = 0
        self.max_observed_concurrency = 0

    def add_attempts(self, attempts: int):
        with self._lock:
            self.requests_total += attempts
            self.attempts_across_calls += attempts

    def add_retries(self, retries: int):
        with self._lock:
            self.retries_total += retries

    def add_wall_time_ms(self, ms: int):
        with self._lock:
            self.sum_wall_ms += max(0, int(ms))

    def observe_concurrency(self, current: int):
        with self._lock:
            if current > self.max_observed_concurrency:
                self.max_observed_concurrency = current

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(
                requests_total=self.requests_total,
                retries_total=self.retries_total,
                max_observed_concurrency=self.max_observed_concurrency,
                avg_latency_ms=self.sum_wall_ms // max(1, self.attempts_across_calls),
            )
