"""
Per-run active probe budget.
"""

import threading
import time
from typing import Callable, Optional

from wardscan.config import Mode, ScanConfig


class BudgetGate:
    """
    Caps active probing by count and by a wall-clock deadline fixed at construction.

    Once exhausted or expired, try_consume() returns False for good.
    """

    def __init__(
            self,
            max_probes: int,
            max_seconds: float,
            clock: Callable[[], float] = time.monotonic
    ):
        self.max_probes = max(1, int(max_probes))
        self.max_seconds = max(1.0, float(max_seconds))
        self._clock = clock
        self.deadline = clock() + self.max_seconds
        self._used = 0
        self._lock = threading.Lock()

    def try_consume(self) -> bool:
        """Count one probe; True if it fits the cap and the deadline has not passed."""
        if self.expired:
            return False
        with self._lock:
            self._used += 1
            return self._used <= self.max_probes

    @property
    def expired(self) -> bool:
        return self._clock() >= self.deadline

    @property
    def has_capacity(self) -> bool:
        return not self.expired and self._used < self.max_probes

    @property
    def used(self) -> int:
        return self._used

    @property
    def remaining(self) -> int:
        return max(0, self.max_probes - self._used)

    @classmethod
    def for_config(cls, config: ScanConfig, clock: Callable[[], float] = time.monotonic) -> Optional['BudgetGate']:
        """Default budget for the config's mode (None in SAFE)."""
        if config.mode == Mode.SAFE_PLUS:
            return cls(300, 30, clock)
        if config.mode in (Mode.AGGRESSIVE_LITE, Mode.AGGRESSIVE):
            return cls(800, config.aggressive.run_time_budget_ms / 1000.0, clock)
        return None
