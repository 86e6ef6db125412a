"""
Retry policies for WardScan

Pure decision objects: whether a status warrants another attempt and how
long to back off before it.
"""

import random
import threading
from abc import ABC, abstractmethod
from typing import Callable, FrozenSet

RETRYABLE_STATUSES: FrozenSet[int] = frozenset({429})
TRANSPORT_FAILURE = -1


class RetryPolicy(ABC):
    """Decides retries for HttpAnalyzer.analyze_with_retry."""

    @abstractmethod
    def should_retry(self, status: int, attempt: int) -> bool:
        """
        Args:
            status: HTTP status of the attempt (-1 for transport failure)
            attempt: 1-based number of the attempt that produced it
        """

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Seconds to wait after the given attempt."""

    @property
    @abstractmethod
    def max_attempts(self) -> int:
        """Upper bound on attempts, including the first."""


class DefaultRetryPolicy(RetryPolicy):
    """
    Retry 429, 5xx and transport failures with jittered exponential backoff.

    Delays are 250ms, 500ms, 1000ms, ... each scaled by a factor in [0.9, 1.1].
    """

    def __init__(
            self,
            max_attempts: int = 3,
            base_delay: float = 0.25,
            jitter: float = 0.1,
            rand: Callable[[float, float], float] = random.uniform
    ):
        self._max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.jitter = jitter
        self._rand = rand

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def should_retry(self, status: int, attempt: int) -> bool:
        if attempt >= self._max_attempts:
            return False
        return status in RETRYABLE_STATUSES or status >= 500 or status == TRANSPORT_FAILURE

    def next_delay(self, attempt: int) -> float:
        exp = max(0, attempt - 1)
        factor = self._rand(1.0 - self.jitter, 1.0 + self.jitter)
        return self.base_delay * (2 ** exp) * factor


class CountingRetryPolicy(RetryPolicy):
    """Wraps a policy and counts how many retries it granted."""

    def __init__(self, delegate: RetryPolicy):
        self.delegate = delegate
        self._retries = 0
        self._lock = threading.Lock()

    @property
    def max_attempts(self) -> int:
        return self.delegate.max_attempts

    @property
    def retry_count(self) -> int:
        return self._retries

    def should_retry(self, status: int, attempt: int) -> bool:
        decision = self.delegate.should_retry(status, attempt)
        if decision:
            with self._lock:
                self._retries += 1
        return decision

    def next_delay(self, attempt: int) -> float:
        return self.delegate.next_delay(attempt)
