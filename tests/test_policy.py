"""
Tests for the feature matrix, budget gate, rate limiter and telemetry counters.
"""

import asyncio
import time

import pytest

from wardscan.config import AggressiveConfig, ConfigError, Mode, ScanConfig
from wardscan.scanner.core.budget import BudgetGate
from wardscan.scanner.core.features import Anomaly, FeatureMatrix, Probe
from wardscan.scanner.core.ratelimit import RateLimiter
from wardscan.scanner.core.stats import ScanStats


class TestFeatureMatrix:

    def test_safe_has_no_active_probes(self):
        assert FeatureMatrix.probes(Mode.SAFE) == frozenset()
        assert not FeatureMatrix.is_any_active(Mode.SAFE)
        assert FeatureMatrix.endpoint_cap(Mode.SAFE) == 0

    def test_safe_plus(self):
        assert FeatureMatrix.probes(Mode.SAFE_PLUS) == {
            Probe.XSS_REFLECTED, Probe.SQLI_ERROR, Probe.CORS, Probe.OPEN_REDIRECT
        }
        assert not FeatureMatrix.is_enabled(Mode.SAFE_PLUS, Probe.SSTI)

    def test_aggressive_lite(self):
        assert FeatureMatrix.probes(Mode.AGGRESSIVE_LITE) == {
            Probe.OPEN_REDIRECT, Probe.PATH_TRAVERSAL, Probe.SSTI, Probe.MIXED_CONTENT
        }

    def test_aggressive_is_union(self):
        union = FeatureMatrix.probes(Mode.SAFE_PLUS) | FeatureMatrix.probes(Mode.AGGRESSIVE_LITE)
        assert FeatureMatrix.probes(Mode.AGGRESSIVE) == union
        assert FeatureMatrix.probes('aggressive') == union

    def test_mode_defaults(self):
        assert [FeatureMatrix.endpoint_cap(m) for m in (Mode.SAFE_PLUS, Mode.AGGRESSIVE_LITE, Mode.AGGRESSIVE)] \
            == [8, 10, 16]
        assert [FeatureMatrix.max_params_per_url_default(m)
                for m in (Mode.SAFE_PLUS, Mode.AGGRESSIVE_LITE, Mode.AGGRESSIVE)] == [3, 4, 6]

    @pytest.mark.parametrize("mode, passive, expected", [
        (Mode.SAFE, 10, 0.0),
        (Mode.SAFE_PLUS, 10, 3.0),
        (Mode.SAFE_PLUS, 1, 2.0),
        (Mode.SAFE_PLUS, 2.5, 2.5),
        (Mode.AGGRESSIVE_LITE, 100, 5.0),
        (Mode.AGGRESSIVE, 0.5, 4.0),
    ])
    def test_active_rps_is_clamped(self, mode, passive, expected):
        assert FeatureMatrix.active_default_rps(mode, passive) == expected

    def test_anomaly_defaults(self):
        assert FeatureMatrix.anomaly_enabled(Anomaly.CONTENT_TYPE)
        assert FeatureMatrix.anomaly_enabled(Anomaly.STACKTRACE)
        assert not FeatureMatrix.anomaly_enabled(Anomaly.SIZE_DELTA)

    def test_aggressive_toggles(self):
        off = AggressiveConfig(enable_ssti=False, enable_mixed_content=False)
        probes = FeatureMatrix.enabled_probes(Mode.AGGRESSIVE, off)
        assert Probe.SSTI not in probes
        assert Probe.MIXED_CONTENT not in probes
        assert Probe.XSS_REFLECTED in probes

    def test_toggles_do_not_apply_to_safe_plus(self):
        off = AggressiveConfig(enable_open_redirect=False)
        assert Probe.OPEN_REDIRECT in FeatureMatrix.enabled_probes(Mode.SAFE_PLUS, off)

    @pytest.mark.parametrize("raw, mode", [
        ("safe", Mode.SAFE),
        ("safe-plus", Mode.SAFE_PLUS),
        ("Aggressive_Lite", Mode.AGGRESSIVE_LITE),
        (Mode.AGGRESSIVE, Mode.AGGRESSIVE),
    ])
    def test_mode_parse(self, raw, mode):
        assert Mode.parse(raw) is mode

    def test_mode_parse_unknown(self):
        with pytest.raises(ConfigError):
            Mode.parse("reckless")


class TestBudgetGate:

    def test_count_cap(self, clock):
        gate = BudgetGate(2, 60, clock)
        assert gate.try_consume()
        assert gate.try_consume()
        assert not gate.try_consume()
        assert not gate.try_consume()
        assert not gate.has_capacity
        assert gate.remaining == 0

    def test_deadline(self, clock):
        gate = BudgetGate(100, 5, clock)
        assert gate.try_consume()
        clock.advance(5)
        assert gate.expired
        assert not gate.try_consume()
        assert not gate.has_capacity
        assert gate.used == 1

    def test_bounds_are_at_least_one(self, clock):
        gate = BudgetGate(0, 0, clock)
        assert gate.max_probes == 1
        assert gate.max_seconds == 1.0
        assert gate.try_consume()
        assert not gate.try_consume()

    def test_for_config(self, clock):
        assert BudgetGate.for_config(ScanConfig(target='http://e.com/'), clock) is None

        safe_plus = BudgetGate.for_config(ScanConfig(target='http://e.com/', mode=Mode.SAFE_PLUS), clock)
        assert (safe_plus.max_probes, safe_plus.max_seconds) == (300, 30.0)

        config = ScanConfig(target='http://e.com/', mode=Mode.AGGRESSIVE,
                            aggressive=AggressiveConfig(run_time_budget_ms=45000))
        aggressive = BudgetGate.for_config(config, clock)
        assert (aggressive.max_probes, aggressive.max_seconds) == (800, 45.0)


class TestRateLimiter:

    @pytest.mark.asyncio
    async def test_second_acquire_waits_for_refill(self):
        limiter = RateLimiter(1, 5)
        await limiter.acquire()
        start = time.monotonic()
        await limiter.acquire()
        assert time.monotonic() - start >= 0.15

    @pytest.mark.asyncio
    async def test_burst_up_to_capacity_is_immediate(self):
        limiter = RateLimiter(3, 1)
        start = time.monotonic()
        for _ in range(3):
            await limiter.acquire()
        assert time.monotonic() - start < 0.1

    @pytest.mark.asyncio
    async def test_concurrent_waiters_are_all_served(self):
        limiter = RateLimiter(2, 50)
        await asyncio.gather(*(limiter.acquire() for _ in range(6)))
        assert limiter.available < 1.0

    def test_try_acquire_with_clock(self, clock):
        limiter = RateLimiter(2, 1, clock=clock)
        assert limiter.try_acquire()
        assert limiter.try_acquire()
        assert not limiter.try_acquire()
        clock.advance(1.0)
        assert limiter.try_acquire()
        clock.advance(100)
        assert limiter.available == 2.0

    def test_rejects_non_positive(self):
        with pytest.raises(ValueError):
            RateLimiter(0, 1)
        with pytest.raises(ValueError):
            RateLimiter(1, 0)


class TestScanStats:

    def test_snapshot(self):
        stats = ScanStats()
        stats.add_attempts(1)
        stats.add_attempts(2)
        stats.add_retries(1)
        stats.add_wall_time_ms(300)
        stats.observe_concurrency(3)
        stats.observe_concurrency(1)

        snap = stats.snapshot()
        assert snap.requests_total == 3
        assert snap.retries_total == 1
        assert snap.max_observed_concurrency == 3
        assert snap.avg_latency_ms == 100
        assert snap.to_dict() == {
            'requests_total': 3,
            'retries_total': 1,
            'max_observed_concurrency': 3,
            'avg_latency_ms': 100,
        }

    def test_empty_snapshot(self):
        snap = ScanStats().snapshot()
        assert snap.requests_total == 0
        assert snap.avg_latency_ms == 0
