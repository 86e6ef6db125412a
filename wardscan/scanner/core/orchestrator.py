"""
Per-URL detection pipeline.

analyze (with retry) -> anomalies -> passive signatures -> active probes (gated)
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, List, Optional
import logging

from wardscan.config import ScanConfig
from wardscan.scanner.core.analyzer import HttpAnalyzer, Waiter
from wardscan.scanner.core.budget import BudgetGate
from wardscan.scanner.core.features import FeatureMatrix
from wardscan.scanner.core.parser import discover_params, looks_like_html
from wardscan.scanner.core.planner import build_plans
from wardscan.scanner.core.probe_engine import ProbeEngine
from wardscan.scanner.core.requester import HttpResponseData
from wardscan.scanner.core.retry import CountingRetryPolicy, DefaultRetryPolicy, RetryPolicy
from wardscan.scanner.modules.anomaly import AnomalyEngine
from wardscan.scanner.modules.base import VulnResult
from wardscan.scanner.modules.headers import SecurityHeadersModule

logger = logging.getLogger(__name__)


@dataclass
class PageOutcome:
    """Result of one URL's pipeline."""
    url: str
    response: HttpResponseData
    findings: List[VulnResult] = field(default_factory=list)
    retries: int = 0
    active_plans: int = 0
    active_hits: int = 0


class DetectorOrchestrator:
    """
    Runs the full pipeline for one URL at a time; safe to share between workers.
    """

    def __init__(
            self,
            config: ScanConfig,
            analyzer: HttpAnalyzer,
            probe_engine: Optional[ProbeEngine] = None,
            budget: Optional[BudgetGate] = None,
            anomaly: Optional[AnomalyEngine] = None,
            signatures: Optional[SecurityHeadersModule] = None,
            retry_policy: Callable[[], RetryPolicy] = DefaultRetryPolicy,
            waiter: Waiter = asyncio.sleep
    ):
        """
        Args:
            config: Validated scan configuration
            analyzer: Page fetcher
            probe_engine: Active probe executor (None disables active probing)
            budget: Run-wide probe budget
            anomaly: Anomaly engine (shared baselines across the run)
            signatures: Passive signature module (defaults from config.passive_signatures)
            retry_policy: Factory for a fresh retry policy per URL
            waiter: Retry wait coroutine
        """
        self.config = config
        self.analyzer = analyzer
        self.probe_engine = probe_engine if FeatureMatrix.is_any_active(config.mode) else None
        self.budget = budget
        self.anomaly = anomaly or AnomalyEngine()
        if signatures is None and config.passive_signatures:
            signatures = SecurityHeadersModule()
        self.signatures = signatures
        self.retry_policy = retry_policy
        self.waiter = waiter
        self.endpoint_cap = FeatureMatrix.endpoint_cap(config.mode)
        self._active_endpoints = 0

    def _claim_active_slot(self, response: HttpResponseData) -> bool:
        if self.probe_engine is None or response.is_transport_failure:
            return False
        if self.budget is not None and not self.budget.has_capacity:
            return False
        if self._active_endpoints >= self.endpoint_cap:
            return False
        self._active_endpoints += 1
        return True

    async def process(self, url: str) -> PageOutcome:
        """
        Args:
            url: Normalised page URL

        Returns:
            PageOutcome with the response, findings and retry count
        """
        policy = CountingRetryPolicy(self.retry_policy())
        response = await self.analyzer.analyze_with_retry(url, policy, self.waiter)
        outcome = PageOutcome(url=url, response=response, retries=policy.retry_count)

        outcome.findings.extend(self.anomaly.analyze(response))
        if self.signatures is not None:
            outcome.findings.extend(self.signatures.check(response))

        if self._claim_active_slot(response):
            html = response.body if looks_like_html(response.content_type, response.body) else ''
            keys = discover_params(url, html)
            plans = build_plans(self.config, url, keys)
            outcome.active_plans = len(plans)
            if plans:
                active = await self.probe_engine.execute(url, plans)
                outcome.active_hits = len(active)
                outcome.findings.extend(active)

        return outcome
