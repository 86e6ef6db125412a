"""
WardScan Scan Coordinator

The main orchestrator for one scan run.
Coordinates crawling, per-URL analysis and reporting:
- Validates the configuration before any network activity
- Crawls, drops static assets, then analyses URLs with a bounded worker pool
- Shares one rate limiter, one budget gate and one telemetry object across workers
- Reports progress and supports cooperative cancellation
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlsplit
import logging

from wardscan.config import ScanConfig
from wardscan.scanner.core.analyzer import HttpAnalyzer, Waiter
from wardscan.scanner.core.budget import BudgetGate
from wardscan.scanner.core.crawler import CrawlStats, Crawler
from wardscan.scanner.core.features import FeatureMatrix
from wardscan.scanner.core.orchestrator import DetectorOrchestrator
from wardscan.scanner.core.probe_engine import ProbeEngine
from wardscan.scanner.core.ratelimit import RateLimiter
from wardscan.scanner.core.requester import HttpClient
from wardscan.scanner.core.retry import DefaultRetryPolicy, RetryPolicy
from wardscan.scanner.core.stats import ScanStats, StatsSnapshot
from wardscan.scanner.modules.base import Severity, VulnResult, summarize_risk

logger = logging.getLogger(__name__)

STATIC_EXTENSIONS = frozenset({
    'css', 'js', 'map',
    'png', 'jpg', 'jpeg', 'gif', 'svg', 'ico', 'webp', 'bmp',
    'woff', 'woff2', 'ttf', 'eot', 'otf',
    'zip', 'gz', 'tgz', 'rar', '7z',
    'mp3', 'mp4', 'webm', 'avi', 'mov', 'wav',
    'pdf',
})

ProgressCallback = Callable[[float, str, int, int], None]


def is_static_asset(url: str) -> bool:
    """True when the URL path ends in a static asset extension."""
    path = urlsplit(url).path.lower()
    last = path.rsplit('/', 1)[-1]
    if '.' not in last:
        return False
    return last.rsplit('.', 1)[-1] in STATIC_EXTENSIONS


@dataclass
class ScanReport:
    """Everything one run produced."""
    target: str
    mode: str
    urls: List[str]
    findings: List[VulnResult]
    stats: StatsSnapshot
    crawl_stats: CrawlStats = field(default_factory=CrawlStats)
    started_at: Optional[datetime] = None
    duration: float = 0.0
    cancelled: bool = False

    def severity_counts(self) -> Dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for result in self.findings:
            counts[result.severity.value] += 1
        return counts

    def to_dict(self) -> Dict[str, Any]:
        risk = summarize_risk(self.findings)
        return {
            'target': self.target,
            'mode': self.mode,
            'status': 'cancelled' if self.cancelled else 'completed',
            'start_time': self.started_at.isoformat() if self.started_at else None,
            'duration': self.duration,
            'statistics': {
                'pages_analyzed': len(self.urls),
                'vulnerabilities': self.severity_counts(),
                'total_vulnerabilities': len(self.findings),
                'risk': {
                    'count': risk.count,
                    'average': round(risk.average, 2),
                    'p95': risk.p95,
                    'max': risk.max,
                },
                'telemetry': self.stats.to_dict(),
            },
            'crawl_stats': vars(self.crawl_stats).copy(),
            'vulnerabilities': [r.to_dict() for r in self.findings],
        }


class ScanCoordinator:
    """
    Runs a full scan with at most `config.concurrency` pipelines in flight.

    Collaborators are injectable; whatever the coordinator builds itself it
    also closes at the end of run().
    """

    def __init__(
            self,
            config: ScanConfig,
            analyzer: Optional[HttpAnalyzer] = None,
            crawler: Optional[Crawler] = None,
            probe_engine: Optional[ProbeEngine] = None,
            progress_callback: Optional[ProgressCallback] = None,
            retry_policy: Callable[[], RetryPolicy] = DefaultRetryPolicy,
            waiter: Waiter = asyncio.sleep,
            limiter: Optional[RateLimiter] = None
    ):
        """
        Initialize the coordinator.

        Args:
            config: Scan configuration (validated again by run())
            analyzer: Page fetcher (built from config when omitted)
            crawler: URL discovery (built from config when omitted)
            probe_engine: Active probe executor (built for active modes when omitted)
            progress_callback: Called with (fraction, phase, done, total)
            retry_policy: Factory for the per-URL retry policy
            waiter: Retry wait coroutine
            limiter: Page request rate limiter (config.rps when omitted)
        """
        self.config = config
        self.analyzer = analyzer
        self.crawler = crawler
        self.probe_engine = probe_engine
        self.progress_callback = progress_callback
        self.retry_policy = retry_policy
        self.waiter = waiter
        self.limiter = limiter

        self.stats = ScanStats()
        self.budget: Optional[BudgetGate] = None
        self.orchestrator: Optional[DetectorOrchestrator] = None

        self._owned: List[Any] = []
        self._in_flight = 0
        self._done = 0
        self._is_cancelled = False
        self._is_running = False

    def cancel(self):
        """Stop handing out URLs; running pipelines finish normally."""
        self._is_cancelled = True

    @property
    def is_running(self) -> bool:
        return self._is_running

    def stats_snapshot(self) -> StatsSnapshot:
        return self.stats.snapshot()

    async def run(self) -> ScanReport:
        """
        Execute a full scan.

        Returns:
            ScanReport with the merged findings and telemetry

        Raises:
            ConfigError: before any request is made, when the config is invalid
        """
        config = self.config.validate()
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()
        self._is_running = True
        self._is_cancelled = False

        logger.info(f"event=scan-start target={config.target} mode={config.mode.value} "
                    f"depth={config.max_depth} concurrency={config.concurrency} rps={config.rps}")
        try:
            self._initialize()
            self._update_progress(0.0, 'crawling', 0, 0)
            crawled = await self.crawler.crawl()
            urls = [u for u in crawled if not is_static_asset(u)]
            if len(urls) != len(crawled):
                logger.debug(f"Skipping {len(crawled) - len(urls)} static asset URLs")

            findings = await self.scan_urls(urls)
        finally:
            await self._cleanup()
            self._is_running = False

        snapshot = self.stats.snapshot()
        duration = time.monotonic() - start
        logger.info(f"event=scan-done target={config.target} pages={len(urls)} findings={len(findings)} "
                    f"requests={snapshot.requests_total} retries={snapshot.retries_total} "
                    f"max_concurrency={snapshot.max_observed_concurrency} "
                    f"duration_ms={int(duration * 1000)} cancelled={self._is_cancelled}")

        return ScanReport(
            target=config.target,
            mode=config.mode.value,
            urls=urls,
            findings=findings,
            stats=snapshot,
            crawl_stats=getattr(self.crawler, 'stats', CrawlStats()),
            started_at=started_at,
            duration=duration,
            cancelled=self._is_cancelled,
        )

    def _initialize(self):
        """Build whatever collaborators were not injected."""
        config = self.config

        if self.crawler is None:
            self.crawler = Crawler(config)
            self._owned.append(self.crawler)
        self._ensure_orchestrator()

    def _ensure_orchestrator(self):
        if self.orchestrator is not None:
            return
        config = self.config
        if self.analyzer is None:
            self.analyzer = HttpAnalyzer(config)
            self._owned.append(self.analyzer)
        if self.limiter is None:
            self.limiter = RateLimiter(max(1.0, config.rps), config.rps)

        if FeatureMatrix.is_any_active(config.mode):
            self.budget = BudgetGate.for_config(config)
            if self.probe_engine is None:
                client = HttpClient(
                    timeout=config.timeout,
                    user_agent=config.user_agent,
                    follow_redirects=False,
                    max_connections=max(2, config.concurrency),
                )
                self._owned.append(client)
                active_rps = FeatureMatrix.active_default_rps(config.mode, config.rps)
                self.probe_engine = ProbeEngine(
                    client,
                    budget=self.budget,
                    limiter=RateLimiter(max(1.0, active_rps), active_rps),
                )
            elif self.probe_engine.budget is None:
                self.probe_engine.budget = self.budget
        else:
            # SAFE: no active pipeline at all
            self.probe_engine = None

        self.orchestrator = DetectorOrchestrator(
            config,
            self.analyzer,
            probe_engine=self.probe_engine,
            budget=self.budget,
            retry_policy=self.retry_policy,
            waiter=self.waiter,
        )

    async def scan_urls(self, urls: Iterable[str]) -> List[VulnResult]:
        """
        Analyse URLs with a bounded worker pool.

        Args:
            urls: Normalised URLs to analyse

        Returns:
            Merged findings of every completed pipeline (order across URLs unspecified)
        """
        self._ensure_orchestrator()
        queue: 'asyncio.Queue[str]' = asyncio.Queue()
        for url in urls:
            queue.put_nowait(url)
        total = queue.qsize()
        findings: List[VulnResult] = []
        self._done = 0

        workers = [
            asyncio.create_task(self._worker(queue, findings, total))
            for _ in range(min(self.config.concurrency, total))
        ]
        if workers:
            await asyncio.gather(*workers)

        self._update_progress(1.0, 'completed', self._done, total)
        return findings

    async def _worker(self, queue: 'asyncio.Queue[str]', findings: List[VulnResult], total: int):
        while not self._is_cancelled:
            try:
                url = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            await self._process(url, findings)
            self._done += 1
            self._update_progress(self._done / max(total, 1), 'analyzing', self._done, total)

    async def _process(self, url: str, findings: List[VulnResult]):
        await self.limiter.acquire()

        self._in_flight += 1
        self.stats.observe_concurrency(self._in_flight)
        start = time.monotonic()
        retries = 0
        try:
            outcome = await self.orchestrator.process(url)
            retries = outcome.retries
            findings.extend(outcome.findings)
            logger.info(f"event=page-scanned url={url} status={outcome.response.status} "
                        f"findings={len(outcome.findings)} retries={retries} "
                        f"elapsed_ms={outcome.response.elapsed_ms}")
            if outcome.active_plans:
                logger.info(f"event=active-probe url={url} mode={self.config.mode.value} "
                            f"plans={outcome.active_plans} hits={outcome.active_hits}")
        except Exception as e:
            logger.error(f"Pipeline failed for {url}: {e}")
        finally:
            self._in_flight -= 1
            self.stats.add_attempts(1 + retries)
            self.stats.add_retries(retries)
            self.stats.add_wall_time_ms(int((time.monotonic() - start) * 1000))

    def _update_progress(self, fraction: float, phase: str, done: int, total: int):
        if not self.progress_callback:
            return
        try:
            self.progress_callback(fraction, phase, done, total)
        except Exception as e:
            logger.warning(f"Progress callback raised: {e}")

    async def _cleanup(self):
        """Close everything this coordinator created."""
        while self._owned:
            resource = self._owned.pop()
            try:
                await resource.close()
            except Exception as e:
                logger.debug(f"Error while closing {type(resource).__name__}: {e}")
