"""
Tests for the scan coordinator: worker pool, telemetry, progress and reporting.
"""

import asyncio
from unittest import mock

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from wardscan.config import ConfigError, CrawlerConfig, Mode, ScanConfig
from wardscan.scanner.core.analyzer import HttpAnalyzer
from wardscan.scanner.core.coordinator import ScanCoordinator, ScanReport, is_static_asset
from wardscan.scanner.core.crawler import CrawlStats
from wardscan.scanner.core.ratelimit import RateLimiter
from wardscan.scanner.core.requester import HttpResponseData
from wardscan.scanner.modules.base import IssueType

URLS = [f'http://e.com/p{i}' for i in range(8)]


async def no_wait(seconds):
    return None


def page(url, status=200):
    return HttpResponseData.build(url, status, {'Content-Type': 'text/plain'}, 'ok')


def coordinator_for(sender, concurrency=2, **kwargs):
    config = ScanConfig(target='http://e.com/', concurrency=concurrency, passive_signatures=False)
    analyzer = HttpAnalyzer(config, sender=sender)
    return ScanCoordinator(config, analyzer=analyzer, waiter=no_wait,
                           limiter=RateLimiter(100, 1000), **kwargs)


def fake_crawler(urls):
    crawler = mock.Mock()
    crawler.crawl = mock.AsyncMock(return_value=list(urls))
    crawler.stats = CrawlStats(urls_discovered=len(urls), urls_visited=len(urls))
    return crawler


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    in_flight = 0
    peak = 0

    async def slow_sender(url):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.02)
        in_flight -= 1
        return page(url)

    coordinator = coordinator_for(slow_sender, concurrency=2)
    await coordinator.scan_urls(URLS)

    snap = coordinator.stats_snapshot()
    assert peak <= 2
    assert 1 <= snap.max_observed_concurrency <= 2
    assert snap.requests_total == 8
    assert snap.retries_total == 0


@pytest.mark.asyncio
async def test_retries_are_counted():
    seen = set()

    async def flaky_sender(url):
        if url not in seen:
            seen.add(url)
            return page(url, 503)
        return page(url)

    coordinator = coordinator_for(flaky_sender)
    await coordinator.scan_urls(URLS[:3])

    snap = coordinator.stats_snapshot()
    assert snap.requests_total == 6
    assert snap.retries_total == 3


@pytest.mark.asyncio
async def test_invalid_config_fails_before_crawling():
    crawler = fake_crawler(URLS)
    coordinator = ScanCoordinator(ScanConfig(target='ftp://e.com/'), crawler=crawler)
    with pytest.raises(ConfigError):
        await coordinator.run()
    crawler.crawl.assert_not_awaited()
    assert not coordinator.is_running


@pytest.mark.asyncio
async def test_run_skips_static_assets_and_reports():
    async def sender(url):
        return page(url)

    crawler = fake_crawler(['http://e.com/', 'http://e.com/app.js', 'http://e.com/logo.PNG', 'http://e.com/about'])
    coordinator = coordinator_for(sender, crawler=crawler)
    report = await coordinator.run()

    assert report.urls == ['http://e.com/', 'http://e.com/about']
    assert report.mode == 'SAFE'
    assert not report.cancelled
    assert report.stats.requests_total == 2
    crawler.crawl.assert_awaited_once()


@pytest.mark.asyncio
async def test_progress_callback():
    events = []

    async def sender(url):
        return page(url)

    coordinator = coordinator_for(sender, progress_callback=lambda *args: events.append(args))
    await coordinator.scan_urls(URLS[:4])

    assert events[-1] == (1.0, 'completed', 4, 4)
    analyzing = [e for e in events if e[1] == 'analyzing']
    assert [e[2] for e in analyzing] == [1, 2, 3, 4]
    assert analyzing[-1][0] == 1.0


@pytest.mark.asyncio
async def test_failing_progress_callback_does_not_stop_scan():
    async def sender(url):
        return page(url)

    def explode(*args):
        raise RuntimeError("ui went away")

    coordinator = coordinator_for(sender, progress_callback=explode)
    await coordinator.scan_urls(URLS[:3])
    assert coordinator.stats_snapshot().requests_total == 3


@pytest.mark.asyncio
async def test_cancel_stops_handing_out_urls():
    async def sender(url):
        return page(url)

    coordinator = coordinator_for(sender, concurrency=1)

    def on_progress(fraction, phase, done, total):
        if done == 2:
            coordinator.cancel()

    coordinator.progress_callback = on_progress
    await coordinator.scan_urls(URLS)
    assert coordinator.stats_snapshot().requests_total == 2


@pytest.mark.asyncio
async def test_pipeline_errors_are_contained():
    async def sender(url):
        return page(url)

    coordinator = coordinator_for(sender)
    coordinator._ensure_orchestrator()
    original = coordinator.orchestrator.process

    async def process(url):
        if url.endswith('p1'):
            raise RuntimeError("boom")
        return await original(url)

    coordinator.orchestrator.process = process
    await coordinator.scan_urls(URLS[:3])
    assert coordinator.stats_snapshot().requests_total == 3


@pytest.mark.asyncio
async def test_transport_failures_still_finish():
    async def sender(url):
        raise asyncio.TimeoutError()

    coordinator = coordinator_for(sender)
    findings = await coordinator.scan_urls(URLS[:2])
    assert findings == []
    # three attempts per URL
    assert coordinator.stats_snapshot().requests_total == 6


@pytest.mark.parametrize("url, static", [
    ('http://e.com/a.css', True),
    ('http://e.com/img/logo.SVG', True),
    ('http://e.com/doc.pdf?dl=1', True),
    ('http://e.com/page.html', False),
    ('http://e.com/v1.2/items', False),
    ('http://e.com/', False),
])
def test_is_static_asset(url, static):
    assert is_static_asset(url) is static


def test_report_to_dict():
    from wardscan.scanner.modules.base import Severity, VulnResult
    from wardscan.scanner.core.stats import ScanStats

    findings = [
        VulnResult(url='http://e.com/', issue_type=IssueType.WEAK_CSP, severity=Severity.MEDIUM, risk_score=50),
        VulnResult(url='http://e.com/', issue_type=IssueType.SSTI, severity=Severity.HIGH, risk_score=75),
    ]
    report = ScanReport(target='http://e.com/', mode='SAFE', urls=['http://e.com/'],
                        findings=findings, stats=ScanStats().snapshot(), cancelled=True)
    data = report.to_dict()

    assert data['status'] == 'cancelled'
    assert data['statistics']['pages_analyzed'] == 1
    assert data['statistics']['total_vulnerabilities'] == 2
    assert data['statistics']['vulnerabilities']['high'] == 1
    assert data['statistics']['vulnerabilities']['critical'] == 0
    assert data['statistics']['risk'] == {'count': 2, 'average': 62.5, 'p95': 50, 'max': 75}
    assert data['statistics']['telemetry']['requests_total'] == 0
    assert [v['type'] for v in data['vulnerabilities']] == ['weak_csp', 'ssti']


@pytest.mark.asyncio
async def test_safe_plus_scan_finds_reflected_xss():
    async def index(request):
        return web.Response(text='<html><body><a href="/search?q=shoes">search</a></body></html>',
                            content_type='text/html')

    async def search(request):
        term = request.query.get('q', '')
        return web.Response(text=f'<html><body>Results for {term}</body></html>', content_type='text/html')

    app = web.Application()
    app.router.add_get('/', index)
    app.router.add_get('/search', search)

    async with TestServer(app) as server:
        base = str(server.make_url('/'))
        config = ScanConfig(target=base, mode=Mode.SAFE_PLUS, max_depth=1, timeout=5,
                            crawler=CrawlerConfig(respect_robots=False))
        report = await ScanCoordinator(config).run()

    assert base + 'search?q=shoes' in report.urls
    xss = [f for f in report.findings if f.issue_type == IssueType.XSS_REFLECTED]
    assert xss
    assert all(f.parameter == 'q' for f in xss)
    assert report.stats.requests_total >= 2
