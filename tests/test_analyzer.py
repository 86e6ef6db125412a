"""
Tests for retry policies and the HTTP analyzer.
"""

import asyncio
from unittest import mock

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from wardscan.config import ScanConfig
from wardscan.scanner.core.analyzer import HttpAnalyzer, parse_retry_after
from wardscan.scanner.core.requester import NO_RESPONSE, HttpClient, HttpResponseData
from wardscan.scanner.core.retry import CountingRetryPolicy, DefaultRetryPolicy

CONFIG = ScanConfig(target='http://e.com/', timeout=2.0)


class TestDefaultRetryPolicy:

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 599, -1])
    def test_retryable_statuses(self, status):
        policy = DefaultRetryPolicy()
        assert policy.should_retry(status, 1)
        assert policy.should_retry(status, 2)
        assert not policy.should_retry(status, 3)

    @pytest.mark.parametrize("status", [200, 204, 301, 302, 304, 400, 401, 403, 404, 418])
    def test_non_retryable_statuses(self, status):
        assert not DefaultRetryPolicy().should_retry(status, 1)

    @pytest.mark.parametrize("attempt", [1, 2, 3, 4])
    def test_backoff_within_jitter(self, attempt):
        policy = DefaultRetryPolicy()
        nominal = 0.25 * 2 ** (attempt - 1)
        for _ in range(50):
            delay = policy.next_delay(attempt)
            assert nominal * 0.9 <= delay <= nominal * 1.1

    def test_backoff_is_deterministic_with_fixed_rand(self):
        policy = DefaultRetryPolicy(rand=lambda low, high: 1.0)
        assert [policy.next_delay(n) for n in (1, 2, 3)] == [0.25, 0.5, 1.0]

    def test_counting_wrapper(self):
        policy = CountingRetryPolicy(DefaultRetryPolicy())
        assert policy.should_retry(503, 1)
        assert not policy.should_retry(200, 1)
        assert policy.should_retry(-1, 2)
        assert not policy.should_retry(503, 3)
        assert policy.retry_count == 2
        assert policy.max_attempts == 3


@pytest.mark.parametrize("value, expected", [
    ("1", 1.0),
    (" 7 ", 7.0),
    ("120", 30.0),
    ("0", 0.0),
    ("-5", None),
    ("Wed, 21 Oct 2015 07:28:00 GMT", None),
    ("", None),
    (None, None),
    ("\u00b2", None),
    ("\u0663", None),
    ("1.5", None),
])
def test_parse_retry_after(value, expected):
    assert parse_retry_after(value) == expected


def scripted(*responses):
    """Sender returning the given statuses/responses in order, repeating the last."""
    calls = []

    async def send(url):
        calls.append(url)
        item = responses[min(len(calls), len(responses)) - 1]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, HttpResponseData):
            return item
        return HttpResponseData.build(url, item, {}, 'body')

    send.calls = calls
    return send


def recording_waiter():
    waits = []

    async def wait(seconds):
        waits.append(seconds)

    wait.waits = waits
    return wait


class TestAnalyzeWithRetry:

    @pytest.mark.asyncio
    async def test_retry_after_then_success(self):
        throttled = HttpResponseData.build('http://e.com/', 429, {'Retry-After': '1'}, '')
        sender = scripted(throttled, 200)
        waiter = recording_waiter()
        policy = CountingRetryPolicy(DefaultRetryPolicy())

        result = await HttpAnalyzer(CONFIG, sender=sender).analyze_with_retry('http://e.com/', policy, waiter)

        assert result.status == 200
        assert len(sender.calls) == 2
        assert len(waiter.waits) == 1
        assert 0.9 <= waiter.waits[0] <= 1.1
        assert policy.retry_count == 1

    @pytest.mark.asyncio
    async def test_non_ascii_retry_after_falls_back_to_backoff(self):
        throttled = HttpResponseData.build('http://e.com/', 429, {'Retry-After': '²'}, '')
        sender = scripted(throttled, 200)
        waiter = recording_waiter()

        result = await HttpAnalyzer(CONFIG, sender=sender).analyze_with_retry(
            'http://e.com/', DefaultRetryPolicy(), waiter)

        assert result.status == 200
        assert len(sender.calls) == 2
        assert 0.225 <= waiter.waits[0] <= 0.275

    @pytest.mark.asyncio
    async def test_retry_after_is_capped(self):
        throttled = HttpResponseData.build('http://e.com/', 429, {'Retry-After': '3600'}, '')
        waiter = recording_waiter()
        await HttpAnalyzer(CONFIG, sender=scripted(throttled, 200)).analyze_with_retry('http://e.com/', waiter=waiter)
        assert waiter.waits == [30.0]

    @pytest.mark.asyncio
    async def test_backoff_used_without_retry_after(self):
        waiter = recording_waiter()
        policy = DefaultRetryPolicy(rand=lambda low, high: 1.0)
        await HttpAnalyzer(CONFIG, sender=scripted(503, 502, 200)).analyze_with_retry('http://e.com/', policy, waiter)
        assert waiter.waits == [0.25, 0.5]

    @pytest.mark.asyncio
    async def test_exhaustion_returns_last_result(self):
        sender = scripted(503)
        waiter = recording_waiter()

        result = await HttpAnalyzer(CONFIG, sender=sender).analyze_with_retry('http://e.com/', waiter=waiter)

        assert result.status == 503
        assert len(sender.calls) == 3
        assert len(waiter.waits) == 2

    @pytest.mark.asyncio
    async def test_success_is_not_retried(self):
        sender = scripted(404)
        waiter = recording_waiter()
        result = await HttpAnalyzer(CONFIG, sender=sender).analyze_with_retry('http://e.com/', waiter=waiter)
        assert result.status == 404
        assert len(sender.calls) == 1
        assert waiter.waits == []

    @pytest.mark.asyncio
    async def test_transport_failures_are_retried_then_reported(self):
        sender = scripted(aiohttp.ClientConnectionError("refused"))
        result = await HttpAnalyzer(CONFIG, sender=sender).analyze_with_retry(
            'http://e.com/', waiter=recording_waiter())
        assert result.status == NO_RESPONSE
        assert result.body == ''
        assert len(sender.calls) == 3


class TestAnalyze:

    @pytest.mark.asyncio
    async def test_timeout_becomes_no_response(self):
        async def slow(url):
            await asyncio.sleep(1)

        config = ScanConfig(target='http://e.com/', timeout=0.05)
        result = await HttpAnalyzer(config, sender=slow).analyze('http://e.com/')

        assert result.status == NO_RESPONSE
        assert result.is_transport_failure
        assert result.error == 'timeout'

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_no_response(self):
        result = await HttpAnalyzer(CONFIG, sender=scripted(RuntimeError("boom"))).analyze('http://e.com/')
        assert result.status == NO_RESPONSE

    @pytest.mark.asyncio
    async def test_connection_refused_over_http(self):
        analyzer = HttpAnalyzer(ScanConfig(target='http://127.0.0.1:9/', timeout=2.0))
        try:
            result = await analyzer.analyze('http://127.0.0.1:9/')
        finally:
            await analyzer.close()
        assert result.status == NO_RESPONSE

    @pytest.mark.asyncio
    async def test_real_request_captures_headers_and_accept(self):
        seen = {}

        async def handler(request):
            seen['accept'] = request.headers.get('Accept')
            seen['ua'] = request.headers.get('User-Agent')
            resp = web.Response(text='<html>hi</html>', content_type='text/html')
            resp.set_cookie('a', '1')
            resp.set_cookie('b', '2')
            return resp

        app = web.Application()
        app.router.add_get('/', handler)

        async with TestServer(app) as server:
            url = str(server.make_url('/'))
            analyzer = HttpAnalyzer(ScanConfig(target=url, user_agent='WardScanTest/1'))
            try:
                result = await analyzer.analyze_with_retry(url)
            finally:
                await analyzer.close()

        assert result.status == 200
        assert result.body == '<html>hi</html>'
        assert 'text/html' in result.header('content-type')
        assert len(result.header_values('Set-Cookie')) == 2
        assert 'text/html' in seen['accept']
        assert seen['ua'] == 'WardScanTest/1'

    @pytest.mark.asyncio
    async def test_redirects_not_followed_when_disabled(self):
        async def hop(request):
            raise web.HTTPFound('/landing')

        async def landing(request):
            return web.Response(text='landed')

        app = web.Application()
        app.router.add_get('/hop', hop)
        app.router.add_get('/landing', landing)

        async with TestServer(app) as server:
            url = str(server.make_url('/hop'))
            following = HttpAnalyzer(ScanConfig(target=url))
            raw = HttpAnalyzer(ScanConfig(target=url, follow_redirects=False))
            try:
                followed = await following.analyze(url)
                not_followed = await raw.analyze(url)
            finally:
                await following.close()
                await raw.close()

        assert followed.status == 200
        assert followed.body == 'landed'
        assert not_followed.status == 302
        assert not_followed.is_redirect
        assert not_followed.header('Location') == '/landing'


@pytest.mark.asyncio
async def test_client_head_and_options():
    methods = []

    async def page(request):
        methods.append(request.method)
        return web.Response(text='body', headers={'Allow': 'GET, HEAD, OPTIONS'})

    app = web.Application()
    app.router.add_route('*', '/', page)

    async with TestServer(app) as server:
        url = str(server.make_url('/'))
        async with HttpClient(timeout=5) as client:
            head = await client.head(url)
            options = await client.options(url)

    assert methods == ['HEAD', 'OPTIONS']
    assert head.status == 200
    assert head.body == ''
    assert options.header('Allow') == 'GET, HEAD, OPTIONS'


class TestClientOwnership:

    @pytest.mark.asyncio
    async def test_injected_client_is_left_open(self):
        client = mock.Mock(spec=HttpClient)
        client.close = mock.AsyncMock()

        await HttpAnalyzer(CONFIG, client=client).close()

        client.close.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_own_client_is_closed(self):
        analyzer = HttpAnalyzer(CONFIG)
        analyzer.client.close = mock.AsyncMock()

        await analyzer.close()

        analyzer.client.close.assert_awaited_once()
