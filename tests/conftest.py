"""Pytest configuration and shared fakes for WardScan."""

import pytest

from wardscan.scanner.core.requester import HttpResponseData
from wardscan.scanner.core.robots import RobotsFetchResult


class FrozenClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeFetcher:
    """Robots fetcher answering from a url -> RobotsFetchResult table."""

    def __init__(self, table=None, default=None):
        self.table = dict(table or {})
        self.default = default or RobotsFetchResult(404)
        self.calls = []

    async def __call__(self, url):
        self.calls.append(url)
        return self.table.get(url, self.default)


class FakeClient:
    """
    Stand-in for HttpClient.

    `handler(method, url, headers)` returns an HttpResponseData.
    """

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    async def get(self, url, headers=None, follow_redirects=None):
        self.calls.append(('GET', url, dict(headers or {}), follow_redirects))
        return self.handler('GET', url, dict(headers or {}))

    async def preflight(self, url, origin, method='GET'):
        headers = {'Origin': origin, 'Access-Control-Request-Method': method}
        self.calls.append(('OPTIONS', url, headers, False))
        return self.handler('OPTIONS', url, headers)

    async def close(self):
        pass


def html_response(url, body='<html><body>ok</body></html>', status=200, headers=None):
    merged = {'Content-Type': 'text/html; charset=utf-8'}
    merged.update(headers or {})
    return HttpResponseData.build(url, status, merged, body)


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def fake_fetcher():
    return FakeFetcher


@pytest.fixture
def fake_client():
    return FakeClient


@pytest.fixture
def make_html():
    return html_response
