"""
Async HTTP client for WardScan

Thin aiohttp wrapper with:
- Connection pooling
- Per-request redirect control (a "never follow" variant is always available)
- Default Accept header
- Immutable response capture (HttpResponseData)
"""

import asyncio
import ssl
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy
import logging

logger = logging.getLogger(__name__)

# Status used when no HTTP response was obtained (timeout, refused, TLS...)
NO_RESPONSE = -1

MAX_BODY_CHARS = 10 * 1024 * 1024


def _empty_headers() -> CIMultiDictProxy:
    return CIMultiDictProxy(CIMultiDict())


@dataclass(frozen=True)
class HttpResponseData:
    """
    Immutable capture of one HTTP exchange.

    Headers are case-insensitive and multi-valued.
    """
    url: str
    status: int
    headers: CIMultiDictProxy = field(default_factory=_empty_headers)
    body: str = ''
    elapsed_ms: int = 0
    error: Optional[str] = None

    @classmethod
    def build(
            cls,
            url: str,
            status: int,
            headers=None,
            body: str = '',
            elapsed_ms: int = 0,
            error: Optional[str] = None
    ) -> 'HttpResponseData':
        """Create a response from any header mapping or list of pairs."""
        if isinstance(headers, CIMultiDictProxy):
            proxy = headers
        else:
            md = CIMultiDict()
            items = headers.items() if hasattr(headers, 'items') else (headers or [])
            for key, value in items:
                if isinstance(value, (list, tuple)):
                    for v in value:
                        md.add(key, str(v))
                else:
                    md.add(key, str(value))
            proxy = CIMultiDictProxy(md)
        return cls(url=url, status=status, headers=proxy, body=body or '',
                   elapsed_ms=int(elapsed_ms), error=error)

    @classmethod
    def failure(cls, url: str, elapsed_ms: int = 0, error: Optional[str] = None) -> 'HttpResponseData':
        """Sentinel response for a request that produced no HTTP answer."""
        return cls.build(url, NO_RESPONSE, None, '', elapsed_ms, error)

    @property
    def content_type(self) -> str:
        return self.headers.get('Content-Type', '')

    @property
    def is_transport_failure(self) -> bool:
        return self.status == NO_RESPONSE

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400

    def header(self, name: str) -> Optional[str]:
        """First value of a header (case-insensitive), or None."""
        return self.headers.get(name)

    def header_values(self, name: str) -> List[str]:
        """All values of a header (case-insensitive)."""
        return list(self.headers.getall(name, []))


def request_line(method: str, url: str) -> str:
    """Synthesised request line used as evidence, e.g. 'GET https://x/ HTTP/1.1'."""
    return f"{method.upper()} {url} HTTP/1.1"


class HttpClient:
    """
    Pooled aiohttp client used by the analyzer, crawler, robots fetcher and probes.

    Transport failures propagate as aiohttp.ClientError / asyncio.TimeoutError;
    callers decide how to degrade.
    """

    DEFAULT_ACCEPT = 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8'

    def __init__(
            self,
            timeout: float = 10.0,
            user_agent: str = 'WardScan/1.0',
            follow_redirects: bool = True,
            max_connections: int = 20,
            verify_ssl: bool = True
    ):
        """
        Args:
            timeout: Total per-request timeout in seconds
            user_agent: User-Agent sent with every request
            follow_redirects: Default redirect behaviour
            max_connections: Connection pool size
            verify_ssl: Whether to verify TLS certificates
        """
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.user_agent = user_agent
        self.follow_redirects = follow_redirects
        self.max_connections = max_connections
        self.verify_ssl = verify_ssl
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def start(self):
        """Create the aiohttp session."""
        if self._session is None or self._session.closed:
            ssl_context = ssl.create_default_context()
            if not self.verify_ssl:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

            connector = aiohttp.TCPConnector(
                limit=self.max_connections,
                ssl=ssl_context,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=self.timeout,
                headers={'User-Agent': self.user_agent},
                cookie_jar=aiohttp.DummyCookieJar(),
            )

    async def close(self):
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(
            self,
            method: str,
            url: str,
            headers: Optional[Dict[str, str]] = None,
            follow_redirects: Optional[bool] = None
    ) -> HttpResponseData:
        """
        Send one request and capture the response.

        Args:
            method: GET, HEAD or OPTIONS
            url: Absolute URL
            headers: Extra request headers
            follow_redirects: Override the client default (False = never follow)

        Returns:
            HttpResponseData for the final response
        """
        if self._session is None:
            await self.start()

        request_headers = CIMultiDict(headers or {})
        if 'Accept' not in request_headers:
            request_headers['Accept'] = self.DEFAULT_ACCEPT

        allow_redirects = self.follow_redirects if follow_redirects is None else follow_redirects

        start = time.monotonic()
        async with self._session.request(
                method.upper(),
                url,
                headers=request_headers,
                allow_redirects=allow_redirects
        ) as resp:
            if method.upper() == 'HEAD':
                body = ''
            else:
                body = await resp.text(errors='replace')
                if len(body) > MAX_BODY_CHARS:
                    body = body[:MAX_BODY_CHARS]
            elapsed_ms = int((time.monotonic() - start) * 1000)
            return HttpResponseData(
                url=url,
                status=resp.status,
                headers=CIMultiDictProxy(CIMultiDict(resp.headers)),
                body=body,
                elapsed_ms=elapsed_ms,
            )

    async def get(self, url: str, **kwargs) -> HttpResponseData:
        """Make GET request."""
        return await self.request('GET', url, **kwargs)

    async def head(self, url: str, **kwargs) -> HttpResponseData:
        """Make HEAD request."""
        return await self.request('HEAD', url, **kwargs)

    async def options(self, url: str, **kwargs) -> HttpResponseData:
        """Make OPTIONS request."""
        return await self.request('OPTIONS', url, **kwargs)

    async def preflight(self, url: str, origin: str, method: str = 'GET') -> HttpResponseData:
        """CORS preflight: OPTIONS with Origin and Access-Control-Request-Method."""
        return await self.request('OPTIONS', url, headers={
            'Origin': origin,
            'Access-Control-Request-Method': method.upper(),
        }, follow_redirects=False)


TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)
