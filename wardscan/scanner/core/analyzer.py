"""
HTTP Analyzer for WardScan

Fetches a page once (never raising) or under a retry policy that honours
integer Retry-After hints.
"""

import asyncio
import re
import time
from typing import Awaitable, Callable, Optional

from wardscan.config import ScanConfig
from wardscan.scanner.core.requester import HttpClient, HttpResponseData, TRANSPORT_ERRORS
from wardscan.scanner.core.retry import RetryPolicy, DefaultRetryPolicy
import logging

logger = logging.getLogger(__name__)

MAX_RETRY_AFTER_SECONDS = 30
RETRY_AFTER_SECONDS = re.compile(r"[0-9]+")

Sender = Callable[[str], Awaitable[HttpResponseData]]
Waiter = Callable[[float], Awaitable[None]]


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Integer-seconds Retry-After, capped at 30s.

    HTTP-date forms and negative values return None.
    """
    if value is None:
        return None
    value = value.strip()
    if not RETRY_AFTER_SECONDS.fullmatch(value):
        return None
    return float(min(int(value), MAX_RETRY_AFTER_SECONDS))


class HttpAnalyzer:
    """
    Single-request and retrying GET execution.

    The transport is an HttpClient by default; tests can pass a `sender`
    coroutine (url -> HttpResponseData) instead.
    """

    def __init__(
            self,
            config: ScanConfig,
            client: Optional[HttpClient] = None,
            sender: Optional[Sender] = None
    ):
        self.config = config
        self.client = client
        self._sender = sender
        self._owns_client = False
        if client is None and sender is None:
            self.client = HttpClient(
                timeout=config.timeout,
                user_agent=config.user_agent,
                follow_redirects=config.follow_redirects,
                max_connections=max(4, config.concurrency * 2),
            )
            self._owns_client = True

    async def close(self):
        if self._owns_client and self.client is not None:
            await self.client.close()

    async def _send(self, url: str) -> HttpResponseData:
        if self._sender is not None:
            return await self._sender(url)
        return await self.client.get(url)

    async def analyze(self, url: str) -> HttpResponseData:
        """
        GET the URL once.

        Returns:
            The captured response, or a status -1 response on any transport failure
        """
        start = time.monotonic()
        try:
            return await asyncio.wait_for(self._send(url), timeout=self.config.timeout)
        except asyncio.TimeoutError:
            elapsed = int((time.monotonic() - start) * 1000)
            logger.warning(f"Timeout on {url} after {elapsed}ms")
            return HttpResponseData.failure(url, elapsed, 'timeout')
        except TRANSPORT_ERRORS as e:
            elapsed = int((time.monotonic() - start) * 1000)
            logger.warning(f"Transport error on {url}: {e}")
            return HttpResponseData.failure(url, elapsed, str(e))
        except Exception as e:
            elapsed = int((time.monotonic() - start) * 1000)
            logger.error(f"Unexpected error on {url}: {e}")
            return HttpResponseData.failure(url, elapsed, str(e))

    async def analyze_with_retry(
            self,
            url: str,
            policy: Optional[RetryPolicy] = None,
            waiter: Waiter = asyncio.sleep
    ) -> HttpResponseData:
        """
        GET the URL, retrying while the policy allows.

        Args:
            url: Target URL
            policy: Retry decisions (DefaultRetryPolicy when omitted)
            waiter: Coroutine used to wait between attempts

        Returns:
            The first non-retryable response, or the last one once attempts run out
        """
        policy = policy or DefaultRetryPolicy()
        attempt = 1
        while True:
            response = await self.analyze(url)
            if not policy.should_retry(response.status, attempt):
                return response

            delay = parse_retry_after(response.header('Retry-After'))
            if delay is None:
                delay = policy.next_delay(attempt)

            logger.debug(f"Retrying {url} (status={response.status}, attempt={attempt}) in {delay:.3f}s")
            await waiter(delay)

            attempt += 1
            if attempt > policy.max_attempts:
                return response
