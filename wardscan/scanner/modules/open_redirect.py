"""
Open Redirect Detection Module

Injects an external URL into redirect-like parameters and watches for a raw
3xx pointing off-host. Redirects are never followed.
"""

from typing import List, Optional
from urllib.parse import urljoin, urlsplit
import logging

from wardscan.scanner.modules.base import BaseModule, VulnResult, Severity, IssueType
from wardscan.scanner.core.requester import HttpClient
from wardscan.scanner.core.urls import with_param

logger = logging.getLogger(__name__)

REDIRECT_PAYLOAD = 'https://wkai.example/'
REDIRECT_SIGNATURE = 'host_ext'
PAGE_HINT_SIGNATURE = 'host_ext_page_hint'

# Parameters commonly used for redirects
REDIRECT_KEY_FRAGMENTS = ('redirect', 'returnurl')
REDIRECT_KEYS = ('url', 'next')


def is_redirect_like(key: str) -> bool:
    """redirect / returnurl anywhere in the key, or exactly url / next."""
    k = (key or '').lower()
    return any(f in k for f in REDIRECT_KEY_FRAGMENTS) or k in REDIRECT_KEYS


def external_location(status: int, location: Optional[str], target_url: str) -> Optional[str]:
    """
    Resolved Location of a 3xx response when it leaves the target host.

    Returns:
        The absolute Location, or None when this is not an off-host redirect
    """
    if not 300 <= status < 400 or not location:
        return None
    resolved = urljoin(target_url, location.strip())
    target_host = (urlsplit(target_url).hostname or '').lower()
    location_host = (urlsplit(resolved).hostname or '').lower()
    if location_host and location_host != target_host:
        return resolved
    return None


class OpenRedirectModule(BaseModule):
    """
    Open Redirect Detection Module

    Detects:
    - Parameter-driven redirects to an attacker host
    - Pages that already bounce straight to a foreign host (page hint)
    """

    name = "Open Redirect Scanner"
    description = "Detects Open Redirect vulnerabilities"
    issue_type = IssueType.OPEN_REDIRECT
    severity = Severity.MEDIUM
    confidence = 0.8

    async def run(self, client: HttpClient, url: str, plan) -> List[VulnResult]:
        """
        Args:
            client: HTTP client
            url: Page URL under test
            plan: ProbePlan (PARAM for injection, PAGE for the page hint)

        Returns:
            List with at most one finding
        """
        if plan.param:
            probe_url = with_param(url, plan.param, plan.payload)
        else:
            probe_url = url

        resp = await client.get(probe_url, follow_redirects=False)
        location = external_location(resp.status, resp.header('Location'), url)
        if location is None:
            return []

        if plan.param:
            description = f"Parameter '{plan.param}' redirects to an external host."
        else:
            description = "Page redirects straight to an external host."
        snippet = f"HTTP {resp.status}\nLocation: {self.truncate(location)}"
        return [self.create_result(
            url=url,
            description=description,
            request_url=probe_url,
            snippet=snippet,
            parameter=plan.param,
            payload_signature=plan.signature,
        )]


# Module interface functions
async def test(client, url, plan) -> List[VulnResult]:
    """Active test interface."""
    return await OpenRedirectModule().run(client, url, plan)
