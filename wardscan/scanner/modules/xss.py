"""
Reflected XSS Detection Module

Injects a marker-carrying tag payload and reports when it comes back
without HTML-entity encoding.
"""

from typing import List
import logging

from wardscan.scanner.modules.base import BaseModule, VulnResult, Severity, IssueType
from wardscan.scanner.core.requester import HttpClient
from wardscan.scanner.core.urls import with_param

logger = logging.getLogger(__name__)

MARKER = 'WKAI'
XSS_PAYLOAD = 'WKAI</div><svg/onload=confirm(1)>'
XSS_SIGNATURE = 'xss_polyglot_v1'
REFLECTED_FRAGMENT = (MARKER + '</div><svg').lower()


def is_reflected(body: str) -> bool:
    """Marker echoed directly in front of the unescaped tag opener."""
    if not body:
        return False
    return REFLECTED_FRAGMENT in body.lower()


class XSSModule(BaseModule):
    """
    Reflected XSS Detection Module

    A hit needs the marker immediately followed by a raw '</div><svg';
    an entity-encoded echo is not a finding, even when the page carries
    its own inline <svg> markup.
    """

    name = "XSS Scanner"
    description = "Detects reflected Cross-Site Scripting"
    issue_type = IssueType.XSS_REFLECTED
    severity = Severity.HIGH
    confidence = 0.9

    async def run(self, client: HttpClient, url: str, plan) -> List[VulnResult]:
        probe_url = with_param(url, plan.param, plan.payload)
        resp = await client.get(probe_url)
        if not is_reflected(resp.body):
            return []
        return [self.create_result(
            url=url,
            description=f"Parameter '{plan.param}' reflects markup without encoding.",
            request_url=probe_url,
            body=resp.body,
            token=MARKER,
            parameter=plan.param,
            payload_signature=plan.signature,
        )]


# Module interface functions
async def test(client, url, plan) -> List[VulnResult]:
    """Active test interface."""
    return await XSSModule().run(client, url, plan)
