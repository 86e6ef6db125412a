"""
Mixed Content Detection Module

HTTPS pages that pull resources over plain http://.
"""

import re
from typing import List, Optional
from urllib.parse import urlsplit
import logging

from wardscan.scanner.modules.base import BaseModule, VulnResult, Severity, IssueType
from wardscan.scanner.core.requester import HttpClient

logger = logging.getLogger(__name__)

MIXED_SIGNATURE = 'scan_https_asset'
INSECURE_SCHEME = 'http://'
_INSECURE_ATTR = re.compile(r'''(?i)\b(?:src|href|data|action)\s*=\s*["']?\s*http://''')


def find_insecure_reference(body: str) -> Optional[str]:
    """
    Evidence token for an http:// reference, preferring one inside src/href/data/action.
    """
    if not body:
        return None
    m = _INSECURE_ATTR.search(body)
    if m:
        return m.group(0)
    if INSECURE_SCHEME in body.lower():
        return INSECURE_SCHEME
    return None


class MixedContentModule(BaseModule):
    """Plain-http references on HTTPS pages."""

    name = "Mixed Content Scanner"
    description = "Detects http:// resources on HTTPS pages"
    issue_type = IssueType.MIXED_CONTENT
    severity = Severity.LOW
    confidence = 0.75

    async def run(self, client: HttpClient, url: str, plan) -> List[VulnResult]:
        if urlsplit(url).scheme.lower() != 'https':
            return []
        resp = await client.get(url)
        token = find_insecure_reference(resp.body)
        if token is None:
            return []
        return [self.create_result(
            url=url,
            description="HTTPS page references resources over plain HTTP.",
            body=resp.body,
            token=token,
            payload_signature=plan.signature,
        )]


# Module interface functions
async def test(client, url, plan) -> List[VulnResult]:
    """Active test interface."""
    return await MixedContentModule().run(client, url, plan)
