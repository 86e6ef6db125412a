"""
Path Traversal (LFI) Detection Module

Traversal payloads against file-like parameters; a hit requires a known
system-file marker in the response.
"""

from typing import List, Optional, Tuple
import logging

from wardscan.scanner.modules.base import BaseModule, VulnResult, Severity, IssueType
from wardscan.scanner.core.requester import HttpClient
from wardscan.scanner.core.urls import with_param

logger = logging.getLogger(__name__)

# (payload, signature)
LFI_PAYLOADS: List[Tuple[str, str]] = [
    ('../../../../../etc/passwd', 'unix_passwd'),
    ('..%2f..%2f..%2f..%2f..%2fetc%2fpasswd', 'unix_passwd_enc'),
]
LFI_AGGRESSIVE_PAYLOADS: List[Tuple[str, str]] = [
    ('..%2F..%2Fwindows%2Fwin.ini', 'win_ini_enc'),
]

LFI_SUCCESS_MARKERS = ['root:x:', '[fonts]']


def is_file_like(key: str) -> bool:
    k = (key or '').lower()
    return 'file' in k or 'path' in k


def find_file_marker(body: str) -> Optional[str]:
    for marker in LFI_SUCCESS_MARKERS:
        if marker in (body or ''):
            return marker
    return None


class LFIModule(BaseModule):
    """Local file inclusion through path traversal."""

    name = "Path Traversal Scanner"
    description = "Detects path traversal / local file inclusion"
    issue_type = IssueType.PATH_TRAVERSAL
    severity = Severity.HIGH
    confidence = 0.8

    async def run(self, client: HttpClient, url: str, plan) -> List[VulnResult]:
        # Payloads are pre-encoded where needed; inject them verbatim
        probe_url = with_raw_param(url, plan.param, plan.payload)
        resp = await client.get(probe_url)
        marker = find_file_marker(resp.body)
        if marker is None:
            return []
        return [self.create_result(
            url=url,
            description=f"System file contents returned through '{plan.param}'.",
            request_url=probe_url,
            body=resp.body,
            token=marker,
            parameter=plan.param,
            payload_signature=plan.signature,
        )]


def with_raw_param(url: str, key: str, value: str) -> str:
    """Like with_param but keeps '/', '.' and '%' escapes of the payload intact."""
    placeholder = 'WKAIRAWVALUE'
    return with_param(url, key, placeholder).replace(placeholder, value)


# Module interface functions
async def test(client, url, plan) -> List[VulnResult]:
    """Active test interface."""
    return await LFIModule().run(client, url, plan)
