"""
CORS Misconfiguration Detection Module

Sends spoofed Origin headers (plus an OPTIONS preflight) and flags
credentialed responses that trust any, reflected, or null origins.
"""

from typing import List
import logging

from wardscan.scanner.modules.base import BaseModule, VulnResult, Severity, IssueType
from wardscan.scanner.core.requester import HttpClient, HttpResponseData

logger = logging.getLogger(__name__)

# (Origin value, signature)
CORS_ORIGINS = [
    ('https://evil.example', 'origin_host'),
    ('null', 'origin_null'),
    ('https://sub.evil.example', 'origin_sub'),
]


def is_misconfigured(response: HttpResponseData, origin: str) -> bool:
    """
    ACAC: true together with ACAO '*', ACAO echoing the sent Origin, or ACAO 'null'.
    """
    acac = (response.header('Access-Control-Allow-Credentials') or '').strip().lower()
    if acac != 'true':
        return False
    acao = (response.header('Access-Control-Allow-Origin') or '').strip()
    return acao == '*' or acao.lower() == origin.lower() or acao.lower() == 'null'


class CORSModule(BaseModule):
    """Credentialed CORS trust of untrusted origins."""

    name = "CORS Scanner"
    description = "Detects permissive credentialed CORS policies"
    issue_type = IssueType.CORS_MISCONFIG
    severity = Severity.MEDIUM
    confidence = 0.8

    def _finding(self, url: str, response: HttpResponseData, origin: str, method: str, signature: str) -> VulnResult:
        snippet = (
            f"Access-Control-Allow-Origin: {response.header('Access-Control-Allow-Origin')}\n"
            f"Access-Control-Allow-Credentials: {response.header('Access-Control-Allow-Credentials')}"
        )
        return self.create_result(
            url=url,
            description=f"Credentialed CORS response trusts Origin '{origin}'.",
            method=method,
            snippet=snippet,
            payload_signature=signature,
        )

    async def run(self, client: HttpClient, url: str, plan) -> List[VulnResult]:
        """
        GET with the plan's Origin, then an OPTIONS preflight with the same Origin.

        Returns:
            List with at most one finding
        """
        origin = plan.payload
        resp = await client.get(url, headers={'Origin': origin}, follow_redirects=False)
        if is_misconfigured(resp, origin):
            return [self._finding(url, resp, origin, 'GET', plan.signature)]

        preflight = await client.preflight(url, origin, 'GET')
        if is_misconfigured(preflight, origin):
            return [self._finding(url, preflight, origin, 'OPTIONS', plan.signature)]
        return []


# Module interface functions
async def test(client, url, plan) -> List[VulnResult]:
    """Active test interface."""
    return await CORSModule().run(client, url, plan)
