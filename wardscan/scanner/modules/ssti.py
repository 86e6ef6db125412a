"""
Server-Side Template Injection Detection Module

Sends an arithmetic template expression glued to a marker. Evaluation
('49WKAI') or a template-engine error both count as a hit.
"""

from typing import List, Optional
import logging

from wardscan.scanner.modules.base import BaseModule, VulnResult, Severity, IssueType
from wardscan.scanner.core.requester import HttpClient
from wardscan.scanner.core.urls import with_param

logger = logging.getLogger(__name__)

SSTI_PAYLOAD = '{{7*7}}WKAI'
SSTI_SIGNATURE = 'jinja_expr_v1'
EVALUATED_MARKER = '49WKAI'

TEMPLATE_ERROR_SIGNATURES = [
    'TemplateSyntaxError',
    'Jinja2',
    'Thymeleaf',
    'Freemarker',
    'VelocityException',
    'MustacheException',
    'PebbleException',
]


def find_ssti_evidence(body: str) -> Optional[str]:
    """Evaluated marker first, then engine error names."""
    if not body:
        return None
    if EVALUATED_MARKER in body:
        return EVALUATED_MARKER
    for signature in TEMPLATE_ERROR_SIGNATURES:
        if signature in body:
            return signature
    return None


class SSTIModule(BaseModule):
    """Template expression evaluation / template engine errors."""

    name = "SSTI Scanner"
    description = "Detects Server-Side Template Injection"
    issue_type = IssueType.SSTI
    severity = Severity.HIGH
    confidence = 0.8

    async def run(self, client: HttpClient, url: str, plan) -> List[VulnResult]:
        probe_url = with_param(url, plan.param, plan.payload)
        resp = await client.get(probe_url)
        hit = find_ssti_evidence(resp.body)
        if hit is None:
            return []
        if hit == EVALUATED_MARKER:
            description = f"Template expression in '{plan.param}' was evaluated server-side."
        else:
            description = f"Template engine error ({hit}) after injecting into '{plan.param}'."
        return [self.create_result(
            url=url,
            description=description,
            request_url=probe_url,
            body=resp.body,
            token=hit,
            parameter=plan.param,
            payload_signature=plan.signature,
        )]


# Module interface functions
async def test(client, url, plan) -> List[VulnResult]:
    """Active test interface."""
    return await SSTIModule().run(client, url, plan)
