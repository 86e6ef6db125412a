"""
Passive Signature Module

Checks a fetched page without extra requests:
- 5xx server errors
- SQL error text in ordinary pages
- Missing security headers and weak CSP
- Cookie HttpOnly / Secure flags
"""

from typing import List, Optional
from urllib.parse import urlsplit
import logging

from wardscan.scanner.modules.base import BaseModule, VulnResult, Severity, IssueType
from wardscan.scanner.modules.sqli import find_sql_error
from wardscan.scanner.core.requester import HttpResponseData

logger = logging.getLogger(__name__)


# Security headers to check: header -> (severity on http, severity on https)
SECURITY_HEADERS = {
    'Strict-Transport-Security': (Severity.INFO, Severity.MEDIUM),
    'Content-Security-Policy': (Severity.MEDIUM, Severity.MEDIUM),
    'X-Frame-Options': (Severity.LOW, Severity.LOW),
    'X-Content-Type-Options': (Severity.LOW, Severity.LOW),
    'Referrer-Policy': (Severity.INFO, Severity.INFO),
}

WEAK_CSP_TOKENS = ("'unsafe-inline'", "'unsafe-eval'")


def is_weak_csp(csp: str) -> bool:
    """unsafe-inline / unsafe-eval, or a bare '*' source."""
    value = (csp or '').lower()
    if any(token in value for token in WEAK_CSP_TOKENS):
        return True
    for directive in value.split(';'):
        if '*' in directive.split()[1:]:
            return True
    return False


def cookie_name(set_cookie: str) -> str:
    return set_cookie.split('=', 1)[0].strip()


def cookie_flags(set_cookie: str) -> set:
    return {part.strip().split('=', 1)[0].lower() for part in set_cookie.split(';')[1:]}


class SecurityHeadersModule(BaseModule):
    """
    Passive signature checks.

    Checks for:
    - Server errors and leaked SQL errors
    - Missing / weak security headers
    - Insecure cookie flags
    """

    name = "Passive Signature Scanner"
    description = "Checks headers, cookies and error pages of each response"
    issue_type = IssueType.MISSING_SECURITY_HEADER
    severity = Severity.LOW
    confidence = 0.75

    async def run(self, response: HttpResponseData) -> List[VulnResult]:
        return self.check(response)

    def check(self, response: HttpResponseData) -> List[VulnResult]:
        """
        Check one response.

        Args:
            response: Captured page response

        Returns:
            List of VulnResult objects
        """
        if response is None or response.is_transport_failure:
            return []

        url = response.url
        is_https = urlsplit(url).scheme.lower() == 'https'
        results = []

        if 500 <= response.status <= 599:
            results.append(self.create_result(
                url=url,
                description=f"Server returned HTTP {response.status}.",
                body=response.body,
                issue_type=IssueType.SERVER_ERROR_5XX,
                severity=Severity.MEDIUM,
                confidence=0.7,
            ))

        sql_hit = find_sql_error(response.body)
        if sql_hit:
            results.append(self.create_result(
                url=url,
                description="SQL error message found in response body.",
                body=response.body,
                token=sql_hit,
                issue_type=IssueType.SQLI_PATTERN,
                severity=Severity.HIGH,
                confidence=0.85,
            ))

        # Check for missing security headers
        for header, (http_severity, https_severity) in SECURITY_HEADERS.items():
            if (response.header(header) or '').strip():
                continue
            results.append(self.create_result(
                url=url,
                description=f"Security header missing: {header}.",
                snippet=f"{header}: (absent)",
                severity=https_severity if is_https else http_severity,
            ))

        csp = response.header('Content-Security-Policy')
        if csp and is_weak_csp(csp):
            results.append(self.create_result(
                url=url,
                description="Content-Security-Policy is weak or permissive.",
                snippet=f"Content-Security-Policy: {self.truncate(csp)}",
                issue_type=IssueType.WEAK_CSP,
                severity=Severity.MEDIUM,
            ))

        results.extend(self._check_cookies(url, response.header_values('Set-Cookie'), is_https))
        return results

    def _check_cookies(self, url: str, cookies: List[str], is_https: bool) -> List[VulnResult]:
        results = []
        for raw in cookies:
            name = cookie_name(raw)
            flags = cookie_flags(raw)
            if 'httponly' not in flags:
                results.append(self._cookie_result(url, name, IssueType.COOKIE_HTTPONLY_MISSING, 'HttpOnly'))
            if is_https and 'secure' not in flags:
                results.append(self._cookie_result(url, name, IssueType.COOKIE_SECURE_MISSING, 'Secure'))
        return results

    def _cookie_result(self, url: str, name: str, issue_type: IssueType, flag: str) -> VulnResult:
        return self.create_result(
            url=url,
            description=f"Cookie '{name}' is set without the {flag} flag.",
            snippet=f"Set-Cookie: {name}=... (no {flag})",
            issue_type=issue_type,
            severity=Severity.LOW,
            confidence=0.8,
        )


# Module interface functions
def check(response: HttpResponseData, module: Optional[SecurityHeadersModule] = None) -> List[VulnResult]:
    """Passive check interface."""
    return (module or SecurityHeadersModule()).check(response)
