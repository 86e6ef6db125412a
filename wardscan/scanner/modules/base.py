"""
Base Module for WardScan Detection

Shared finding model and evidence helpers for all passive and active modules.
"""

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
import logging

from wardscan.scanner.core.requester import request_line

logger = logging.getLogger(__name__)


class Severity(Enum):
    """Vulnerability severity levels."""
    CRITICAL = 'critical'
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'
    INFO = 'info'

    @property
    def risk(self) -> int:
        """Default 0-100 risk score for the severity."""
        return SEVERITY_RISK[self]


SEVERITY_RISK = {
    Severity.INFO: 10,
    Severity.LOW: 25,
    Severity.MEDIUM: 50,
    Severity.HIGH: 75,
    Severity.CRITICAL: 90,
}


class IssueType(Enum):
    """Finding categories."""
    # Passive signatures
    XSS_PATTERN = 'xss_pattern'
    SQLI_PATTERN = 'sqli_pattern'
    OPEN_REDIRECT_PATTERN = 'open_redirect_pattern'
    DIRECTORY_LISTING = 'directory_listing'
    MISSING_SECURITY_HEADER = 'missing_security_header'
    WEAK_CSP = 'weak_csp'
    COOKIE_HTTPONLY_MISSING = 'cookie_httponly_missing'
    COOKIE_SECURE_MISSING = 'cookie_secure_missing'
    SERVER_ERROR_5XX = 'server_error_5xx'
    OTHER = 'other'
    # Active probes
    XSS_REFLECTED = 'xss_reflected'
    SQLI_ERROR = 'sqli_error'
    CORS_MISCONFIG = 'cors_misconfig'
    OPEN_REDIRECT = 'open_redirect'
    PATH_TRAVERSAL = 'path_traversal'
    SSTI = 'ssti'
    MIXED_CONTENT = 'mixed_content'
    # Anomalies
    ANOMALY_SIZE_DELTA = 'anomaly_size_delta'
    ANOMALY_CONTENT_TYPE_MISMATCH = 'anomaly_content_type_mismatch'
    ANOMALY_STACKTRACE_TOKEN = 'anomaly_stacktrace_token'


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class VulnResult:
    """
    A confirmed finding. Built once by the detector that confirms it.
    """
    url: str
    issue_type: IssueType
    severity: Severity
    description: str = ''
    evidence: str = ''
    confidence: float = 0.7
    detected_at: datetime = field(default_factory=_now)
    risk_score: Optional[int] = None
    request_line: str = ''
    evidence_snippet: str = ''
    parameter: Optional[str] = None
    payload_signature: Optional[str] = None

    def __post_init__(self):
        if not self.url:
            raise ValueError("url is required")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence out of range: {self.confidence}")
        if self.risk_score is not None and not 0 <= self.risk_score <= 100:
            raise ValueError(f"risk_score out of range: {self.risk_score}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'url': self.url,
            'type': self.issue_type.value,
            'severity': self.severity.value,
            'description': self.description,
            'evidence': self.evidence,
            'confidence': self.confidence,
            'detected_at': self.detected_at.isoformat(),
            'risk_score': self.risk_score,
            'request_line': self.request_line,
            'evidence_snippet': self.evidence_snippet,
            'parameter': self.parameter,
            'payload_signature': self.payload_signature,
        }


@dataclass(frozen=True)
class RiskSummary:
    """Aggregate of finding risk scores."""
    count: int
    average: float
    p95: int
    max: int


def summarize_risk(results: Iterable[VulnResult]) -> RiskSummary:
    """
    Summarise risk scores, using the severity default where a score is missing.

    p95 is the element at index floor(0.95 * (n - 1)) of the sorted scores.
    """
    scores = sorted(
        r.risk_score if r.risk_score is not None else r.severity.risk
        for r in results
    )
    if not scores:
        return RiskSummary(0, 0.0, 0, 0)
    p95 = scores[int(math.floor(0.95 * (len(scores) - 1)))]
    return RiskSummary(len(scores), sum(scores) / len(scores), p95, scores[-1])


# Masking of sensitive-looking evidence
_PASSWD_LINE = re.compile(r'(?m)^root:x:[^\n\r]*$')
_SECRET_ASSIGNMENT = re.compile(r'(?i)(\b(?:api[_-]?key|secret|token)\b\s*[:=]\s*)([^\s"\'\\]+)')


def mask_sensitive(text: str) -> str:
    """Mask password-file lines and key/secret/token assignments."""
    if not text:
        return ''
    text = _PASSWD_LINE.sub('root:x:***', text)
    return _SECRET_ASSIGNMENT.sub(r'\1***', text)


def snippet_around(body: str, token: Optional[str], radius: int = 80) -> str:
    """
    Up to `radius` characters either side of the first occurrence of token.

    Falls back to the first 2*radius characters when the token is absent.
    """
    if not body:
        return ''
    idx = body.find(token) if token else -1
    if idx < 0:
        return body[:radius * 2]
    start = max(0, idx - radius)
    end = min(len(body), idx + len(token) + radius)
    return body[start:end]


class BaseModule(ABC):
    """
    Abstract base class for detection modules.

    Each module declares its issue type, default severity and confidence,
    and builds findings through create_result().
    """

    name: str = "Base Module"
    description: str = "Base detection module"
    issue_type: IssueType = IssueType.OTHER
    severity: Severity = Severity.INFO
    confidence: float = 0.7

    def __init__(self):
        """Initialize the module."""
        self.logger = logging.getLogger(f"wardscan.module.{self.name}")

    @abstractmethod
    async def run(self, *args, **kwargs) -> List[VulnResult]:
        """
        Execute the module.

        Returns:
            List of VulnResult objects
        """

    def create_result(
            self,
            url: str,
            description: str,
            method: str = 'GET',
            request_url: Optional[str] = None,
            body: str = '',
            token: Optional[str] = None,
            snippet: Optional[str] = None,
            evidence: Optional[str] = None,
            issue_type: Optional[IssueType] = None,
            severity: Optional[Severity] = None,
            confidence: Optional[float] = None,
            **kwargs
    ) -> VulnResult:
        """
        Helper to create a VulnResult with request line, masked snippet and risk score.

        Args:
            url: Affected URL
            description: Human readable description
            method: Method used for the request line
            request_url: URL actually requested (defaults to url)
            body: Response body to cut the snippet from
            token: Evidence token to centre the snippet on
            snippet: Explicit snippet, overriding body/token
            evidence: Raw evidence (defaults to request line + snippet)
            **kwargs: Extra VulnResult fields (parameter, payload_signature)

        Returns:
            VulnResult object
        """
        severity = severity or self.severity
        line = request_line(method, request_url or url)
        cut = snippet if snippet is not None else snippet_around(body, token)
        cut = mask_sensitive(cut)
        return VulnResult(
            url=url,
            issue_type=issue_type or self.issue_type,
            severity=severity,
            description=description,
            evidence=mask_sensitive(evidence) if evidence is not None else f"{line}\n{cut}",
            confidence=self.confidence if confidence is None else confidence,
            risk_score=severity.risk,
            request_line=line,
            evidence_snippet=cut,
            **kwargs
        )

    @staticmethod
    def truncate(text: str, max_length: int = 180) -> str:
        """Truncate text to maximum length."""
        if len(text) <= max_length:
            return text
        return text[:max_length] + '...'
