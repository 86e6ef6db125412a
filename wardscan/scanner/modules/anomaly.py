"""
Passive Anomaly Engine

Request-free heuristics over a single response:
- Size delta against a per-path EWMA baseline (off by default)
- Declared Content-Type vs. apparent body format
- Stack trace / framework error tokens
"""

import re
import threading
from collections import OrderedDict
from typing import List, Optional
from urllib.parse import urlsplit
import logging

from wardscan.scanner.modules.base import BaseModule, VulnResult, Severity, IssueType
from wardscan.scanner.core.features import Anomaly, FeatureMatrix
from wardscan.scanner.core.requester import HttpResponseData

logger = logging.getLogger(__name__)

SIZE_DELTA_PCT = 25
BASELINE_CAPACITY = 256
SNIFF_CHARS = 64

STACKTRACE_PATTERN = re.compile(
    r'(?is)(Traceback\s*\(most recent call last\)|Exception\b|NullPointerException\b'
    r'|IndexOutOfBoundsException\b|at\s+[a-zA-Z0-9_$.]+\([a-zA-Z0-9_$.]+:\d+\)'
    r'|TypeError\b|ReferenceError\b|SyntaxError\b|System\.[A-Za-z0-9_.]+Exception\b'
    r'|org\.springframework\.|org\.hibernate\.|javax\.servlet\.)'
)

HTML, JSON, XML = 'html', 'json', 'xml'


class SizeBaselines:
    """Bounded LRU map of path -> EWMA body length, safe across threads."""

    def __init__(self, capacity: int = BASELINE_CAPACITY):
        self.capacity = capacity
        self._data: 'OrderedDict[str, int]' = OrderedDict()
        self._lock = threading.Lock()

    def observe(self, key: str, length: int) -> Optional[int]:
        """
        Record a length and return the baseline it was compared against.

        Returns:
            The pre-update baseline, or None on first sight
        """
        with self._lock:
            base = self._data.get(key)
            if base is None:
                self._data[key] = length
            else:
                self._data[key] = int(round(0.7 * base + 0.3 * length))
                self._data.move_to_end(key)
            while len(self._data) > self.capacity:
                self._data.popitem(last=False)
            return base

    def __len__(self):
        return len(self._data)

    def __contains__(self, key):
        return key in self._data


def sniff_body(body: str) -> Optional[str]:
    """Bucket the first non-whitespace characters of a body."""
    head = (body or '').lstrip()[:SNIFF_CHARS].lower()
    if '<html' in head or head.startswith('<!doctype'):
        return HTML
    if head.startswith('{') or head.startswith('['):
        return JSON
    if head.startswith('<?xml') or head.startswith('<rss') or head.startswith('<feed'):
        return XML
    return None


def declared_kind(content_type: str) -> Optional[str]:
    ct = (content_type or '').lower()
    if 'text/html' in ct or 'application/xhtml' in ct:
        return HTML
    if 'application/json' in ct:
        return JSON
    if 'application/xml' in ct or 'text/xml' in ct:
        return XML
    return None


def size_key(url: str) -> str:
    parts = urlsplit(url)
    return f"{(parts.hostname or '').lower()}{parts.path or '/'}"


class AnomalyEngine(BaseModule):
    """
    Passive anomaly heuristics. Each one is independent, so a response may
    produce zero to three INFO findings.
    """

    name = "Anomaly Engine"
    description = "Passive response anomalies"
    severity = Severity.INFO

    def __init__(self, size_delta: Optional[bool] = None, capacity: int = BASELINE_CAPACITY):
        super().__init__()
        if size_delta is None:
            size_delta = FeatureMatrix.anomaly_enabled(Anomaly.SIZE_DELTA)
        self.size_delta_enabled = size_delta
        self.content_type_enabled = FeatureMatrix.anomaly_enabled(Anomaly.CONTENT_TYPE)
        self.stacktrace_enabled = FeatureMatrix.anomaly_enabled(Anomaly.STACKTRACE)
        self.baselines = SizeBaselines(capacity)

    async def run(self, response: HttpResponseData) -> List[VulnResult]:
        return self.analyze(response)

    def analyze(self, response: HttpResponseData) -> List[VulnResult]:
        """
        Args:
            response: Captured page response

        Returns:
            Anomaly findings for this response
        """
        if response is None or response.is_transport_failure:
            return []

        results = []
        if self.size_delta_enabled:
            result = self._size_delta(response)
            if result:
                results.append(result)
        if self.content_type_enabled:
            result = self._content_type(response)
            if result:
                results.append(result)
        if self.stacktrace_enabled:
            result = self._stacktrace(response)
            if result:
                results.append(result)
        return results

    def _size_delta(self, response: HttpResponseData) -> Optional[VulnResult]:
        length = len(response.body)
        base = self.baselines.observe(size_key(response.url), length)
        if not base:
            return None
        pct = int(round(abs(length - base) * 100.0 / max(1, base)))
        if pct < SIZE_DELTA_PCT:
            return None
        return self.create_result(
            url=response.url,
            description=f"Response size changed by about {pct}% (threshold {SIZE_DELTA_PCT}%).",
            snippet=f"prev~{base}B -> now={length}B (delta~{pct}%)",
            issue_type=IssueType.ANOMALY_SIZE_DELTA,
            confidence=0.6,
        )

    def _content_type(self, response: HttpResponseData) -> Optional[VulnResult]:
        content_type = response.content_type.strip()
        declared = declared_kind(content_type)
        apparent = sniff_body(response.body)
        if apparent is None:
            return None

        if declared is None:
            mismatch = not content_type and apparent in (JSON, XML)
        else:
            mismatch = apparent != declared
        if not mismatch:
            return None

        snippet = f"Content-Type: {content_type or '<missing>'}\nBody looks like: {apparent.upper()}"
        return self.create_result(
            url=response.url,
            description="Declared Content-Type does not match the response body.",
            snippet=snippet,
            issue_type=IssueType.ANOMALY_CONTENT_TYPE_MISMATCH,
            confidence=0.65,
        )

    def _stacktrace(self, response: HttpResponseData) -> Optional[VulnResult]:
        m = STACKTRACE_PATTERN.search(response.body or '')
        if not m:
            return None
        token = m.group(0)[:32]
        return self.create_result(
            url=response.url,
            description="Stack trace or framework error token in response.",
            body=response.body,
            token=token,
            issue_type=IssueType.ANOMALY_STACKTRACE_TOKEN,
            confidence=0.7,
        )
