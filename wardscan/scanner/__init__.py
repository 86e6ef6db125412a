"""
WardScan Scanner Engine

Async crawl-then-analyse pipeline with passive and mode-gated active checks.
"""

from wardscan.scanner.core.coordinator import ScanCoordinator, ScanReport
from wardscan.scanner.core.crawler import Crawler
from wardscan.scanner.core.requester import HttpClient

__all__ = ['ScanCoordinator', 'ScanReport', 'Crawler', 'HttpClient']
