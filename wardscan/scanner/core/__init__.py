"""
WardScan Scanner Core Components

Contains the coordinator, crawler, robots cache, HTTP client and analyzer,
and the policy pieces (feature matrix, budget, rate limiter) they share.
"""

from wardscan.scanner.core.coordinator import ScanCoordinator, ScanReport
from wardscan.scanner.core.crawler import Crawler
from wardscan.scanner.core.analyzer import HttpAnalyzer
from wardscan.scanner.core.requester import HttpClient, HttpResponseData
from wardscan.scanner.core.robots import RobotsCache, RobotsPolicy

__all__ = [
    'ScanCoordinator', 'ScanReport', 'Crawler', 'HttpAnalyzer',
    'HttpClient', 'HttpResponseData', 'RobotsCache', 'RobotsPolicy',
]
