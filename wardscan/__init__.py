"""
WardScan - policy-governed web vulnerability scanner.

Crawls a target within robots and scope rules, analyses every page under
concurrency and rate caps, and reports passive anomalies plus mode-gated
active probe findings.
"""

__version__ = '1.0.0'
