"""
WardScan Detection Modules

Passive checks (anomaly, headers) and one module per active probe class.
"""
