"""
Per-mode capability table.

SAFE runs passive checks only. SAFE_PLUS adds reflected XSS, error-based SQLi,
CORS and open redirect. AGGRESSIVE_LITE adds open redirect, path traversal,
SSTI and mixed content. AGGRESSIVE is the union of the two.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from wardscan.config import AggressiveConfig, Mode


class Probe(Enum):
    """Active probe categories."""
    XSS_REFLECTED = 'xss_reflected'
    SQLI_ERROR = 'sqli_error'
    CORS = 'cors'
    OPEN_REDIRECT = 'open_redirect'
    PATH_TRAVERSAL = 'path_traversal'
    SSTI = 'ssti'
    MIXED_CONTENT = 'mixed_content'


class Anomaly(Enum):
    """Passive anomaly heuristics."""
    SIZE_DELTA = 'size_delta'
    CONTENT_TYPE = 'content_type'
    STACKTRACE = 'stacktrace'


_SAFE_PLUS = frozenset({Probe.XSS_REFLECTED, Probe.SQLI_ERROR, Probe.CORS, Probe.OPEN_REDIRECT})
_AGGRESSIVE_LITE = frozenset({Probe.OPEN_REDIRECT, Probe.PATH_TRAVERSAL, Probe.SSTI, Probe.MIXED_CONTENT})


@dataclass(frozen=True)
class ModeProfile:
    """Static capabilities and defaults of one mode."""
    probes: FrozenSet[Probe]
    endpoint_cap: int
    max_params_per_url: int
    active_rps_window: Optional[Tuple[float, float]]


PROFILES: Dict[Mode, ModeProfile] = {
    Mode.SAFE: ModeProfile(frozenset(), 0, 0, None),
    Mode.SAFE_PLUS: ModeProfile(_SAFE_PLUS, 8, 3, (2.0, 3.0)),
    Mode.AGGRESSIVE_LITE: ModeProfile(_AGGRESSIVE_LITE, 10, 4, (3.0, 5.0)),
    Mode.AGGRESSIVE: ModeProfile(_SAFE_PLUS | _AGGRESSIVE_LITE, 16, 6, (4.0, 7.0)),
}

DEFAULT_ANOMALIES = frozenset({Anomaly.CONTENT_TYPE, Anomaly.STACKTRACE})

# aggressive.enable_* switches
_TOGGLES = {
    Probe.OPEN_REDIRECT: 'enable_open_redirect',
    Probe.PATH_TRAVERSAL: 'enable_path_traversal',
    Probe.SSTI: 'enable_ssti',
    Probe.MIXED_CONTENT: 'enable_mixed_content',
}


class FeatureMatrix:
    """Stateless lookups over PROFILES."""

    @staticmethod
    def probes(mode: Mode) -> FrozenSet[Probe]:
        return PROFILES[Mode.parse(mode)].probes

    @staticmethod
    def is_enabled(mode: Mode, probe: Probe) -> bool:
        return probe in FeatureMatrix.probes(mode)

    @staticmethod
    def is_any_active(mode: Mode) -> bool:
        return bool(FeatureMatrix.probes(mode))

    @staticmethod
    def anomaly_enabled(anomaly: Anomaly) -> bool:
        return anomaly in DEFAULT_ANOMALIES

    @staticmethod
    def endpoint_cap(mode: Mode) -> int:
        return PROFILES[Mode.parse(mode)].endpoint_cap

    @staticmethod
    def max_params_per_url_default(mode: Mode) -> int:
        return PROFILES[Mode.parse(mode)].max_params_per_url

    @staticmethod
    def active_default_rps(mode: Mode, passive_rps: float) -> float:
        """Passive rps clamped into the mode's active window (0 for SAFE)."""
        window = PROFILES[Mode.parse(mode)].active_rps_window
        if window is None:
            return 0.0
        low, high = window
        return max(low, min(high, passive_rps))

    @staticmethod
    def enabled_probes(mode: Mode, aggressive: Optional[AggressiveConfig] = None) -> FrozenSet[Probe]:
        """Mode probes minus categories switched off in the aggressive sub-config."""
        mode = Mode.parse(mode)
        probes = PROFILES[mode].probes
        if aggressive is None or mode not in (Mode.AGGRESSIVE_LITE, Mode.AGGRESSIVE):
            return probes
        return frozenset(p for p in probes if getattr(aggressive, _TOGGLES.get(p, ''), True))
