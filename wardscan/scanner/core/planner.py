"""
Active probe planning.

Turns a page's candidate parameters into declarative ProbePlans for the
categories the mode enables.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from wardscan.config import Mode, ScanConfig, hint_list
from wardscan.scanner.core.features import FeatureMatrix, Probe
from wardscan.scanner.modules import cors, lfi, mixed_content, open_redirect, sqli, ssti, xss


class PlanKind(Enum):
    PARAM = 'param'
    HEADER = 'header'
    PAGE = 'page'


NO_PARAM = '-'


@dataclass(frozen=True)
class ProbePlan:
    """One active-probe interaction to attempt."""
    kind: PlanKind
    probe: Probe
    param: Optional[str]
    payload: str
    signature: str

    @property
    def param_key(self) -> str:
        return self.param or NO_PARAM

    def dedupe_key(self, url: str) -> Tuple[str, str, str, str]:
        return url, self.param_key, self.probe.value, self.signature


TOP_KEYS = frozenset({'id', 'q', 'query', 'search', 'redirect', 'returnurl', 'url', 'next', 'file', 'path'})


def key_weight(key: str) -> int:
    k = key.lower()
    if k in TOP_KEYS:
        return 100
    if 'id' in k or 'url' in k or 'file' in k:
        return 60
    return 10


def _ranked(keys: Iterable[str], score) -> List[str]:
    # sorted() is stable, so equal scores keep discovery order
    return sorted(keys, key=score, reverse=True)


def choose_params(keys: Iterable[str], limit: int) -> List[str]:
    """Highest-weight candidates, capped at limit."""
    return _ranked(list(dict.fromkeys(keys)), key_weight)[:max(0, limit)]


def xss_order(keys: List[str], hints: Iterable[str]) -> List[str]:
    hints = set(hint_list(list(hints)))

    def score(k):
        s = k.lower()
        if s in hints:
            return 100
        if 'q' in s or 'search' in s:
            return 60
        return 10
    return _ranked(keys, score)


def sqli_order(keys: List[str], hints: Iterable[str]) -> List[str]:
    hints = set(hint_list(list(hints)))

    def score(k):
        s = k.lower()
        if s in hints:
            return 100
        if 'id' in s or 'user' in s:
            return 60
        return 10
    return _ranked(keys, score)


def file_order(keys: List[str]) -> List[str]:
    chosen = [k for k in keys if lfi.is_file_like(k)] or list(keys)

    def score(k):
        s = k.lower()
        if s in ('file', 'path'):
            return 100
        if lfi.is_file_like(s):
            return 60
        return 10
    return _ranked(chosen, score)


def param_cap(config: ScanConfig) -> int:
    """Smaller of the configured cap for the mode and the mode default."""
    if config.mode in (Mode.AGGRESSIVE_LITE, Mode.AGGRESSIVE):
        configured = config.aggressive.max_params_per_url
    else:
        configured = config.max_params_per_url
    return max(1, min(configured, FeatureMatrix.max_params_per_url_default(config.mode)))


def build_plans(config: ScanConfig, url: str, candidate_keys: Iterable[str]) -> List[ProbePlan]:
    """
    Plan the active probes for one URL.

    Args:
        config: Scan configuration (mode, caps, hints, enable flags)
        url: Page URL under test
        candidate_keys: Discovered parameter names, in discovery order

    Returns:
        De-duplicated plans in execution order
    """
    enabled = FeatureMatrix.enabled_probes(config.mode, config.aggressive)
    if not enabled:
        return []

    keys = choose_params(candidate_keys, param_cap(config))
    aggressive = config.mode == Mode.AGGRESSIVE
    plans: List[ProbePlan] = []

    if Probe.OPEN_REDIRECT in enabled:
        redirect_keys = [k for k in keys if open_redirect.is_redirect_like(k)]
        for key in redirect_keys:
            plans.append(ProbePlan(PlanKind.PARAM, Probe.OPEN_REDIRECT, key,
                                   open_redirect.REDIRECT_PAYLOAD, open_redirect.REDIRECT_SIGNATURE))
        if not redirect_keys:
            plans.append(ProbePlan(PlanKind.PAGE, Probe.OPEN_REDIRECT, None,
                                   open_redirect.REDIRECT_PAYLOAD, open_redirect.PAGE_HINT_SIGNATURE))

    if Probe.CORS in enabled:
        for origin, signature in cors.CORS_ORIGINS:
            plans.append(ProbePlan(PlanKind.HEADER, Probe.CORS, None, origin, signature))

    if Probe.MIXED_CONTENT in enabled and urlsplit(url).scheme.lower() == 'https':
        plans.append(ProbePlan(PlanKind.PAGE, Probe.MIXED_CONTENT, None, '', mixed_content.MIXED_SIGNATURE))

    if Probe.XSS_REFLECTED in enabled:
        for key in xss_order(keys, config.xss_param_hints):
            plans.append(ProbePlan(PlanKind.PARAM, Probe.XSS_REFLECTED, key, xss.XSS_PAYLOAD, xss.XSS_SIGNATURE))

    if Probe.SQLI_ERROR in enabled:
        payloads = [(sqli.SQLI_PAYLOAD, sqli.SQLI_SIGNATURE)]
        if aggressive:
            payloads.append((sqli.SQLI_AGGRESSIVE_PAYLOAD, sqli.SQLI_AGGRESSIVE_SIGNATURE))
        for key in sqli_order(keys, config.sqli_param_hints):
            for payload, signature in payloads:
                plans.append(ProbePlan(PlanKind.PARAM, Probe.SQLI_ERROR, key, payload, signature))

    if Probe.PATH_TRAVERSAL in enabled and keys:
        payloads = list(lfi.LFI_PAYLOADS)
        if aggressive:
            payloads.extend(lfi.LFI_AGGRESSIVE_PAYLOADS)
        for key in file_order(keys):
            for payload, signature in payloads:
                plans.append(ProbePlan(PlanKind.PARAM, Probe.PATH_TRAVERSAL, key, payload, signature))

    if Probe.SSTI in enabled:
        for key in keys:
            plans.append(ProbePlan(PlanKind.PARAM, Probe.SSTI, key, ssti.SSTI_PAYLOAD, ssti.SSTI_SIGNATURE))

    return dedupe(url, plans)


def dedupe(url: str, plans: Iterable[ProbePlan]) -> List[ProbePlan]:
    """Keep the first plan per (url, param, issue, payload signature)."""
    unique: Dict[Tuple[str, str, str, str], ProbePlan] = {}
    for plan in plans:
        unique.setdefault(plan.dedupe_key(url), plan)
    return list(unique.values())
