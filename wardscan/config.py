"""
WardScan Configuration Module

Scan configuration for a single run:
- Immutable ScanConfig with nested crawler and aggressive sub-configs
- Fail-fast validation (ConfigError)
- YAML scan files (scan.yml)
- Process defaults loaded from the environment / .env
"""

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class ConfigError(ValueError):
    """Raised when a scan configuration is invalid. Always scan-fatal."""


class BaseConfig:
    """Process-wide defaults, overridable through the environment."""

    APP_NAME = 'WardScan'
    APP_VERSION = '1.0.0'

    USER_AGENT = os.environ.get('WARDSCAN_USER_AGENT', 'WardScan/1.0 (+safe web scanner)')
    LOG_LEVEL = os.environ.get('WARDSCAN_LOG_LEVEL', 'INFO')

    # Robots cache
    ROBOTS_SUCCESS_TTL_MINUTES = 30
    ROBOTS_FAILURE_TTL_MINUTES = int(os.environ.get('WARDSCAN_ROBOTS_FAILURE_TTL_MINUTES', '10'))


class Mode(Enum):
    """Operating modes, ordered by capability."""
    SAFE = 'SAFE'
    SAFE_PLUS = 'SAFE_PLUS'
    AGGRESSIVE_LITE = 'AGGRESSIVE_LITE'
    AGGRESSIVE = 'AGGRESSIVE'

    @classmethod
    def parse(cls, value) -> 'Mode':
        """Resolve a mode from a name such as 'safe-plus' or 'AGGRESSIVE_LITE'."""
        if isinstance(value, Mode):
            return value
        name = str(value or '').strip().upper().replace('-', '_')
        try:
            return cls[name]
        except KeyError:
            raise ConfigError(f"Unknown mode: {value!r}") from None


def _require_number(name: str, value, integral: bool = False):
    kinds = (int,) if integral else (int, float)
    if isinstance(value, bool) or not isinstance(value, kinds):
        expected = 'an integer' if integral else 'a number'
        raise ConfigError(f"{name} must be {expected}, got {value!r}")


@dataclass(frozen=True)
class CrawlerConfig:
    """Crawler / robots settings."""
    respect_robots: bool = True
    cache_ttl_minutes: int = BaseConfig.ROBOTS_SUCCESS_TTL_MINUTES


@dataclass(frozen=True)
class AggressiveConfig:
    """Tuning for AGGRESSIVE_LITE and AGGRESSIVE modes."""
    max_params_per_url: int = 3
    run_time_budget_ms: int = 60000
    enable_open_redirect: bool = True
    enable_path_traversal: bool = True
    enable_ssti: bool = True
    enable_mixed_content: bool = True


@dataclass(frozen=True)
class ScanConfig:
    """
    Configuration for one scan run.

    Build it, call validate() once, then hand it to the coordinator.
    """
    target: str
    max_depth: int = 2
    same_domain_only: bool = True
    mode: Mode = Mode.SAFE
    timeout: float = 10.0
    concurrency: int = 4
    follow_redirects: bool = True
    rps: float = 10.0
    exclude_paths: Tuple[str, ...] = ()
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    max_params_per_url: int = 3
    xss_param_hints: Tuple[str, ...] = ('q', 'search', 's', 'query', 'keyword')
    sqli_param_hints: Tuple[str, ...] = ('id', 'uid', 'user', 'no', 'prod', 'cat', 'page')
    aggressive: AggressiveConfig = field(default_factory=AggressiveConfig)
    user_agent: str = BaseConfig.USER_AGENT
    passive_signatures: bool = True

    def __post_init__(self):
        # Accept plain lists / strings from callers and keep the instance hashable
        object.__setattr__(self, 'mode', Mode.parse(self.mode))
        for name in ('exclude_paths', 'xss_param_hints', 'sqli_param_hints'):
            value = getattr(self, name)
            if value is None:
                value = ()
            elif isinstance(value, str):
                value = (value,)
            object.__setattr__(self, name, tuple(value))

    def validate(self) -> 'ScanConfig':
        """
        Check documented bounds.

        Returns:
            self, so construction and validation can be chained

        Raises:
            ConfigError: on the first violated bound
        """
        if not isinstance(self.target, str) or not self.target.strip():
            raise ConfigError("target is required")
        self._check_types()
        parsed = urlparse(self.target.strip())
        if parsed.scheme.lower() not in ('http', 'https') or not parsed.hostname:
            raise ConfigError(f"target must be an absolute http(s) URL: {self.target!r}")
        if self.max_depth < 0:
            raise ConfigError("max_depth must be >= 0")
        if self.concurrency < 1:
            raise ConfigError("concurrency must be >= 1")
        if self.timeout <= 0:
            raise ConfigError("timeout must be > 0")
        if self.rps <= 0:
            raise ConfigError("rps must be > 0")
        if self.crawler.cache_ttl_minutes < 0:
            raise ConfigError("crawler.cache_ttl_minutes must be >= 0")
        if self.max_params_per_url < 1:
            raise ConfigError("max_params_per_url must be >= 1")
        if self.aggressive.max_params_per_url < 1:
            raise ConfigError("aggressive.max_params_per_url must be >= 1")
        if self.aggressive.run_time_budget_ms < 1000:
            raise ConfigError("aggressive.run_time_budget_ms must be >= 1000")
        return self

    def _check_types(self):
        for name, value in (('max_depth', self.max_depth), ('concurrency', self.concurrency),
                            ('max_params_per_url', self.max_params_per_url),
                            ('crawler.cache_ttl_minutes', self.crawler.cache_ttl_minutes),
                            ('aggressive.max_params_per_url', self.aggressive.max_params_per_url),
                            ('aggressive.run_time_budget_ms', self.aggressive.run_time_budget_ms)):
            _require_number(name, value, integral=True)
        _require_number('timeout', self.timeout)
        _require_number('rps', self.rps)
        for name in ('exclude_paths', 'xss_param_hints', 'sqli_param_hints'):
            if not all(isinstance(v, str) for v in getattr(self, name)):
                raise ConfigError(f"{name} must be a list of strings")

    def with_overrides(self, **changes) -> 'ScanConfig':
        """Copy with the given fields replaced; None values are skipped."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


# YAML key -> ScanConfig field
_TOP_LEVEL_KEYS = {
    'target': 'target',
    'sameDomainOnly': 'same_domain_only',
    'mode': 'mode',
    'concurrency': 'concurrency',
    'followRedirects': 'follow_redirects',
    'rps': 'rps',
    'maxParamsPerUrl': 'max_params_per_url',
    'xssParamHints': 'xss_param_hints',
    'sqliParamHints': 'sqli_param_hints',
    'excludePaths': 'exclude_paths',
    'userAgent': 'user_agent',
    'passiveSignatures': 'passive_signatures',
}

_AGGRESSIVE_KEYS = {
    'maxParamsPerUrl': 'max_params_per_url',
    'runTimeBudgetMs': 'run_time_budget_ms',
    'enableOpenRedirect': 'enable_open_redirect',
    'enablePathTraversal': 'enable_path_traversal',
    'enableSSTI': 'enable_ssti',
    'enableMixedContent': 'enable_mixed_content',
}


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"{key} must be a mapping")
    return value


def config_from_dict(data: Optional[Dict[str, Any]], **overrides) -> ScanConfig:
    """
    Build a ScanConfig from a scan.yml style mapping.

    Args:
        data: Parsed YAML document (camelCase keys)
        **overrides: ScanConfig fields that win over the document; None is ignored

    Returns:
        Unvalidated ScanConfig
    """
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("scan config must be a mapping")

    kwargs: Dict[str, Any] = {}
    for key, attr in _TOP_LEVEL_KEYS.items():
        if key in data and data[key] is not None:
            kwargs[attr] = data[key]

    try:
        if 'timeoutMs' in data and data['timeoutMs'] is not None:
            kwargs['timeout'] = float(data['timeoutMs']) / 1000.0

        scope = _section(data, 'scope')
        if 'maxDepth' in scope:
            kwargs['max_depth'] = int(scope['maxDepth'])

        crawler = _section(data, 'crawler')
        crawler_kwargs = {}
        if 'respectRobots' in crawler:
            crawler_kwargs['respect_robots'] = bool(crawler['respectRobots'])
        if 'cacheTtlMinutes' in crawler:
            crawler_kwargs['cache_ttl_minutes'] = int(crawler['cacheTtlMinutes'])
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid scan config: {e}") from e
    if crawler_kwargs:
        kwargs['crawler'] = CrawlerConfig(**crawler_kwargs)

    aggressive = _section(data, 'aggressive')
    aggressive_kwargs = {attr: aggressive[key] for key, attr in _AGGRESSIVE_KEYS.items() if key in aggressive}
    if aggressive_kwargs:
        kwargs['aggressive'] = AggressiveConfig(**aggressive_kwargs)

    kwargs.update({k: v for k, v in overrides.items() if v is not None})

    if not kwargs.get('target'):
        raise ConfigError("target is required")

    try:
        return ScanConfig(**kwargs)
    except TypeError as e:
        raise ConfigError(f"invalid scan config: {e}") from e


def load_config(path: str, **overrides) -> ScanConfig:
    """
    Load and validate a YAML scan file.

    Args:
        path: Path to scan.yml
        **overrides: Field overrides (e.g. from the CLI)

    Returns:
        Validated ScanConfig
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e

    return config_from_dict(data, **overrides).validate()


def hint_list(values: Optional[List[str]]) -> Tuple[str, ...]:
    """Normalise a hint list to lowercase, dropping blanks."""
    return tuple(v.strip().lower() for v in (values or ()) if v and v.strip())
