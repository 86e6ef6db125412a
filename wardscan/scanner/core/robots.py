"""
Robots.txt support for WardScan

- Lenient robots.txt parser (user-agent groups, Allow/Disallow)
- Path matcher with '*' / '$' patterns and longest-match precedence
- Per-origin policy cache with success / failure TTLs and an injectable clock
- aiohttp-backed fetcher following same-host redirects
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit

from wardscan.config import BaseConfig
from wardscan.scanner.core.requester import HttpClient, TRANSPORT_ERRORS
from wardscan.scanner.core.urls import DEFAULT_PORTS
import logging

logger = logging.getLogger(__name__)

ROBOTS_AGENT = 'WardScan'
MAX_REDIRECTS = 3
REDIRECT_STATUSES = {301, 302, 307, 308}

_LINE = re.compile(r'^\s*([A-Za-z][A-Za-z-]*)\s*:\s*(.*?)\s*$')
_PCT = re.compile(r'%([0-9a-fA-F]{2})')


@dataclass
class RuleSet:
    """Allow / Disallow patterns of one user-agent group."""
    allow: List[str] = field(default_factory=list)
    disallow: List[str] = field(default_factory=list)


def parse_robots(text: str) -> Dict[str, RuleSet]:
    """
    Parse robots.txt into groups keyed by lowercase user-agent.

    Consecutive User-agent lines share one group. Rules that appear before
    any User-agent line belong to '*'. A '*' group always exists.
    """
    groups: Dict[str, RuleSet] = {}
    agents: List[str] = []
    in_agent_run = False

    for raw in (text or '').splitlines():
        line = raw.split('#', 1)[0]
        m = _LINE.match(line)
        if not m:
            continue
        key, value = m.group(1).lower(), m.group(2)

        if key == 'user-agent':
            if not in_agent_run:
                agents = []
            agent = value.lower() or '*'
            agents.append(agent)
            groups.setdefault(agent, RuleSet())
            in_agent_run = True
        elif key in ('allow', 'disallow'):
            in_agent_run = False
            if not value:
                continue
            for agent in agents or ['*']:
                rules = groups.setdefault(agent, RuleSet())
                (rules.allow if key == 'allow' else rules.disallow).append(value)
        # crawl-delay, sitemap and unknown keys are ignored

    groups.setdefault('*', RuleSet())
    return groups


def uppercase_percent(s: str) -> str:
    """'%2f' -> '%2F' without decoding anything."""
    return _PCT.sub(lambda m: '%' + m.group(1).upper(), s)


def robots_path(url: str) -> str:
    """Raw path used for matching (query and fragment ignored)."""
    path = urlsplit(url).path or '/'
    return uppercase_percent(path)


def normalize_rule(rule: str) -> str:
    return uppercase_percent(rule.strip())


def effective_length(rule: str) -> int:
    """Specificity of a rule: characters excluding '*' and a trailing '$'."""
    r = rule.strip()
    if r.endswith('$'):
        r = r[:-1]
    return len(r.replace('*', ''))


def rule_matches(path: str, rule: str) -> bool:
    """
    Match a normalised path against one rule.

    '*' matches any run, a trailing '$' anchors the end, a rule ending in
    '/' is a directory prefix, and any other rule must end at a segment
    boundary.
    """
    r = rule.strip()
    if not r:
        return False
    anchored = r.endswith('$')
    if anchored:
        r = r[:-1]

    if '*' in r:
        pattern = '^' + '.*'.join(re.escape(part) for part in r.split('*'))
        pattern += '$' if anchored else ''
        return re.match(pattern, path) is not None

    if anchored:
        return path == r
    if r.endswith('/'):
        return path.startswith(r)
    if not path.startswith(r):
        return False
    return len(path) == len(r) or path[len(r)] == '/'


class RobotsPolicy:
    """Parsed robots rules bound to one user agent."""

    def __init__(self, groups: Optional[Dict[str, RuleSet]], user_agent: str = ROBOTS_AGENT, allow_all: bool = False):
        self.groups = groups or {}
        self.user_agent = (user_agent or ROBOTS_AGENT).lower()
        self.is_allow_all = allow_all

    @classmethod
    def parse(cls, text: str, user_agent: str = ROBOTS_AGENT) -> 'RobotsPolicy':
        return cls(parse_robots(text), user_agent)

    @classmethod
    def allow_all(cls) -> 'RobotsPolicy':
        return cls({}, ROBOTS_AGENT, allow_all=True)

    def _rules(self) -> Optional[RuleSet]:
        return self.groups.get(self.user_agent) or self.groups.get('*')

    def allows_path(self, path: str) -> bool:
        """Longest matching rule wins, Allow wins ties, no match means allowed."""
        if self.is_allow_all:
            return True
        rules = self._rules()
        if rules is None:
            return True

        path = uppercase_percent(path or '/')
        best: Optional[Tuple[int, bool]] = None
        candidates = [(r, False) for r in rules.disallow] + [(r, True) for r in rules.allow]
        for raw, allow in candidates:
            rule = normalize_rule(raw)
            if not rule_matches(path, rule):
                continue
            decision = (effective_length(rule), allow)
            if best is None or decision > best:
                best = decision
        return best is None or best[1]

    def allows(self, url: str) -> bool:
        if self.is_allow_all:
            return True
        return self.allows_path(robots_path(url))


@dataclass(frozen=True)
class RobotsFetchResult:
    """Raw robots.txt fetch outcome. status 0 means no response."""
    status: int
    body: str = ''
    location: Optional[str] = None


Fetcher = Callable[[str], Awaitable[RobotsFetchResult]]


class HttpRobotsFetcher:
    """Fetches robots.txt without following redirects."""

    def __init__(self, client: HttpClient):
        self.client = client

    async def __call__(self, url: str) -> RobotsFetchResult:
        try:
            resp = await self.client.get(url, headers={'Accept': 'text/plain,*/*;q=0.5'}, follow_redirects=False)
        except TRANSPORT_ERRORS as e:
            logger.debug(f"robots fetch failed for {url}: {e}")
            return RobotsFetchResult(0)
        return RobotsFetchResult(resp.status, resp.body, resp.header('Location'))


def origin_key(url: str) -> Optional[Tuple[str, str, int]]:
    """(scheme, host, port) with the default port filled in."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    host = (parts.hostname or '').lower()
    if scheme not in DEFAULT_PORTS or not host:
        return None
    return scheme, host, port or DEFAULT_PORTS[scheme]


@dataclass(frozen=True)
class CacheEntry:
    policy: RobotsPolicy
    expires_at: float


class RobotsCache:
    """
    Per-origin robots policy cache.

    Successful fetches live for `success_ttl` seconds. Failures (network
    error, non-2xx, cross-host or excessive redirects) fall back to an
    allow-all policy that lives for the shorter `failure_ttl`.
    """

    def __init__(
            self,
            fetcher: Fetcher,
            user_agent: str = ROBOTS_AGENT,
            success_ttl: float = BaseConfig.ROBOTS_SUCCESS_TTL_MINUTES * 60,
            failure_ttl: float = BaseConfig.ROBOTS_FAILURE_TTL_MINUTES * 60,
            clock: Callable[[], float] = time.monotonic
    ):
        self.fetcher = fetcher
        self.user_agent = user_agent
        self.success_ttl = success_ttl
        self.failure_ttl = failure_ttl
        self._clock = clock
        self._entries: Dict[Tuple[str, str, int], CacheEntry] = {}
        self._locks: Dict[Tuple[str, str, int], asyncio.Lock] = {}

    async def policy_for(self, url: str) -> RobotsPolicy:
        """Cached policy for the URL's origin, fetching when missing or expired."""
        key = origin_key(url)
        if key is None:
            return RobotsPolicy.allow_all()

        # One lock per origin so a slow host never holds up the others
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            entry = self._entries.get(key)
            if entry is not None and entry.expires_at > self._clock():
                return entry.policy

            policy = await self._fetch_and_build(key)
            ttl = self.failure_ttl if policy.is_allow_all else self.success_ttl
            self._entries[key] = CacheEntry(policy, self._clock() + ttl)
            return policy

    async def is_allowed(self, url: str) -> bool:
        policy = await self.policy_for(url)
        return policy.allows(url)

    def invalidate(self, url: Optional[str] = None):
        """Drop one origin, or everything."""
        if url is None:
            self._entries.clear()
        else:
            self._entries.pop(origin_key(url), None)

    async def _fetch_and_build(self, key: Tuple[str, str, int]) -> RobotsPolicy:
        scheme, host, port = key
        netloc = host if port == DEFAULT_PORTS[scheme] else f'{host}:{port}'
        robots_url = f'{scheme}://{netloc}/robots.txt'

        for _ in range(MAX_REDIRECTS + 1):
            result = await self.fetcher(robots_url)

            if 200 <= result.status < 300:
                logger.debug(f"robots.txt loaded from {robots_url}")
                return RobotsPolicy.parse(result.body, self.user_agent)

            if result.status in REDIRECT_STATUSES and result.location:
                next_url = urljoin(robots_url, result.location)
                if (urlsplit(next_url).hostname or '').lower() != host:
                    logger.info(f"robots.txt for {host} redirects off-host; allowing all")
                    return RobotsPolicy.allow_all()
                robots_url = next_url
                continue

            logger.info(f"robots.txt unavailable for {host} (status={result.status}); allowing all")
            return RobotsPolicy.allow_all()

        logger.info(f"robots.txt for {host} redirected too many times; allowing all")
        return RobotsPolicy.allow_all()
