"""
URL helpers for WardScan

- Canonical form used for dedup (scheme/host lowercase, default port and fragment dropped)
- Same-domain comparison
- Exclusion rule matching (re:, glob, literal prefix)
- Query parameter injection
"""

import re
from functools import lru_cache
from typing import Iterable, Optional
from urllib.parse import quote, urlsplit, urlunsplit
import logging

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {'http': 80, 'https': 443}


def normalize_url(url: str) -> Optional[str]:
    """
    Canonicalise a URL for deduplication.

    Lowercases scheme and host, strips the scheme's default port and any
    fragment. Path and query are kept as-is (an empty path becomes '/').

    Args:
        url: Absolute URL

    Returns:
        Normalised URL, or None when the URL cannot be parsed as absolute
    """
    if not url:
        return None
    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError:
        return None

    scheme = parts.scheme.lower()
    host = parts.hostname
    if not scheme or not host:
        return None

    if ':' in host:
        host = f'[{host}]'
    netloc = host
    if port is not None and port != DEFAULT_PORTS.get(scheme):
        netloc = f'{host}:{port}'
    if parts.username:
        userinfo = parts.username + (f':{parts.password}' if parts.password else '')
        netloc = f'{userinfo}@{netloc}'

    path = parts.path or '/'
    return urlunsplit((scheme, netloc, path, parts.query, ''))


def host_of(url: str) -> str:
    """Lowercase host of a URL ('' when absent)."""
    try:
        return (urlsplit(url).hostname or '').lower()
    except ValueError:
        return ''


def same_domain(url: str, other: str) -> bool:
    """True when both URLs share the same (case-insensitive) host."""
    a, b = host_of(url), host_of(other)
    return bool(a) and a == b


def path_and_rest(url: str) -> str:
    """Path plus query of a URL, e.g. '/a/b?x=1'."""
    parts = urlsplit(url)
    rest = parts.path or '/'
    if parts.query:
        rest += '?' + parts.query
    return rest


@lru_cache(maxsize=256)
def _compile_rule(rule: str):
    if rule.startswith('re:'):
        return re.compile(rule[3:], re.IGNORECASE)
    if '*' in rule or '?' in rule:
        pattern = ''.join(
            '.*' if ch == '*' else '.' if ch == '?' else re.escape(ch)
            for ch in rule
        )
        return re.compile(pattern, re.IGNORECASE)
    return None


def matches_exclusion(url: str, rule: str) -> bool:
    """
    Evaluate one exclusion rule against a full URL.

    - 're:<regex>' - case-insensitive search anywhere in the URL
    - rule with '*' or '?' - glob, also searched anywhere in the URL
    - anything else - literal prefix of the URL, or of its path when the rule starts with '/'
    """
    rule = (rule or '').strip()
    if not rule:
        return False

    try:
        pattern = _compile_rule(rule)
    except re.error as e:
        logger.warning(f"Ignoring invalid exclusion rule {rule!r}: {e}")
        return False

    if pattern is not None:
        return pattern.search(url) is not None

    if url.startswith(rule):
        return True
    # Not segment aware: '/admin' also covers '/administrator'
    return rule.startswith('/') and path_and_rest(url).startswith(rule)


def is_excluded(url: str, rules: Iterable[str]) -> bool:
    """True when any rule excludes the URL (first match wins)."""
    return any(matches_exclusion(url, rule) for rule in rules or ())


def with_param(url: str, key: str, value: str) -> str:
    """
    Set a query parameter, replacing an existing occurrence or appending it.

    Only the value is percent-encoded; other pairs are kept byte-for-byte.
    """
    parts = urlsplit(url)
    encoded = f'{key}={quote(value, safe="")}'
    pairs = parts.query.split('&') if parts.query else []

    replaced = False
    out = []
    for pair in pairs:
        name = pair.split('=', 1)[0]
        if name == key and not replaced:
            out.append(encoded)
            replaced = True
        else:
            out.append(pair)
    if not replaced:
        out.append(encoded)

    return urlunsplit((parts.scheme, parts.netloc, parts.path or '/', '&'.join(out), ''))
