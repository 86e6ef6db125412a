"""
HTML Parser for WardScan

Extracts from HTML responses:
- Absolute http(s) links (crawl frontier)
- Candidate injectable parameter names (ParamDiscovery)
"""

import re
from typing import List, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, FeatureNotFound
import logging

logger = logging.getLogger(__name__)

QUERY_PARAM = re.compile(r'[?&]([a-zA-Z0-9_\-]{1,32})=')
VALID_KEY = re.compile(r'^[A-Za-z0-9_\-]{1,32}$')

# Tracking / session parameters never worth injecting
NOISE_PARAMS = frozenset({
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
    'gclid', 'fbclid', 'yclid', 'mc_eid', 'ref', 'ref_src', 'ref_url',
    'jsessionid', 'phpsessid', 'sessionid', 'sid', 'cid', '_ga', '_gid',
})

MAX_KEYS_PER_URL = 12
MAX_KEYS_PER_SCRIPT = 8


def make_soup(html: str) -> BeautifulSoup:
    """Parse with lxml, falling back to the stdlib parser when lxml is unavailable."""
    try:
        return BeautifulSoup(html or '', 'lxml')
    except FeatureNotFound:
        return BeautifulSoup(html or '', 'html.parser')


class HTMLParser:
    """
    HTML Parser for link and parameter extraction.

    Relative references are resolved against base_url.
    """

    def __init__(self, base_url: str):
        """
        Args:
            base_url: URL of the page being parsed
        """
        self.base_url = base_url

    def _abs(self, ref: Optional[str]) -> Optional[str]:
        if not ref:
            return None
        ref = ref.strip()
        if not ref:
            return None
        try:
            return urljoin(self.base_url, ref)
        except ValueError:
            return None

    def extract_links(self, html: str) -> List[str]:
        """
        Absolute http(s) targets of every <a href>, in document order.
        """
        soup = make_soup(html)
        links = []
        for a in soup.find_all('a', href=True):
            url = self._abs(a.get('href'))
            if url and urlsplit(url).scheme.lower() in ('http', 'https'):
                links.append(url)
        return links

    def discover_params(self, html: str) -> List[str]:
        """
        Candidate parameter names, de-noised and in discovery order.

        Sources, in priority order:
        1. query keys of <a href> and <link href>
        2. field names of GET (or method-less) forms
        3. data-* attribute suffixes (data-user -> user)
        4. '?k=' fragments inside inline scripts, then <script src> query keys
        5. query keys of the page URL itself
        """
        found: List[str] = []
        seen = set()

        def add(key: Optional[str]):
            if key is None:
                return
            key = key.strip()
            if not VALID_KEY.match(key) or key in seen:
                return
            seen.add(key)
            found.append(key)

        def add_from_url(url: Optional[str]):
            if not url:
                return
            for i, m in enumerate(QUERY_PARAM.finditer(url)):
                if i >= MAX_KEYS_PER_URL:
                    break
                add(m.group(1))

        soup = make_soup(html)

        for tag in soup.find_all(['a', 'link'], href=True):
            add_from_url(self._abs(tag.get('href')))

        for form in soup.find_all('form'):
            method = (form.get('method') or 'get').strip().lower()
            if method != 'get':
                continue
            for field in form.find_all(['input', 'select', 'textarea', 'button']):
                add(field.get('name'))

        for element in soup.find_all(True):
            for attr in element.attrs:
                if attr.startswith('data-') and 5 < len(attr) <= 29:
                    add(attr[5:])

        for script in soup.find_all('script'):
            if script.get('src'):
                continue
            for i, m in enumerate(QUERY_PARAM.finditer(script.string or script.get_text() or '')):
                if i >= MAX_KEYS_PER_SCRIPT:
                    break
                add(m.group(1))

        for script in soup.find_all('script', src=True):
            add_from_url(self._abs(script.get('src')))

        add_from_url(self.base_url)

        return [k for k in found if k.lower() not in NOISE_PARAMS]


def discover_params(base_url: str, html: str) -> List[str]:
    """Module interface for ParamDiscovery."""
    return HTMLParser(base_url).discover_params(html)


def extract_links(base_url: str, html: str) -> List[str]:
    """Module interface for link extraction."""
    return HTMLParser(base_url).extract_links(html)


def looks_like_html(content_type: str, body: str) -> bool:
    """Whether a response is worth handing to the HTML parser."""
    ct = (content_type or '').lower()
    if 'html' in ct or 'xml' in ct:
        return True
    return not ct and '<' in (body or '')[:1024]
