"""
Async Web Crawler for WardScan

Breadth-first discovery pass that runs before analysis:
- Depth-limited BFS from the normalised seed
- Same-domain scope and exclusion rules
- Robots.txt gating through RobotsCache
- URL normalisation and deduplication
- Per-page failures never abort the crawl
"""

from dataclasses import dataclass
from collections import deque
from typing import Awaitable, Callable, Deque, Iterable, List, Optional, Set, Tuple

from wardscan.config import ScanConfig
from wardscan.scanner.core.parser import extract_links, looks_like_html
from wardscan.scanner.core.requester import HttpClient
from wardscan.scanner.core.robots import HttpRobotsFetcher, RobotsCache
from wardscan.scanner.core.urls import host_of, is_excluded, normalize_url
import logging

logger = logging.getLogger(__name__)

LinkExtractor = Callable[[str], Awaitable[Iterable[str]]]


@dataclass
class CrawlStats:
    """Crawling statistics."""
    urls_discovered: int = 0
    urls_visited: int = 0
    skipped_robots: int = 0
    skipped_excluded: int = 0
    skipped_external: int = 0
    extraction_failures: int = 0


class HttpLinkExtractor:
    """Fetches a page and returns the absolute links found in it."""

    def __init__(self, client: HttpClient):
        self.client = client

    async def __call__(self, url: str) -> List[str]:
        resp = await self.client.get(url)
        if resp.status >= 400 or not looks_like_html(resp.content_type, resp.body):
            return []
        return extract_links(url, resp.body)


class Crawler:
    """
    BFS crawler producing the ordered, de-duplicated list of URLs to analyse.

    The link extractor and robots cache are injectable so traversal can be
    exercised without a network.
    """

    def __init__(
            self,
            config: ScanConfig,
            link_extractor: Optional[LinkExtractor] = None,
            robots: Optional[RobotsCache] = None,
            client: Optional[HttpClient] = None
    ):
        """
        Args:
            config: Validated scan configuration
            link_extractor: Coroutine url -> links (defaults to HTTP + HTML parsing)
            robots: Robots cache (built on demand when robots are respected)
            client: HTTP client shared by the default extractor and robots fetcher
        """
        self.config = config
        self._owns_client = False
        if client is None and (link_extractor is None or (robots is None and config.crawler.respect_robots)):
            client = HttpClient(
                timeout=config.timeout,
                user_agent=config.user_agent,
                follow_redirects=config.follow_redirects,
            )
            self._owns_client = True
        self.client = client
        self.link_extractor = link_extractor or HttpLinkExtractor(client)

        if robots is None and config.crawler.respect_robots:
            robots = RobotsCache(
                HttpRobotsFetcher(client),
                success_ttl=config.crawler.cache_ttl_minutes * 60,
            )
        self.robots = robots
        self.stats = CrawlStats()

    async def close(self):
        if self._owns_client and self.client is not None:
            await self.client.close()

    async def _robots_allows(self, url: str) -> bool:
        if not self.config.crawler.respect_robots or self.robots is None:
            return True
        return await self.robots.is_allowed(url)

    async def crawl(self) -> List[str]:
        """
        Run the BFS.

        Returns:
            Normalised URLs that passed robots gating, in BFS order, without duplicates
        """
        seed = normalize_url(self.config.target)
        if seed is None:
            logger.warning(f"Cannot normalise seed {self.config.target!r}")
            return []

        seed_host = host_of(seed)
        seen: Set[str] = {seed}
        queue: Deque[Tuple[str, int]] = deque([(seed, 0)])
        visited: List[str] = []

        while queue:
            url, depth = queue.popleft()

            if not await self._robots_allows(url):
                self.stats.skipped_robots += 1
                logger.debug(f"robots.txt disallows {url}")
                continue

            visited.append(url)
            self.stats.urls_visited += 1

            if depth >= self.config.max_depth:
                continue

            try:
                links = list(await self.link_extractor(url))
            except Exception as e:
                self.stats.extraction_failures += 1
                logger.warning(f"Link extraction failed for {url}: {e}")
                continue

            for raw in links:
                link = normalize_url(raw)
                if link is None:
                    continue
                if self.config.same_domain_only and host_of(link) != seed_host:
                    self.stats.skipped_external += 1
                    continue
                if is_excluded(link, self.config.exclude_paths):
                    self.stats.skipped_excluded += 1
                    continue
                if link in seen:
                    continue
                if not await self._robots_allows(link):
                    self.stats.skipped_robots += 1
                    continue
                seen.add(link)
                self.stats.urls_discovered += 1
                queue.append((link, depth + 1))

        logger.info(f"Crawl finished: {len(visited)} URLs visited from {seed}")
        return visited
