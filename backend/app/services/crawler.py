"""Breadth-first site crawler whose fetches go through the request governor."""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from html.parser import HTMLParser
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Set, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

import httpx

from app.core.config import CRAWLER_DEFAULT_USER_AGENT
from app.schemas.crawl import CrawlResult
from app.services.rate_limit import RequestGovernor

logger = logging.getLogger(__name__)

CRAWLER_GOVERNOR_KEY = "crawler"
DESCRIPTION_MAX_CHARS = 200


def normalize_url(url: str) -> str:
    """Lowercase scheme and host, drop the fragment and one trailing slash.

    Strings that are not absolute URLs are returned unchanged.
    """

    parts = urlsplit(url.strip())
    if not parts.scheme or not parts.netloc:
        return url
    normalized = urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, "")
    )
    if normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def is_crawlable_url(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


class _PageParser(HTMLParser):
    """Collect title, meta description, first paragraph and anchor hrefs."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.title_parts: List[str] = []
        self.meta_description: Optional[str] = None
        self.first_paragraph_parts: List[str] = []
        self.hrefs: List[str] = []
        self._in_title = False
        self._title_done = False
        self._paragraph_depth = 0
        self._paragraph_done = False

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        attributes = {name.lower(): value for name, value in attrs}
        if tag == "title" and not self._title_done:
            self._in_title = True
        elif tag == "meta":
            name = (attributes.get("name") or "").lower()
            if name == "description" and self.meta_description is None:
                self.meta_description = attributes.get("content")
        elif tag == "p" and not self._paragraph_done:
            self._paragraph_depth += 1
        elif tag == "a":
            href = attributes.get("href")
            if href:
                self.hrefs.append(href.strip())

    def handle_endtag(self, tag: str) -> None:
        if tag == "title" and self._in_title:
            self._in_title = False
            self._title_done = True
        elif tag == "p" and self._paragraph_depth:
            self._paragraph_depth -= 1
            if not self._paragraph_depth:
                self._paragraph_done = True

    def handle_data(self, data: str) -> None:
        if self._in_title:
            self.title_parts.append(data)
        if self._paragraph_depth and not self._paragraph_done:
            self.first_paragraph_parts.append(data)


def extract_page(
    url: str, html: str, *, base_url: str | None = None
) -> Tuple[str, str, List[str]]:
    """Return ``(title, description, links)`` for an HTML document.

    Relative links resolve against ``base_url`` (the final URL after
    redirects) when given, otherwise against ``url``.
    """

    parser = _PageParser()
    parser.feed(html)
    parser.close()

    title = "".join(parser.title_parts).strip() or url
    description = parser.meta_description or ""
    if not description:
        paragraph = "".join(parser.first_paragraph_parts).strip()
        description = paragraph[:DESCRIPTION_MAX_CHARS]

    links: List[str] = []
    seen: Set[str] = set()
    for href in parser.hrefs:
        absolute = urljoin(base_url or url, href)
        if not is_crawlable_url(absolute):
            continue
        normalized = normalize_url(absolute)
        if normalized not in seen:
            seen.add(normalized)
            links.append(normalized)
    return title, description, links


class Crawler:
    """Breadth-first crawler bounded by page count and link depth.

    The seed page is depth 0; links found on a page at depth ``d`` are only
    followed when ``d < max_depth``.
    """

    def __init__(
        self,
        governor: RequestGovernor,
        client: httpx.AsyncClient,
        *,
        max_depth: int = 2,
        max_pages: int = 100,
        delay_seconds: float = 1.0,
        user_agent: str = CRAWLER_DEFAULT_USER_AGENT,
        governor_key: str = CRAWLER_GOVERNOR_KEY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._governor = governor
        self._client = client
        self._max_depth = max_depth
        self._max_pages = max_pages
        self._delay = delay_seconds
        self._user_agent = user_agent
        self._governor_key = governor_key
        self._sleep = sleep
        self._visited: Set[str] = set()
        self._results: Dict[str, CrawlResult] = {}

    @property
    def results(self) -> List[CrawlResult]:
        return list(self._results.values())

    async def crawl(self, start_url: str) -> List[CrawlResult]:
        self._visited = set()
        self._results = {}
        queue: Deque[Tuple[str, int]] = deque([(normalize_url(start_url), 0)])
        logger.info(
            "Starting crawl",
            extra={
                "start_url": start_url,
                "max_depth": self._max_depth,
                "max_pages": self._max_pages,
            },
        )

        while queue and len(self._visited) < self._max_pages:
            url, depth = queue.popleft()
            if url in self._visited:
                continue
            self._visited.add(url)

            result = await self._crawl_page(url, depth)
            if result is not None:
                self._results[url] = result
                if depth < self._max_depth:
                    for link in result.links:
                        if link not in self._visited:
                            queue.append((link, depth + 1))

            if queue and len(self._visited) < self._max_pages and self._delay > 0:
                await self._sleep(self._delay)

        logger.info(
            "Crawl completed",
            extra={
                "start_url": start_url,
                "visited": len(self._visited),
                "results": len(self._results),
            },
        )
        return self.results

    async def _crawl_page(self, url: str, depth: int) -> CrawlResult | None:
        async def fetch() -> httpx.Response:
            response = await self._client.get(
                url,
                headers={"User-Agent": self._user_agent, "Accept": "text/html"},
            )
            response.raise_for_status()
            return response

        try:
            response = await self._governor.execute_with_rate_limit(
                self._governor_key, fetch
            )
        except Exception as exc:
            logger.warning(
                "Error crawling %s",
                url,
                extra={"depth": depth, "error_type": type(exc).__name__},
                exc_info=exc,
            )
            return None

        title, description, links = extract_page(
            url, response.text, base_url=str(response.url)
        )
        return CrawlResult(
            url=url,
            title=title,
            description=description,
            links=links,
            depth=depth,
            last_crawled=datetime.now(timezone.utc),
        )


__all__ = [
    "CRAWLER_GOVERNOR_KEY",
    "Crawler",
    "extract_page",
    "is_crawlable_url",
    "normalize_url",
]
