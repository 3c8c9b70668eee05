"""Tests for the breadth-first crawler."""
from __future__ import annotations

from typing import Dict, List

import httpx
import pytest

from app.services.crawler import (
    CRAWLER_GOVERNOR_KEY,
    Crawler,
    extract_page,
    is_crawlable_url,
    normalize_url,
)
from app.services.rate_limit import GovernorConfig, RequestGovernor

LONG_PARAGRAPH = "x" * 300

PAGES: Dict[str, str] = {
    "https://site.test": """
        <html><head>
          <title> Home </title>
          <meta name="description" content="Landing page">
        </head><body>
          <p>Ignored because meta wins</p>
          <a href="/a">A</a>
          <a href="https://site.test/b/">B</a>
          <a href="https://site.test/">self</a>
          <a href="mailto:someone@site.test">mail</a>
          <a href="https://other.test/x#section">other</a>
        </body></html>
    """,
    "https://site.test/a": f"""
        <html><head><title>A</title></head>
        <body><p>{LONG_PARAGRAPH}</p><a href="/a/deep">deep</a></body></html>
    """,
    "https://site.test/a/deep": """
        <html><head><title>Deep</title></head>
        <body><a href="/a/deeper">deeper</a></body></html>
    """,
    "https://site.test/a/deeper": "<html><title>Deeper</title></html>",
    "https://other.test/x": "<html><body><p>No title here</p></body></html>",
}


class _NoSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _client(requested: List[str]) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        url = normalize_url(str(request.url))
        requested.append(url)
        assert request.headers["User-Agent"] == "NetverseLab-Crawler/1.0"
        body = PAGES.get(url)
        if body is None:
            return httpx.Response(404, text="missing")
        return httpx.Response(200, text=body, headers={"Content-Type": "text/html"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _governor() -> RequestGovernor:
    return RequestGovernor(
        GovernorConfig(max_requests=100, window_seconds=60.0, retry_after_seconds=0.0),
        sleep=_NoSleep(),
    )


def test_normalize_url_strips_trailing_slash_and_fragment() -> None:
    assert normalize_url("HTTPS://Site.Test/path/") == "https://site.test/path"
    assert normalize_url("https://site.test/") == "https://site.test"
    assert normalize_url("https://site.test/a?q=1#top") == "https://site.test/a?q=1"
    assert normalize_url("relative/path") == "relative/path"


def test_is_crawlable_url_accepts_http_only() -> None:
    assert is_crawlable_url("http://site.test")
    assert is_crawlable_url("https://site.test/a")
    assert not is_crawlable_url("mailto:someone@site.test")
    assert not is_crawlable_url("/relative")


def test_extract_page_prefers_meta_description() -> None:
    title, description, links = extract_page(
        "https://site.test/", PAGES["https://site.test"]
    )

    assert title == "Home"
    assert description == "Landing page"
    assert links == [
        "https://site.test/a",
        "https://site.test/b",
        "https://site.test",
        "https://other.test/x",
    ]


def test_extract_page_falls_back_to_truncated_first_paragraph_and_url_title() -> None:
    title, description, _ = extract_page(
        "https://site.test/a", PAGES["https://site.test/a"]
    )
    assert title == "A"
    assert description == LONG_PARAGRAPH[:200]

    title, description, _ = extract_page(
        "https://other.test/x", PAGES["https://other.test/x"]
    )
    assert title == "https://other.test/x"
    assert description == "No title here"


@pytest.mark.anyio("asyncio")
async def test_crawl_follows_links_one_level_per_depth() -> None:
    requested: List[str] = []
    sleep = _NoSleep()
    async with _client(requested) as client:
        crawler = Crawler(
            _governor(), client, max_depth=1, max_pages=50, delay_seconds=0.5, sleep=sleep
        )
        results = await crawler.crawl("https://site.test/")

    assert [result.url for result in results] == [
        "https://site.test",
        "https://site.test/a",
        "https://other.test/x",
    ]
    assert [result.depth for result in results] == [0, 1, 1]
    # /b is visited but 404s; /a/deep is beyond the depth bound
    assert "https://site.test/b" in requested
    assert not any(url.endswith("/a/deep") for url in requested)
    assert sleep.delays and set(sleep.delays) == {0.5}


@pytest.mark.anyio("asyncio")
async def test_crawl_depth_two_reaches_grandchildren_only() -> None:
    requested: List[str] = []
    async with _client(requested) as client:
        crawler = Crawler(_governor(), client, max_depth=2, delay_seconds=0)
        results = await crawler.crawl("https://site.test")

    urls = [result.url for result in results]
    assert "https://site.test/a/deep" in urls
    assert "https://site.test/a/deeper" not in urls


@pytest.mark.anyio("asyncio")
async def test_crawl_stops_at_max_pages_and_deduplicates() -> None:
    requested: List[str] = []
    async with _client(requested) as client:
        crawler = Crawler(_governor(), client, max_depth=5, max_pages=2, delay_seconds=0)
        results = await crawler.crawl("https://site.test/")

    assert len(requested) == 2
    assert len(set(requested)) == 2
    assert [result.url for result in results] == ["https://site.test", "https://site.test/a"]


@pytest.mark.anyio("asyncio")
async def test_crawl_fetches_go_through_crawler_key() -> None:
    governor = _governor()
    async with _client([]) as client:
        crawler = Crawler(governor, client, max_depth=0, delay_seconds=0)
        await crawler.crawl("https://site.test/")

    assert governor.keys() == [CRAWLER_GOVERNOR_KEY]
    assert governor.snapshot(CRAWLER_GOVERNOR_KEY).in_window == 1


@pytest.mark.anyio("asyncio")
async def test_crawler_instance_can_crawl_again_from_scratch() -> None:
    requested: List[str] = []
    async with _client(requested) as client:
        crawler = Crawler(_governor(), client, max_depth=0, delay_seconds=0)
        first = await crawler.crawl("https://site.test/a")
        second = await crawler.crawl("https://site.test/a")

    assert [result.url for result in first] == ["https://site.test/a"]
    assert [result.url for result in second] == ["https://site.test/a"]
    assert requested == ["https://site.test/a", "https://site.test/a"]
