"""Aggregated search over the Brave Search API.

Each result type (web, images, videos, news) is its own upstream endpoint and
its own request governor key, so throttling one never delays the others.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Sequence
from urllib.parse import quote, urlsplit

import httpx

from app.core.config import Settings
from app.schemas.search import (
    SEARCH_TYPES,
    ImageResult,
    NewsResult,
    SearchResponse,
    SearchType,
    VideoResult,
    WebResult,
)
from app.services.http_client import async_http_client
from app.services.rate_limit import QueueFullError, RateLimitedError, RequestGovernor
from app.services.search_cache import TTLCache

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]

ENDPOINTS: Dict[SearchType, str] = {
    "web": "/web/search",
    "images": "/images/search",
    "videos": "/videos/search",
    "news": "/news/search",
}
FAVICON_URL_TEMPLATE = "https://www.google.com/s2/favicons?domain={domain}&sz=32"


class SearchConfigurationError(RuntimeError):
    """Raised when Brave credentials are not configured."""


class SearchServiceError(RuntimeError):
    """Raised when the Brave API returns an unusable response."""


def governor_key(kind: SearchType) -> str:
    return f"brave-api-{kind}"


def favicon_url(url: str) -> str | None:
    host = urlsplit(url).hostname
    if not host:
        return None
    return FAVICON_URL_TEMPLATE.format(domain=quote(host, safe=""))


class BraveSearchService:
    """Fan a query out to the Brave endpoints through the request governor."""

    def __init__(
        self,
        settings: Settings,
        governor: RequestGovernor,
        *,
        cache: TTLCache[Payload] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._settings = settings
        self._governor = governor
        self._cache: TTLCache[Payload] = cache or TTLCache(settings.search_cache_ttl_seconds)
        self._sleep = sleep

    async def search(
        self, query: str, types: Sequence[SearchType] = SEARCH_TYPES
    ) -> SearchResponse:
        query = query.strip()
        if not query:
            raise SearchServiceError("Query parameter is required")
        self._ensure_credentials()

        kinds = list(dict.fromkeys(types))
        logger.info("Starting search", extra={"query": query, "types": kinds})

        async with async_http_client(self._settings) as client:
            outcomes = await asyncio.gather(
                *(self._fetch_type(client, kind, query) for kind in kinds),
                return_exceptions=True,
            )

        parsed: Dict[str, list] = {}
        for kind, outcome in zip(kinds, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Brave %s search failed",
                    kind,
                    extra={"query": query},
                    exc_info=outcome,
                )
                raise outcome
            parsed[kind] = _PARSERS[kind](outcome)

        response = SearchResponse(query=query, **parsed)
        logger.info(
            "Search completed",
            extra={"query": query, "counts": {kind: len(parsed[kind]) for kind in kinds}},
        )
        return response

    def _ensure_credentials(self) -> None:
        if not self._settings.brave_api_key:
            raise SearchConfigurationError(
                "Brave API key is not configured. Set BRAVE_API_KEY."
            )

    async def _fetch_type(
        self, client: httpx.AsyncClient, kind: SearchType, query: str
    ) -> Payload:
        cache_key = TTLCache.make_key(kind, query)
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Search cache hit", extra={"cache_key": cache_key})
            return cached

        key = governor_key(kind)

        async def operation() -> Payload:
            return await self._request(client, kind, query)

        try:
            payload = await self._governor.execute_with_rate_limit(key, operation)
        except QueueFullError:
            logger.warning("Brave %s queue full, returning no results", kind)
            return {}
        except RateLimitedError:
            delay = self._settings.search_fallback_retry_delay_seconds
            logger.warning(
                "Brave %s still rate limited, retrying once",
                kind,
                extra={"retry_after_s": delay},
            )
            await self._sleep(delay)
            try:
                payload = await self._governor.execute_with_rate_limit(key, operation)
            except (RateLimitedError, QueueFullError):
                logger.warning("Brave %s rate limited, giving up with no results", kind)
                return {}

        self._cache.set(cache_key, payload)
        return payload

    async def _request(
        self, client: httpx.AsyncClient, kind: SearchType, query: str
    ) -> Payload:
        url = f"{self._settings.brave_base_url.rstrip('/')}{ENDPOINTS[kind]}"
        try:
            response = await client.get(
                url,
                params={"q": query, "count": self._settings.brave_result_count},
                headers={
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip",
                    "X-Subscription-Token": self._settings.brave_api_key or "",
                },
            )
        except httpx.HTTPError as exc:
            raise SearchServiceError(f"Brave {kind} search request failed") from exc

        if _is_rate_limited(response):
            raise RateLimitedError(
                f"Brave {kind} search rate limited",
                retry_after=_retry_after(response),
            )
        if response.is_error:
            raise SearchServiceError(
                f"Brave {kind} search responded with status {response.status_code}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SearchServiceError(f"Brave {kind} search returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise SearchServiceError(f"Brave {kind} search returned unexpected payload")
        return payload


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if not response.is_error:
        return False
    try:
        body = response.json()
    except ValueError:
        return False
    error = body.get("error") if isinstance(body, dict) else None
    return isinstance(error, dict) and error.get("code") == "RATE_LIMITED"


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _items(payload: Payload) -> List[Payload]:
    items = payload.get("results") or []
    return [item for item in items if isinstance(item, dict) and item.get("url")]


def _parse_web(payload: Payload) -> List[WebResult]:
    section = payload.get("web") or {}
    return [
        WebResult(
            title=item.get("title") or item["url"],
            url=item["url"],
            description=item.get("description"),
            favicon=favicon_url(item["url"]),
        )
        for item in _items(section)
    ]


def _parse_images(payload: Payload) -> List[ImageResult]:
    return [
        ImageResult(
            title=item.get("title") or item["url"],
            url=item["url"],
            thumbnail=(item.get("thumbnail") or {}).get("src"),
            source=item.get("source"),
            image_url=(item.get("properties") or {}).get("url"),
        )
        for item in _items(payload)
    ]


def _parse_videos(payload: Payload) -> List[VideoResult]:
    return [
        VideoResult(
            title=item.get("title") or item["url"],
            url=item["url"],
            description=item.get("description"),
            thumbnail=(item.get("thumbnail") or {}).get("src"),
            duration=(item.get("video") or {}).get("duration"),
            age=item.get("age"),
        )
        for item in _items(payload)
    ]


def _parse_news(payload: Payload) -> List[NewsResult]:
    return [
        NewsResult(
            title=item.get("title") or item["url"],
            url=item["url"],
            description=item.get("description"),
            age=item.get("age"),
            source=(item.get("meta_url") or {}).get("hostname"),
        )
        for item in _items(payload)
    ]


_PARSERS: Dict[str, Callable[[Payload], list]] = {
    "web": _parse_web,
    "images": _parse_images,
    "videos": _parse_videos,
    "news": _parse_news,
}


__all__ = [
    "BraveSearchService",
    "SearchConfigurationError",
    "SearchServiceError",
    "favicon_url",
    "governor_key",
]
