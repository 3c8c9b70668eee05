"""Crawler endpoint."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.config import Settings, get_settings
from app.deps import get_governor
from app.schemas.crawl import CrawlRequest, CrawlResponse
from app.services.crawler import Crawler, is_crawlable_url
from app.services.http_client import async_http_client
from app.services.rate_limit import RequestGovernor

router = APIRouter(prefix="/crawl", tags=["crawl"])


@router.post("", response_model=CrawlResponse, summary="Crawl a site breadth-first")
async def crawl(
    payload: CrawlRequest,
    settings: Settings = Depends(get_settings),
    governor: RequestGovernor = Depends(get_governor),
) -> CrawlResponse:
    url = (payload.url or "").strip()
    if not url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="URL parameter is required",
        )
    if not is_crawlable_url(url):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="URL must be an absolute http(s) address",
        )

    max_depth = settings.crawler_max_depth if payload.max_depth is None else payload.max_depth
    max_pages = settings.crawler_max_pages if payload.max_pages is None else payload.max_pages

    async with async_http_client(settings) as client:
        crawler = Crawler(
            governor,
            client,
            max_depth=max_depth,
            max_pages=max_pages,
            delay_seconds=settings.crawler_delay_seconds,
            user_agent=settings.crawler_user_agent,
        )
        results = await crawler.crawl(url)

    return CrawlResponse(results=results, total_pages=len(results))
