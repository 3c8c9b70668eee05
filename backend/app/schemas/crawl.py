"""Schemas for crawl requests and results."""
from __future__ import annotations

from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class CrawlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str | None = Field(default=None, description="Seed URL for the crawl")
    max_depth: int | None = Field(default=None, ge=0, alias="maxDepth")
    max_pages: int | None = Field(default=None, ge=1, alias="maxPages")


class CrawlResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    url: str
    title: str
    description: str
    links: List[str] = Field(default_factory=list)
    depth: int = 0
    last_crawled: datetime = Field(alias="lastCrawled")


class CrawlResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    results: List[CrawlResult]
    total_pages: int = Field(alias="totalPages")
