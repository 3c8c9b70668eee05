"""Schemas for the aggregated search endpoint."""
from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field

SearchType = Literal["web", "images", "videos", "news"]
SEARCH_TYPES: tuple[SearchType, ...] = ("web", "images", "videos", "news")


class WebResult(BaseModel):
    title: str
    url: str
    description: str | None = None
    favicon: str | None = Field(default=None, description="Favicon URL for the result host")


class ImageResult(BaseModel):
    title: str
    url: str
    thumbnail: str | None = None
    source: str | None = None
    image_url: str | None = Field(default=None, description="Full-size image URL")


class VideoResult(BaseModel):
    title: str
    url: str
    description: str | None = None
    thumbnail: str | None = None
    duration: str | None = None
    age: str | None = None


class NewsResult(BaseModel):
    title: str
    url: str
    description: str | None = None
    age: str | None = None
    source: str | None = None


class SearchResponse(BaseModel):
    query: str
    web: List[WebResult] = Field(default_factory=list)
    images: List[ImageResult] = Field(default_factory=list)
    videos: List[VideoResult] = Field(default_factory=list)
    news: List[NewsResult] = Field(default_factory=list)
