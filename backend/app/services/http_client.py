"""Helpers for creating outbound HTTP clients."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx

from app.core.config import Settings


@asynccontextmanager
async def async_http_client(settings: Settings) -> AsyncIterator[httpx.AsyncClient]:
    """Yield an `httpx.AsyncClient` configured from settings and ensure cleanup."""

    client = httpx.AsyncClient(
        timeout=settings.http_request_timeout,
        follow_redirects=True,
    )
    try:
        yield client
    finally:
        await client.aclose()
