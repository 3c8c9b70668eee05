"""FastAPI dependency helpers."""
from __future__ import annotations

from functools import lru_cache
from typing import List

from fastapi import Depends

from app.core.config import Settings, get_settings
from app.services.brave_search import BraveSearchService, Payload
from app.services.rate_limit import GovernorConfig, RequestGovernor
from app.services.search_cache import TTLCache


_governors: List[RequestGovernor] = []


@lru_cache
def _create_governor(
    max_requests: int,
    window_seconds: float,
    retry_after_seconds: float,
    max_retries: int,
    queue_size: int,
) -> RequestGovernor:
    governor = RequestGovernor(
        GovernorConfig(
            max_requests=max_requests,
            window_seconds=window_seconds,
            retry_after_seconds=retry_after_seconds,
            max_retries=max_retries,
            queue_size=queue_size,
        )
    )
    _governors.append(governor)
    return governor


@lru_cache
def _create_search_cache(ttl_seconds: float) -> TTLCache[Payload]:
    return TTLCache(ttl_seconds)


def get_governor(settings: Settings = Depends(get_settings)) -> RequestGovernor:
    """Return the process-wide governor for the configured limits."""

    return _create_governor(
        settings.rate_limit_max_requests,
        settings.rate_limit_window_seconds,
        settings.rate_limit_retry_after_seconds,
        settings.rate_limit_max_retries,
        settings.rate_limit_queue_size,
    )


def get_search_service(
    settings: Settings = Depends(get_settings),
    governor: RequestGovernor = Depends(get_governor),
) -> BraveSearchService:
    """Provide a search service per request sharing the governor and cache."""

    return BraveSearchService(
        settings,
        governor,
        cache=_create_search_cache(settings.search_cache_ttl_seconds),
    )


async def close_governors() -> None:
    """Shut down every governor created so far."""

    for governor in list(_governors):
        await governor.aclose()
