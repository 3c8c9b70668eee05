"""Aggregated search endpoint."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.deps import get_search_service
from app.schemas.search import SEARCH_TYPES, SearchResponse, SearchType
from app.services.brave_search import (
    BraveSearchService,
    SearchConfigurationError,
    SearchServiceError,
)

router = APIRouter(prefix="/search", tags=["search"])


@router.get(
    "",
    response_model=SearchResponse,
    summary="Search the web, images, videos and news",
)
async def search(
    q: str | None = Query(default=None, description="Search query"),
    type: str = Query(default="all", description="all, web, images, videos or news"),
    service: BraveSearchService = Depends(get_search_service),
) -> SearchResponse:
    query = (q or "").strip()
    if not query:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Query parameter is required",
        )
    types = _resolve_types(type)

    try:
        return await service.search(query, types)
    except SearchConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except SearchServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


def _resolve_types(value: str) -> List[SearchType]:
    value = value.strip().lower()
    if value in ("", "all"):
        return list(SEARCH_TYPES)
    if value not in SEARCH_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported search type '{value}'",
        )
    return [value]  # type: ignore[list-item]
