"""API route registrations."""
from fastapi import APIRouter

from app.api.routes import crawl, governor, search


api_router = APIRouter()
api_router.include_router(search.router)
api_router.include_router(crawl.router)
api_router.include_router(governor.router)

__all__ = ["api_router"]
