"""FastAPI application entrypoint for the Netverse search backend."""
import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from app.api.routes import api_router
from app.core.config import get_settings
from app.core.logging_config import setup_logging
from app.deps import close_governors

logger = logging.getLogger("app.requests")


@asynccontextmanager
async def lifespan(_: FastAPI):
    setup_logging(get_settings().log_level)
    try:
        yield
    finally:
        # Drain tasks are bound to this event loop
        await close_governors()


app = FastAPI(title="Netverse Search API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


class HealthResponse(BaseModel):
    status: str = "ok"


@app.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check() -> HealthResponse:
    """Liveness probe; does not touch Brave or the governor."""
    return HealthResponse()


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000.0
    logger.info(
        "%s %s -> %s",
        request.method,
        request.url.path,
        response.status_code,
        extra={
            "request_id": request_id,
            "duration_ms": elapsed_ms,
            "client_ip": request.client.host if request.client else None,
        },
    )
    response.headers["X-Request-Id"] = request_id
    return response
