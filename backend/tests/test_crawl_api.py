"""API-level tests for the crawl endpoint."""
from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
import pytest
from fastapi.testclient import TestClient

from app.api.routes import crawl as crawl_routes
from app.core.config import Settings, get_settings
from app.deps import get_governor
from app.main import app
from app.services.rate_limit import GovernorConfig, RequestGovernor

SITE = {
    "https://site.test/": '<title>Home</title><a href="/about">About</a>',
    "https://site.test/about": "<title>About</title><p>About us</p>",
}


@pytest.fixture(name="client")
def client_fixture(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    def handler(request: httpx.Request) -> httpx.Response:
        key = str(request.url.copy_with(path=request.url.path or "/"))
        body = SITE.get(key)
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, text=body)

    @asynccontextmanager
    async def fake_client(_: Settings):
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            yield client

    monkeypatch.setattr(crawl_routes, "async_http_client", fake_client)
    governor = RequestGovernor(GovernorConfig(max_requests=50, window_seconds=60.0))
    app.dependency_overrides[get_settings] = lambda: Settings(crawler_delay_seconds=0)
    app.dependency_overrides[get_governor] = lambda: governor
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.pop(get_settings, None)
    app.dependency_overrides.pop(get_governor, None)


def test_crawl_returns_pages(client: TestClient) -> None:
    response = client.post("/api/crawl", json={"url": "https://site.test/", "maxDepth": 1})

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["totalPages"] == 2
    assert [page["title"] for page in payload["results"]] == ["Home", "About"]
    assert payload["results"][1]["description"] == "About us"
    assert "lastCrawled" in payload["results"][0]


def test_crawl_respects_max_pages(client: TestClient) -> None:
    response = client.post("/api/crawl", json={"url": "https://site.test/", "max_pages": 1})

    assert response.status_code == 200
    assert response.json()["totalPages"] == 1


def test_crawl_requires_url(client: TestClient) -> None:
    response = client.post("/api/crawl", json={})

    assert response.status_code == 400
    assert response.json()["detail"] == "URL parameter is required"


def test_crawl_rejects_relative_url(client: TestClient) -> None:
    response = client.post("/api/crawl", json={"url": "/relative"})

    assert response.status_code == 400
