from typing import Iterator

import pytest

from app.core.config import get_settings
from app.main import app


@pytest.fixture
def anyio_backend() -> str:
    """Run async tests on asyncio, the loop the governor's drain tasks use."""

    return "asyncio"


@pytest.fixture(autouse=True)
def _isolate_app_state() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    app.dependency_overrides.clear()
    get_settings.cache_clear()
