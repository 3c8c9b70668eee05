"""Application-wide settings for the search backend."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BRAVE_DEFAULT_BASE_URL = "https://api.search.brave.com/res/v1"
CRAWLER_DEFAULT_USER_AGENT = "NetverseLab-Crawler/1.0"


class Settings(BaseSettings):
    """Global application configuration."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    brave_api_key: Optional[str] = Field(default=None, env="BRAVE_API_KEY")
    brave_base_url: str = Field(default=BRAVE_DEFAULT_BASE_URL, env="BRAVE_BASE_URL")
    brave_result_count: int = Field(default=10, env="BRAVE_RESULT_COUNT")
    http_request_timeout: float = Field(default=15.0, env="HTTP_REQUEST_TIMEOUT")

    # Outbound request governor, shared by every key
    rate_limit_max_requests: int = Field(default=3, env="RATE_LIMIT_MAX_REQUESTS")
    rate_limit_window_seconds: float = Field(
        default=30.0, env="RATE_LIMIT_WINDOW_SECONDS"
    )
    rate_limit_retry_after_seconds: float = Field(
        default=1.0, env="RATE_LIMIT_RETRY_AFTER_SECONDS"
    )
    rate_limit_max_retries: int = Field(default=3, env="RATE_LIMIT_MAX_RETRIES")
    rate_limit_queue_size: int = Field(default=50, env="RATE_LIMIT_QUEUE_SIZE")

    search_cache_ttl_seconds: float = Field(
        default=15 * 60, env="SEARCH_CACHE_TTL_SECONDS"
    )
    search_fallback_retry_delay_seconds: float = Field(
        default=2.0, env="SEARCH_FALLBACK_RETRY_DELAY_SECONDS"
    )

    crawler_user_agent: str = Field(
        default=CRAWLER_DEFAULT_USER_AGENT, env="CRAWLER_USER_AGENT"
    )
    crawler_max_depth: int = Field(default=2, env="CRAWLER_MAX_DEPTH")
    crawler_max_pages: int = Field(default=100, env="CRAWLER_MAX_PAGES")
    crawler_delay_seconds: float = Field(default=1.0, env="CRAWLER_DELAY_SECONDS")

    log_level: str = Field(default="INFO", env="LOG_LEVEL")


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "get_settings"]
