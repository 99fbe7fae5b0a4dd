"""Configuration for the query engines and the application."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass
class QueryConfig:
    """
    Pagination policy shared by every entity list endpoint.

    Attributes:
        max_page_size: Maximum allowed items per page (default: 100)
        default_page_size: Items per page when the caller sends none (default: 10)
        min_page_size: Minimum allowed items per page (default: 1)
        allow_deep_pagination: If False, pages beyond ``max_page`` are rejected
        max_page: Maximum allowed page number, None for unlimited (default: None)

    Example:
        config = QueryConfig(max_page_size=50, default_page_size=20)
        policy = PaginationPolicy(config)
    """

    max_page_size: int = 100
    default_page_size: int = 10
    min_page_size: int = 1

    allow_deep_pagination: bool = True
    max_page: Optional[int] = None

    def __post_init__(self):
        """Validate configuration values."""
        if self.max_page_size < 1:
            raise ValueError("max_page_size must be >= 1")
        if self.default_page_size < 1:
            raise ValueError("default_page_size must be >= 1")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
        if self.min_page_size < 1:
            raise ValueError("min_page_size must be >= 1")
        if self.min_page_size > self.max_page_size:
            raise ValueError("min_page_size cannot exceed max_page_size")
        if self.max_page is not None and self.max_page < 1:
            raise ValueError("max_page must be >= 1 or None")


class Settings(BaseSettings):
    """Application settings, read from ``WILDLIFE_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WILDLIFE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite:///./wildlife.db"
    echo_sql: bool = False

    # HTTP
    api_prefix: str = "/api/v1"
    debug: bool = False
    log_level: str = "INFO"

    # Pagination
    default_page_size: int = 10
    max_page_size: int = 100
    # Pages past max_page are rejected unless deep pagination is allowed
    allow_deep_pagination: bool = True
    max_page: Optional[int] = None

    # Animal images
    image_dir: str = "./media/animals"
    max_image_bytes: int = 5 * 1024 * 1024

    # Presence: a user counts as online when seen within this window
    presence_ttl_seconds: int = 300

    def query_config(self) -> QueryConfig:
        return QueryConfig(
            max_page_size=self.max_page_size,
            default_page_size=self.default_page_size,
            allow_deep_pagination=self.allow_deep_pagination,
            max_page=self.max_page,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
