"""Environment-driven settings for the API, the store, Redis and auth."""
from functools import lru_cache
from urllib.parse import urlparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Read once per process from the environment (and .env when present)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Store (postgresql+asyncpg or sqlite+aiosqlite URL)
    database_url: str
    db_pool_size: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")

    # Auth - shared HS256 secret with the token issuer
    jwt_secret: str = Field(default="", validation_alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")

    # Development mode - bypasses token verification for local development
    dev_mode: bool = Field(default=False, validation_alias="DEV_MODE")

    # Comma-separated; see cors_origins
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    # Redis - for read-through caching and rate limiting
    redis_url: str = Field(default="redis://localhost:6379", validation_alias="REDIS_URL")
    redis_enabled: bool = Field(default=True, validation_alias="REDIS_ENABLED")
    redis_pool_size: int = Field(default=20, validation_alias="REDIS_POOL_SIZE")

    # Upper bound for a single mutating transaction, in seconds
    operation_timeout_seconds: float = Field(
        default=5.0, gt=0, validation_alias="OPERATION_TIMEOUT_SECONDS",
    )

    # Cache TTLs, in seconds
    follow_cache_ttl_seconds: int = Field(default=300, validation_alias="FOLLOW_CACHE_TTL_SECONDS")
    event_cache_ttl_seconds: int = Field(default=600, validation_alias="EVENT_CACHE_TTL_SECONDS")
    feed_cache_ttl_seconds: int = Field(default=120, validation_alias="FEED_CACHE_TTL_SECONDS")

    rate_limit_enabled: bool = Field(default=True, validation_alias="RATE_LIMIT_ENABLED")

    @model_validator(mode="after")
    def _local_database_for_dev_mode(self) -> "Settings":
        # DEV_MODE skips token checks, so it is refused against any remote database
        if self.dev_mode and not is_local_database(self.database_url):
            raise ValueError(
                "DEV_MODE cannot be enabled with a non-local database "
                f"(host: {_database_host(self.database_url)!r}). "
                "It bypasses authentication and is for local development only.",
            )
        return self

    @property
    def cors_origins(self) -> list[str]:
        return [part.strip() for part in self.cors_origins_str.split(",") if part.strip()]


LOCAL_DB_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "::1"})


def _database_host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def is_local_database(url: str) -> bool:
    """SQLite files and loopback hosts are local; unparseable URLs are not."""
    if url.startswith("sqlite"):
        return True
    return _database_host(url) in LOCAL_DB_HOSTS


@lru_cache
def get_settings() -> Settings:
    return Settings()
