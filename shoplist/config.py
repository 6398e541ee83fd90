from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings

ASYNC_DRIVER = "postgresql+asyncpg://"


def to_async_url(url: Optional[str]) -> Optional[str]:
    """
    Point a Postgres URL at the asyncpg driver.

    `sslmode` is dropped from the query string because asyncpg rejects it;
    SSL is configured through `database_ssl` instead.
    """
    if not url:
        return None
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            url = ASYNC_DRIVER + url[len(prefix):]
            break
    base, _, query = url.partition("?")
    params = [p for p in query.split("&") if p and not p.startswith("sslmode=")]
    return f"{base}?{'&'.join(params)}" if params else base


class Settings(BaseSettings):
    """Shopping list service settings, read from the environment or `.env`."""

    # Document store. Without a URL the service keeps everything in memory.
    database_url: Optional[str] = None
    database_ssl: bool = False  # Neon and most hosted Postgres need it

    # Clerk
    clerk_secret_key: Optional[str] = None
    clerk_frontend_api: str = "clerk.your-domain.com"  # e.g. "prepared-mole-42.clerk.accounts.dev"

    # Item photos on S3
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    s3_bucket_name: Optional[str] = None

    sentry_dsn: Optional[str] = None
    environment: str = "development"

    api_title: str = "Shared Shopping List API"
    api_version: str = "1.0.0"

    # Timeouts (seconds). Metadata calls are quick; photo transfer is the slow path.
    store_timeout_seconds: float = 10.0
    upload_timeout_seconds: float = 30.0

    # A fresh upload can take a moment to become readable
    url_resolve_attempts: int = 4
    url_resolve_base_delay: float = 0.5

    store_batch_limit: int = 500
    store_poll_interval_seconds: float = 2.0

    # Sessions with no socket and no request for this long are closed
    session_idle_seconds: float = 900.0
    session_reap_interval_seconds: float = 60.0
    default_list_name: str = "My list"

    # Open Food Facts
    barcode_lookup_url: str = "https://world.openfoodfacts.org/api/v2/product"
    barcode_timeout_seconds: float = 5.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def s3_enabled(self) -> bool:
        return bool(self.aws_access_key_id and self.aws_secret_access_key and self.s3_bucket_name)

    @property
    def async_database_url(self) -> Optional[str]:
        return to_async_url(self.database_url)


@lru_cache
def get_settings() -> Settings:
    return Settings()
