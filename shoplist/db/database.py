import ssl
from functools import lru_cache

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from shoplist.config import get_settings

# Base class for models
Base = declarative_base()


def build_engine(url: str, ssl_required: bool = False, echo: bool = False, **kwargs) -> AsyncEngine:
    """Create an async engine. SSL is passed to asyncpg when the host requires it (Neon)."""
    connect_args = kwargs.pop("connect_args", {})
    if ssl_required:
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        connect_args["ssl"] = ssl_context
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        connect_args=connect_args,
        **kwargs,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@lru_cache
def get_engine() -> AsyncEngine:
    """Engine for the configured database (DATABASE_URL must be set)."""
    settings = get_settings()
    if not settings.async_database_url:
        raise RuntimeError("DATABASE_URL is not configured")
    return build_engine(
        settings.async_database_url,
        ssl_required=settings.database_ssl,
        echo=settings.environment == "development",
    )


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return build_session_factory(get_engine())
