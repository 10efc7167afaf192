from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from crm_search.config import settings


def _engine_options(database_url: str) -> dict:
    """Pool options per environment. SQLite drivers manage their own pool."""
    if database_url.startswith("sqlite"):
        return {}
    if settings.environment == "production":
        return {"pool_size": 20, "max_overflow": 50, "pool_timeout": 60, "pool_recycle": 1800}
    return {"pool_size": 10, "max_overflow": 20, "pool_timeout": 30}


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# One session per storage operation; concurrent search branches never share a session
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()
