from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from schoolrecords.core.config import settings


def engine_options(database_url: str) -> dict:
    """Engine keyword arguments for the configured backend (SQLite for local runs, Postgres otherwise)."""
    if database_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    # pool_pre_ping: check connection is alive before use; pool_recycle drops connections idle past 5 minutes.
    return {"pool_pre_ping": True, "pool_recycle": 300}


engine = create_async_engine(
    settings.database_url,
    echo=False,
    future=True,
    **engine_options(settings.database_url),
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


def get_sessionmaker() -> async_sessionmaker:
    """Session factory for work that outlives the request scope (streamed imports)."""
    return AsyncSessionLocal
