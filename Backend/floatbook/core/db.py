from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from .config import get_settings


settings = get_settings()


def engine_options(database_url: str) -> dict:
    """Pool options for the configured driver. SQLite ignores pool sizing."""
    if database_url.startswith("sqlite"):
        return {"echo": False, "connect_args": {"timeout": 30}}
    return {
        "echo": False,
        "pool_pre_ping": True,  # Verify connections before using them
        "pool_recycle": 3600,  # Recycle connections after 1 hour
        "pool_size": 10,
        "max_overflow": 20,
    }


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


class Base(DeclarativeBase):
    pass


async def get_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


def dialect_insert(session: AsyncSession, table):
    """INSERT construct with ON CONFLICT support for the session's backend."""
    if session.get_bind().dialect.name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as sqlite_insert

        return sqlite_insert(table)
    from sqlalchemy.dialects.postgresql import insert as pg_insert

    return pg_insert(table)
