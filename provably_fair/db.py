from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from provably_fair.create_postgres_engine import create_postgres_engine
from provably_fair.create_sqlite_engine import create_sqlite_engine
from provably_fair.load_secrets import database_url


def create_engine(url: str) -> AsyncEngine:
    """Pick the engine factory for the URL's backend."""
    if url.startswith("sqlite"):
        return create_sqlite_engine(url)
    return create_postgres_engine(url)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        autocommit=False,
        class_=AsyncSession,
        autoflush=True,
        expire_on_commit=False,
        bind=bind,
    )


# Centralized session factory to avoid creating it in router modules.
engine = create_engine(database_url)
Session = create_session_factory(engine)
