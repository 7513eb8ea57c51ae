from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine


def create_postgres_engine(database_url: str) -> AsyncEngine:
    """Pooled asyncpg engine. Row locks (FOR UPDATE / FOR SHARE) guard nonce
    reservation and seed rotation on this backend."""
    return create_async_engine(database_url, pool_size=20, max_overflow=20)
