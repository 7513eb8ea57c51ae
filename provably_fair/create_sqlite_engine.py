import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def create_sqlite_engine(database_url: str, busy_timeout: float = 30.0) -> AsyncEngine:
    """aiosqlite engine whose transactions all start with BEGIN IMMEDIATE.

    SQLite has no row locks, so taking the write lock up front is what
    serialises nonce reservations and seed rotations on this backend.

    Args:
        database_url (str): sqlite+aiosqlite URL
        busy_timeout (float, optional): Seconds a connection waits for the write lock. Defaults to 30.0.

    Returns:
        AsyncEngine: Engine for the database file
    """
    engine = create_async_engine(
        url=database_url,
        echo=False,
        connect_args={"timeout": busy_timeout},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # hand transaction control to the "begin" listener below
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine
