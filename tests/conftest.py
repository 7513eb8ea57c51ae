import pytest
from httpx import ASGITransport, AsyncClient

from provably_fair.create_sqlite_engine import create_sqlite_engine
from provably_fair.db import create_session_factory
from provably_fair.models.schemas import Base
from provably_fair.services.crate_catalog import StaticCrateCatalog
from provably_fair.services.fairness_engine import FairnessEngine

STARTER_CRATE = [("common", 0.5), ("rare", 0.3), ("legendary", 0.2)]


@pytest.fixture
async def db_engine(tmp_path):
    engine = create_sqlite_engine(f"sqlite+aiosqlite:///{tmp_path / 'fairness.sqlite3'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def Session(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def crate_catalog():
    return StaticCrateCatalog({"starter": STARTER_CRATE})


@pytest.fixture
async def fairness_engine(Session, crate_catalog):
    engine = FairnessEngine(Session, crate_catalog=crate_catalog)
    await engine.seed_manager.ensure_active_server_seed()
    return engine


@pytest.fixture
async def client(fairness_engine):
    from provably_fair.main import app
    from provably_fair.routers.fairness import get_fairness_engine

    app.dependency_overrides[get_fairness_engine] = lambda: fairness_engine
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as async_client:
        yield async_client
    app.dependency_overrides.clear()
