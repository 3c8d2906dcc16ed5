"""Shared test fixtures: SQLite-backed ledger, fake Discord directory, API client."""

import os
from contextlib import asynccontextmanager

# Set before any rolegate import so the cached Settings pick them up.
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rolegate.core.config import get_settings
from rolegate.db.base import Base
from rolegate.services.entitlements import EntitlementMapper
from rolegate.services.ledger import SubscriptionLedger
from tests.fakes import GUILD_ID, ROLE_PRO, ROLE_VIP, FakeDirectory, standard_guild

get_settings.cache_clear()


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'rolegate_test.db'}"


@pytest.fixture
async def engine(db_url):
    """Async engine on a throwaway SQLite file, wired into the global session factory."""
    import rolegate.db.base as db_mod
    import rolegate.db.models  # noqa: F401

    engine = create_async_engine(db_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield engine

    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def ledger(session_factory) -> SubscriptionLedger:
    return SubscriptionLedger(session_factory)


@pytest.fixture
def mapper() -> EntitlementMapper:
    return EntitlementMapper(
        {"price_abc": ROLE_VIP, "price_pro": ROLE_PRO},
        {"VIP": "price_abc", "pro": "price_pro"},
    )


@pytest.fixture
def guild():
    return standard_guild()


@pytest.fixture
def directory(guild) -> FakeDirectory:
    return FakeDirectory(guild)


@pytest.fixture
def api_client(db_url, directory, mapper):
    """FastAPI test client backed by SQLite and the fake directory.

    init_db runs inside the TestClient's own event loop so route handlers can
    use get_session_factory().
    """
    from rolegate.api.routes import api_router
    from rolegate.db import close_db, get_session_factory, init_db
    from rolegate.main import generic_exception_handler, http_exception_handler
    from rolegate.services.event_claims import EventClaims
    from rolegate.services.reconciliation import ReconciliationService

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        import rolegate.db.base as db_mod

        db_mod._engine = None
        db_mod._session_factory = None
        await init_db(db_url)
        app.state.shutting_down = False
        app.state.mapper = mapper
        app.state.claims = EventClaims(get_session_factory())
        app.state.reconciler = ReconciliationService(
            directory=directory,
            ledger=SubscriptionLedger(get_session_factory()),
            mapper=mapper,
            guild_id=GUILD_ID,
        )
        yield
        await close_db()

    app = FastAPI(title="RoleGate - Test Client", lifespan=test_lifespan)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)
    app.include_router(api_router, prefix="/api")

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client
