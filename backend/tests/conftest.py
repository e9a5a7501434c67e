"""Shared fixtures: temp SQLite database, fake clients and the ASGI app."""

import os

os.environ.setdefault("APP_ENV", "testing")

import httpx
import pytest

from src.db.base import Base, create_engine, create_session_factory
from src.db.session import get_db
from src.store.api_keys import APIKeyStore
from src.whatsapp.dispatcher import MessageDispatcher
from src.whatsapp.events import EventBridge
from src.whatsapp.ratelimit import RateLimiter
from src.whatsapp.registry import SessionRegistry

from tests.fakes.fake_client import FakeClientFactory


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(tmp_path / "test.db.sqlite")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def registry(client_factory, session_factory, tmp_path):
    registry = SessionRegistry(
        client_factory=client_factory,
        sessions_path=tmp_path / "sessions",
        reconnect_max_attempts=0,
        sleep=no_sleep,
    )
    registry.event_bridge = EventBridge(session_factory, registry)
    return registry


@pytest.fixture
def rate_limiter():
    return RateLimiter(limit=5, window=60.0, min_interval=0.0)


@pytest.fixture
def dispatcher(session_factory, registry):
    return MessageDispatcher(session_factory, registry, send_timeout=1.0)


@pytest.fixture
def app(session_factory, registry, rate_limiter, dispatcher):
    from src.main import create_app

    app = create_app()
    app.state.registry = registry
    app.state.rate_limiter = rate_limiter
    app.state.dispatcher = dispatcher

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    return app


async def _make_key(session_factory, permissions: list[str]) -> str:
    async with session_factory() as session:
        created = await APIKeyStore(session).create("test", permissions=permissions)
        await session.commit()
    return created.key


@pytest.fixture
async def api_key(session_factory) -> str:
    return await _make_key(session_factory, ["read", "write"])


@pytest.fixture
async def admin_key(session_factory) -> str:
    return await _make_key(session_factory, ["*"])


@pytest.fixture
async def read_only_key(session_factory) -> str:
    return await _make_key(session_factory, ["read"])


@pytest.fixture
async def http(app, api_key):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://testserver",
        headers={"X-API-Key": api_key},
    ) as client:
        yield client
