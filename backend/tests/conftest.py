"""Pytest configuration and fixtures."""

import asyncio
from contextlib import asynccontextmanager

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from alert_relay import models  # noqa: F401
from alert_relay.config import Settings
from alert_relay.database import Base
from alert_relay.main import create_app
from alert_relay.services.change_feed import InMemoryChangeFeed
from alert_relay.services.dispatcher import FanOutDispatcher
from alert_relay.services.gateway import SendResult
from alert_relay.services.pipeline import build_pipeline
from alert_relay.services.registry_store import RegistryStore


def make_token(name: str) -> str:
    """A token that passes the dispatcher's format check."""
    return f"{name}:APA91b" + "x" * 120


class FakeGateway:
    """Records every batch and answers with canned results."""

    def __init__(self, results=None, error=None, delay=None):
        self.batches = []
        self.results = results
        self.error = error
        self.delay = delay

    @property
    def sent_tokens(self):
        return [m["token"] for batch in self.batches for m in batch]

    async def send_batch(self, messages):
        self.batches.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        if self.results is None:
            return [SendResult(success=True) for _ in messages]
        return list(self.results)


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    def millis(self) -> int:
        return int(self.now * 1000)


def make_settings(tmp_path, **overrides) -> Settings:
    values = {
        "data_path": str(tmp_path),
        "listener_enabled": False,
        "scheduler_enabled": False,
        "firebase_credentials_path": None,
        "firebase_service_account": None,
    }
    values.update(overrides)
    return Settings(**values)


async def _create_engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh SQLite database."""
    engine = await _create_engine(tmp_path)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return RegistryStore(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def dispatcher(store, gateway):
    return FanOutDispatcher(store, gateway, gateway_timeout_seconds=1.0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(tmp_path, gateway):
    """HTTP client for an app wired to a temporary database and the fake gateway."""
    settings = make_settings(tmp_path)

    @asynccontextmanager
    async def lifespan(app):
        # The engine must live on the client's event loop
        engine = await _create_engine(tmp_path)
        factory = async_sessionmaker(engine, expire_on_commit=False)
        app.state.pipeline = build_pipeline(
            settings, factory, gateway=gateway, feed=InMemoryChangeFeed()
        )
        yield
        await engine.dispose()

    app = create_app(lifespan_handler=lifespan)
    with TestClient(app) as test_client:
        yield test_client
