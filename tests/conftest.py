"""Shared fixtures: a fresh app over a temporary SQLite file per test."""

import json
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi.websockets import WebSocketState
from httpx import ASGITransport, AsyncClient

from inoutboard.api import create_app
from inoutboard.broadcaster import Connection
from inoutboard.config import Settings
from inoutboard.database import Store

ADMIN_PASSWORD = "s3cret"


class FakeSocket:
    """Stands in for an accepted WebSocket; only the state is read."""

    def __init__(self) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED


def drain(conn: Connection) -> list[dict]:
    """Pop every queued message off an observer connection."""
    messages = []
    while not conn.queue.empty():
        raw = conn.queue.get_nowait()
        messages.append(None if raw is None else json.loads(raw))
    return messages


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'board.db'}",
        admin_password=ADMIN_PASSWORD,
        cookie_secret="test-cookie-secret",
        logo_path=tmp_path / "public" / "images" / "logo.png",
        static_dir=tmp_path / "no-static",
    )


@pytest.fixture
def app(settings: Settings):
    app = create_app(settings)
    yield app
    app.state.store.engine.dispose()


@pytest.fixture
def store(app) -> Store:
    return app.state.store


@pytest.fixture
def groups(store: Store) -> None:
    for name in ("Engineering", "Operations", "Sales"):
        store.create_group({"name": name})


@pytest.fixture
def observer(app) -> Connection:
    """A registered observer whose outbound queue the test can inspect."""
    conn = Connection(FakeSocket())
    app.state.broadcaster.register(conn)
    return conn


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as async_client:
        yield async_client


@pytest_asyncio.fixture
async def admin_client(client: AsyncClient) -> AsyncClient:
    resp = await client.post("/admin/login", json={"password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return client
