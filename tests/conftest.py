import os

# Point the app's module-level engine at SQLite before anything imports it
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import json
from typing import Callable, List, Optional

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.dependencies import get_http_client, get_ticketmaster_client
from api.main import app
from config.settings import Settings, get_settings
from models import Artist, Base, Setlist, SetlistSong, Show, get_session
from services.ticketmaster import TicketmasterClient

CRON_TOKEN = "cron-secret"
SYNC_BASE_URL = "https://project.supabase.test"


class Upstream:
    """Records outgoing requests and answers them with ``handler``."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(
            404, json={"error": "not mocked"}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def json_body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def sync_response(data: dict, success: bool = True, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json={"success": success, "data": data})


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        supabase_url=SYNC_BASE_URL,
        supabase_service_role_key="service-role-key",
        ticketmaster_api_key="tm-key",
        cron_secret_token=CRON_TOKEN,
        sync_queue_batch_size=5,
        sync_task_max_attempts=3,
        stale_after_hours=24,
        anonymous_vote_limit=3,
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
async def http_client(upstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        yield client


@pytest.fixture
async def client(session_factory, test_settings, http_client):
    async def override_session():
        async with session_factory() as session:
            yield session

    def override_ticketmaster():
        return TicketmasterClient(http_client, test_settings.ticketmaster_api_key, retry_delay=0)

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_ticketmaster_client] = override_ticketmaster

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def cron_headers() -> dict:
    return {"Authorization": f"Bearer {CRON_TOKEN}"}


def make_headers(user_id: Optional[str] = None) -> dict:
    return {"X-User-Id": user_id} if user_id else {}


@pytest.fixture
async def songs(session):
    """One show with a four-song setlist, no votes yet."""
    artist = Artist(ticketmaster_id="K1", name="Radiohead", image_url="https://img", genres=["rock"])
    session.add(artist)
    await session.flush()
    show = Show(ticketmaster_id="G1", name="Radiohead Live", artist_id=artist.id)
    session.add(show)
    await session.flush()
    setlist = Setlist(show_id=show.id, artist_id=artist.id)
    session.add(setlist)
    await session.flush()
    rows = [
        SetlistSong(setlist_id=setlist.id, name=name, position=i + 1)
        for i, name in enumerate(["Airbag", "Karma Police", "Creep", "Reckoner"])
    ]
    session.add_all(rows)
    await session.commit()
    return rows
