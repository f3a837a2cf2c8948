"""
Shared fixtures: in-memory SQLite database, a scripted Graph API behind
httpx.MockTransport, and signed identity tokens.
"""

import os

from cryptography.fernet import Fernet

# Settings are read at import time by adsconnect.database; set them first.
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-signing-secret"
os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["CRON_SECRET"] = "cron-test-secret"
os.environ["FACEBOOK_APP_ID"] = "app-123"
os.environ["FACEBOOK_APP_SECRET"] = "app-secret-xyz"
os.environ["FRONTEND_URL"] = "http://frontend.test"

import httpx
import pytest
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from adsconnect.config import get_settings
from adsconnect.crypto import reset_cipher
from adsconnect.database import Base
import adsconnect.models  # noqa: F401
from adsconnect.services.graph_client import GraphClient

GRAPH_BASE = "https://graph.test/v23.0"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    reset_cipher()
    yield
    get_settings.cache_clear()
    reset_cipher()


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


class FakeGraphApi:
    """
    Scripted Graph API. Register responses per (method, path); each request
    takes the next queued response, and the last one repeats.
    A response is a dict (HTTP 200), a (status, body) tuple, an httpx.Response,
    an exception instance to raise, or a callable taking the httpx.Request.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list] = {}
        self.requests: list[httpx.Request] = []
        self.sleeps: list[float] = []

    def on(self, method: str, path: str, *responses) -> "FakeGraphApi":
        self.routes.setdefault((method.upper(), path), []).extend(responses)
        return self

    def calls(self, method: str | None = None, path: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method.upper()) and (path is None or self.path_of(r) == path)
        ]

    @staticmethod
    def path_of(request: httpx.Request) -> str:
        return request.url.path.removeprefix("/v23.0")

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, self.path_of(request)))
        if not queue:
            return httpx.Response(404, json={"error": {"message": "Unknown path", "code": 803}})
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response):
            response = response(request)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, httpx.Response):
            return response
        if isinstance(response, tuple):
            status, body = response
            return httpx.Response(status, json=body)
        return httpx.Response(200, json=response)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)

    def client(self, **kwargs) -> GraphClient:
        return GraphClient(
            base_url=GRAPH_BASE,
            transport=httpx.MockTransport(self.handle),
            sleep=self.sleep,
            **kwargs,
        )


@pytest.fixture
def fake_graph():
    return FakeGraphApi()


@pytest.fixture
async def graph(fake_graph):
    client = fake_graph.client()
    yield client
    await client.close()


@pytest.fixture
def make_token():
    def _make(subject: str = "user_owner_1", **claims) -> str:
        return jwt.encode({"sub": subject, **claims}, "test-signing-secret", algorithm="HS256")
    return _make


@pytest.fixture
async def api(session_factory, fake_graph):
    """HTTP client for the app with the test database and the scripted Graph API wired in."""
    from httpx import ASGITransport, AsyncClient
    from adsconnect.database import get_db
    from adsconnect.main import app
    from adsconnect.services.graph_client import get_graph_client

    async def _test_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _test_graph():
        client = fake_graph.client()
        try:
            yield client
        finally:
            await client.close()

    app.dependency_overrides[get_db] = _test_db
    app.dependency_overrides[get_graph_client] = _test_graph
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(make_token):
    def _headers(subject: str = "user_owner_1") -> dict:
        return {"Authorization": f"Bearer {make_token(subject)}"}
    return _headers
