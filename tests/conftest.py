"""
Shared pytest fixtures for all test modules.

Outbound provider calls never happen in tests: adapters are either replaced
with fakes or their HTTP session is patched.
"""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from tests.mocks.firebase_mock import MockFirestore, mock_transactional
from tests.mocks.redis_mock import MockRedis

from app.config import settings
from app.core.auth import get_current_user
from app.core.errors import ProviderError
from app.integrations.providers.base import ImageProvider
from app.main import app
from app.schemas.generation import GeneratedImage, Quality
from app.services import generation_cache

TEST_UID = "user-123"


# ---------------------------------------------------------------------------
# Core infrastructure fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_firebase(monkeypatch):
    """Replace firebase.db with an in-memory MockFirestore whose transactions really apply."""
    from firebase_admin import firestore
    from app.integrations import firebase as fb

    mock_db = MockFirestore()
    monkeypatch.setattr(fb, "db", mock_db)
    monkeypatch.setattr(firestore, "transactional", mock_transactional)
    return mock_db


@pytest.fixture
def mock_redis(monkeypatch):
    """Replace redis_client.client with an in-memory MockRedis."""
    from app.integrations import redis_client as rc

    mock_rc = MockRedis()
    monkeypatch.setattr(rc, "client", mock_rc)
    return mock_rc


@pytest.fixture(autouse=True)
def reset_generation_cache():
    generation_cache.local_cache.clear()
    for k in generation_cache.stats:
        generation_cache.stats[k] = 0
    yield
    generation_cache.local_cache.clear()


@pytest.fixture
def client(mock_firebase, mock_redis):
    """
    FastAPI TestClient with mocked Firebase and Redis. Background health
    probing stays off so provider status only changes when a test drives it.

    initialize() calls are patched to no-ops so they can't overwrite our mocks
    or attempt real network connections during the lifespan startup.
    """
    with (
        patch("app.integrations.firebase.initialize"),
        patch("app.integrations.redis_client.initialize"),
        patch.object(settings, "health_monitoring_autostart", False),
    ):
        with TestClient(app, raise_server_exceptions=False) as c:
            yield c


@pytest.fixture
def fake_providers(client):
    """Swap the lifespan-built providers for in-memory fakes. Returns the fakes by name."""
    gen_router = app.state.generation_router
    fakes = {"fal": FakeProvider("fal"), "leonardo": FakeProvider("leonardo")}
    gen_router.providers.update(fakes)
    app.state.health_monitor.probes = {name: p.probe for name, p in fakes.items()}
    return fakes


@pytest.fixture
def auth_client(client):
    """TestClient whose requests are authenticated as TEST_UID."""
    app.dependency_overrides[get_current_user] = lambda: {"uid": TEST_UID, "email": "user@example.com"}
    yield client
    app.dependency_overrides.pop(get_current_user, None)


# ---------------------------------------------------------------------------
# Shared test-data helpers
# ---------------------------------------------------------------------------


def make_user(**overrides) -> dict:
    """A user document that satisfies every tune precondition."""
    user = {
        "workStatus": "ongoing",
        "tuneStatus": None,
        "name": "Ada",
        "age": "30",
        "bodyType": "slim",
        "height": "170",
        "ethnicity": "white",
        "gender": "woman",
        "eyeColor": "green",
        "styles": ["corporate"],
        "userPhotos": {"userSelfies": [f"https://cdn.example.com/s{i}.jpg" for i in range(15)]},
    }
    user.update(overrides)
    return user


def mock_http_session(json_payload=None, status: int = 200, text: str = ""):
    """
    Build a patch target for `app.integrations.http_client.request_session`
    that yields a MagicMock session whose `request()` returns one response.
    Returns (context manager factory, session mock).
    """
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=json_payload if json_payload is not None else {})
    mock_response.text = AsyncMock(return_value=text)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=False)

    mock_session = MagicMock()
    mock_session.request = MagicMock(return_value=mock_response)

    @asynccontextmanager
    async def fake_request_session():
        yield mock_session

    return fake_request_session, mock_session


class FakeProvider(ImageProvider):
    """In-memory image provider: succeeds, fails with a ProviderError, or stalls."""

    prices = {"m-basic": 0.01, "m-std": 0.02, "m-prem": 0.05}
    quality_models = {
        Quality.BASIC: "m-basic",
        Quality.STANDARD: "m-std",
        Quality.PREMIUM: "m-prem",
    }
    default_model = "m-std"

    def __init__(self, name, fail=None, delay=0.0):
        self.name = name
        self.models = {k: k for k in self.prices}
        self.fail = fail
        self.delay = delay
        self.calls = 0

    async def generate(self, request, model):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ProviderError(self.name, self.fail)
        return [
            GeneratedImage(url=f"https://img/{self.name}/{i}.png", width=1024, height=1024, provider=self.name)
            for i in range(request.options.num_images)
        ]

    async def probe(self):
        if self.fail:
            raise ProviderError(self.name, self.fail)
