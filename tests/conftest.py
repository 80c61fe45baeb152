import pytest
from typing import Generator
from multidict import CIMultiDict
from fastapi.testclient import TestClient

from core.config import Settings
from main import create_app
from providers.discord_provider import DiscordProvider

TEST_TOKEN = "test-bot-token-0123456789"
TEST_API_URL = "https://discord.com/api/v10"


class AsyncContextManager:
    """Helper class for testing async context managers."""

    def __init__(self, return_value=None):
        self.return_value = return_value

    async def __aenter__(self):
        return self.return_value

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass


class FakeResponse:
    """Stands in for an aiohttp response inside `async with session.get(...)`."""

    def __init__(self, status, payload=None, headers=None):
        self.status = status
        self.payload = payload
        self.headers = CIMultiDict(headers or {})

    async def json(self, content_type=None):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeUpstream:
    """Fake aiohttp session routing requests by API path."""

    def __init__(self):
        self.responses = {}
        self.calls = []
        self.closed = False

    def respond(self, path, status, payload=None, headers=None):
        self.responses[path] = FakeResponse(status, payload, headers)

    def fail(self, path, exc):
        self.responses[path] = exc

    def paths(self):
        return [call["path"] for call in self.calls]

    def get(self, url, params=None, headers=None, timeout=None):
        path = url[len(TEST_API_URL):] if url.startswith(TEST_API_URL) else url
        self.calls.append(
            {"url": url, "path": path, "params": params, "headers": headers, "timeout": timeout}
        )
        outcome = self.responses.get(path)
        if outcome is None:
            outcome = FakeResponse(500, {"message": f"no fake response for {path}"})
        if isinstance(outcome, Exception):
            raise outcome
        return AsyncContextManager(outcome)

    async def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("ENVIRONMENT", "test")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")


@pytest.fixture
def test_settings() -> Settings:
    """Settings with a token and no pacing, isolated from any local .env."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DISCORD_BOT_TOKEN=TEST_TOKEN,
        UPSTREAM_MIN_INTERVAL_SECONDS=0,
        CORS_ORIGINS=["http://localhost:5173"],
    )


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_response():
    """Factory for fake upstream responses."""
    return FakeResponse


@pytest.fixture
def provider(fake_upstream) -> DiscordProvider:
    return DiscordProvider(token=TEST_TOKEN, api_url=TEST_API_URL, session=fake_upstream)


@pytest.fixture
def app(test_settings, provider):
    return create_app(test_settings, provider)


@pytest.fixture
def test_client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def async_context_manager():
    """Create an async context manager for testing."""
    return AsyncContextManager


@pytest.fixture
def sample_invite():
    """Invite payload as the upstream API returns it for a taken code."""
    return {
        "code": "taken-code",
        "type": 0,
        "expires_at": None,
        "guild": {
            "id": "81384788765712384",
            "name": "Discord API",
            "icon": "a_6f2b",
            "banner": "b4nn3r",
            "splash": None,
            "description": "Developers",
            "features": ["VANITY_URL", "COMMUNITY"],
            "verification_level": 3,
            "nsfw": False,
            "nsfw_level": 0,
            "premium_subscription_count": 42,
            "premium_tier": 2,
            "vanity_url_code": "taken-code",
        },
        "channel": {"id": "381887113391505410", "name": "welcome", "type": 0},
        "profile": {
            "tag": "API",
            "badge": 3,
            "badge_color_primary": "#ff0000",
            "badge_color_secondary": "#00ff00",
            "member_count": 100,
            "online_count": 10,
            "traits": [{"label": "Bots", "emoji_name": "robot"}, {"name": "Docs"}, "Help"],
            "visibility": 1,
            "game_activity": {"12345": {"activity_level": 1}},
            "emojis": [{"id": "1", "name": "wave"}],
        },
        "approximate_member_count": 150000,
        "approximate_presence_count": 20000,
    }


@pytest.fixture
def sample_user():
    """User payload as the upstream API returns it."""
    return {
        "id": "80351110224678912",
        "username": "nelly",
        "global_name": "Nelly",
        "avatar": "a_8342729096ea3675442027381ff50dfe",
        "banner": "06c16474723fe537c283b8efa61a30c8",
        "accent_color": 16711680,
        "public_flags": 64,
        "bot": False,
    }
