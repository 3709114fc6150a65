"""
Pytest configuration and fixtures for the manga metadata API test suite.
"""
import pathlib
from typing import AsyncGenerator, Generator

import pytest
from aiohttp import ClientSession
from aioresponses import aioresponses

from app.internal.env_settings import ApplicationSettings, CacheSettings
from app.internal.image_cache import ImageCache
from app.internal.orchestrator import RequestOrchestrator
from app.internal.providers import MangaDexProvider, MangaPillProvider, build_providers
from app.util.cache import MetadataCache

FIXTURES_DIR = pathlib.Path(__file__).parent / "fixtures"


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def load_fixture(name: str) -> str:
    return (FIXTURES_DIR / name).read_text(encoding="utf-8")


# Async HTTP mocking fixtures
@pytest.fixture(scope="function")
async def mock_client_session() -> AsyncGenerator[ClientSession, None]:
    """Provide a real ClientSession with aioresponses mocking for HTTP calls."""
    with aioresponses() as mocked:
        async with ClientSession() as session:
            # Attach mocked responses to session for easy access in tests
            session._mocked = mocked
            yield session


@pytest.fixture(scope="function")
def aioresponses_mocker() -> Generator[aioresponses, None, None]:
    """Provide aioresponses context manager for manual HTTP mocking."""
    with aioresponses() as mocked:
        yield mocked


# Settings and component fixtures
@pytest.fixture
def app_settings() -> ApplicationSettings:
    return ApplicationSettings(request_timeout=5.0, user_agent="test-agent/1.0")


@pytest.fixture
def cache_settings() -> CacheSettings:
    return CacheSettings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metadata_cache(clock) -> MetadataCache:
    return MetadataCache(clock=clock)


@pytest.fixture
def image_cache(clock) -> ImageCache:
    return ImageCache(capacity=3, ttl=3600, timeout=5.0, user_agent="test-agent/1.0", clock=clock)


@pytest.fixture
def mangapill(app_settings) -> MangaPillProvider:
    return MangaPillProvider(app_settings)


@pytest.fixture
def mangadex(app_settings) -> MangaDexProvider:
    return MangaDexProvider(app_settings)


@pytest.fixture
def orchestrator(app_settings, metadata_cache, cache_settings) -> RequestOrchestrator:
    return RequestOrchestrator(
        providers=build_providers(app_settings),
        cache=metadata_cache,
        cache_settings=cache_settings,
    )


# HTML fixtures
@pytest.fixture
def search_html() -> str:
    return load_fixture("search.html")


@pytest.fixture
def details_html() -> str:
    return load_fixture("details.html")


@pytest.fixture
def chapter_html() -> str:
    return load_fixture("chapter.html")


@pytest.fixture
def recent_html() -> str:
    return load_fixture("recent.html")


# MangaDex payloads
@pytest.fixture
def mangadex_manga() -> dict:
    return {
        "id": "a1c7c817-4e59-43b7-9365-09675a149a6f",
        "type": "manga",
        "attributes": {
            "title": {"en": "One Piece"},
            "description": {"en": "Gol D. Roger was known as the Pirate King."},
            "status": "ongoing",
            "tags": [
                {"attributes": {"name": {"en": "Action"}}},
                {"attributes": {"name": {"en": "Adventure"}}},
            ],
        },
        "relationships": [
            {"id": "author-1", "type": "author"},
            {
                "id": "cover-1",
                "type": "cover_art",
                "attributes": {"fileName": "cover.jpg"},
            },
        ],
    }


@pytest.fixture
def mangadex_search_response(mangadex_manga) -> dict:
    return {"result": "ok", "data": [mangadex_manga], "limit": 20, "offset": 0, "total": 45}


@pytest.fixture
def mangadex_feed_response() -> dict:
    return {
        "result": "ok",
        "data": [
            {"id": "ch-1170", "attributes": {"title": "Gear Fifth", "chapter": "1170"}},
            {"id": "ch-1169", "attributes": {"title": None, "chapter": "1169"}},
            {"id": "ch-oneshot", "attributes": {"title": "", "chapter": None}},
        ],
    }


@pytest.fixture
def mangadex_at_home_response() -> dict:
    return {
        "result": "ok",
        "baseUrl": "https://uploads.mangadex.network",
        "chapter": {"hash": "abc123", "data": ["1-x.png", "2-y.png"]},
    }


@pytest.fixture
def read_fixture():
    """Loader for fixtures that only a few tests need."""
    return load_fixture
