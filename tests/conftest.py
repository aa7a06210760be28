import pytest
import aiohttp

from backend.core.config import Settings
from backend.core.database import NewsDatabase
from backend.services.news_service import NewsService
from tests.helpers import FakeSession


@pytest.fixture
def test_settings(tmp_path):
    return Settings(
        DATABASE_PATH=str(tmp_path / "news_test.db"),
        NEWS_API_KEY="test-key",
        NEWS_API_BASE_URL="https://newsapi.test/v2",
        NEWS_API_TIMEOUT_SECONDS=2,
        AGGREGATION_TIMEOUT_SECONDS=5,
        CACHE_REFRESH_INTERVAL_MINUTES=600,
    )


@pytest.fixture
async def db(test_settings):
    database = NewsDatabase(test_settings.DATABASE_PATH)
    await database.init_db()
    return database


@pytest.fixture
def failing_session():
    return FakeSession(error=aiohttp.ClientConnectionError("connection refused"))


@pytest.fixture
async def news_service(db, test_settings, failing_session):
    service = NewsService(db, test_settings, session=failing_session)
    yield service
    await service.close()


@pytest.fixture
def sample_api_article():
    return {
        "title": "<b>Ottawa</b> business leaders meet &amp; plan",
        "description": "<p>Quarterly outlook for Ottawa business</p>",
        "url": "https://news.example.com/ottawa",
        "urlToImage": "https://news.example.com/ottawa.jpg",
        "publishedAt": "2024-05-01T12:00:00Z",
        "source": {"id": None, "name": "Reuters"},
        "author": "Jane Doe",
    }


@pytest.fixture
async def app(test_settings, failing_session):
    from backend.main import create_app

    application = create_app(test_settings)
    async with application.router.lifespan_context(application):
        # Every upstream call fails, so feeds are built from placeholders
        application.state.news_service.session = failing_session
        application.state.location_service.session = failing_session
        yield application


@pytest.fixture
async def async_client(app):
    from httpx import AsyncClient, ASGITransport

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def registration_payload():
    return {
        "email": "Ada@Example.com",
        "password": "secret123",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "careerField": "technology",
        "industries": ["Software"],
        "city": "Ottawa",
        "state": "ON",
        "country": "CA",
    }


@pytest.fixture
async def auth_headers(async_client, registration_payload):
    response = await async_client.post("/api/auth/register", json=registration_payload)
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['token']}"}
