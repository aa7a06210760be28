import sqlite3
import uuid
from datetime import timedelta

import pytest
from unittest.mock import MagicMock, patch

from backend.core.database import NewsDatabase, utc_now
from backend.core.exceptions import PersistenceFailure
from backend.models.schemas import Article, NewsCategory
from backend.services.news_service import NewsService


def make_article(**overrides):
    fields = {
        "id": str(uuid.uuid4()),
        "title": "Ottawa business update",
        "description": "Local firms expand",
        "url": "https://news.example.com/a",
        "image_url": None,
        "published_at": utc_now(),
        "source_name": "Reuters",
        "source_url": "",
        "category": NewsCategory.LOCAL,
        "location_type": "local",
        "location_value": "Ottawa",
        "relevance_score": 5,
    }
    fields.update(overrides)
    return Article(**fields)


def count_rows(db_path):
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute("SELECT COUNT(*) FROM news_articles").fetchone()[0]
    finally:
        conn.close()


class TestArticleCache:
    @pytest.mark.asyncio
    async def test_save_is_an_upsert_by_id(self, db, news_service):
        article = make_article()

        assert await news_service.save_article_to_cache(article) is True
        assert await news_service.save_article_to_cache(article) is True
        assert count_rows(db.db_path) == 1

        updated = article.model_copy(update={"title": "Ottawa business update (revised)"})
        await news_service.save_article_to_cache(updated)

        row = await db.get_article(article.id)
        assert row["title"] == "Ottawa business update (revised)"
        assert row["category"] == "local"
        assert row["relevance_score"] == 5

    @pytest.mark.asyncio
    async def test_refresh_deletes_only_expired_rows(self, db, news_service):
        stale = make_article()
        fresh = make_article()
        await db.save_article(stale, created_at=utc_now() - timedelta(hours=7))
        await db.save_article(fresh, created_at=utc_now() - timedelta(hours=1))

        deleted = await news_service.refresh_news_cache()

        assert deleted == 1
        assert await db.get_article(stale.id) is None
        assert await db.get_article(fresh.id) is not None
        assert news_service.last_refresh is not None

    @pytest.mark.asyncio
    async def test_cache_articles_counts_saved_rows(self, db, news_service):
        articles = [make_article(), make_article(category=NewsCategory.INDUSTRY, industry="fintech")]

        assert await news_service.cache_articles(articles) == 2
        assert count_rows(db.db_path) == 2


class TestPersistenceFailures:
    @pytest.fixture
    def broken_service(self, tmp_path, test_settings, failing_session):
        # A directory path cannot be opened as a SQLite database
        return NewsService(NewsDatabase(str(tmp_path)), test_settings, session=failing_session)

    @pytest.mark.asyncio
    async def test_database_raises_persistence_failure(self, tmp_path):
        with pytest.raises(PersistenceFailure):
            await NewsDatabase(str(tmp_path)).save_article(make_article())

    @pytest.mark.asyncio
    async def test_save_failure_is_swallowed(self, broken_service):
        assert await broken_service.save_article_to_cache(make_article()) is False

    @pytest.mark.asyncio
    async def test_refresh_failure_is_swallowed(self, broken_service):
        assert await broken_service.refresh_news_cache() == 0
        assert broken_service.last_refresh is None


class TestConnectionHandling:
    @pytest.fixture
    def failing_connection(self):
        conn = MagicMock()
        conn.cursor.return_value.execute.side_effect = sqlite3.OperationalError("database is locked")
        return conn

    @pytest.mark.asyncio
    @pytest.mark.parametrize("call", [
        lambda db: db.get_user_by_id("u1"),
        lambda db: db.create_session("s1", "u1", "token", utc_now()),
        lambda db: db.get_bookmarks("u1"),
        lambda db: db.record_reading("r1", "u1", "a1", 30),
        lambda db: db.get_top_categories("u1"),
    ])
    async def test_connection_closed_when_query_fails(self, tmp_path, failing_connection, call):
        database = NewsDatabase(str(tmp_path / "locked.db"))

        with patch.object(NewsDatabase, "_connect", return_value=failing_connection):
            with pytest.raises(sqlite3.OperationalError):
                await call(database)

        failing_connection.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_cache_write_closes_connection_on_failure(self, tmp_path, failing_connection):
        database = NewsDatabase(str(tmp_path / "locked.db"))

        with patch.object(NewsDatabase, "_connect", return_value=failing_connection):
            with pytest.raises(PersistenceFailure):
                await database.save_article(make_article())

        failing_connection.close.assert_called_once()
