import sqlite3
import json
import os
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Optional, Any
import logging

from ..models.schemas import Article
from .exceptions import PersistenceFailure

logger = logging.getLogger(__name__)

# Same layout as SQLite's CURRENT_TIMESTAMP so date() and string comparison work
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


class NewsDatabase:
    def __init__(self, db_path: str = "./data/news_aggregator.db"):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connection(self):
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    async def init_db(self):
        data_dir = os.path.dirname(self.db_path)
        if data_dir and not os.path.exists(data_dir):
            os.makedirs(data_dir, exist_ok=True)

        with self._connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT UNIQUE NOT NULL,
                    password_hash TEXT NOT NULL,
                    first_name TEXT,
                    last_name TEXT,
                    career_field TEXT,
                    industries TEXT,
                    city TEXT,
                    state TEXT,
                    country TEXT,
                    preferences TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS user_sessions (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    token TEXT NOT NULL,
                    expires_at TIMESTAMP NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS news_articles (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    url TEXT NOT NULL,
                    image_url TEXT,
                    published_at TIMESTAMP,
                    source_name TEXT,
                    source_url TEXT,
                    category TEXT,
                    location_type TEXT,
                    location_value TEXT,
                    industry TEXT,
                    relevance_score INTEGER DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS user_reading_history (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    article_id TEXT NOT NULL,
                    read_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    reading_time INTEGER,
                    FOREIGN KEY (user_id) REFERENCES users (id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS user_bookmarks (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    article_id TEXT NOT NULL,
                    bookmarked_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (user_id) REFERENCES users (id),
                    UNIQUE(user_id, article_id)
                )
            ''')

            cursor.execute('CREATE INDEX IF NOT EXISTS idx_articles_created ON news_articles(created_at)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_sessions_token ON user_sessions(token)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_history_user ON user_reading_history(user_id, read_at)')

            conn.commit()
        logger.info(f"Database initialized successfully at {self.db_path}")

    # --- Users -------------------------------------------------------------

    @staticmethod
    def _user_from_row(row: sqlite3.Row) -> Dict[str, Any]:
        user = dict(row)
        user['industries'] = json.loads(user.get('industries') or '[]')
        user['preferences'] = json.loads(user.get('preferences') or '{}')
        return user

    async def create_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        with self._connection() as conn:
            cursor = conn.cursor()
            now = format_timestamp(utc_now())

            cursor.execute('''
                INSERT INTO users
                (id, email, password_hash, first_name, last_name, career_field, industries,
                 city, state, country, preferences, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                user['id'],
                user['email'],
                user['password_hash'],
                user.get('first_name'),
                user.get('last_name'),
                user.get('career_field'),
                json.dumps(user.get('industries') or []),
                user.get('city', ''),
                user.get('state', ''),
                user.get('country', ''),
                json.dumps(user.get('preferences') or {}),
                now,
                now,
            ))

            conn.commit()

        user['created_at'] = now
        user['updated_at'] = now
        return user

    async def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT * FROM users WHERE id = ?', (user_id,))
            row = cursor.fetchone()
        return self._user_from_row(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT * FROM users WHERE email = ?', (email.lower().strip(),))
            row = cursor.fetchone()
        return self._user_from_row(row) if row else None

    async def update_user_profile(self, user_id: str, profile: Dict[str, Any]) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                UPDATE users
                SET first_name = ?, last_name = ?, career_field = ?, industries = ?,
                    city = ?, state = ?, country = ?, preferences = ?, updated_at = ?
                WHERE id = ?
            ''', (
                profile['first_name'],
                profile['last_name'],
                profile['career_field'],
                json.dumps(profile.get('industries') or []),
                profile.get('city', ''),
                profile.get('state', ''),
                profile.get('country', ''),
                json.dumps(profile.get('preferences') or {}),
                format_timestamp(utc_now()),
                user_id,
            ))

            conn.commit()

    async def update_password(self, user_id: str, password_hash: str) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'UPDATE users SET password_hash = ?, updated_at = ? WHERE id = ?',
                (password_hash, format_timestamp(utc_now()), user_id),
            )
            conn.commit()

    async def delete_user(self, user_id: str) -> None:
        """Delete a user together with their history, bookmarks and sessions."""
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('DELETE FROM user_reading_history WHERE user_id = ?', (user_id,))
            cursor.execute('DELETE FROM user_bookmarks WHERE user_id = ?', (user_id,))
            cursor.execute('DELETE FROM user_sessions WHERE user_id = ?', (user_id,))
            cursor.execute('DELETE FROM users WHERE id = ?', (user_id,))
            conn.commit()

    # --- Sessions ----------------------------------------------------------

    async def create_session(self, session_id: str, user_id: str, token: str, expires_at: datetime) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO user_sessions (id, user_id, token, expires_at, created_at)
                VALUES (?, ?, ?, ?, ?)
            ''', (session_id, user_id, token, format_timestamp(expires_at), format_timestamp(utc_now())))
            conn.commit()

    async def get_active_session(self, token: str) -> Optional[Dict[str, Any]]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT id, user_id, token, expires_at FROM user_sessions WHERE token = ? AND expires_at > ?',
                (token, format_timestamp(utc_now())),
            )
            row = cursor.fetchone()
        return dict(row) if row else None

    async def delete_session(self, token: str) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('DELETE FROM user_sessions WHERE token = ?', (token,))
            count = cursor.rowcount
            conn.commit()
        return count

    async def delete_expired_sessions(self, user_id: str) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM user_sessions WHERE user_id = ? AND expires_at < ?',
                (user_id, format_timestamp(utc_now())),
            )
            count = cursor.rowcount
            conn.commit()
        return count

    async def delete_user_sessions(self, user_id: str) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('DELETE FROM user_sessions WHERE user_id = ?', (user_id,))
            count = cursor.rowcount
            conn.commit()
        return count

    # --- Article cache -----------------------------------------------------

    async def save_article(self, article: Article, created_at: Optional[datetime] = None) -> None:
        """Insert or replace a cached article keyed by its id."""
        try:
            with self._connection() as conn:
                cursor = conn.cursor()
                cursor.execute('''
                    INSERT OR REPLACE INTO news_articles
                    (id, title, description, url, image_url, published_at, source_name, source_url,
                     category, location_type, location_value, industry, relevance_score, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ''', (
                    article.id,
                    article.title,
                    article.description,
                    article.url,
                    article.image_url,
                    article.published_at.isoformat() if article.published_at else None,
                    article.source_name,
                    article.source_url,
                    article.category.value,
                    article.location_type,
                    article.location_value,
                    article.industry,
                    article.relevance_score,
                    format_timestamp(created_at or utc_now()),
                ))
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not cache article {article.id}: {e}") from e

    async def get_article(self, article_id: str) -> Optional[Dict[str, Any]]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT * FROM news_articles WHERE id = ?', (article_id,))
            row = cursor.fetchone()
        return dict(row) if row else None

    async def clear_old_articles(self, hours: int = 6) -> int:
        cutoff = utc_now() - timedelta(hours=hours)
        try:
            with self._connection() as conn:
                cursor = conn.cursor()
                cursor.execute("DELETE FROM news_articles WHERE created_at < ?", (format_timestamp(cutoff),))
                count = cursor.rowcount
                conn.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not prune cached articles: {e}") from e

        logger.info(f"Cleared {count} cached articles older than {hours}h")
        return count

    # --- Bookmarks ---------------------------------------------------------

    async def get_bookmark(self, user_id: str, article_id: str) -> Optional[Dict[str, Any]]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT id FROM user_bookmarks WHERE user_id = ? AND article_id = ?',
                (user_id, article_id),
            )
            row = cursor.fetchone()
        return dict(row) if row else None

    async def create_bookmark(self, bookmark_id: str, user_id: str, article_id: str) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO user_bookmarks (id, user_id, article_id, bookmarked_at)
                VALUES (?, ?, ?, ?)
            ''', (bookmark_id, user_id, article_id, format_timestamp(utc_now())))
            conn.commit()

    async def get_bookmarks(self, user_id: str) -> List[Dict[str, Any]]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT b.id, b.article_id, b.bookmarked_at,
                       n.title, n.description, n.url, n.image_url, n.source_name
                FROM user_bookmarks b
                LEFT JOIN news_articles n ON b.article_id = n.id
                WHERE b.user_id = ?
                ORDER BY b.bookmarked_at DESC, b.rowid DESC
            ''', (user_id,))
            rows = cursor.fetchall()
        return [dict(row) for row in rows]

    async def delete_bookmark(self, bookmark_id: str, user_id: str) -> bool:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('DELETE FROM user_bookmarks WHERE id = ? AND user_id = ?', (bookmark_id, user_id))
            deleted = cursor.rowcount > 0
            conn.commit()
        return deleted

    async def count_bookmarks(self, user_id: str) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT COUNT(*) FROM user_bookmarks WHERE user_id = ?', (user_id,))
            count = cursor.fetchone()[0]
        return count

    # --- Reading history ---------------------------------------------------

    async def record_reading(self, reading_id: str, user_id: str, article_id: str,
                             reading_time: int, read_at: Optional[datetime] = None) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                INSERT INTO user_reading_history (id, user_id, article_id, read_at, reading_time)
                VALUES (?, ?, ?, ?, ?)
            ''', (reading_id, user_id, article_id, format_timestamp(read_at or utc_now()), reading_time))
            conn.commit()

    async def get_daily_reading_stats(self, user_id: str, days: int = 30) -> List[Dict[str, Any]]:
        since = format_timestamp(utc_now() - timedelta(days=days))
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT
                    DATE(read_at) AS read_date,
                    COUNT(*) AS daily_count,
                    AVG(reading_time) AS avg_reading_time,
                    SUM(reading_time) AS total_reading_time
                FROM user_reading_history
                WHERE user_id = ? AND read_at >= ?
                GROUP BY DATE(read_at)
                ORDER BY read_date DESC
            ''', (user_id, since))
            rows = cursor.fetchall()
        return [dict(row) for row in rows]

    async def get_top_categories(self, user_id: str, days: int = 30, limit: int = 5) -> List[Dict[str, Any]]:
        since = format_timestamp(utc_now() - timedelta(days=days))
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT n.category, COUNT(*) AS count
                FROM user_reading_history h
                JOIN news_articles n ON h.article_id = n.id
                WHERE h.user_id = ? AND h.read_at >= ?
                GROUP BY n.category
                ORDER BY count DESC
                LIMIT ?
            ''', (user_id, since, limit))
            rows = cursor.fetchall()
        return [dict(row) for row in rows]
