import asyncio
import random
import re
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Dict, Any, Optional, Tuple
import logging

import aiohttp
from pydantic import ValidationError

from ..core.config import Settings, settings as default_settings
from ..core.database import NewsDatabase, utc_now
from ..core.exceptions import NewsAggregationError, PersistenceFailure, UpstreamUnavailable
from ..models.schemas import Article, NewsCategory, PersonalizedNews, RawArticle, RawSource, UserProfile

logger = logging.getLogger(__name__)

# Career field to industry keywords.  Only the first two entries of each
# list are ever queried.
CAREER_INDUSTRIES: Dict[str, List[str]] = {
    "technology": ["technology", "startups", "artificial intelligence", "cybersecurity"],
    "finance": ["finance", "banking", "cryptocurrency", "fintech", "stock market"],
    "healthcare": ["healthcare", "medical", "pharmaceutical", "biotech"],
    "real_estate": ["real estate", "property", "construction", "housing market"],
    "retail": ["retail", "e-commerce", "consumer goods", "fashion"],
    "energy": ["energy", "oil", "renewable energy", "utilities"],
    "manufacturing": ["manufacturing", "automotive", "aerospace", "industrial"],
    "consulting": ["consulting", "business services", "management"],
    "legal": ["legal", "law", "compliance", "regulatory"],
    "marketing": ["marketing", "advertising", "digital marketing", "social media"],
}

MAX_INDUSTRIES_PER_REQUEST = 2

TRUSTED_SOURCES = ["Reuters", "Bloomberg", "Wall Street Journal", "Financial Times"]

GLOBAL_QUERY = "global business economy"

TRENDING_TOPICS = [
    "artificial intelligence business",
    "cryptocurrency market",
    "remote work trends",
    "sustainable business",
    "fintech innovation",
    "supply chain",
    "digital transformation",
    "startup funding",
    "stock market analysis",
    "economic outlook",
]


_TAG_PATTERN = re.compile(r"<[^>]*>")
_ENTITY_PATTERN = re.compile(r"&[#\w]+;")
_SEARCH_QUERY_PATTERN = re.compile(r"[^\w\s-]")
_FRACTION_PATTERN = re.compile(r"\.(\d+)")


def sanitize_text(text: Optional[str]) -> str:
    """Strip tag-shaped and entity-shaped substrings and surrounding whitespace.

    Removing one entity can expose another (``&&amp;amp;;``), so the
    substitutions are repeated until the text stops changing.
    """
    if not text:
        return ""
    previous = None
    while previous != text:
        previous = text
        text = _ENTITY_PATTERN.sub("", _TAG_PATTERN.sub("", text))
    return text.strip()


def parse_published_at(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the news API into an aware UTC datetime."""
    if not value:
        return None
    try:
        # fromisoformat before 3.11 only takes 3 or 6 fractional digits
        normalized = _FRACTION_PATTERN.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.strip(), count=1)
        published = datetime.fromisoformat(normalized.replace("Z", "+00:00"))
    except ValueError:
        return None
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    return published


def calculate_relevance_score(article: RawArticle, keyword: str, now: Optional[datetime] = None) -> int:
    score = 0
    title = (article.title or "").lower()
    description = (article.description or "").lower()
    search_term = (keyword or "").lower()

    if search_term in title:
        score += 3
    if search_term in description:
        score += 2

    published = parse_published_at(article.publishedAt)
    if published is not None:
        hours_ago = ((now or utc_now()) - published).total_seconds() / 3600
        if hours_ago < 6:
            score += 2
        elif hours_ago < 24:
            score += 1

    source_name = article.source.name if article.source and article.source.name else ""
    if any(source in source_name for source in TRUSTED_SOURCES):
        score += 2

    return max(0, min(score, 10))


def get_location_type(query: str) -> str:
    # Labels come from the query template, not the article.  A country query
    # ("... business news") is therefore labelled local as well.
    if "business" in query:
        return "local"
    if "economy" in query:
        return "regional"
    return "national"


def get_location_value(query: str, city: str, state: str, country: str) -> str:
    if city and city in query:
        return city
    if state and state in query:
        return state
    return country


def get_industries(career_field: str) -> List[str]:
    return CAREER_INDUSTRIES.get(career_field, [career_field])[:MAX_INDUSTRIES_PER_REQUEST]


class NewsService:
    """
    Personalized business-news aggregation on top of a keyword search API.

    Each instance owns its HTTP session, its handle on the article cache and
    the timestamp of the last cache refresh.  Every upstream query degrades
    independently to placeholder articles, so callers only ever see a
    failure when the fan-out itself breaks.
    """

    def __init__(self, db: NewsDatabase, config: Optional[Settings] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        config = config or default_settings
        self.db = db
        self.api_key = config.NEWS_API_KEY
        self.base_url = config.NEWS_API_BASE_URL.rstrip("/")
        self.request_timeout = config.NEWS_API_TIMEOUT_SECONDS
        self.aggregation_timeout = config.AGGREGATION_TIMEOUT_SECONDS
        self.cache_retention_hours = config.CACHE_RETENTION_HOURS
        self.articles_per_category = config.ARTICLES_PER_CATEGORY
        self.session = session
        self.last_refresh: Optional[datetime] = None

        if not self.api_key:
            logger.warning("NEWS_API_KEY is not set; news requests will fall back to placeholder articles.")

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()

    # --- Upstream ----------------------------------------------------------

    async def fetch_news_from_api(self, query: str, page_size: int = 20) -> List[RawArticle]:
        """
        Search the news API for ``query``.

        Never raises: any timeout, transport error, non-2xx response or
        malformed payload is logged and replaced by placeholder articles
        that mention the query.
        """
        params: Dict[str, Any] = {
            "q": query,
            "language": "en",
            "sortBy": "publishedAt",
            "pageSize": page_size,
        }
        if self.api_key:
            params["apiKey"] = self.api_key

        try:
            session = await self._get_session()
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            async with session.get(f"{self.base_url}/everything", params=params, timeout=timeout) as resp:
                if not 200 <= resp.status < 300:
                    raise UpstreamUnavailable(query, status=resp.status)
                data = await resp.json()
            if not isinstance(data, dict):
                raise UpstreamUnavailable(query, message="unexpected payload")
            return [RawArticle.model_validate(item) for item in data.get("articles") or []]
        except (aiohttp.ClientError, asyncio.TimeoutError, UpstreamUnavailable, ValidationError, ValueError) as e:
            logger.warning(f"News API error for '{query}': {e}; serving placeholder articles")
            return self.get_placeholder_articles(query)

    @staticmethod
    def get_placeholder_articles(query: str) -> List[RawArticle]:
        now = utc_now()
        slug = re.sub(r"\W+", "-", query.lower()).strip("-") or "news"
        templates = [
            (
                f"Breaking: Major {query} Development Announced",
                f"Important news in the {query} sector affecting business operations and market trends.",
                "Business Times",
                "News+Image",
                now,
            ),
            (
                f"{query} Market Shows Strong Growth This Quarter",
                f"Analysis of recent {query} market performance and future outlook for investors.",
                "Economic Daily",
                "Market+News",
                now - timedelta(hours=1),
            ),
            (
                f"Innovation in {query}: What Business Leaders Need to Know",
                f"Expert insights on emerging trends in {query} and their impact on business strategy.",
                "Industry Weekly",
                "Innovation+News",
                now - timedelta(hours=2),
            ),
        ]
        return [
            RawArticle(
                title=title,
                description=description,
                url=f"https://example.com/news/{slug}/{index}",
                urlToImage=f"https://via.placeholder.com/400x200?text={image_text}",
                publishedAt=published.isoformat(),
                source=RawSource(name=source_name),
            )
            for index, (title, description, source_name, image_text, published) in enumerate(templates, start=1)
        ]

    # --- Normalization -----------------------------------------------------

    def _to_article(self, raw: RawArticle, keyword: str, category: NewsCategory, **labels: Any) -> Article:
        return Article(
            id=str(uuid.uuid4()),
            title=sanitize_text(raw.title),
            description=sanitize_text(raw.description),
            url=raw.url or "",
            image_url=raw.urlToImage,
            published_at=parse_published_at(raw.publishedAt),
            source_name=raw.source_name,
            source_url=raw.source_url,
            category=category,
            relevance_score=calculate_relevance_score(raw, keyword),
            **labels,
        )

    # --- Buckets -----------------------------------------------------------

    async def get_location_based_news(self, city: str, state: str, country: str, limit: int = 5) -> List[Article]:
        queries = [
            f"{city} business",
            f"{state} economy",
            f"{country} business news",
        ]
        results = await asyncio.gather(*(self.fetch_news_from_api(query, limit) for query in queries))

        all_news: List[Article] = []
        for query, raw_articles in zip(queries, results):
            location_type = get_location_type(query)
            location_value = get_location_value(query, city, state, country)
            all_news.extend(
                self._to_article(
                    raw,
                    query,
                    NewsCategory(location_type),
                    location_type=location_type,
                    location_value=location_value,
                )
                for raw in raw_articles
            )
        return all_news[: limit * 3]

    async def get_industry_news(self, career_field: str, limit: int = 5) -> List[Article]:
        industries = get_industries(career_field)
        results = await asyncio.gather(
            *(self.fetch_news_from_api(f"{industry} business news", limit) for industry in industries)
        )

        all_news: List[Article] = []
        for industry, raw_articles in zip(industries, results):
            all_news.extend(
                self._to_article(raw, industry, NewsCategory.INDUSTRY, industry=industry)
                for raw in raw_articles
            )
        return all_news[:limit]

    async def get_global_news(self, limit: int = 5) -> List[Article]:
        raw_articles = await self.fetch_news_from_api(GLOBAL_QUERY, limit)
        return [
            self._to_article(raw, "business", NewsCategory.GLOBAL, location_type="global")
            for raw in raw_articles
        ][:limit]

    async def get_personalized_news(self, profile: UserProfile) -> PersonalizedNews:
        """
        Fetch location, industry and global news concurrently and split them
        into the five feed buckets.

        The three groups share one deadline.  Per-query upstream failures are
        already absorbed by ``fetch_news_from_api``; anything that still
        escapes the fan-out is reported as a single ``NewsAggregationError``.
        """
        per_category = self.articles_per_category
        try:
            location_news, industry_news, global_news = await asyncio.wait_for(
                asyncio.gather(
                    self.get_location_based_news(profile.city, profile.state, profile.country, per_category),
                    self.get_industry_news(profile.career_field, per_category),
                    self.get_global_news(per_category),
                ),
                timeout=self.aggregation_timeout,
            )
        except Exception as e:
            logger.error(f"Error fetching personalized news: {e}")
            raise NewsAggregationError("Failed to fetch personalized news") from e

        def bucket(location_type: str) -> List[Article]:
            return [a for a in location_news if a.location_type == location_type][:per_category]

        return PersonalizedNews(
            local=bucket("local"),
            regional=bucket("regional"),
            national=bucket("national"),
            industry=industry_news[:per_category],
            global_=global_news[:per_category],
        )

    async def get_category_news(self, profile: UserProfile, category: NewsCategory, limit: int = 10) -> List[Article]:
        if category == NewsCategory.INDUSTRY:
            return await self.get_industry_news(profile.career_field, limit)
        if category == NewsCategory.GLOBAL:
            return await self.get_global_news(limit)
        location_news = await self.get_location_based_news(profile.city, profile.state, profile.country, limit)
        return [a for a in location_news if a.location_type == category.value]

    @staticmethod
    def clean_search_query(query: Optional[str]) -> str:
        return _SEARCH_QUERY_PATTERN.sub("", query or "").strip()

    async def search_news(self, query: str, limit: int = 20) -> List[Article]:
        """Search business news for an already cleaned query, best matches first."""
        raw_articles = await self.fetch_news_from_api(f"{query} business", limit)
        results = [self._to_article(raw, query, NewsCategory.GLOBAL) for raw in raw_articles]
        results.sort(key=lambda a: a.relevance_score, reverse=True)
        return results

    async def get_trending_news(self, limit: int = 6) -> Tuple[str, List[Article]]:
        topic = random.choice(TRENDING_TOPICS)
        raw_articles = await self.fetch_news_from_api(topic, limit)
        return topic, [self._to_article(raw, topic, NewsCategory.GLOBAL) for raw in raw_articles]

    # --- Cache -------------------------------------------------------------

    async def save_article_to_cache(self, article: Article) -> bool:
        try:
            await self.db.save_article(article)
            return True
        except PersistenceFailure as e:
            logger.error(f"Error saving article to cache: {e}")
            return False

    async def cache_articles(self, articles: List[Article]) -> int:
        saved = 0
        for article in articles:
            if await self.save_article_to_cache(article):
                saved += 1
        return saved

    async def refresh_news_cache(self) -> int:
        """Delete cached articles older than the retention window."""
        logger.info("Refreshing news cache...")
        try:
            deleted = await self.db.clear_old_articles(hours=self.cache_retention_hours)
        except PersistenceFailure as e:
            logger.error(f"Error refreshing news cache: {e}")
            return 0

        self.last_refresh = utc_now()
        logger.info("News cache refreshed successfully")
        return deleted
