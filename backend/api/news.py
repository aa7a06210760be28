from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging
import uuid

from ..core.config import Settings
from ..core.database import NewsDatabase
from ..core.exceptions import NewsAggregationError
from ..models.schemas import BookmarkRequest, NewsCategory, ReadingRequest
from ..services.news_service import NewsService, TRENDING_TOPICS
from .dependencies import build_user_profile, get_current_user, get_db, get_news_service, get_settings

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/personalized")
async def get_personalized_news(
    user: Dict[str, Any] = Depends(get_current_user),
    news_service: NewsService = Depends(get_news_service),
    config: Settings = Depends(get_settings),
):
    """Personalized feed for the authenticated user, split into five buckets"""
    profile = build_user_profile(user, config)

    try:
        personalized = await news_service.get_personalized_news(profile)
    except NewsAggregationError as e:
        logger.error(f"Error fetching personalized news for user {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch personalized news")

    await news_service.cache_articles(personalized.all_articles())

    return {
        "success": True,
        "user": {
            "name": f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip(),
            "location": f"{profile.city}, {profile.state}, {profile.country}",
            "career": profile.career_field,
        },
        "news": personalized.model_dump(mode="json", by_alias=True),
        "lastUpdated": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/category/{category}")
async def get_category_news(
    category: str,
    limit: int = Query(10, ge=1, le=100),
    user: Dict[str, Any] = Depends(get_current_user),
    news_service: NewsService = Depends(get_news_service),
    config: Settings = Depends(get_settings),
):
    valid_categories = {c.value for c in NewsCategory}
    if category not in valid_categories:
        raise HTTPException(status_code=400, detail="Invalid category")

    try:
        articles = await news_service.get_category_news(
            build_user_profile(user, config), NewsCategory(category), limit
        )
        return {
            "success": True,
            "category": category,
            "articles": [a.model_dump(mode="json") for a in articles],
            "count": len(articles),
        }
    except Exception as e:
        logger.error(f"Error fetching category news: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch category news")


@router.get("/search")
async def search_news(
    q: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    user: Dict[str, Any] = Depends(get_current_user),
    news_service: NewsService = Depends(get_news_service),
):
    if not q:
        raise HTTPException(status_code=400, detail="Search query is required")

    query = news_service.clean_search_query(q)
    if not query:
        raise HTTPException(status_code=400, detail="Invalid search query")

    try:
        articles = await news_service.search_news(query, limit)
        return {
            "success": True,
            "query": query,
            "articles": [a.model_dump(mode="json") for a in articles],
            "count": len(articles),
        }
    except Exception as e:
        logger.error(f"Error searching news: {e}")
        raise HTTPException(status_code=500, detail="Failed to search news")


@router.get("/trending")
async def get_trending_news(
    limit: Optional[int] = Query(None, ge=1, le=100),
    news_service: NewsService = Depends(get_news_service),
    config: Settings = Depends(get_settings),
):
    """Trending business topic (public endpoint)"""
    try:
        topic, articles = await news_service.get_trending_news(limit or config.TRENDING_ARTICLE_COUNT)
        return {
            "success": True,
            "trending_topic": topic,
            "articles": [a.model_dump(mode="json") for a in articles],
            "count": len(articles),
            "available_topics": TRENDING_TOPICS,
        }
    except Exception as e:
        logger.error(f"Error fetching trending news: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch trending news")


@router.post("/bookmark")
async def add_bookmark(
    request: BookmarkRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: NewsDatabase = Depends(get_db),
):
    if not request.articleId or not request.title or not request.url:
        raise HTTPException(status_code=400, detail="Article ID, title, and URL are required")

    try:
        if await db.get_bookmark(user["id"], request.articleId):
            raise HTTPException(status_code=400, detail="Article already bookmarked")

        bookmark_id = str(uuid.uuid4())
        await db.create_bookmark(bookmark_id, user["id"], request.articleId)
        return {
            "success": True,
            "message": "Article bookmarked successfully",
            "bookmarkId": bookmark_id,
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error bookmarking article: {e}")
        raise HTTPException(status_code=500, detail="Failed to bookmark article")


@router.get("/bookmarks")
async def get_bookmarks(
    user: Dict[str, Any] = Depends(get_current_user),
    db: NewsDatabase = Depends(get_db),
):
    try:
        bookmarks = await db.get_bookmarks(user["id"])
        return {"success": True, "bookmarks": bookmarks, "count": len(bookmarks)}
    except Exception as e:
        logger.error(f"Error fetching bookmarks: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch bookmarks")


@router.delete("/bookmark/{bookmark_id}")
async def remove_bookmark(
    bookmark_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    db: NewsDatabase = Depends(get_db),
):
    try:
        if not await db.delete_bookmark(bookmark_id, user["id"]):
            raise HTTPException(status_code=404, detail="Bookmark not found")
        return {"success": True, "message": "Bookmark removed successfully"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error removing bookmark: {e}")
        raise HTTPException(status_code=500, detail="Failed to remove bookmark")


@router.post("/read")
async def track_reading(
    request: ReadingRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: NewsDatabase = Depends(get_db),
):
    """Record that the user read an article (feeds the reading stats)"""
    if not request.articleId:
        raise HTTPException(status_code=400, detail="Article ID is required")

    try:
        await db.record_reading(str(uuid.uuid4()), user["id"], request.articleId, request.readingTime or 0)
        return {"success": True, "message": "Reading tracked successfully"}
    except Exception as e:
        logger.error(f"Error tracking reading: {e}")
        raise HTTPException(status_code=500, detail="Failed to track reading")
