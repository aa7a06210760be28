from fastapi import APIRouter, Depends, HTTPException, Request
from datetime import datetime, timezone
import logging

from ..core.config import Settings
from ..models.schemas import ClientLocation
from ..services.location_service import LocationService
from ..services.news_service import NewsService
from .auth import router as auth_router
from .dependencies import get_location_service, get_news_service, get_settings
from .news import router as news_router
from .user import router as user_router

logger = logging.getLogger(__name__)
router = APIRouter()

router.include_router(auth_router, prefix="/auth", tags=["auth"])
router.include_router(news_router, prefix="/news", tags=["news"])
router.include_router(user_router, prefix="/user", tags=["user"])


@router.get("/health")
async def health_check(
    news_service: NewsService = Depends(get_news_service),
    config: Settings = Depends(get_settings),
):
    """Enhanced health check with news cache status"""
    last_refresh = news_service.last_refresh
    return {
        "status": "OK",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": config.APP_VERSION,
        "news_api_configured": config.has_news_api_key,
        "cache_last_refresh": last_refresh.isoformat() if last_refresh else None,
    }


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


@router.get("/location", response_model=ClientLocation)
async def detect_location(
    request: Request,
    location_service: LocationService = Depends(get_location_service),
):
    """Best-effort location of the caller, used to prefill the signup form"""
    try:
        return await location_service.detect_location(_client_ip(request))
    except Exception as e:
        logger.error(f"Location detection error: {e}")
        raise HTTPException(status_code=500, detail="Failed to detect location")
