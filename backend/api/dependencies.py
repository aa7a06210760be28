from typing import Any, Dict, Optional
import logging

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.config import Settings
from ..core.database import NewsDatabase
from ..models.schemas import UserProfile
from ..services.location_service import LocationService
from ..services.news_service import NewsService

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> NewsDatabase:
    return request.app.state.db


def get_news_service(request: Request) -> NewsService:
    return request.app.state.news_service


def get_location_service(request: Request) -> LocationService:
    return request.app.state.location_service


async def get_current_session(
    db: NewsDatabase = Depends(get_db),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, Any]:
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Access token required")

    session = await db.get_active_session(credentials.credentials)
    if not session:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return session


async def get_current_user(
    session: Dict[str, Any] = Depends(get_current_session),
    db: NewsDatabase = Depends(get_db),
) -> Dict[str, Any]:
    user = await db.get_user_by_id(session["user_id"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def build_user_profile(user: Dict[str, Any], config: Settings) -> UserProfile:
    """Map a stored user onto the aggregation profile, filling empty fields with defaults."""
    return UserProfile(
        city=user.get("city") or config.DEFAULT_CITY,
        state=user.get("state") or config.DEFAULT_STATE,
        country=user.get("country") or config.DEFAULT_COUNTRY,
        career_field=user.get("career_field") or config.DEFAULT_CAREER_FIELD,
    )


def to_user_response(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": user["id"],
        "email": user["email"],
        "firstName": user.get("first_name"),
        "lastName": user.get("last_name"),
        "careerField": user.get("career_field"),
        "industries": user.get("industries") or [],
        "city": user.get("city"),
        "state": user.get("state"),
        "country": user.get("country"),
        "preferences": user.get("preferences") or {},
        "createdAt": user.get("created_at"),
        "updatedAt": user.get("updated_at"),
    }
