from fastapi import APIRouter, Body, Depends, HTTPException
from typing import Any, Dict, Optional
import logging

from ..core.database import NewsDatabase
from ..core.security import hash_password, validate_password, verify_password
from ..models.schemas import ChangePasswordRequest, DeleteAccountRequest, UpdateProfileRequest, clean_field
from .dependencies import get_current_user, get_db, to_user_response

logger = logging.getLogger(__name__)
router = APIRouter()

STATS_PERIOD_DAYS = 30

CAREER_FIELDS = [
    {"value": "technology", "label": "Technology", "industries": ["Software", "AI/ML", "Cybersecurity", "Cloud Computing"]},
    {"value": "finance", "label": "Finance", "industries": ["Banking", "Investment", "Insurance", "Fintech"]},
    {"value": "healthcare", "label": "Healthcare", "industries": ["Medical", "Pharmaceutical", "Biotech", "Health Tech"]},
    {"value": "real_estate", "label": "Real Estate", "industries": ["Commercial", "Residential", "Property Management", "Construction"]},
    {"value": "retail", "label": "Retail", "industries": ["E-commerce", "Consumer Goods", "Fashion", "Food & Beverage"]},
    {"value": "energy", "label": "Energy", "industries": ["Oil & Gas", "Renewable Energy", "Utilities", "Mining"]},
    {"value": "manufacturing", "label": "Manufacturing", "industries": ["Automotive", "Aerospace", "Industrial", "Electronics"]},
    {"value": "consulting", "label": "Consulting", "industries": ["Management", "Strategy", "Business Services", "HR"]},
    {"value": "legal", "label": "Legal", "industries": ["Corporate Law", "Compliance", "Regulatory", "Litigation"]},
    {"value": "marketing", "label": "Marketing", "industries": ["Digital Marketing", "Advertising", "PR", "Content Marketing"]},
    {"value": "education", "label": "Education", "industries": ["EdTech", "Higher Education", "Training", "Publishing"]},
    {"value": "government", "label": "Government", "industries": ["Public Policy", "Defense", "Municipal", "Federal"]},
]


@router.get("/profile")
async def get_profile(user: Dict[str, Any] = Depends(get_current_user)):
    return {"success": True, "user": to_user_response(user)}


@router.put("/profile")
async def update_profile(
    request: UpdateProfileRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: NewsDatabase = Depends(get_db),
):
    first_name = clean_field(request.firstName)
    last_name = clean_field(request.lastName)
    career_field = clean_field(request.careerField)
    if not first_name or not last_name or not career_field:
        raise HTTPException(status_code=400, detail="First name, last name, and career field are required")

    profile = {
        "first_name": first_name,
        "last_name": last_name,
        "career_field": career_field,
        "industries": request.industries or [],
        "city": clean_field(request.city),
        "state": clean_field(request.state),
        "country": clean_field(request.country),
        "preferences": request.preferences or {},
    }

    try:
        await db.update_user_profile(user["id"], profile)
        updated = await db.get_user_by_id(user["id"])
        return {
            "success": True,
            "message": "Profile updated successfully",
            "user": to_user_response(updated),
        }
    except Exception as e:
        logger.error(f"Error updating user profile: {e}")
        raise HTTPException(status_code=500, detail="Failed to update user profile")


@router.put("/password")
async def change_password(
    request: ChangePasswordRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    db: NewsDatabase = Depends(get_db),
):
    if not request.currentPassword or not request.newPassword:
        raise HTTPException(status_code=400, detail="Current password and new password are required")
    if not validate_password(request.newPassword):
        raise HTTPException(status_code=400, detail="New password must be at least 6 characters long")
    if not verify_password(request.currentPassword, user["password_hash"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    try:
        await db.update_password(user["id"], hash_password(request.newPassword))
        # Every existing session, including the current one, must log in again
        await db.delete_user_sessions(user["id"])
        return {
            "success": True,
            "message": "Password changed successfully. Please login again.",
            "requireReauth": True,
        }
    except Exception as e:
        logger.error(f"Error changing password: {e}")
        raise HTTPException(status_code=500, detail="Failed to change password")


@router.get("/stats")
async def get_stats(
    user: Dict[str, Any] = Depends(get_current_user),
    db: NewsDatabase = Depends(get_db),
):
    """Reading statistics for the last 30 days"""
    try:
        daily = await db.get_daily_reading_stats(user["id"], days=STATS_PERIOD_DAYS)
        bookmark_count = await db.count_bookmarks(user["id"])
        top_categories = await db.get_top_categories(user["id"], days=STATS_PERIOD_DAYS)

        total_articles = sum(day["daily_count"] for day in daily)
        total_time = sum(day["total_reading_time"] or 0 for day in daily)
        average_time = total_time / total_articles if total_articles else 0

        return {
            "success": True,
            "stats": {
                "totalArticlesRead": total_articles,
                "totalReadingTime": round(total_time),
                "averageReadingTime": round(average_time),
                "bookmarkedArticles": bookmark_count,
                "dailyReadingHistory": daily,
                "topCategories": top_categories,
                "period": f"{STATS_PERIOD_DAYS} days",
            },
        }
    except Exception as e:
        logger.error(f"Error fetching user stats: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch user statistics")


@router.delete("/account")
async def delete_account(
    request: Optional[DeleteAccountRequest] = Body(None),
    user: Dict[str, Any] = Depends(get_current_user),
    db: NewsDatabase = Depends(get_db),
):
    password = request.password if request else None
    if not password:
        raise HTTPException(status_code=400, detail="Password confirmation required")
    if not verify_password(password, user["password_hash"]):
        raise HTTPException(status_code=400, detail="Password is incorrect")

    try:
        await db.delete_user(user["id"])
        logger.info(f"Deleted account {user['id']}")
        return {"success": True, "message": "Account deleted successfully"}
    except Exception as e:
        logger.error(f"Error deleting user account: {e}")
        raise HTTPException(status_code=500, detail="Failed to delete account")


@router.get("/career-fields")
async def get_career_fields():
    return {"success": True, "careerFields": CAREER_FIELDS}
