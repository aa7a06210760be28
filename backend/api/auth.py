from fastapi import APIRouter, Depends, HTTPException
from datetime import timedelta
from typing import Any, Dict
import logging
import uuid

from ..core.config import Settings
from ..core.database import NewsDatabase, utc_now
from ..core.security import generate_session_token, hash_password, validate_password, verify_password
from ..models.schemas import AuthResponse, LoginRequest, RegisterRequest, clean_field, is_valid_email
from .dependencies import get_current_session, get_current_user, get_db, get_settings, to_user_response

logger = logging.getLogger(__name__)
router = APIRouter()

DEFAULT_PREFERENCES = {
    "emailNotifications": True,
    "newsRefreshInterval": 2,
    "articlesPerCategory": 5,
}


async def _open_session(db: NewsDatabase, user_id: str, config: Settings) -> str:
    token = generate_session_token()
    expires_at = utc_now() + timedelta(days=config.SESSION_TTL_DAYS)
    await db.create_session(str(uuid.uuid4()), user_id, token, expires_at)
    return token


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    request: RegisterRequest,
    db: NewsDatabase = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    """Create an account and return a session token"""
    if not is_valid_email(request.email):
        raise HTTPException(status_code=400, detail="Invalid email format")
    if not validate_password(request.password):
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters long")
    first_name = clean_field(request.firstName)
    last_name = clean_field(request.lastName)
    career_field = clean_field(request.careerField)
    if not first_name or not last_name or not career_field:
        raise HTTPException(status_code=400, detail="First name, last name, and career field are required")

    try:
        email = clean_field(request.email).lower()
        if await db.get_user_by_email(email):
            raise HTTPException(status_code=400, detail="User with this email already exists")

        user = await db.create_user({
            "id": str(uuid.uuid4()),
            "email": email,
            "password_hash": hash_password(request.password),
            "first_name": first_name,
            "last_name": last_name,
            "career_field": career_field,
            "industries": request.industries or [],
            "city": clean_field(request.city),
            "state": clean_field(request.state),
            "country": clean_field(request.country),
            "preferences": dict(DEFAULT_PREFERENCES),
        })
        token = await _open_session(db, user["id"], config)
        logger.info(f"Registered user {user['id']}")

        return AuthResponse(message="User registered successfully", user=to_user_response(user), token=token)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Registration error: {e}")
        raise HTTPException(status_code=500, detail="Failed to register user")


@router.post("/login", response_model=AuthResponse)
async def login(
    request: LoginRequest,
    db: NewsDatabase = Depends(get_db),
    config: Settings = Depends(get_settings),
):
    if not request.email or not request.password:
        raise HTTPException(status_code=400, detail="Email and password are required")
    if not is_valid_email(request.email):
        raise HTTPException(status_code=400, detail="Invalid email format")

    try:
        user = await db.get_user_by_email(request.email)
        if not user or not verify_password(request.password, user["password_hash"]):
            raise HTTPException(status_code=401, detail="Invalid email or password")

        await db.delete_expired_sessions(user["id"])
        token = await _open_session(db, user["id"], config)

        return AuthResponse(message="Login successful", user=to_user_response(user), token=token)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Login error: {e}")
        raise HTTPException(status_code=500, detail="Failed to login user")


@router.post("/logout")
async def logout(
    session: Dict[str, Any] = Depends(get_current_session),
    db: NewsDatabase = Depends(get_db),
):
    try:
        await db.delete_session(session["token"])
        return {"message": "Logged out successfully"}
    except Exception as e:
        logger.error(f"Logout error: {e}")
        raise HTTPException(status_code=500, detail="Failed to logout")


@router.get("/verify")
async def verify(user: Dict[str, Any] = Depends(get_current_user)):
    return {"user": to_user_response(user)}
