import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(EMAIL_PATTERN.match(email))


def clean_field(value: Optional[str]) -> str:
    """Strip a request string field, treating a missing or null value as empty."""
    return (value or "").strip()


class NewsCategory(str, Enum):
    LOCAL = "local"
    REGIONAL = "regional"
    NATIONAL = "national"
    INDUSTRY = "industry"
    GLOBAL = "global"


# --- Upstream payload -------------------------------------------------------

class RawSource(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    url: Optional[str] = None


class RawArticle(BaseModel):
    """One entry of the ``articles`` list returned by the news API."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    urlToImage: Optional[str] = None
    publishedAt: Optional[str] = None
    source: Optional[RawSource] = None

    @property
    def source_name(self) -> str:
        return (self.source.name if self.source else None) or "Unknown"

    @property
    def source_url(self) -> str:
        return (self.source.url if self.source else None) or ""


# --- Engine types -----------------------------------------------------------

class Article(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Identifier assigned when the article was fetched")
    title: str = Field(..., description="Sanitized article title")
    description: str = Field("", description="Sanitized article description")
    url: str = Field("", description="Canonical article URL")
    image_url: Optional[str] = Field(None, description="Lead image URL")
    published_at: Optional[datetime] = Field(None, description="Publication time (UTC)")
    source_name: str = Field("Unknown", description="Publication name")
    source_url: str = Field("", description="Publication URL")
    category: NewsCategory = Field(..., description="Feed bucket the article belongs to")
    location_type: Optional[str] = Field(None, description="local, regional, national or global")
    location_value: Optional[str] = Field(None, description="City, state or country the query targeted")
    industry: Optional[str] = Field(None, description="Industry keyword for industry articles")
    relevance_score: int = Field(..., ge=0, le=10, description="Relevance score (0-10)")


class ClientLocation(BaseModel):
    city: str = Field(..., description="City name")
    state: str = Field(..., description="Region or state code")
    country: str = Field(..., description="ISO country code")
    timezone: str = Field(..., description="IANA timezone name")


class UserProfile(BaseModel):
    city: str
    state: str
    country: str
    career_field: str


class PersonalizedNews(BaseModel):
    local: List[Article] = Field(default_factory=list)
    regional: List[Article] = Field(default_factory=list)
    national: List[Article] = Field(default_factory=list)
    industry: List[Article] = Field(default_factory=list)
    global_: List[Article] = Field(default_factory=list, alias="global")

    model_config = ConfigDict(populate_by_name=True)

    def all_articles(self) -> List[Article]:
        return [*self.local, *self.regional, *self.national, *self.industry, *self.global_]


# --- Auth & user requests ---------------------------------------------------

class RegisterRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    careerField: Optional[str] = None
    industries: Optional[List[str]] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UpdateProfileRequest(BaseModel):
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    careerField: Optional[str] = None
    industries: Optional[List[str]] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    preferences: Optional[Dict[str, Any]] = None


class ChangePasswordRequest(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None


class DeleteAccountRequest(BaseModel):
    password: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    email: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    careerField: Optional[str] = None
    industries: List[str] = Field(default_factory=list)
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    preferences: Dict[str, Any] = Field(default_factory=dict)
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class AuthResponse(BaseModel):
    message: str
    user: UserResponse
    token: str


# --- News requests ----------------------------------------------------------

class BookmarkRequest(BaseModel):
    articleId: Optional[str] = None
    title: Optional[str] = None
    url: Optional[str] = None
    source: Optional[str] = None


class ReadingRequest(BaseModel):
    articleId: Optional[str] = None
    readingTime: Optional[int] = Field(0, ge=0, description="Seconds spent reading")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Overall API status")
    timestamp: datetime = Field(..., description="Timestamp of health check (UTC)")
    version: str = Field(..., description="Application version")
