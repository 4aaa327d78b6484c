"""
Stored trail recommendations
"""

from datetime import datetime, timedelta

from pydantic import Field, field_validator

from hikeplanner.core.config import RECOMMENDATION_TTL_DAYS
from hikeplanner.models.common import CamelModel, DocumentModel, as_utc, utcnow


def default_expiry() -> datetime:
    return utcnow() + timedelta(days=RECOMMENDATION_TTL_DAYS)


class Factors(CamelModel):
    fitness_match: float = Field(..., ge=0, le=1)
    preference_alignment: float = Field(..., ge=0, le=1)
    seasonal_suitability: float = Field(..., ge=0, le=1)
    safety_considerations: float = Field(..., ge=0, le=1)


class Alternative(CamelModel):
    trail_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=5, max_length=200)
    confidence: float = Field(..., ge=0, le=1)


class RecommendationFeedback(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    selected_trail: str | None = None
    comment: str | None = Field(default=None, max_length=1000)
    helpful: bool | None = None
    submitted_at: datetime | None = None


class AIRecommendationCreate(CamelModel):
    trip_id: str = Field(..., min_length=1)
    trail_ids: list[str] = Field(..., min_length=1)
    reasoning: str = Field(..., min_length=10, max_length=1000)
    confidence: float = Field(..., ge=0, le=1)
    factors: Factors
    alternatives: list[Alternative] = Field(default_factory=list)
    expires_at: datetime | None = None

    normalize_expiry = field_validator("expires_at")(as_utc)


class AIRecommendation(DocumentModel, AIRecommendationCreate):
    """Stored recommendation; partitioned by the owning user's id."""

    user_id: str
    feedback: RecommendationFeedback | None = None


class RecommendationStats(CamelModel):
    total: int = 0
    active: int = 0
    expired: int = 0
    average_confidence: float = 0
    # Mean of each factor, keyed by its camelCase name
    top_factors: dict[str, float] = Field(default_factory=dict)
    with_feedback: int = 0
    average_feedback_rating: float | None = None
