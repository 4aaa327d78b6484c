"""
Recommendation Router
Stores and serves trail recommendations for the caller's trips. Generating
them is somebody else's job; this API only keeps what it is given.
"""

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from hikeplanner.core.config import RECOMMENDATION_TTL_DAYS
from hikeplanner.core.exceptions import NotFoundError
from hikeplanner.core.security import get_current_user_id
from hikeplanner.models.common import utcnow
from hikeplanner.models.recommendation import AIRecommendationCreate, RecommendationFeedback
from hikeplanner.repositories import Repositories
from hikeplanner.router.dependencies import (
    clamp_limit,
    dump,
    dump_all,
    get_repositories,
    pagination,
)

router = APIRouter(prefix="/recommendations", tags=["Recommendations"])


class ExtendRequest(BaseModel):
    days: int = Field(default=RECOMMENDATION_TTL_DAYS, ge=1, le=30)


async def _active_recommendation(repos: Repositories, recommendation_id: str, user_id: str):
    recommendation = await repos.recommendations.find_by_id(recommendation_id, user_id)
    # Expired documents may linger until the TTL sweep; treat them as gone
    if recommendation is None or (
        recommendation.expires_at is not None and recommendation.expires_at <= utcnow()
    ):
        raise NotFoundError("Recommendation")
    return recommendation


@router.get("")
async def list_recommendations(
    trip_id: str | None = Query(default=None, alias="tripId"),
    limit: int | None = Query(default=None, ge=1),
    continuation_token: str | None = Query(default=None, alias="continuationToken"),
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    if trip_id:
        items = await repos.recommendations.find_by_trip_id(trip_id, user_id)
        return {"recommendations": dump_all(items), "message": "Recommendations retrieved successfully"}

    page_size = clamp_limit(limit)
    page = await repos.recommendations.find_by_user_id(user_id, page_size, continuation_token)
    return {
        "recommendations": dump_all(page.items),
        "pagination": pagination(page_size, page.continuation_token, page.has_more),
        "message": "Recommendations retrieved successfully",
    }


@router.get("/stats")
async def recommendation_stats(
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    stats = await repos.recommendations.get_recommendation_stats(user_id)
    return {"stats": dump(stats), "message": "Recommendation statistics retrieved successfully"}


@router.get("/{recommendation_id}")
async def get_recommendation(
    recommendation_id: str,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    recommendation = await _active_recommendation(repos, recommendation_id, user_id)
    return {"recommendation": dump(recommendation), "message": "Recommendation retrieved successfully"}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_recommendation(
    payload: AIRecommendationCreate,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    # The trip must be the caller's; the trail ids are taken as given
    if not await repos.trips.exists(payload.trip_id, user_id):
        raise NotFoundError("Trip")
    recommendation = await repos.recommendations.create_recommendation(user_id, payload)
    return {"recommendation": dump(recommendation), "message": "Recommendation created successfully"}


@router.post("/{recommendation_id}/extend")
async def extend_recommendation(
    recommendation_id: str,
    payload: ExtendRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    days = payload.days if payload else RECOMMENDATION_TTL_DAYS
    await _active_recommendation(repos, recommendation_id, user_id)
    recommendation = await repos.recommendations.extend_recommendation_expiry(recommendation_id, user_id, days)
    return {"recommendation": dump(recommendation), "message": f"Recommendation extended by {days} days"}


@router.post("/{recommendation_id}/feedback")
async def recommendation_feedback(
    recommendation_id: str,
    payload: RecommendationFeedback,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    await _active_recommendation(repos, recommendation_id, user_id)
    recommendation = await repos.recommendations.record_feedback(recommendation_id, user_id, payload)
    return {"recommendation": dump(recommendation), "message": "Feedback recorded successfully"}


@router.delete("/{recommendation_id}")
async def delete_recommendation(
    recommendation_id: str,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    if not await repos.recommendations.delete(recommendation_id, user_id):
        raise NotFoundError("Recommendation")
    return {"message": "Recommendation deleted successfully"}
