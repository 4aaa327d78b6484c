"""
Trail Router
Public trail catalogue: search, recommendations and region listings.
Creating trails and rating them requires a signed-in user.
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from hikeplanner.core.exceptions import NotFoundError, ValidationError
from hikeplanner.core.security import get_current_user_id
from hikeplanner.models.common import Difficulty, RangeFilter
from hikeplanner.models.trail import (
    TrailCreate,
    TrailRatingRequest,
    TrailSearchFilters,
    TrailSearchRequest,
)
from hikeplanner.repositories import Repositories
from hikeplanner.router.dependencies import clamp_limit, dump, dump_all, get_repositories, pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trails", tags=["Trails"])

RECOMMENDATION_COUNT = 5
BEGINNER_MAX_DISTANCE = 5


def _parse_difficulties(raw: str | None) -> list[Difficulty] | None:
    """Accepts one difficulty, a comma separated list, or "all"."""
    if not raw or raw.strip().lower() == "all":
        return None
    return [Difficulty(value.strip().lower()) for value in raw.split(",") if value.strip()]


@router.get("/search")
async def search_trails(
    location: str | None = Query(default=None, description="Free text matched against name, park and region"),
    region: str | None = None,
    difficulty: str | None = None,
    min_distance: float | None = Query(default=None, alias="minDistance", ge=0),
    max_distance: float | None = Query(default=None, alias="maxDistance", ge=0),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    sort_order: str | None = Query(default=None, alias="sortOrder"),
    limit: int | None = Query(default=None, ge=1),
    continuation_token: str | None = Query(default=None, alias="continuationToken"),
    repos: Repositories = Depends(get_repositories),
):
    try:
        difficulties = _parse_difficulties(difficulty)
    except ValueError:
        raise ValidationError(f"Unknown difficulty: {difficulty}")

    filters = TrailSearchFilters(region=region, difficulty=difficulties)
    if min_distance is not None or max_distance is not None:
        filters.distance = RangeFilter(min=min_distance, max=max_distance)

    request = TrailSearchRequest(
        query=location,
        filters=filters,
        sort_by=sort_by or "rating",
        sort_order=sort_order or "desc",
        limit=clamp_limit(limit),
        continuation_token=continuation_token,
    )
    result = await repos.trails.search_trails(request)
    return {
        "trails": dump_all(result.trails),
        "pagination": pagination(request.limit, result.continuation_token, result.has_more, result.total),
        "message": "Trails retrieved successfully",
    }


@router.get("/recommendations")
async def trail_recommendations(
    difficulty: str | None = None,
    location: str | None = None,
    experience_level: str | None = Query(default=None, alias="experienceLevel"),
    repos: Repositories = Depends(get_repositories),
):
    """
    Up to five active trails picked by simple filter matching.

    Beginners are steered to beginner trails of at most 5 km regardless of
    the requested difficulty.
    """
    try:
        difficulties = _parse_difficulties(difficulty)
    except ValueError:
        raise ValidationError(f"Unknown difficulty: {difficulty}")

    filters = TrailSearchFilters(difficulty=difficulties)
    if experience_level == Difficulty.BEGINNER.value:
        filters.difficulty = [Difficulty.BEGINNER.value]
        filters.distance = RangeFilter(min=0, max=BEGINNER_MAX_DISTANCE)

    request = TrailSearchRequest(
        query=location,
        filters=filters,
        sort_by="rating",
        sort_order="desc",
        limit=RECOMMENDATION_COUNT,
    )
    result = await repos.trails.search_trails(request)
    return {
        "recommendations": dump_all(result.trails[:RECOMMENDATION_COUNT]),
        "message": "Trail recommendations retrieved successfully",
        "meta": {
            "algorithm": "filter-match",
            "criteria": {
                "difficulty": difficulty,
                "location": location,
                "experienceLevel": experience_level,
            },
            "total": result.total,
        },
    }


@router.get("/regions/{region}")
async def trails_by_region(
    region: str,
    limit: int | None = Query(default=None, ge=1),
    continuation_token: str | None = Query(default=None, alias="continuationToken"),
    repos: Repositories = Depends(get_repositories),
):
    page_size = clamp_limit(limit)
    page = await repos.trails.find_by_region(region, page_size, continuation_token)
    return {
        "trails": dump_all(page.items),
        "pagination": pagination(page_size, page.continuation_token, page.has_more),
        "message": "Trails retrieved successfully",
    }


@router.get("/{trail_id}")
async def get_trail(
    trail_id: str,
    region: str | None = Query(default=None, description="Trail region; makes the lookup a point read"),
    repos: Repositories = Depends(get_repositories),
):
    if region:
        trail = await repos.trails.find_by_id(trail_id, region)
    else:
        trail = await repos.trails.find_any_partition(trail_id)
    if trail is None:
        raise NotFoundError("Trail")
    return {"trail": dump(trail), "message": "Trail retrieved successfully"}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_trail(
    payload: TrailCreate,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    trail = await repos.trails.create_trail(payload)
    logger.info(f"Trail {trail.id} created by {user_id}")
    return {"trail": dump(trail), "message": "Trail created successfully"}


@router.post("/{trail_id}/ratings")
async def rate_trail(
    trail_id: str,
    payload: TrailRatingRequest,
    region: str | None = None,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    if not region:
        trail = await repos.trails.find_any_partition(trail_id)
        if trail is None:
            raise NotFoundError("Trail")
        region = trail.location.region
    trail = await repos.trails.update_trail_rating(trail_id, region, payload.rating)
    return {"trail": dump(trail), "message": "Rating recorded successfully"}
