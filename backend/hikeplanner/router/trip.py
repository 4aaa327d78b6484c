"""
Trip Router
Handles trip planning for the authenticated user. Trips live in the caller's
own partition, so every lookup is scoped by their user id.
"""

import logging

from fastapi import APIRouter, Depends, Query, status

from hikeplanner.core.exceptions import NotFoundError
from hikeplanner.core.security import get_current_user_id
from hikeplanner.models.common import TripStatus
from hikeplanner.models.trip import TripPlanCreate, TripPlanUpdate, TripStatusUpdate
from hikeplanner.repositories import Repositories
from hikeplanner.router.dependencies import (
    clamp_limit,
    dump,
    dump_all,
    get_if_match,
    get_repositories,
    pagination,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/trips", tags=["Trips"])


async def _owned_trip(repos: Repositories, trip_id: str, user_id: str):
    trip = await repos.trips.find_by_id(trip_id, user_id)
    if trip is None:
        raise NotFoundError("Trip")
    return trip


@router.get("")
async def list_trips(
    status_filter: TripStatus | None = Query(default=None, alias="status"),
    sort_by: str | None = Query(default=None, alias="sortBy"),
    sort_order: str | None = Query(default=None, alias="sortOrder"),
    limit: int | None = Query(default=None, ge=1),
    continuation_token: str | None = Query(default=None, alias="continuationToken"),
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    page_size = clamp_limit(limit)
    page = await repos.trips.find_by_user_id(
        user_id,
        status=status_filter.value if status_filter else None,
        sort_by=sort_by,
        sort_order=sort_order,
        limit=page_size,
        continuation_token=continuation_token,
    )
    return {
        "trips": dump_all(page.items),
        "count": len(page.items),
        "pagination": pagination(page_size, page.continuation_token, page.has_more),
        "message": "Trips retrieved successfully",
    }


@router.get("/stats")
async def trip_stats(
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    stats = await repos.trips.get_trip_stats(user_id)
    return {"stats": dump(stats), "message": "Trip statistics retrieved successfully"}


@router.get("/{trip_id}")
async def get_trip(
    trip_id: str,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    trip = await _owned_trip(repos, trip_id, user_id)
    return {"trip": dump(trip), "message": "Trip retrieved successfully"}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_trip(
    payload: TripPlanCreate,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    trip = await repos.trips.create_trip(user_id, payload)
    return {"trip": dump(trip), "message": "Trip created successfully"}


@router.put("/{trip_id}")
async def update_trip(
    trip_id: str,
    payload: TripPlanUpdate,
    if_match: str | None = Depends(get_if_match),
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    """
    Partial update. Send If-Match with the trip's _etag to guard against
    overwriting a concurrent change; without it the etag read here is used.
    """
    trip = await _owned_trip(repos, trip_id, user_id)
    updated = await repos.trips.update_trip(trip_id, user_id, payload, if_match or trip.etag)
    return {"trip": dump(updated), "message": "Trip updated successfully"}


@router.delete("/{trip_id}")
async def delete_trip(
    trip_id: str,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    if not await repos.trips.delete(trip_id, user_id):
        raise NotFoundError("Trip")
    return {"message": "Trip deleted successfully"}


@router.put("/{trip_id}/status")
async def update_trip_status(
    trip_id: str,
    payload: TripStatusUpdate,
    if_match: str | None = Depends(get_if_match),
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    trip = await _owned_trip(repos, trip_id, user_id)
    updated = await repos.trips.update_status(trip_id, user_id, payload.status, if_match or trip.etag)
    return {"trip": dump(updated), "message": f"Trip status updated to {updated.status}"}


@router.post("/{trip_id}/trails/{trail_id}")
async def add_trail_to_trip(
    trip_id: str,
    trail_id: str,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    await _owned_trip(repos, trip_id, user_id)
    if await repos.trails.find_any_partition(trail_id) is None:
        raise NotFoundError("Trail")
    trip = await repos.trips.add_trail(trip_id, user_id, trail_id)
    return {"trip": dump(trip), "message": "Trail added to trip"}


@router.delete("/{trip_id}/trails/{trail_id}")
async def remove_trail_from_trip(
    trip_id: str,
    trail_id: str,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    await _owned_trip(repos, trip_id, user_id)
    trip = await repos.trips.remove_trail(trip_id, user_id, trail_id)
    return {"trip": dump(trip), "message": "Trail removed from trip"}


@router.get("/{trip_id}/trails")
async def get_trip_trails(
    trip_id: str,
    user_id: str = Depends(get_current_user_id),
    repos: Repositories = Depends(get_repositories),
):
    """
    Trails selected for the trip. Trails deleted since they were selected
    are reported in missingTrailIds instead of failing the request.
    """
    trip = await _owned_trip(repos, trip_id, user_id)
    trails = await repos.trails.find_by_ids(trip.selected_trails)
    by_id = {trail.id: trail for trail in trails}
    missing = [trail_id for trail_id in trip.selected_trails if trail_id not in by_id]
    if missing:
        logger.warning(f"Trip {trip_id} references missing trails: {missing}")
    return {
        "trails": dump_all([by_id[t] for t in trip.selected_trails if t in by_id]),
        "missingTrailIds": missing,
        "message": "Trip trails retrieved successfully",
    }
